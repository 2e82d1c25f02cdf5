from __future__ import annotations

import argparse
import json
from pathlib import Path
import sys
from typing import Any, Sequence

from .config import load_settings
from .dom_context import HtmlDomContext
from .engine import SelectorResilienceEngine
from .errors import SelectorGuardError
from .log import configure_logging
from .models import SELECTOR_KINDS, AnalysisResult, OutcomeEvent, SelectorCandidate
from .persistence import profile_to_document


def result_payload(result: AnalysisResult) -> dict[str, Any]:
    features = result.features
    return {
        "selector": result.candidate.value,
        "kind": result.candidate.kind,
        "stabilityScore": result.stability_score,
        "recommendation": result.recommendation,
        "matchCount": result.match_count,
        "features": {
            "hasStableIdAttribute": features.has_stable_id_attribute,
            "hasAriaLabel": features.has_aria_label,
            "hasVisibleText": features.has_visible_text,
            "hasDataAttribute": features.has_data_attribute,
            "domDepth": features.dom_depth,
            "siblingPositionVariance": features.sibling_position_variance,
            "isUniqueMatch": features.is_unique_match,
        },
        "warnings": list(result.warnings),
        "suggestions": list(result.suggestions),
        "alternatives": [result_payload(item) for item in result.alternatives],
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="selectorguard",
        description="Score selector stability and manage learned per-domain selector profiles.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    analyze = commands.add_parser("analyze", help="Analyze a selector against a saved HTML page")
    analyze.add_argument("page", type=Path, help="Path to an HTML file")
    analyze.add_argument("selector", help="Selector to analyze")
    analyze.add_argument("--kind", choices=SELECTOR_KINDS, default="css")
    analyze.add_argument("--limit", type=int, default=None, help="Maximum number of alternatives")

    record = commands.add_parser("record", help="Record an automation outcome for a domain")
    record.add_argument("domain")
    record.add_argument("selector")
    record.add_argument("--kind", choices=SELECTOR_KINDS, default="css")
    record.add_argument("--not-found", action="store_true", help="The selector did not resolve")
    record.add_argument("--ambiguous", action="store_true", help="The selector matched several elements")

    check = commands.add_parser("test", help="Run one selector against several saved HTML pages")
    check.add_argument("selector", help="Selector to test")
    check.add_argument("pages", type=Path, nargs="+", help="Paths to HTML files")
    check.add_argument("--kind", choices=SELECTOR_KINDS, default="css")

    profile = commands.add_parser("profile", help="Show, reset or export domain profiles")
    profile.add_argument("action", choices=("show", "reset", "export", "report"))
    profile.add_argument("domain", nargs="?", default=None)
    return parser


def run(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    logger = configure_logging(settings)

    with SelectorResilienceEngine(settings) as engine:
        try:
            payload = _dispatch(engine, args)
        except SelectorGuardError as exc:
            logger.warning("%s", exc)
            print(f"error: {exc}", file=sys.stderr)
            return 2
        except OSError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 2

    if payload is not None:
        print(json.dumps(payload, indent=2))
    return 0


def _dispatch(engine: SelectorResilienceEngine, args: argparse.Namespace) -> Any:
    if args.command == "analyze":
        context = HtmlDomContext.from_html(args.page.read_bytes())
        result = engine.analyze(SelectorCandidate(args.selector, args.kind), context, limit=args.limit)
        return result_payload(result)

    if args.command == "test":
        contexts = {str(page): HtmlDomContext.from_html(page.read_bytes()) for page in args.pages}
        checks = engine.test(SelectorCandidate(args.selector, args.kind), contexts)
        return [
            {
                "page": check.label,
                "found": check.found,
                "matchCount": check.match_count,
                "isUniqueMatch": check.is_unique_match,
                "stabilityScore": check.stability_score,
                "recommendation": check.recommendation,
                "error": check.error,
            }
            for check in checks
        ]

    if args.command == "record":
        event = OutcomeEvent(
            domain=args.domain,
            selector=SelectorCandidate(args.selector, args.kind),
            found=not args.not_found,
            unique_match=not args.not_found and not args.ambiguous,
        )
        engine.record_outcome(event)
        return profile_to_document(engine.get_profile(args.domain))

    if args.action == "export":
        return engine.export_profiles()
    if not args.domain:
        raise SystemExit(f"profile {args.action} requires a domain")
    if args.action == "reset":
        engine.reset_profile(args.domain)
        return None
    if args.action == "report":
        return engine.stability_report(args.domain)
    return profile_to_document(engine.get_profile(args.domain))


def main() -> int:
    if sys.version_info < (3, 11):
        raise SystemExit(
            "selectorguard requires Python 3.11+. "
            f"Current interpreter: {sys.executable} (Python {sys.version.split()[0]})"
        )
    return run()


if __name__ == "__main__":
    raise SystemExit(main())
