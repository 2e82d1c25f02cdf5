from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import re
import threading
import time
from typing import Any, Callable, Mapping

from .errors import PersistenceError
from .fileio import write_text_atomic
from .models import SelectorProfile, WeightedPattern

logger = logging.getLogger("selectorguard.persistence")

_TIER_KEYS = (("preferred", "preferred"), ("fallbacks", "fallbacks"), ("antiPatterns", "anti_patterns"))


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def profile_to_document(profile: SelectorProfile) -> dict[str, Any]:
    document: dict[str, Any] = {"domain": profile.domain}
    for key, attr in _TIER_KEYS:
        document[key] = [
            {
                "pattern": item.pattern,
                "stabilityScore": round(item.stability_score, 4),
                "observations": item.observations,
            }
            for item in getattr(profile, attr)
        ]
    document["updatedAt"] = format_timestamp(profile.updated_at)
    return document


def profile_from_document(document: Mapping[str, Any]) -> SelectorProfile:
    if not isinstance(document, Mapping):
        raise ValueError("profile document must be a JSON object")
    domain = str(document.get("domain") or "").strip()
    if not domain:
        raise ValueError("profile document has no domain")

    tiers: dict[str, list[WeightedPattern]] = {}
    seen: set[str] = set()
    for key, attr in _TIER_KEYS:
        items: list[WeightedPattern] = []
        for raw in document.get(key) or []:
            if not isinstance(raw, Mapping):
                continue
            pattern = str(raw.get("pattern") or "").strip()
            if not pattern or pattern in seen:
                continue
            seen.add(pattern)
            items.append(
                WeightedPattern(
                    pattern=pattern,
                    stability_score=max(0.0, min(100.0, float(raw.get("stabilityScore", 0.0) or 0.0))),
                    observations=max(0, int(raw.get("observations", 0) or 0)),
                )
            )
        tiers[attr] = items

    return SelectorProfile(
        domain=domain,
        preferred=tuple(tiers["preferred"]),
        fallbacks=tuple(tiers["fallbacks"]),
        anti_patterns=tuple(tiers["anti_patterns"]),
        updated_at=parse_timestamp(document.get("updatedAt")),
    )


class JsonProfileRepository:
    """One JSON document per domain."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, domain: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9._-]", "_", domain).strip(".") or "_"
        return self.directory / f"{safe}.json"

    def load(self, domain: str) -> SelectorProfile | None:
        path = self.path_for(domain)
        if not path.exists():
            return None
        try:
            return profile_from_document(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, TypeError, ValueError, OverflowError) as exc:
            logger.warning("Ignoring unreadable profile document %s: %s", path, exc)
            return None

    def load_all(self) -> list[SelectorProfile]:
        if not self.directory.is_dir():
            return []
        profiles: list[SelectorProfile] = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                profiles.append(profile_from_document(json.loads(path.read_text(encoding="utf-8"))))
            except (OSError, json.JSONDecodeError, TypeError, ValueError, OverflowError) as exc:
                logger.warning("Ignoring unreadable profile document %s: %s", path, exc)
        return profiles

    def save(self, profile: SelectorProfile) -> None:
        path = self.path_for(profile.domain)
        payload = json.dumps(profile_to_document(profile), ensure_ascii=True, indent=2)
        try:
            write_text_atomic(path, payload)
        except OSError as exc:
            raise PersistenceError(profile.domain, str(exc)) from exc

    def delete(self, domain: str) -> None:
        try:
            self.path_for(domain).unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(domain, str(exc)) from exc


class ProfileFlusher:
    """Debounced background writer for dirty domain profiles.

    ``source`` returns the current profile for a domain, or None when the
    domain was reset and its document should be removed. Failed writes are
    retried with exponential backoff; the in-memory state stays authoritative.
    """

    def __init__(
        self,
        repository: JsonProfileRepository,
        source: Callable[[str], SelectorProfile | None],
        interval: float = 2.0,
        max_backoff: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.repository = repository
        self.source = source
        self.interval = interval
        self.max_backoff = max_backoff
        self._clock = clock
        self._lock = threading.Lock()
        # Held across a whole flush pass; writes never interleave.
        self._write_lock = threading.Lock()
        self._dirty: set[str] = set()
        self._failures: dict[str, int] = {}
        self._next_attempt: dict[str, float] = {}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def mark_dirty(self, domain: str) -> None:
        with self._lock:
            self._dirty.add(domain)
            if self._thread is None and not self._stop.is_set():
                self._thread = threading.Thread(
                    target=self._run,
                    name="selectorguard-flusher",
                    daemon=True,
                )
                self._thread.start()

    def pending(self) -> set[str]:
        with self._lock:
            return set(self._dirty)

    def flush_pending(self, force: bool = False) -> list[str]:
        with self._write_lock:
            return self._flush_due(force)

    def _flush_due(self, force: bool) -> list[str]:
        now = self._clock()
        with self._lock:
            due = [
                domain
                for domain in sorted(self._dirty)
                if force or self._next_attempt.get(domain, 0.0) <= now
            ]
            self._dirty.difference_update(due)

        failed: list[str] = []
        for domain in due:
            try:
                self._write(domain)
            except PersistenceError as exc:
                failed.append(domain)
                self._schedule_retry(domain, exc)
            else:
                with self._lock:
                    self._failures.pop(domain, None)
                    self._next_attempt.pop(domain, None)
        return failed

    def close(self) -> list[str]:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=max(1.0, self.interval * 2))
        return self.flush_pending(force=True)

    def _write(self, domain: str) -> None:
        profile = self.source(domain)
        if profile is None:
            self.repository.delete(domain)
        else:
            self.repository.save(profile)

    def _schedule_retry(self, domain: str, exc: PersistenceError) -> None:
        with self._lock:
            attempts = self._failures.get(domain, 0) + 1
            self._failures[domain] = attempts
            delay = min(self.interval * (2 ** attempts), self.max_backoff)
            self._next_attempt[domain] = self._clock() + delay
            self._dirty.add(domain)
        logger.warning("Profile flush failed (attempt %s, retry in %.1fs): %s", attempts, delay, exc)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.flush_pending()
            except Exception:
                logger.exception("Unexpected error in profile flusher.")
