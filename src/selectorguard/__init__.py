from __future__ import annotations

from .alternatives import generate
from .config import EngineSettings, load_settings
from .dom_context import DomContext, HtmlDomContext
from .engine import SelectorResilienceEngine
from .errors import PersistenceError, ResolutionError, SelectorGuardError
from .features import extract
from .models import (
    AnalysisResult,
    FeatureVector,
    OutcomeEvent,
    PageCheck,
    SelectorCandidate,
    SelectorProfile,
    WeightedPattern,
)
from .patterns import derive_pattern
from .scoring import recommend, score

__version__ = "0.1.0"

__all__ = [
    "AnalysisResult",
    "DomContext",
    "EngineSettings",
    "FeatureVector",
    "HtmlDomContext",
    "OutcomeEvent",
    "PageCheck",
    "PersistenceError",
    "ResolutionError",
    "SelectorCandidate",
    "SelectorGuardError",
    "SelectorProfile",
    "SelectorResilienceEngine",
    "WeightedPattern",
    "derive_pattern",
    "extract",
    "generate",
    "load_settings",
    "recommend",
    "score",
]
