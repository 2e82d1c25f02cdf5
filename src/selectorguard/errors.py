from __future__ import annotations


class SelectorGuardError(Exception):
    """Base class for engine errors."""


class ResolutionError(SelectorGuardError):
    """The selector could not be evaluated against the DOM context."""

    def __init__(self, selector: str, reason: str) -> None:
        self.selector = selector
        self.reason = reason
        super().__init__(f"Could not resolve selector {selector!r}: {reason}")


class PersistenceError(SelectorGuardError):
    """Writing a domain profile document failed."""

    def __init__(self, domain: str, reason: str) -> None:
        self.domain = domain
        self.reason = reason
        super().__init__(f"Could not persist profile for {domain!r}: {reason}")
