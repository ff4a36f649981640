"""Exception hierarchy.

Precondition errors abort a run before anything executes. Provider errors
raised inside a single test case are captured into that case's result by
the executor and never unwind the orchestrator.
"""

from __future__ import annotations

from typing import Optional


class SuiteKitError(Exception):
    """Base class for all suitekit errors."""


class ProviderError(SuiteKitError):
    """A provider call returned a non-2xx status or an unusable payload."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"ProviderError(status_code={self.status_code!r}, message={self.message!r})"


class UnknownProviderError(SuiteKitError):
    def __init__(self, provider: str) -> None:
        super().__init__(f"Unknown provider: {provider}")
        self.provider = provider


class PreconditionError(SuiteKitError):
    """Raised before execution starts when a run cannot be attempted."""


class MissingCredentialsError(PreconditionError):
    def __init__(self, provider: str, message: str) -> None:
        super().__init__(message)
        self.provider = provider


class TargetNotFoundError(PreconditionError):
    pass


class NoMatchingTestCasesError(PreconditionError):
    """The ID or tag filter (or the suite itself) produced no test cases."""


class NoEnabledTestCasesError(PreconditionError):
    """Test cases matched the filters but all of them are disabled."""
