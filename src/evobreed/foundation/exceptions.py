"""
evobreed exception hierarchy.

Provides user-friendly exceptions with helpful error messages and suggestions.
All evobreed-specific exceptions inherit from EvoBreedError for easy catching.

Two severities exist at run level:
    - configuration problems found during setup are *recoverable*: they are
      recorded in the run's ErrorLog and reported together by SetupError;
    - FatalError subclasses abort the run after any running workers joined.

Example:
    try:
        result = state.run()
    except EvoBreedError as e:
        print(f"Run failed: {e}")
        print(f"Suggestion: {e.suggestion}")
"""

from __future__ import annotations

from difflib import get_close_matches
from typing import Any, Sequence


class EvoBreedError(Exception):
    """
    Base exception for all evobreed errors.

    Attributes:
        message: Human-readable error description
        suggestion: Optional suggestion for fixing the error
        details: Optional dict with additional context
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the full error message with suggestion."""
        msg = self.message
        if self.suggestion:
            msg += f"\n\nSuggestion: {self.suggestion}"
        return msg


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(EvoBreedError):
    """Raised when configuration is invalid or incomplete."""

    pass


class MissingParameterError(ConfigurationError):
    """Raised when a required parameter is missing."""

    def __init__(self, key: str, fallback: str | None = None) -> None:
        message = f"Missing required parameter: '{key}'."
        if fallback:
            message = f"Missing required parameter: '{key}' (or its default '{fallback}')."
        suggestion = f"Add '{key}' to the run parameters"
        super().__init__(message, suggestion, {"key": key, "fallback": fallback})


class InvalidParameterError(ConfigurationError):
    """Raised when a parameter exists but its value is malformed or out of range."""

    def __init__(self, key: str, value: Any, expected: str) -> None:
        message = f"Invalid value {value!r} for parameter '{key}': expected {expected}."
        super().__init__(message, None, {"key": key, "value": value, "expected": expected})


class UnknownComponentError(ConfigurationError):
    """Raised when a configuration name is not present in a registry."""

    def __init__(self, kind: str, name: str, available: Sequence[str] | None = None) -> None:
        message = f"Unknown {kind} '{name}'."
        suggestion = None
        if available:
            close = get_close_matches(name.lower(), list(available), n=3, cutoff=0.6)
            suggestion = f"Available {kind} names: {', '.join(available)}"
            if close:
                suggestion = f"Did you mean '{close[0]}'? " + suggestion
        super().__init__(message, suggestion, {"kind": kind, "name": name})


class SetupError(ConfigurationError):
    """
    Raised once after setup validation when recoverable errors were recorded.

    Every recorded error is carried, not just the first one.
    """

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        count = len(self.errors)
        lines = "\n".join(f"  - {err}" for err in self.errors)
        message = f"Setup failed with {count} error{'s' if count != 1 else ''}:\n{lines}"
        super().__init__(message, "Fix the listed parameters and start the run again", {"errors": self.errors})


# =============================================================================
# Fatal Runtime Errors
# =============================================================================


class FatalError(EvoBreedError):
    """Raised when a runtime invariant is violated; the run cannot continue."""

    pass


class EvaluationError(FatalError):
    """Raised when a Problem fails while evaluating individuals."""

    def __init__(self, message: str, subpopulation: int | None = None, thread: int | None = None) -> None:
        suggestion = "Check your problem's evaluate() function for errors"
        super().__init__(message, suggestion, {"subpopulation": subpopulation, "thread": thread})


class FitnessMissingError(FatalError):
    """Raised when ranking meets an individual that has no fitness yet."""

    def __init__(self, subpopulation: int, index: int) -> None:
        message = f"Individual {index} of subpopulation {subpopulation} has not been evaluated."
        suggestion = "Multi-objective ranking must run after every individual was evaluated"
        super().__init__(message, suggestion, {"subpopulation": subpopulation, "index": index})


class FitnessTypeError(FatalError):
    """Raised when a fitness has an unexpected type or incompatible shape."""

    pass


class GenomeKindError(FatalError):
    """Raised when an operator receives an individual whose genome it cannot handle."""

    def __init__(self, operator: str, expected: str, actual: str) -> None:
        message = f"{operator} expects genomes of kind '{expected}' but received '{actual}'."
        suggestion = "Match the pipeline's operators to the species encoding"
        super().__init__(message, suggestion, {"operator": operator, "expected": expected, "actual": actual})


class BreedingError(FatalError):
    """Raised when a breeding pipeline violates its production contract."""

    pass


__all__ = [
    "EvoBreedError",
    # Configuration
    "ConfigurationError",
    "MissingParameterError",
    "InvalidParameterError",
    "UnknownComponentError",
    "SetupError",
    # Runtime
    "FatalError",
    "EvaluationError",
    "FitnessMissingError",
    "FitnessTypeError",
    "GenomeKindError",
    "BreedingError",
]
