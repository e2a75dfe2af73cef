"""Exceptions for the pagefit input layer."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union


class PagefitError(Exception):
    """Base class for errors raised while preparing engine input."""
    pass


class InputFormatError(PagefitError):
    """Raised when a request file cannot be parsed into engine models."""

    def __init__(
        self,
        message: str,
        source: Optional[Union[str, Path]] = None,
        errors: Optional[List[Dict[str, Any]]] = None
    ):
        """
        Initialize InputFormatError.

        Args:
            message: Human-readable error message
            source: File the request was read from
            errors: Field-level validation errors, as reported by pydantic
        """
        super().__init__(message)
        self.source = source
        self.errors = errors or []

    def __str__(self) -> str:
        """Return formatted error message."""
        msg = super().__str__()

        if self.source is not None:
            msg = f"{self.source}: {msg}"

        if self.errors:
            details = []
            for error in self.errors:
                location = ".".join(str(part) for part in error.get("loc", ()))
                details.append(f"  - {location or '<root>'}: {error.get('msg', 'invalid value')}")
            msg += "\nErrors:\n" + "\n".join(details)

        return msg
