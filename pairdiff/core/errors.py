"""
Exception taxonomy for comparison runs.

Configuration-time errors (conflicting options, bad patterns, usage
mistakes) and operational fatals abort the whole run with exit status 2.
ResolutionError is the only recoverable one: the engine converts it into
a TROUBLE verdict for the current pair and keeps going.
"""

from __future__ import annotations

import os
from typing import Optional


class DiffError(Exception):
    """Base class for all pairdiff errors."""


class UsageError(DiffError):
    """Malformed command line (operand count, numeric option syntax)."""


class ConfigConflictError(DiffError):
    """Two options request different values for the same setting."""

    def __init__(self, option: str, value: object = None, message: Optional[str] = None):
        self.option = option
        self.value = value
        if message is None:
            message = f"conflicting {option} option value '{value}'"
        super().__init__(message)


class PatternError(DiffError):
    """A regular expression given on the command line does not compile."""

    def __init__(self, pattern: str, diagnostic: str):
        self.pattern = pattern
        self.diagnostic = diagnostic
        super().__init__(f"{pattern}: {diagnostic}")


class OperationalFatal(DiffError):
    """A condition that makes the rest of the run meaningless."""


class ResolutionError(DiffError):
    """
    OS-level failure while stating, opening, reading or closing an entity.

    Always attributed to the name of the entity it happened on.
    """

    def __init__(self, name: str, error: OSError):
        self.name = name
        self.error = error
        super().__init__(f"{name}: {describe_os_error(error)}")

    @property
    def errno(self) -> Optional[int]:
        return self.error.errno


def describe_os_error(error: OSError) -> str:
    """Return the strerror text for an OSError, never a bare number."""
    if error.errno is not None:
        return os.strerror(error.errno)
    return error.strerror or str(error)
