"""Exception hierarchy for Pak Builder.

Per-unit build problems are never raised; they are reported as
:class:`pak_builder.builder.BuildOutcome` failures.  The exceptions
below cover the conditions that stop a session or a batch before (or
instead of) producing a result.
"""

from __future__ import annotations


class PakBuilderError(Exception):
    """Base class for all Pak Builder errors."""


class ConfigError(PakBuilderError, ValueError):
    """Configuration is missing required values or fails validation."""


class UnitsNotFoundError(PakBuilderError, LookupError):
    """The mods directory cannot be listed or holds no mod folders."""


class EmptySelectionError(PakBuilderError, ValueError):
    """A build was requested for zero units."""


class BuildCancelled(PakBuilderError):
    """A batch was cancelled before it completed."""


class RelocationError(PakBuilderError, OSError):
    """Moving an artifact into the destination directory failed.

    ``duplicated`` is ``True`` when the copy landed in the destination
    but the original could not be removed afterwards, so the artifact
    now exists in both places.
    """

    def __init__(self, message: str, *, duplicated: bool = False) -> None:
        super().__init__(message)
        self.duplicated = duplicated
