"""Custom exception hierarchy for snapwright.

All snapwright-specific exceptions inherit from SnapwrightError, enabling
users to catch every build failure with a single except clause. Classified
step failures derive from BuildError and are what a build halts with.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from snapwright.pipeline.state import TransferStatus


class SnapwrightError(Exception):
    """Base exception for all snapwright errors."""


class BuildError(SnapwrightError):
    """A classified failure that halts a build."""


class ConfigValidationError(BuildError):
    """Raised for invalid configuration, before any provider mutation."""

    def __init__(self, errors: Iterable[str]) -> None:
        self.errors = tuple(errors)
        super().__init__("; ".join(self.errors))


class ResourceCreationError(BuildError):
    """The provider rejected or lost a resource we asked it to create."""


class BuildTimeoutError(BuildError):
    """Raised when a polled resource does not settle within its timeout."""


class SnapshotTimeoutError(BuildTimeoutError):
    """The snapshot action did not complete within the snapshot timeout."""


class SnapshotFailedError(BuildError):
    """The snapshot action reported an error."""


class TransferFailedError(BuildError):
    """One or more snapshot transfers failed or timed out."""

    def __init__(self, failures: Mapping[str, TransferStatus]) -> None:
        self.failures = dict(failures)
        detail = ", ".join(
            f"{region} ({status.value})" for region, status in sorted(self.failures.items())
        )
        super().__init__(f"Snapshot transfer failed for regions: {detail}")

    @property
    def regions(self) -> list[str]:
        return sorted(self.failures)


class BuildCancelledError(BuildError):
    """The build was cancelled by the caller."""

    def __init__(self, message: str = "Build cancelled") -> None:
        super().__init__(message)


class CleanupError(SnapwrightError):
    """A cleanup action failed. Logged, never propagated."""

    def __init__(self, step: str, cause: BaseException) -> None:
        self.step = step
        self.cause = cause
        super().__init__(f"Cleanup of {step} failed: {cause}")


__all__ = [
    "BuildCancelledError",
    "BuildError",
    "BuildTimeoutError",
    "CleanupError",
    "ConfigValidationError",
    "ResourceCreationError",
    "SnapshotFailedError",
    "SnapshotTimeoutError",
    "SnapwrightError",
    "TransferFailedError",
]
