"""Per-build context and state.

``BuildContext`` holds the collaborators every step may use and never
changes during a build. ``BuildState`` is the typed, mutable record the
steps pass along: each field is written by exactly one step and read by
the ones after it.

Writes go through ``BuildState.put``, which refuses to overwrite a field
that is already set. The error slot is write-once: the first
classification recorded is the one the caller sees.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from snapwright.core.exceptions import BuildCancelledError, BuildError

if TYPE_CHECKING:
    from loguru import Logger

    from snapwright.communicator import Communicator, ProvisionHook
    from snapwright.config import BuildConfig
    from snapwright.providers.digitalocean.client import DigitalOceanClient


class StepAction(StrEnum):
    CONTINUE = "continue"
    HALT = "halt"


class TransferStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed-out"

    @property
    def failed(self) -> bool:
        return self in (TransferStatus.FAILED, TransferStatus.TIMED_OUT)


@dataclass(frozen=True, slots=True)
class BuildContext:
    """Collaborators shared by every step of one build."""

    config: BuildConfig
    client: DigitalOceanClient
    log: Logger
    communicator: Communicator | None = None
    hook: ProvisionHook | None = None
    cancel: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()


@dataclass
class BuildState:
    """Mutable state of one build.

    Written by:
        ssh_private_key, ssh_public_key: StepSSHKeyGen
        ssh_key_id: StepCreateSSHKey
        droplet_id, droplet_name: StepCreateDroplet
        droplet_ip: StepDropletInfo
        snapshot_name, snapshot_image_id, snapshot_region, regions,
        transfers: StepSnapshot
    """

    ssh_private_key: str | None = None
    ssh_public_key: str | None = None
    ssh_key_id: int | None = None
    droplet_id: int | None = None
    droplet_name: str | None = None
    droplet_ip: str | None = None
    snapshot_name: str | None = None
    snapshot_image_id: int | None = None
    snapshot_region: str | None = None
    regions: list[str] = field(default_factory=list)
    transfers: dict[str, TransferStatus] = field(default_factory=dict)
    generated_data: dict[str, Any] = field(default_factory=dict)
    error: BuildError | None = None

    def put(self, name: str, value: Any) -> None:
        """Set a field that has not been written yet."""
        current = getattr(self, name)
        if current is not None and current != [] and current != {}:
            raise RuntimeError(f"BuildState.{name} is already set")
        setattr(self, name, value)

    def fail(self, error: BuildError) -> StepAction:
        """Record ``error`` unless one is already recorded, and halt."""
        if self.error is None:
            self.error = error
        return StepAction.HALT

    def cancelled(self, message: str = "Build cancelled") -> StepAction:
        return self.fail(BuildCancelledError(message))

    @property
    def halted(self) -> bool:
        return self.error is not None


__all__ = [
    "BuildContext",
    "BuildState",
    "StepAction",
    "TransferStatus",
]
