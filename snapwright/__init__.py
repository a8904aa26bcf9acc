"""snapwright: build DigitalOcean snapshots from a disposable droplet.

Example:
    import asyncio
    from snapwright import Builder, SSHCommunicator, ShellProvisioner, prepare

    config, warnings = prepare({
        "region": "nyc3",
        "size": "s-1vcpu-1gb",
        "image": "ubuntu-24-04-x64",
        "snapshot_regions": ["sfo3"],
    })
    artifact = asyncio.run(Builder(config).run(
        communicator=SSHCommunicator.from_config(config),
        hook=ShellProvisioner(["apt-get update"]),
    ))
"""

from snapwright.artifact import Artifact
from snapwright.builder import Builder, build_steps
from snapwright.communicator import (
    Communicator,
    ProvisionHook,
    ShellProvisioner,
    SSHCommunicator,
)
from snapwright.config import BuildConfig, RetryPolicy, load_config, prepare
from snapwright.constants import VERSION as __version__
from snapwright.core.exceptions import (
    BuildCancelledError,
    BuildError,
    BuildTimeoutError,
    CleanupError,
    ConfigValidationError,
    ResourceCreationError,
    SnapshotFailedError,
    SnapshotTimeoutError,
    SnapwrightError,
    TransferFailedError,
)
from snapwright.infra.http import HttpError
from snapwright.observability.logging import LogConfig, setup_logging, teardown_logging
from snapwright.pipeline import BuildState, TransferStatus

__all__ = [
    "Artifact",
    "BuildCancelledError",
    "BuildConfig",
    "BuildError",
    "BuildState",
    "BuildTimeoutError",
    "Builder",
    "CleanupError",
    "Communicator",
    "ConfigValidationError",
    "HttpError",
    "LogConfig",
    "ProvisionHook",
    "ResourceCreationError",
    "RetryPolicy",
    "SSHCommunicator",
    "ShellProvisioner",
    "SnapshotFailedError",
    "SnapshotTimeoutError",
    "SnapwrightError",
    "TransferFailedError",
    "TransferStatus",
    "__version__",
    "build_steps",
    "load_config",
    "prepare",
    "setup_logging",
    "teardown_logging",
]
