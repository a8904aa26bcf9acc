"""Build orchestration.

``Builder`` turns a BuildConfig into an Artifact: it validates snapshot
regions before touching anything, assembles the step list once, runs it,
and either returns the artifact or raises the single error that halted
the build.

Example:
    config, _ = prepare(raw)
    builder = Builder(config)
    artifact = await builder.run(
        communicator=SSHCommunicator.from_config(config),
        hook=ShellProvisioner(["apt-get update"]),
    )
    print(artifact.id)
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from snapwright.artifact import Artifact
from snapwright.communicator import Communicator, ProvisionHook
from snapwright.config import BuildConfig
from snapwright.core.exceptions import BuildError
from snapwright.observability.logging import Redactor
from snapwright.pipeline import BuildContext, BuildState, Runner, Step, when
from snapwright.providers.digitalocean.client import DigitalOceanClient
from snapwright.steps import (
    StepCleanupTempKeys,
    StepConnect,
    StepCreateDroplet,
    StepCreateSSHKey,
    StepDropletInfo,
    StepDumpSSHKey,
    StepPowerOff,
    StepProvision,
    StepShutdown,
    StepSnapshot,
    StepSSHKeyGen,
    validate_regions,
)


def build_steps(config: BuildConfig) -> list[Step | None]:
    """The build's steps, with conditional ones decided now."""
    temp_key = config.generate_temporary_key
    return [
        when(temp_key, StepSSHKeyGen()),
        when(
            temp_key and config.debug and not config.ssh_private_key_file,
            StepDumpSSHKey(Path(f"do_{config.build_name}.pem")),
        ),
        when(temp_key, StepCreateSSHKey()),
        StepCreateDroplet(),
        StepDropletInfo(),
        StepConnect(),
        StepProvision(),
        when(temp_key, StepCleanupTempKeys()),
        StepShutdown(),
        StepPowerOff(),
        StepSnapshot(),
    ]


class Builder:
    def __init__(self, config: BuildConfig) -> None:
        self.config = config
        self._cancel = asyncio.Event()

    def cancel(self) -> None:
        """Ask the running build to stop at its next check."""
        self._cancel.set()

    async def run(
        self,
        *,
        communicator: Communicator | None = None,
        hook: ProvisionHook | None = None,
        cancel: asyncio.Event | None = None,
        client: DigitalOceanClient | None = None,
    ) -> Artifact:
        """Run the build.

        Args:
            communicator: How to reach the droplet. Without one, connect and
                provisioning are skipped.
            hook: Provisioning hook run once the droplet is reachable.
            cancel: Cancellation event. Defaults to the one ``cancel()`` sets.
            client: API client to use instead of building one from config.

        Raises:
            BuildError: The first classified failure of the build.
        """
        config = self.config
        redactor = Redactor([config.api_token])
        log = redactor.bind(provider="digitalocean", component="builder")

        owns_client = client is None
        if client is None:
            client = DigitalOceanClient(
                config.api_token, api_url=config.api_url, policy=config.retry, log=log
            )

        ctx = BuildContext(
            config=config,
            client=client,
            log=log,
            communicator=communicator,
            hook=hook,
            cancel=cancel or self._cancel,
        )
        state = BuildState()

        try:
            await validate_regions(client, config)
            await Runner(build_steps(config)).run(ctx, state)
        finally:
            if owns_client:
                await client.close()

        if state.error is not None:
            raise state.error

        try:
            artifact = Artifact.from_state(config, state)
        except ValueError as e:
            raise BuildError(str(e)) from e

        log.info("{artifact}", artifact=artifact)
        return artifact
