"""Temporary SSH key lifecycle.

A build that was not handed a usable key pair generates one, registers
the public half with DigitalOcean so the droplet is created with it, and
deregisters it when the build ends, whatever the outcome.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from dataclasses import dataclass
from pathlib import Path

import asyncssh

from snapwright.constants import RESOURCE_PREFIX
from snapwright.core.exceptions import BuildError, ResourceCreationError
from snapwright.infra.http import HttpError
from snapwright.pipeline.state import BuildContext, BuildState, StepAction
from snapwright.pipeline.step import BaseStep

_ALGORITHMS = {"rsa": "ssh-rsa", "ed25519": "ssh-ed25519"}


def generate_key_pair(kind: str = "rsa", bits: int = 4096) -> tuple[str, str]:
    """Generate an OpenSSH key pair. Returns (private_key, public_key)."""
    algorithm = _ALGORITHMS[kind]
    options = {"key_size": bits} if kind == "rsa" else {}
    key = asyncssh.generate_private_key(algorithm, comment=RESOURCE_PREFIX, **options)
    private = key.export_private_key("openssh").decode()
    public = key.export_public_key("openssh").decode().strip()
    return private, public


class StepSSHKeyGen(BaseStep):
    async def run(self, ctx: BuildContext, state: BuildState) -> StepAction:
        config = ctx.config
        ctx.log.info(
            "Creating temporary {kind} SSH key for droplet...",
            kind=config.temporary_key_pair_type,
        )
        private, public = await asyncio.to_thread(
            generate_key_pair, config.temporary_key_pair_type, config.temporary_key_pair_bits
        )
        state.put("ssh_private_key", private)
        state.put("ssh_public_key", public)
        return StepAction.CONTINUE


@dataclass
class StepDumpSSHKey(BaseStep):
    """Write the temporary private key to disk for debugging."""

    path: Path

    async def run(self, ctx: BuildContext, state: BuildState) -> StepAction:
        if not state.ssh_private_key:
            return StepAction.CONTINUE
        ctx.log.info("Saving key for debug purposes: {path}", path=self.path)
        try:
            self.path.write_text(state.ssh_private_key)
            os.chmod(self.path, 0o600)
        except OSError as e:
            return state.fail(BuildError(f"Error saving debug key: {e}"))
        return StepAction.CONTINUE


class StepCreateSSHKey(BaseStep):
    async def run(self, ctx: BuildContext, state: BuildState) -> StepAction:
        if not state.ssh_public_key:
            return state.fail(BuildError("No temporary public key to register"))

        name = f"{RESOURCE_PREFIX}-{uuid.uuid4()}"
        ctx.log.info("Creating temporary ssh key {name}", name=name)
        try:
            key = await ctx.client.create_ssh_key(name, state.ssh_public_key)
        except HttpError as e:
            return state.fail(ResourceCreationError(f"Error creating temporary SSH key: {e}"))

        state.put("ssh_key_id", key["id"])
        ctx.log.debug("temporary ssh key id: {key_id}", key_id=key["id"])
        return StepAction.CONTINUE

    async def cleanup(self, ctx: BuildContext, state: BuildState) -> None:
        if state.ssh_key_id is None:
            return

        ctx.log.info("Deleting temporary ssh key...")
        try:
            await ctx.client.delete_ssh_key(state.ssh_key_id)
        except HttpError as e:
            if e.not_found:
                ctx.log.debug("Temporary ssh key {key_id} already gone", key_id=state.ssh_key_id)
                return
            ctx.log.error(
                "Error cleaning up ssh key {key_id}: {error}. Please delete the key manually.",
                key_id=state.ssh_key_id, error=e,
            )


class StepCleanupTempKeys(BaseStep):
    """Remove the temporary public key from the droplet before it is captured."""

    async def run(self, ctx: BuildContext, state: BuildState) -> StepAction:
        if ctx.communicator is None or not state.ssh_public_key:
            return StepAction.CONTINUE

        parts = state.ssh_public_key.split()
        if len(parts) < 2:
            return StepAction.CONTINUE

        ctx.log.info("Trying to remove ephemeral keys from authorized_keys files")
        command = (
            f"sed -i.bak '\\#{parts[1]}#d' ~/.ssh/authorized_keys; "
            "rm -f ~/.ssh/authorized_keys.bak"
        )
        try:
            code, _, stderr = await ctx.communicator.run(command)
        except (OSError, asyncssh.Error) as e:
            ctx.log.warning("Error removing temporary ssh key: {error}", error=e)
            return StepAction.CONTINUE
        if code != 0:
            ctx.log.warning("Error removing temporary ssh key: {stderr}", stderr=stderr.strip())
        return StepAction.CONTINUE
