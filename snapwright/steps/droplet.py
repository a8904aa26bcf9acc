"""Droplet creation and readiness.

States: absent -> creating -> active | error | timed out.
"""

from __future__ import annotations

from typing import Any

from snapwright.constants import DropletState
from snapwright.core.exceptions import BuildCancelledError, BuildTimeoutError, ResourceCreationError
from snapwright.infra.http import HttpError
from snapwright.pipeline.state import BuildContext, BuildState, StepAction
from snapwright.pipeline.step import BaseStep
from snapwright.providers.digitalocean.types import DropletResponse, get_private_ip, get_public_ip
from snapwright.providers.wait import TerminalStateError, wait_for_ready


def _image(image: str) -> str | int:
    return int(image) if image.isdigit() else image


def droplet_request(ctx: BuildContext, state: BuildState) -> dict[str, Any]:
    """Request body for the create-droplet call."""
    config = ctx.config

    ssh_keys: list[int] = []
    if state.ssh_key_id is not None:
        ssh_keys.append(state.ssh_key_id)
    if config.ssh_key_id is not None:
        ssh_keys.append(config.ssh_key_id)

    body: dict[str, Any] = {
        "name": config.droplet_name,
        "region": config.region,
        "size": config.size,
        "image": _image(config.image),
        "ssh_keys": ssh_keys,
        "private_networking": config.private_networking,
        "monitoring": config.monitoring,
        "ipv6": config.ipv6,
        "tags": list(config.tags),
    }
    if config.user_data:
        body["user_data"] = config.user_data
    if config.vpc_uuid:
        body["vpc_uuid"] = config.vpc_uuid
    if config.droplet_agent is not None:
        body["with_droplet_agent"] = config.droplet_agent
    return body


class StepCreateDroplet(BaseStep):
    async def run(self, ctx: BuildContext, state: BuildState) -> StepAction:
        ctx.log.info("Creating droplet...")
        try:
            droplet = await ctx.client.create_droplet(droplet_request(ctx, state))
        except HttpError as e:
            return state.fail(ResourceCreationError(f"Error creating droplet: {e}"))

        state.put("droplet_id", droplet["id"])
        state.put("droplet_name", droplet.get("name", ctx.config.droplet_name))
        ctx.log.info("Droplet {droplet_id} created", droplet_id=droplet["id"])
        return StepAction.CONTINUE

    async def cleanup(self, ctx: BuildContext, state: BuildState) -> None:
        # Destroying the droplet is deliberately left to the caller.
        if state.droplet_id is not None:
            ctx.log.warning(
                "Droplet {droplet_id} ({name}) was not destroyed by this build",
                droplet_id=state.droplet_id, name=state.droplet_name,
            )


class StepDropletInfo(BaseStep):
    """Wait for the droplet to become active and record its address."""

    async def run(self, ctx: BuildContext, state: BuildState) -> StepAction:
        config = ctx.config
        droplet_id = state.droplet_id
        if droplet_id is None:
            return state.fail(ResourceCreationError("No droplet to wait for"))

        ctx.log.info("Waiting for droplet to become active...")
        try:
            droplet: DropletResponse = await wait_for_ready(
                poll_fn=lambda: ctx.client.get_droplet(droplet_id),
                ready_check=lambda d: d.get("status") == DropletState.ACTIVE,
                terminal_check=lambda d: d.get("status") == DropletState.ARCHIVE,
                timeout=config.state_timeout,
                interval=config.poll_interval,
                description=f"droplet {droplet_id} to become active",
                cancel=ctx.cancel,
            )
        except BuildCancelledError as e:
            return state.fail(e)
        except BuildTimeoutError as e:
            return state.fail(BuildTimeoutError(f"Error waiting for droplet to become active: {e}"))
        except TerminalStateError as e:
            return state.fail(ResourceCreationError(f"Droplet {droplet_id} failed to start: {e}"))
        except HttpError as e:
            return state.fail(ResourceCreationError(f"Error retrieving droplet: {e}"))

        ip = get_private_ip(droplet) if config.use_private_ip else get_public_ip(droplet)
        if not ip:
            kind = "private" if config.use_private_ip else "public"
            return state.fail(ResourceCreationError(f"Droplet {droplet_id} has no {kind} IPv4 address"))

        state.put("droplet_ip", ip)
        ctx.log.info("Droplet {droplet_id} is active at {ip}", droplet_id=droplet_id, ip=ip)
        return StepAction.CONTINUE
