"""Shutdown and power-off.

A graceful shutdown is attempted first; if the droplet is not off within
the state timeout the build moves on and ``StepPowerOff`` forces it. The
droplet must be confirmed off before a snapshot is taken.
"""

from __future__ import annotations

from snapwright.constants import ActionState, DropletState
from snapwright.core.exceptions import BuildCancelledError, BuildError, BuildTimeoutError
from snapwright.infra.http import HttpError
from snapwright.pipeline.state import BuildContext, BuildState, StepAction
from snapwright.pipeline.step import BaseStep
from snapwright.providers.wait import TerminalStateError, wait_for_ready


async def wait_for_droplet_state(
    ctx: BuildContext, droplet_id: int, desired: DropletState, timeout: float
) -> None:
    await wait_for_ready(
        poll_fn=lambda: ctx.client.get_droplet(droplet_id),
        ready_check=lambda d: d.get("status") == desired,
        timeout=timeout,
        interval=ctx.config.poll_interval,
        description=f"droplet {droplet_id} to become {desired}",
        cancel=ctx.cancel,
    )


async def wait_for_action(
    ctx: BuildContext,
    action_id: int,
    timeout: float,
    *,
    timeout_error: type[BuildTimeoutError] = BuildTimeoutError,
) -> None:
    """Wait for a droplet action to complete.

    Raises TerminalStateError if the action errors.
    """
    await wait_for_ready(
        poll_fn=lambda: ctx.client.get_action(action_id),
        ready_check=lambda a: a.get("status") == ActionState.COMPLETED,
        terminal_check=lambda a: a.get("status") == ActionState.ERRORED,
        timeout=timeout,
        interval=ctx.config.poll_interval,
        description=f"action {action_id} to complete",
        cancel=ctx.cancel,
        timeout_error=timeout_error,
    )


class StepShutdown(BaseStep):
    async def run(self, ctx: BuildContext, state: BuildState) -> StepAction:
        droplet_id = state.droplet_id
        if droplet_id is None:
            return state.fail(BuildError("No droplet to shut down"))

        ctx.log.info("Gracefully shutting down droplet...")
        try:
            await ctx.client.shutdown(droplet_id)
            await wait_for_droplet_state(
                ctx, droplet_id, DropletState.OFF, ctx.config.state_timeout
            )
        except BuildCancelledError as e:
            return state.fail(e)
        except (BuildTimeoutError, HttpError) as e:
            ctx.log.warning("Graceful shutdown did not finish ({error}); forcing power off", error=e)

        return StepAction.CONTINUE


class StepPowerOff(BaseStep):
    async def run(self, ctx: BuildContext, state: BuildState) -> StepAction:
        droplet_id = state.droplet_id
        if droplet_id is None:
            return state.fail(BuildError("No droplet to power off"))
        timeout = ctx.config.state_timeout

        try:
            droplet = await ctx.client.get_droplet(droplet_id)
        except HttpError as e:
            return state.fail(BuildError(f"Error checking droplet state: {e}"))

        if droplet.get("status") == DropletState.OFF:
            return StepAction.CONTINUE

        ctx.log.info("Forcefully shutting down droplet...")
        try:
            action = await ctx.client.power_off(droplet_id)
            await wait_for_droplet_state(ctx, droplet_id, DropletState.OFF, timeout)
            await wait_for_action(ctx, action["id"], timeout)
        except BuildError as e:
            return state.fail(e)
        except TerminalStateError as e:
            return state.fail(BuildError(f"Error powering off droplet: {e}"))
        except HttpError as e:
            return state.fail(BuildError(f"Error powering off droplet: {e}"))

        return StepAction.CONTINUE
