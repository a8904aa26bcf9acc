from __future__ import annotations

from snapwright.core.exceptions import BuildCancelledError, BuildError
from snapwright.pipeline.state import BuildContext, BuildState, StepAction
from snapwright.pipeline.step import BaseStep


class StepConnect(BaseStep):
    """Connect the communicator to the droplet's recorded address."""

    async def run(self, ctx: BuildContext, state: BuildState) -> StepAction:
        communicator = ctx.communicator
        if communicator is None:
            ctx.log.info("No communicator configured, skipping connect")
            return StepAction.CONTINUE

        try:
            host = communicator.host(state)
            ctx.log.info("Waiting for a connection to {host}...", host=host)
            await communicator.connect(host, state, ctx.cancel)
        except BuildCancelledError as e:
            return state.fail(e)
        except Exception as e:
            return state.fail(BuildError(f"Error connecting to droplet: {e}"))

        ctx.log.info("Connected to droplet")
        return StepAction.CONTINUE

    async def cleanup(self, ctx: BuildContext, state: BuildState) -> None:
        if ctx.communicator is not None:
            await ctx.communicator.close()


class StepProvision(BaseStep):
    """Hand the connected droplet to the provisioning hook."""

    async def run(self, ctx: BuildContext, state: BuildState) -> StepAction:
        if ctx.hook is None or ctx.communicator is None:
            return StepAction.CONTINUE

        ctx.log.info("Provisioning droplet...")
        try:
            await ctx.hook.provision(ctx.communicator, state)
        except BuildError as e:
            return state.fail(e)
        except Exception as e:
            return state.fail(BuildError(f"Error provisioning droplet: {e}"))

        if ctx.cancelled:
            return state.cancelled("Cancelled during provisioning")
        return StepAction.CONTINUE
