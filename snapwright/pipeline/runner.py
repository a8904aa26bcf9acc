"""Sequential step runner.

Steps run one at a time on the calling task. The runner stops at the first
HALT, at cancellation, or when a step raises, and then unwinds: every step
that was entered has its ``cleanup`` awaited, newest first. Cleanup runs
after a successful build too, so temporary resources never outlive it.
"""

from __future__ import annotations

from collections.abc import Iterable

from snapwright.core.exceptions import BuildCancelledError, BuildError, CleanupError

from .state import BuildContext, BuildState, StepAction
from .step import Step, step_name


class Runner:
    def __init__(self, steps: Iterable[Step | None]) -> None:
        self._steps: tuple[Step, ...] = tuple(s for s in steps if s is not None)

    @property
    def steps(self) -> tuple[Step, ...]:
        return self._steps

    async def run(self, ctx: BuildContext, state: BuildState) -> BuildState:
        """Run every step, then clean up. Returns ``state``.

        The outcome is in ``state.error``: None on success, otherwise the
        first classification recorded.
        """
        log = ctx.log.bind(component="runner")
        ran: list[Step] = []

        try:
            for step in self._steps:
                if ctx.cancelled:
                    state.cancelled()
                    break

                name = step_name(step)
                log.debug("Running {step}", step=name)
                ran.append(step)

                try:
                    action = await step.run(ctx, state)
                except BuildError as e:
                    action = state.fail(e)
                except Exception as e:
                    log.exception("Step {step} raised unexpectedly", step=name)
                    action = state.fail(BuildError(f"{name} failed: {e}"))

                if action is StepAction.HALT or state.halted:
                    break
        finally:
            if ctx.cancelled and not isinstance(state.error, BuildCancelledError):
                state.error = BuildCancelledError()
            await self._cleanup(ctx, state, ran)

        if state.error is not None:
            log.error("Build halted: {error}", error=state.error)
        return state

    async def _cleanup(self, ctx: BuildContext, state: BuildState, ran: list[Step]) -> None:
        log = ctx.log.bind(component="runner")
        for step in reversed(ran):
            try:
                await step.cleanup(ctx, state)
            except Exception as e:
                error = CleanupError(step_name(step), e)
                log.warning("{error}", error=error)
