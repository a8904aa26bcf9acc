from __future__ import annotations

from typing import Protocol, runtime_checkable

from .state import BuildContext, BuildState, StepAction


@runtime_checkable
class Step(Protocol):
    """One phase of a build.

    ``run`` does the work and returns CONTINUE or HALT (recording the
    reason in ``state.error``). ``cleanup`` is called once the build ends,
    in reverse order, for every step whose ``run`` was entered.
    """

    async def run(self, ctx: BuildContext, state: BuildState) -> StepAction: ...

    async def cleanup(self, ctx: BuildContext, state: BuildState) -> None: ...


class BaseStep:
    """Step with a no-op cleanup."""

    @property
    def name(self) -> str:
        return type(self).__name__

    async def run(self, ctx: BuildContext, state: BuildState) -> StepAction:
        raise NotImplementedError

    async def cleanup(self, ctx: BuildContext, state: BuildState) -> None:
        return None


def when(condition: bool, step: Step) -> Step | None:
    """Include ``step`` only if ``condition`` holds at assembly time."""
    return step if condition else None


def step_name(step: Step) -> str:
    return getattr(step, "name", type(step).__name__)
