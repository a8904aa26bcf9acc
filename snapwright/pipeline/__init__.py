"""Step pipeline: typed build state, the step protocol and the runner."""

from .runner import Runner
from .state import BuildContext, BuildState, StepAction, TransferStatus
from .step import BaseStep, Step, when

__all__ = [
    "BaseStep",
    "BuildContext",
    "BuildState",
    "Runner",
    "Step",
    "StepAction",
    "TransferStatus",
    "when",
]
