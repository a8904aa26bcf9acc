"""Concrete build steps, in the order a build runs them."""

from .connect import StepConnect, StepProvision
from .droplet import StepCreateDroplet, StepDropletInfo
from .keys import StepCleanupTempKeys, StepCreateSSHKey, StepDumpSSHKey, StepSSHKeyGen
from .power import StepPowerOff, StepShutdown
from .snapshot import StepSnapshot, validate_regions

__all__ = [
    "StepCleanupTempKeys",
    "StepConnect",
    "StepCreateDroplet",
    "StepCreateSSHKey",
    "StepDropletInfo",
    "StepDumpSSHKey",
    "StepPowerOff",
    "StepProvision",
    "StepSSHKeyGen",
    "StepShutdown",
    "StepSnapshot",
    "validate_regions",
]
