"""
Bastion lifecycle state, derived from the engine's persisted outputs.

Nothing is stored: each invocation asks the state file whether it holds an
instance id. A crash mid-apply can leave the state ambiguous; that has to be
reconciled by hand.
"""

from dataclasses import dataclass
from enum import Enum

from .errors import AlreadyRunning, NotRunning
from .tofu import TofuDriver


class LifecycleState(str, Enum):
    ABSENT = "absent"
    RUNNING = "running"


@dataclass(frozen=True)
class BastionStatus:
    state: LifecycleState
    instance_id: str | None = None
    public_ip: str | None = None
    ssh_user: str | None = None


def query_status(driver: TofuDriver) -> BastionStatus:
    """The only place lifecycle state is derived."""
    outputs = driver.outputs()
    instance_id = outputs.get('instance_id')
    if not instance_id:
        return BastionStatus(LifecycleState.ABSENT)
    return BastionStatus(
        LifecycleState.RUNNING,
        instance_id=instance_id,
        public_ip=outputs.get('public_ip') or None,
        ssh_user=outputs.get('ssh_user') or None,
    )


def check_state(driver: TofuDriver, expect_running: bool) -> BastionStatus:
    status = query_status(driver)
    if status.state == LifecycleState.RUNNING and not expect_running:
        raise AlreadyRunning(status.instance_id, status.public_ip)
    if status.state == LifecycleState.ABSENT and expect_running:
        raise NotRunning()
    return status
