"""
Failure taxonomy for bastion-connect.

Every failure is fatal: the CLI prints the message and exits 1. Nothing here
is retried, infrastructure mutations must never be silently repeated.
"""


class BastionError(Exception):
    """Base class for all operator-facing failures."""


class ValidationError(BastionError):
    """Bad or missing CLI input, raised before any external call."""


class TopologyMismatch(BastionError):
    """The private and public subnets live in different VPCs."""


class CapacityExhausted(BastionError):
    """A network ACL has no free rule numbers left in one direction."""


class LifecycleConflict(BastionError):
    """The bastion is not in the state the requested command needs."""


class AlreadyRunning(LifecycleConflict):
    def __init__(self, instance_id: str, public_ip: str | None = None):
        self.instance_id = instance_id
        self.public_ip = public_ip
        super().__init__(
            f"Bastion {instance_id} ({public_ip or 'no public ip'}) is already running. "
            "Use 'ssh' to connect, 'terminate' to tear it down, or reconcile the "
            "state file manually."
        )


class NotRunning(LifecycleConflict):
    def __init__(self):
        super().__init__("No bastion is running. Run 'launch' first.")


class ExternalCallFailure(BastionError):
    """AWS query, engine invocation, IP discovery or ssh failed."""


class PersistenceFailure(BastionError):
    """A local artifact (variable file, key file, template copy) could not be written."""


class InvalidTarget(BastionError):
    """The downstream ssh destination is not a user@host string."""
