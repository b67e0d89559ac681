"""
Error taxonomy shared by the orchestration, console and monitoring services.

Services raise these; the HTTP layer translates them into status codes.
"""
from uuid import UUID


class InstanceNotFoundError(LookupError):
    def __init__(self, instance_id: UUID):
        self.instance_id = instance_id
        super().__init__(f"Instance {instance_id} not found")


class InvalidTransitionError(Exception):
    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Cannot transition from {from_state} to {to_state}")


class ProvisioningError(RuntimeError):
    """Container or volume operation failed; the instance was moved to error."""


class TransientRuntimeError(RuntimeError):
    """A single stats or log fetch failed during a metrics tick."""


class ProtocolError(Exception):
    """Malformed, short or unmatched remote console packet."""


class ConfigError(ValueError):
    """Monitoring configuration rejected at validation time."""
