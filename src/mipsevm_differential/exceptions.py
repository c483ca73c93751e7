"""
Errors raised by the step harness. None of them are retried: steps are deterministic.
"""
from typing import Optional


class HarnessError(Exception):
    """Base class of the harness errors."""

    pass


class EnvironmentUnavailable(HarnessError):
    """The execution environment has no backend attached."""

    pass


class DeploymentFailure(HarnessError):
    """The modules could not be deployed."""

    reason: Optional[str]

    def __init__(self, message: str, reason: Optional[str] = None):
        """Create the error, keeping the engine's failure reason when it reported one"""
        super().__init__(message if reason is None else "%s: %s" % (message, reason))
        self.reason = reason


class ExecutionFailure(HarnessError):
    """A step or preimage oracle call did not execute successfully."""

    reason: Optional[str]

    def __init__(self, message: str, reason: Optional[str] = None):
        """Create the error, keeping the engine's failure reason when it reported one"""
        super().__init__(message if reason is None else "%s: %s" % (message, reason))
        self.reason = reason


class ProtocolViolation(HarnessError):
    """The call result does not have the shape the stepper module's interface promises."""

    pass


class FingerprintMismatch(HarnessError):
    """Two state hashes that must agree do not."""

    expected: bytes
    actual: bytes

    def __init__(self, expected: bytes, actual: bytes, message: str = "state hash mismatch"):
        """Create the error with both hashes for diagnosis"""
        super().__init__("%s: 0x%s != 0x%s" % (message, expected.hex(), actual.hex()))
        self.expected = expected
        self.actual = actual
