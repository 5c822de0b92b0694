from remover._types import _stages


class RemovalError(Exception):
    """Base error for any failure that halts a node removal run."""

    def __init__(self, message: str, stage: "_stages.Stage" = None):
        super().__init__(message)
        self.stage = stage

    def __str__(self) -> str:
        message = super().__str__()
        if self.stage is None:
            return message
        return f"[{self.stage.value}] {message}"


class ConfigurationError(RemovalError):
    """A required operator input is missing or invalid."""

    def __init__(self, message: str, input_name: str, stage: "_stages.Stage" = None):
        super().__init__(message, stage)
        self.input_name = input_name


class ResolutionError(RemovalError):
    """A name could not be mapped to a remote identifier."""


class RemoteCallError(RemovalError):
    """A collaborator call failed outside of the wait stages' own checks."""


class CancelledError(RemovalError):
    """The operator interrupted the run before it finished."""


class PollTimeoutError(RemovalError):
    """A wait stage exhausted its attempt budget."""

    def __init__(
        self,
        message: str,
        stage: "_stages.Stage" = None,
        attempts: int = 0,
    ):
        super().__init__(message, stage)
        self.attempts = attempts


class DrainTimeoutError(PollTimeoutError):
    """Instance still remained in its target group after the wait ceiling."""


class EvacuationTimeoutError(PollTimeoutError):
    """Shards still remained on the node after the wait ceiling."""
