"""
Error taxonomy for the quest engine.

Every error the engine surfaces derives from QuestError and carries enough
context (action, stage, underlying cause) to be rendered as one line.
"""

from enum import Enum


class QuestError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, action: str | None = None, stage: int | None = None,
                 cause: str | None = None):
        self.message = message
        self.action = action
        self.stage = stage
        self.cause = cause
        super().__init__(message)

    def with_context(self, action: str, stage: int | None = None) -> "QuestError":
        """Attach the action/stage that was running, without overwriting."""
        if self.action is None:
            self.action = action
        if self.stage is None:
            self.stage = stage
        return self

    def __str__(self) -> str:
        prefix = ""
        if self.action:
            prefix = f"{self.action}"
            if self.stage is not None:
                prefix += f" (stage {self.stage})"
            prefix += ": "
        suffix = f" [{self.cause}]" if self.cause else ""
        return f"{prefix}{self.message}{suffix}"


class RepoErrorKind(Enum):
    NOT_A_REPO = "not_a_repo"
    DIRTY_TREE = "dirty_tree"
    REF_NOT_FOUND = "ref_not_found"
    PUSH_REJECTED = "push_rejected"
    IO_ERROR = "io_error"


class RepositoryError(QuestError):
    """A local git operation failed."""

    def __init__(self, kind: RepoErrorKind, message: str, **kwargs):
        self.kind = kind
        super().__init__(message, **kwargs)


class ForgeErrorKind(Enum):
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    TRANSIENT_NETWORK = "transient_network"
    INVALID_REQUEST = "invalid_request"


RETRYABLE_FORGE_ERRORS = {ForgeErrorKind.RATE_LIMITED, ForgeErrorKind.TRANSIENT_NETWORK}


class ForgeError(QuestError):
    """A forge (GitHub) call failed."""

    def __init__(self, kind: ForgeErrorKind, message: str, exhausted: bool = False, **kwargs):
        self.kind = kind
        self.exhausted = exhausted
        super().__init__(message, **kwargs)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_FORGE_ERRORS


class PackageError(QuestError):
    """Quest package is malformed or ambiguous."""
    pass


class PreconditionError(QuestError):
    """Action invoked in a state that does not permit it."""
    pass


class SessionBusy(QuestError):
    """Another mutating action already holds the session."""
    pass


class DivergenceDetected(QuestError):
    """Reference-owned files differ from the expected baseline.

    Internal signal: the executor converts it into a hard reset.
    """

    def __init__(self, paths: list[str], baseline: str, **kwargs):
        self.paths = paths
        self.baseline = baseline
        super().__init__(
            f"{len(paths)} reference-owned file(s) differ from {baseline}", **kwargs
        )
