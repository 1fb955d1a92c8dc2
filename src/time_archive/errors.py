from typing import Iterable, Optional


class ArchiveError(Exception):
    pass


class NodeNotFoundError(ArchiveError):
    pass


class NotPermittedError(ArchiveError):
    pass


class LockedError(ArchiveError):
    def __init__(self, path: str, attempts: int = 1, holder: Optional[str] = None) -> None:
        detail = f"{path} is locked"
        if holder:
            detail += f" by {holder}"
        if attempts > 1:
            detail += f" (gave up after {attempts} attempts)"
        super().__init__(detail)
        self.path = path
        self.attempts = attempts
        self.holder = holder


class MoveError(ArchiveError):
    pass


class TagNotFoundError(ArchiveError):
    def __init__(self, missing: Iterable[int]) -> None:
        self.missing = [int(item) for item in missing]
        super().__init__(f"Tag(s) not found: {', '.join(str(i) for i in self.missing)}")


class InvalidTagError(ArchiveError, ValueError):
    pass


class RuleNotFoundError(ArchiveError):
    pass


class RuleValidationError(ArchiveError, ValueError):
    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class DeregisterRule(ArchiveError):
    """Raised by a run when its rule or tag is gone; the job must be removed."""

    def __init__(self, key: object, reason: str) -> None:
        super().__init__(f"{key}: {reason}")
        self.key = key
        self.reason = reason
