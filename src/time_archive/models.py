from dataclasses import asdict, dataclass, replace
from pathlib import PurePosixPath
from typing import Any, Dict, Optional

from .constants import (
    ARCHIVE_FOLDER,
    MODE_CTIME,
    MODE_NAMES,
    PERMISSION_ALL,
    PERMISSION_DELETE,
    PERMISSION_UPDATE,
    UNIT_NAMES,
)


@dataclass(frozen=True)
class FileNode:
    """A file or folder as seen through the host's file tree.

    ``path`` is relative to the owner's root folder, POSIX separated, and
    empty for the root itself.
    """

    id: int
    name: str
    path: str
    owner: str
    is_folder: bool
    mtime: int
    upload_time: int = 0
    permissions: int = PERMISSION_ALL
    mimetype: str = ""
    size: int = 0
    etag: str = ""

    @property
    def is_root(self) -> bool:
        return self.path == ""

    @property
    def parent_path(self) -> str:
        if not self.path or "/" not in self.path:
            return ""
        return str(PurePosixPath(self.path).parent)

    @property
    def is_top_level(self) -> bool:
        return bool(self.path) and "/" not in self.path

    @property
    def is_deletable(self) -> bool:
        return bool(self.permissions & PERMISSION_DELETE)

    @property
    def is_updatable(self) -> bool:
        return bool(self.permissions & PERMISSION_UPDATE)

    @property
    def in_archive(self) -> bool:
        return self.path == ARCHIVE_FOLDER or self.path.startswith(f"{ARCHIVE_FOLDER}/")

    def with_path(self, path: str) -> "FileNode":
        return replace(self, path=path, name=PurePosixPath(path).name)


@dataclass(frozen=True)
class ArchiveRule:
    id: int
    tag_id: Optional[int]
    time_unit: int
    time_amount: int
    time_after: int = MODE_CTIME

    @property
    def is_tag_rule(self) -> bool:
        return self.tag_id is not None

    @property
    def key(self) -> "RuleKey":
        if self.tag_id is not None:
            return RuleKey.for_tag(self.tag_id)
        return RuleKey.for_rule(self.id)

    def describe(self) -> str:
        unit = UNIT_NAMES.get(self.time_unit, "day")
        after = MODE_NAMES.get(self.time_after, "creation")
        trigger = f"tag {self.tag_id}" if self.tag_id is not None else "all files"
        return f"{trigger}: {self.time_amount} {unit}(s) after {after}"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tagid": self.tag_id,
            "timeunit": self.time_unit,
            "timeamount": self.time_amount,
            "timeafter": self.time_after,
        }


@dataclass(frozen=True)
class RuleKey:
    """Identifies one scheduled invocation: a tag id or a time-rule id."""

    kind: str
    value: int

    TAG = "tag"
    RULE = "rule"

    @classmethod
    def for_tag(cls, tag_id: int) -> "RuleKey":
        return cls(kind=cls.TAG, value=int(tag_id))

    @classmethod
    def for_rule(cls, rule_id: int) -> "RuleKey":
        return cls(kind=cls.RULE, value=int(rule_id))

    @classmethod
    def parse(cls, raw: str) -> "RuleKey":
        kind, sep, value = raw.strip().partition(":")
        if not sep or kind not in (cls.TAG, cls.RULE):
            raise ValueError(f"Expected tag:<id> or rule:<id>, got {raw!r}")
        try:
            return cls(kind=kind, value=int(value))
        except ValueError:
            raise ValueError(f"Invalid id in {raw!r}") from None

    @property
    def is_tag(self) -> bool:
        return self.kind == self.TAG

    def __str__(self) -> str:
        return f"{self.kind}:{self.value}"


@dataclass(frozen=True)
class Tag:
    id: int
    name: str
    user_visible: bool = True
    user_assignable: bool = True


@dataclass(frozen=True)
class Share:
    id: int
    share_type: int
    owner: str
    file_id: int
    share_with: str = ""


@dataclass(frozen=True)
class RunStatistics:
    users_processed: int = 0
    files_checked: int = 0
    files_archived: int = 0
    folders_archived: int = 0
    deferred: int = 0
    errors: int = 0

    def __add__(self, other: "RunStatistics") -> "RunStatistics":
        if not isinstance(other, RunStatistics):
            return NotImplemented
        return RunStatistics(
            users_processed=self.users_processed + other.users_processed,
            files_checked=self.files_checked + other.files_checked,
            files_archived=self.files_archived + other.files_archived,
            folders_archived=self.folders_archived + other.folders_archived,
            deferred=self.deferred + other.deferred,
            errors=self.errors + other.errors,
        )

    def bump(self, **counts: int) -> "RunStatistics":
        return self + RunStatistics(**counts)

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)

    def summary(self) -> str:
        return (
            f"users={self.users_processed} checked={self.files_checked} "
            f"files_archived={self.files_archived} folders_archived={self.folders_archived} "
            f"deferred={self.deferred} errors={self.errors}"
        )
