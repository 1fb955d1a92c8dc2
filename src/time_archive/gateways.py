"""Capabilities the archiving engine needs from its host.

The engine never touches storage, tags, shares or users directly; it talks
to these protocols. ``time_archive.host`` ships a local implementation.
"""

from typing import Iterable, List, Optional, Protocol, Sequence

from .models import ArchiveRule, FileNode, Share, Tag


class FileTree(Protocol):
    def user_root(self, user_id: str) -> FileNode:
        ...

    def list_children(self, folder: FileNode) -> List[FileNode]:
        ...

    def get_child(self, folder: FileNode, name: str) -> Optional[FileNode]:
        ...

    def exists(self, folder: FileNode, name: str) -> bool:
        ...

    def get_by_id(self, user_id: str, file_id: int) -> List[FileNode]:
        ...

    def get_parent(self, node: FileNode) -> Optional[FileNode]:
        ...

    def create_folder(self, parent: FileNode, name: str) -> FileNode:
        ...

    def move(self, node: FileNode, destination: str) -> FileNode:
        """Move ``node`` to ``destination`` (relative to the owner's root).

        Raises ``LockedError`` when the source or target is held by another
        actor.
        """
        ...

    def mounts_for_file(self, file_id: int) -> List[str]:
        """User ids whose tree contains ``file_id``."""
        ...


class TagGateway(Protocol):
    def object_ids_for_tag(self, tag_id: int, limit: int, offset: str = "") -> List[str]:
        ...

    def assign(self, file_id: int, tag_ids: Sequence[int]) -> None:
        ...

    def unassign(self, file_id: int, tag_ids: Sequence[int]) -> None:
        ...

    def tag_ids_for_object(self, file_id: int) -> List[int]:
        ...

    def resolve_tag(self, tag_id: object) -> Tag:
        """Raises ``InvalidTagError`` or ``TagNotFoundError``."""
        ...

    def all_tags(self) -> List[Tag]:
        ...

    def create_tag(self, name: str, user_visible: bool, user_assignable: bool) -> Tag:
        ...


class ShareGateway(Protocol):
    def shares_by(self, owner_id: str, share_type: int, node: FileNode) -> List[Share]:
        ...


class RuleStore(Protocol):
    def get(self, rule_id: int) -> ArchiveRule:
        """Raises ``RuleNotFoundError``."""
        ...

    def get_by_tag(self, tag_id: int) -> ArchiveRule:
        """Raises ``RuleNotFoundError``."""
        ...


class UserDirectory(Protocol):
    def iter_users(self) -> Iterable[str]:
        ...
