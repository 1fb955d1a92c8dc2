"""Where a run gets its candidates from.

Both sources yield ``Candidate`` items into the same classify-and-move
pipeline. ``TreeSource`` walks post-order: a folder is yielded only after
every item below it has been yielded (and handled by the consumer), so the
consumer sees the folder's current, possibly emptied, state.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Tuple

from ..constants import ARCHIVE_FOLDER
from ..errors import ArchiveError, NodeNotFoundError, NotPermittedError
from ..gateways import FileTree, TagGateway
from ..models import FileNode

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000

KIND_MEMBER = "member"
KIND_FILE = "file"
KIND_FOLDER = "folder"


@dataclass(frozen=True)
class Candidate:
    kind: str
    node: Optional[FileNode] = None
    file_id: Optional[int] = None
    error: str = ""


def resolve_movable_node(file_tree: FileTree, file_id: int) -> FileNode:
    """First node for ``file_id``, over all mounts, that may be moved and deleted."""
    users = file_tree.mounts_for_file(file_id)
    if not users:
        raise NodeNotFoundError(f"No mount points found for file {file_id}")
    for user_id in users:
        try:
            nodes = file_tree.get_by_id(user_id, file_id)
        except ArchiveError as exc:
            logger.debug("Mount of %s has no node for %s: %s", user_id, file_id, exc)
            continue
        for node in nodes:
            if node.is_deletable and node.is_updatable:
                return node
            logger.debug(
                "Mount of %s can see %s but permissions are %d",
                user_id,
                file_id,
                node.permissions,
            )
    raise NotPermittedError(f"No mount point with move permissions found for file {file_id}")


class TagMemberSource:
    def __init__(
        self,
        tags: TagGateway,
        file_tree: FileTree,
        tag_id: int,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._tags = tags
        self._file_tree = file_tree
        self._tag_id = tag_id
        self._page_size = max(1, int(page_size))
        self.listing_error = ""

    def pages(self) -> Iterator[List[int]]:
        """Pages of tagged ids; a failed query is logged in ``listing_error`` and ends paging."""
        self.listing_error = ""
        offset = ""
        while True:
            try:
                ids = self._tags.object_ids_for_tag(self._tag_id, self._page_size, offset)
            except Exception as exc:  # noqa: BLE001 - a failed page ends the listing, not the run
                logger.error("Failed to list objects of tag %s after %r: %s", self._tag_id, offset, exc)
                self.listing_error = str(exc)
                return
            logger.debug("Checking %d tagged objects in this page", len(ids))
            if ids:
                yield [int(item) for item in ids]
            if len(ids) < self._page_size:
                return
            offset = str(ids[-1])

    def __iter__(self) -> Iterator[Candidate]:
        for page in self.pages():
            for file_id in page:
                try:
                    node = resolve_movable_node(self._file_tree, file_id)
                except (NodeNotFoundError, NotPermittedError) as exc:
                    yield Candidate(kind=KIND_MEMBER, file_id=file_id, error=str(exc))
                    continue
                except Exception as exc:  # noqa: BLE001 - one member must not end the listing
                    logger.error("Failed to resolve tagged file %s: %s", file_id, exc)
                    yield Candidate(kind=KIND_MEMBER, file_id=file_id, error=str(exc))
                    continue
                yield Candidate(kind=KIND_MEMBER, node=node, file_id=file_id)
        if self.listing_error:
            yield Candidate(kind=KIND_MEMBER, error=self.listing_error)


class TreeSource:
    def __init__(
        self,
        file_tree: FileTree,
        user_id: str,
        exclude_paths: Iterable[str] = (),
    ) -> None:
        self._file_tree = file_tree
        self._user_id = user_id
        self._exclude = tuple(path.strip("/") for path in exclude_paths if path.strip("/"))

    def _excluded(self, node: FileNode) -> bool:
        return any(node.path == path or node.path.startswith(f"{path}/") for path in self._exclude)

    def _children(self, folder: FileNode) -> Iterator[FileNode]:
        try:
            return iter(self._file_tree.list_children(folder))
        except (ArchiveError, OSError) as exc:
            logger.warning("Cannot list %s of %s: %s", folder.path or "/", self._user_id, exc)
            return iter(())

    def __iter__(self) -> Iterator[Candidate]:
        root = self._file_tree.user_root(self._user_id)
        stack: List[Tuple[FileNode, Iterator[FileNode]]] = [(root, self._children(root))]
        while stack:
            folder, children = stack[-1]
            child = next(children, None)
            if child is None:
                stack.pop()
                if stack:
                    yield Candidate(kind=KIND_FOLDER, node=folder, file_id=folder.id)
                continue
            if child.in_archive or self._excluded(child):
                continue
            if child.is_folder:
                if child.name == ARCHIVE_FOLDER:
                    continue
                stack.append((child, self._children(child)))
            else:
                yield Candidate(kind=KIND_FILE, node=child, file_id=child.id)
