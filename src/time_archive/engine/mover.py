import logging
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Optional, Tuple

from ..constants import ARCHIVE_FOLDER, FOLDER_SUFFIX
from ..errors import ArchiveError, LockedError, MoveError
from ..gateways import FileTree
from ..models import FileNode
from .housekeeping import HousekeepingResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 2.0
DEFAULT_SHARED_BASE_DELAY = 5.0


@dataclass(frozen=True)
class MoveResult:
    moved: bool
    node: FileNode
    source_path: str
    destination: str
    attempts: int
    archive_root_created: bool = False


def split_name(name: str) -> Tuple[str, str]:
    """Split off the last extension segment; dotfiles have no extension."""
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        return name, ""
    return stem, ext


def unique_name(file_tree: FileTree, folder: FileNode, name: str, is_folder: bool) -> str:
    if not file_tree.exists(folder, name):
        return name
    base, ext = (name, "") if is_folder else split_name(name)
    counter = 0
    candidate = name
    while file_tree.exists(folder, candidate):
        counter += 1
        candidate = f"{base} ({counter})" + (f".{ext}" if ext else "")
    return candidate


class ArchiveMover:
    def __init__(
        self,
        file_tree: FileTree,
        *,
        on_root_created: Optional[Callable[[FileNode], HousekeepingResult]] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        shared_base_delay: float = DEFAULT_SHARED_BASE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._file_tree = file_tree
        self._on_root_created = on_root_created
        self._max_attempts = max(1, int(max_attempts))
        self._base_delay = base_delay
        self._shared_base_delay = shared_base_delay
        self._sleep = sleep

    def ensure_archive_root(self, user_id: str) -> Tuple[FileNode, bool]:
        user_root = self._file_tree.user_root(user_id)
        existing = self._file_tree.get_child(user_root, ARCHIVE_FOLDER)
        if existing is not None:
            if not existing.is_folder:
                raise MoveError(f"{ARCHIVE_FOLDER} exists but is not a folder for {user_id}")
            return existing, False
        created = self._file_tree.create_folder(user_root, ARCHIVE_FOLDER)
        logger.info("Created %s for %s", ARCHIVE_FOLDER, user_id)
        if self._on_root_created is not None:
            result = self._on_root_created(created)
            if not result.ok:
                logger.warning(
                    "Could not favorite %s for %s: %s", ARCHIVE_FOLDER, user_id, result.detail
                )
        return created, True

    def target_folder(self, archive_root: FileNode, node: FileNode) -> FileNode:
        """Mirror the node's parent chain below the archive root.

        A file occupying a needed segment is sidestepped once with a
        ``_folder`` suffix; if that is taken by a file too, the node lands
        flat in the archive root.
        """
        current = archive_root
        parent = node.parent_path
        if not parent:
            return current
        for segment in PurePosixPath(parent).parts:
            child = self._file_tree.get_child(current, segment)
            if child is None:
                current = self._file_tree.create_folder(current, segment)
                continue
            if child.is_folder:
                current = child
                continue
            alternate = f"{segment}{FOLDER_SUFFIX}"
            child = self._file_tree.get_child(current, alternate)
            if child is None:
                current = self._file_tree.create_folder(current, alternate)
            elif child.is_folder:
                current = child
            else:
                logger.info(
                    "Cannot mirror %s below %s, archiving at the archive root",
                    parent,
                    ARCHIVE_FOLDER,
                )
                return archive_root
        return current

    def move(self, node: FileNode, *, is_shared: bool = False) -> MoveResult:
        source_path = node.path
        try:
            archive_root, created = self.ensure_archive_root(node.owner)
            folder = self.target_folder(archive_root, node)
        except (LockedError, MoveError):
            raise
        except (ArchiveError, OSError) as exc:
            raise MoveError(f"Cannot prepare archive target for {source_path}: {exc}") from exc

        delay = self._shared_base_delay if is_shared else self._base_delay
        current = node
        last_error: Optional[LockedError] = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                name = unique_name(self._file_tree, folder, current.name, current.is_folder)
                destination = str(PurePosixPath(folder.path) / name)
                moved = self._file_tree.move(current, destination)
            except LockedError as exc:
                last_error = exc
                if attempt == self._max_attempts:
                    break
                wait = delay * (2 ** (attempt - 1))
                logger.info(
                    "%s is locked, retrying in %.1fs (attempt %d/%d)",
                    source_path,
                    wait,
                    attempt,
                    self._max_attempts,
                )
                self._sleep(wait)
                current = self._reresolve(current)
                continue
            except (ArchiveError, OSError) as exc:
                raise MoveError(f"Failed to move {source_path}: {exc}") from exc
            logger.debug("Archived %s to %s", source_path, destination)
            return MoveResult(
                moved=True,
                node=moved,
                source_path=source_path,
                destination=destination,
                attempts=attempt,
                archive_root_created=created,
            )
        raise LockedError(
            source_path,
            attempts=self._max_attempts,
            holder=last_error.holder if last_error else None,
        ) from last_error

    def _reresolve(self, node: FileNode) -> FileNode:
        try:
            nodes = self._file_tree.get_by_id(node.owner, node.id)
        except (ArchiveError, OSError) as exc:
            raise MoveError(f"Lost track of {node.path}: {exc}") from exc
        if not nodes:
            raise MoveError(f"Lost track of {node.path}: node {node.id} no longer exists")
        return nodes[0]
