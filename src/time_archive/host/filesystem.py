import mimetypes
import os
import shutil
from pathlib import Path, PurePosixPath
from typing import Callable, Iterator, List, Optional

from ..constants import (
    PERMISSION_CREATE,
    PERMISSION_DELETE,
    PERMISSION_READ,
    PERMISSION_SHARE,
    PERMISSION_UPDATE,
)
from ..errors import LockedError, MoveError, NodeNotFoundError
from ..models import FileNode
from .locks import find_lock

USER_FILES_DIR = "files"
FOLDER_MIMETYPE = "httpd/unix-directory"


class LocalUserDirectory:
    """Users are the directories below ``data_root`` that hold a ``files`` folder."""

    def __init__(self, data_root: Path) -> None:
        self._data_root = Path(data_root).expanduser()

    def iter_users(self) -> Iterator[str]:
        if not self._data_root.is_dir():
            return
        for entry in sorted(self._data_root.iterdir(), key=lambda p: p.name.lower()):
            if entry.is_dir() and (entry / USER_FILES_DIR).is_dir():
                yield entry.name

    def create_user(self, user_id: str) -> Path:
        files_dir = self._data_root / user_id / USER_FILES_DIR
        files_dir.mkdir(parents=True, exist_ok=True)
        return files_dir


class LocalFileTree:
    def __init__(
        self,
        data_root: Path,
        *,
        locks_dir: Optional[Path] = None,
        upload_times: Optional[Callable[[int], int]] = None,
        lock_owner: str = "time-archive",
    ) -> None:
        self._data_root = Path(data_root).expanduser()
        self._locks_dir = locks_dir
        self._upload_times = upload_times
        self._lock_owner = lock_owner

    def files_dir(self, user_id: str) -> Path:
        path = self._data_root / user_id / USER_FILES_DIR
        if not path.is_dir():
            raise NodeNotFoundError(f"No files folder for user {user_id}")
        return path

    def local_path(self, node: FileNode) -> Path:
        base = self.files_dir(node.owner)
        return base / node.path if node.path else base

    def node_for_path(self, user_id: str, rel_path: str) -> FileNode:
        rel = str(PurePosixPath(rel_path)) if rel_path else ""
        if rel == ".":
            rel = ""
        path = self.files_dir(user_id) / rel if rel else self.files_dir(user_id)
        return self._node(user_id, path, rel)

    def _node(self, user_id: str, path: Path, rel: str) -> FileNode:
        try:
            st = path.lstat()
        except FileNotFoundError:
            raise NodeNotFoundError(f"{rel or '/'} not found for {user_id}") from None
        is_folder = path.is_dir() and not path.is_symlink()
        if is_folder:
            mimetype = FOLDER_MIMETYPE
        else:
            mimetype = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        upload_time = self._upload_times(st.st_ino) if self._upload_times else 0
        return FileNode(
            id=st.st_ino,
            name=PurePosixPath(rel).name if rel else "",
            path=rel,
            owner=user_id,
            is_folder=is_folder,
            mtime=int(st.st_mtime),
            upload_time=upload_time,
            permissions=_permissions(path, is_folder),
            mimetype=mimetype,
            size=0 if is_folder else st.st_size,
            etag=f"{st.st_mtime_ns:x}-{st.st_size:x}",
        )

    def _child_rel(self, folder: FileNode, name: str) -> str:
        return f"{folder.path}/{name}" if folder.path else name

    def user_root(self, user_id: str) -> FileNode:
        return self._node(user_id, self.files_dir(user_id), "")

    def list_children(self, folder: FileNode) -> List[FileNode]:
        base = self.local_path(folder)
        children: List[FileNode] = []
        for entry in sorted(base.iterdir(), key=lambda p: p.name.lower()):
            if entry.is_symlink():
                continue
            try:
                children.append(self._node(folder.owner, entry, self._child_rel(folder, entry.name)))
            except NodeNotFoundError:
                continue
        return children

    def get_child(self, folder: FileNode, name: str) -> Optional[FileNode]:
        path = self.local_path(folder) / name
        if not os.path.lexists(path):
            return None
        return self._node(folder.owner, path, self._child_rel(folder, name))

    def exists(self, folder: FileNode, name: str) -> bool:
        return os.path.lexists(self.local_path(folder) / name)

    def get_by_id(self, user_id: str, file_id: int) -> List[FileNode]:
        try:
            base = self.files_dir(user_id)
        except NodeNotFoundError:
            return []
        found = self._find_inode(base, int(file_id))
        if found is None:
            return []
        rel = found.relative_to(base).as_posix()
        return [self._node(user_id, found, "" if rel == "." else rel)]

    def _find_inode(self, base: Path, inode: int) -> Optional[Path]:
        if base.lstat().st_ino == inode:
            return base
        for dirpath, dirnames, filenames in os.walk(base):
            dirnames.sort()
            for name in [*dirnames, *sorted(filenames)]:
                candidate = Path(dirpath) / name
                try:
                    if candidate.lstat().st_ino == inode:
                        return candidate
                except FileNotFoundError:
                    continue
        return None

    def get_parent(self, node: FileNode) -> Optional[FileNode]:
        if node.is_root:
            return None
        return self.node_for_path(node.owner, node.parent_path)

    def create_folder(self, parent: FileNode, name: str) -> FileNode:
        path = self.local_path(parent) / name
        path.mkdir()
        return self._node(parent.owner, path, self._child_rel(parent, name))

    def move(self, node: FileNode, destination: str) -> FileNode:
        base = self.files_dir(node.owner)
        source = self.local_path(node)
        target = base / destination
        if not os.path.lexists(source):
            raise NodeNotFoundError(f"{node.path} no longer exists")
        self._check_locks(node, source, target)
        if os.path.lexists(target):
            raise MoveError(f"{destination} already exists")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(target))
        return self._node(node.owner, target, str(PurePosixPath(destination)))

    def _check_locks(self, node: FileNode, source: Path, target: Path) -> None:
        if self._locks_dir is None:
            return
        for path in (source, target):
            held = find_lock(path, locks_dir=self._locks_dir)
            if held is not None and held[1] != self._lock_owner:
                raise LockedError(node.path, holder=held[1] or None)

    def mounts_for_file(self, file_id: int) -> List[str]:
        users: List[str] = []
        for user_id in LocalUserDirectory(self._data_root).iter_users():
            if self._find_inode(self._data_root / user_id / USER_FILES_DIR, int(file_id)):
                users.append(user_id)
        return users


def _permissions(path: Path, is_folder: bool) -> int:
    perms = PERMISSION_SHARE
    if os.access(path, os.R_OK):
        perms |= PERMISSION_READ
    if os.access(path, os.W_OK):
        perms |= PERMISSION_UPDATE
        if is_folder:
            perms |= PERMISSION_CREATE
    if os.access(path.parent, os.W_OK):
        perms |= PERMISSION_DELETE
    return perms
