"""Lock files held by other actors on the storage (sync clients, editors).

The archiver never takes these itself; ``LocalFileTree.move`` consults them
and reports contention as ``LockedError``.
"""

import hashlib
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple


@dataclass
class LockHandle:
    path: Path
    lock_file: Optional[Path]

    @property
    def acquired(self) -> bool:
        return self.lock_file is not None

    def release(self) -> None:
        if self.lock_file is None:
            return
        try:
            self.lock_file.unlink()
        except FileNotFoundError:
            return


def acquire_lock(path: Path, *, locks_dir: Path, owner: str) -> LockHandle:
    locks_dir.mkdir(parents=True, exist_ok=True)
    resolved = Path(path).expanduser().resolve()
    holder = find_lock(resolved, locks_dir=locks_dir)
    if holder is not None and holder[1] != owner:
        return LockHandle(path=resolved, lock_file=None)
    lock_file = locks_dir / _lock_name(resolved)
    if lock_file.exists():
        return LockHandle(path=resolved, lock_file=lock_file)
    if not _create_lock(lock_file, owner, resolved):
        return LockHandle(path=resolved, lock_file=None)
    return LockHandle(path=resolved, lock_file=lock_file)


def find_lock(path: Path, *, locks_dir: Path) -> Optional[Tuple[Path, str]]:
    """Return (locked path, owner) of a lock covering ``path``, its ancestors or descendants."""
    if not locks_dir.exists():
        return None
    resolved = Path(path).expanduser().resolve()
    for root in [resolved, *resolved.parents]:
        lock_file = locks_dir / _lock_name(root)
        if lock_file.exists():
            return root, _read_field(lock_file, "owner")
    for lock_path, owner in _load_existing_locks(locks_dir):
        if lock_path is not None and _is_within(lock_path, resolved):
            return lock_path, owner
    return None


def _is_within(path: Path, root: Path) -> bool:
    if path == root:
        return True
    return path.is_relative_to(root)


def _lock_name(path: Path) -> str:
    digest = hashlib.sha256(str(path).encode("utf-8")).hexdigest()[:16]
    safe = path.name.replace(" ", "_") or "root"
    return f"lock-{safe}-{digest}.lock"


def _create_lock(lock_file: Path, owner: str, path: Path) -> bool:
    flags = os.O_WRONLY | os.O_CREAT | os.O_EXCL
    try:
        fd = os.open(str(lock_file), flags)
    except FileExistsError:
        return False
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(f"path={path}\nowner={owner}\ncreated_at={ts}\n")
    return True


def _read_field(lock_file: Path, name: str) -> str:
    try:
        content = lock_file.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""
    for line in content.splitlines():
        if line.startswith(f"{name}="):
            return line.split("=", 1)[1].strip()
    return ""


def _load_existing_locks(locks_dir: Path) -> List[Tuple[Optional[Path], str]]:
    entries: List[Tuple[Optional[Path], str]] = []
    for lock_file in locks_dir.glob("lock-*.lock"):
        raw = _read_field(lock_file, "path")
        entries.append((Path(raw) if raw else None, _read_field(lock_file, "owner")))
    return entries
