import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from ..constants import ARCHIVE_FOLDER, DIRECT_SHARE_TYPES, MODE_CTIME, MODE_MTIME
from ..gateways import FileTree, ShareGateway
from ..models import FileNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    archive: bool
    is_shared: bool = False
    reason: str = ""


def effective_timestamp(node: FileNode, time_after: int) -> int:
    """Timestamp compared against the cutoff.

    Upload time wins for creation-based rules when recorded, and for
    modification-based rules when the file was re-uploaded after its
    recorded modification time.
    """
    stamp = node.mtime
    if time_after == MODE_CTIME and node.upload_time:
        stamp = node.upload_time
    elif time_after == MODE_MTIME and node.mtime < node.upload_time:
        logger.debug(
            "Upload time of %s is newer than its modification time, using upload time",
            node.id,
        )
        stamp = node.upload_time
    return stamp


def is_archive_root(node: FileNode) -> bool:
    return node.is_folder and node.name == ARCHIVE_FOLDER


def is_protected_folder(node: FileNode, protected: Iterable[str]) -> bool:
    return node.is_folder and node.is_top_level and node.name in set(protected)


class EligibilityClassifier:
    def __init__(
        self,
        shares: ShareGateway,
        file_tree: FileTree,
        protected_folders: Iterable[str] = (),
    ) -> None:
        self._shares = shares
        self._file_tree = file_tree
        self._protected = frozenset(protected_folders)

    def classify(
        self,
        node: FileNode,
        cutoff: datetime,
        time_after: int,
        is_tag_rule: bool,
    ) -> Classification:
        if node.in_archive:
            return Classification(archive=False, reason="already archived")
        if not is_tag_rule and is_protected_folder(node, self._protected):
            return Classification(archive=False, reason="protected folder")
        stamp = effective_timestamp(node, time_after)
        if stamp >= cutoff.timestamp():
            return Classification(archive=False, reason="too recent")
        return Classification(archive=True, is_shared=self.is_shared(node), reason="expired")

    def is_shared(self, node: FileNode) -> bool:
        try:
            if self._has_direct_share(node):
                return True
            parent = self._file_tree.get_parent(node)
            return parent is not None and not parent.is_root and self._has_direct_share(parent)
        except Exception as exc:  # noqa: BLE001 - share lookup only tunes retries
            logger.debug("Share lookup failed for %s: %s", node.id, exc)
            return False

    def _has_direct_share(self, node: FileNode) -> bool:
        for share_type in DIRECT_SHARE_TYPES:
            if self._shares.shares_by(node.owner, share_type, node):
                return True
        return False
