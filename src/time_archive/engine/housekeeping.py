import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from ..constants import ARCHIVE_FOLDER, FAVORITE_TAG_NAMES
from ..gateways import FileTree, TagGateway
from ..models import FileNode, Tag

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HousekeepingResult:
    ok: bool
    detail: str = ""


def is_favorite_tag(tag: Tag) -> bool:
    if tag.name in FAVORITE_TAG_NAMES:
        return True
    return "favorite" in tag.name and tag.user_visible and tag.user_assignable


class Housekeeping:
    """Metadata cleanup around archiving. Nothing here raises."""

    def __init__(self, tags: TagGateway, *, allow_tag_creation: bool = True) -> None:
        self._tags = tags
        self._allow_tag_creation = allow_tag_creation

    def remove_trigger_tag(self, file_id: int, tag_id: int) -> HousekeepingResult:
        try:
            self._tags.unassign(file_id, [tag_id])
        except Exception as exc:  # noqa: BLE001 - best effort
            return HousekeepingResult(False, f"failed to remove tag {tag_id}: {exc}")
        return HousekeepingResult(True, f"removed tag {tag_id}")

    def find_favorite_tag(self) -> Optional[Tag]:
        for tag in self._tags.all_tags():
            if is_favorite_tag(tag):
                return tag
        return None

    def is_favorited(self, node: FileNode) -> bool:
        try:
            assigned = set(self._tags.tag_ids_for_object(node.id))
            if not assigned:
                return False
            return any(
                is_favorite_tag(tag) and tag.id in assigned for tag in self._tags.all_tags()
            )
        except Exception as exc:  # noqa: BLE001 - unknown means not favorited
            logger.debug("Could not read tags of %s: %s", node.id, exc)
            return False

    def favorite_archive_root(self, archive_root: FileNode) -> HousekeepingResult:
        try:
            tag = self.find_favorite_tag()
            if tag is None:
                if not self._allow_tag_creation:
                    return HousekeepingResult(False, "no favorite tag and creation disabled")
                try:
                    tag = self._tags.create_tag("favorite", True, True)
                except Exception as exc:  # noqa: BLE001 - best effort
                    return HousekeepingResult(False, f"could not create favorite tag: {exc}")
                logger.debug("Created favorite tag %s", tag.id)
            self._tags.assign(archive_root.id, [tag.id])
            if tag.id not in self._tags.tag_ids_for_object(archive_root.id):
                return HousekeepingResult(False, "favorite tag missing after assignment")
        except Exception as exc:  # noqa: BLE001 - best effort
            return HousekeepingResult(False, f"favorite assignment failed: {exc}")
        logger.info("Added %s of %s to favorites", ARCHIVE_FOLDER, archive_root.owner)
        return HousekeepingResult(True, f"tag {tag.id}")


def repair_favorites(
    file_tree: FileTree,
    users: Iterable[str],
    housekeeping: Housekeeping,
) -> Dict[str, int]:
    """Favorite every existing archive folder that is not favorited yet."""
    counts = {"processed": 0, "added": 0, "skipped": 0, "errors": 0}
    for user_id in users:
        counts["processed"] += 1
        try:
            archive_root = file_tree.get_child(file_tree.user_root(user_id), ARCHIVE_FOLDER)
        except Exception as exc:  # noqa: BLE001 - one user must not stop the pass
            logger.error("Failed to inspect %s of %s: %s", ARCHIVE_FOLDER, user_id, exc)
            counts["errors"] += 1
            continue
        if archive_root is None or not archive_root.is_folder:
            counts["skipped"] += 1
            continue
        if housekeeping.is_favorited(archive_root):
            logger.debug("%s of %s already favorited", ARCHIVE_FOLDER, user_id)
            counts["skipped"] += 1
            continue
        result = housekeeping.favorite_archive_root(archive_root)
        if result.ok:
            counts["added"] += 1
        else:
            logger.warning("Failed to favorite %s of %s: %s", ARCHIVE_FOLDER, user_id, result.detail)
            counts["errors"] += 1
    logger.info(
        "Processed %d users, added %d favorites, %d skipped, %d errors",
        counts["processed"],
        counts["added"],
        counts["skipped"],
        counts["errors"],
    )
    return counts
