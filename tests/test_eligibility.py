import sys
import unittest
import zlib
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from time_archive.constants import MODE_CTIME, MODE_MTIME, SHARE_TYPE_LINK  # noqa: E402
from time_archive.engine.eligibility import (  # noqa: E402
    EligibilityClassifier,
    effective_timestamp,
    is_protected_folder,
)
from time_archive.models import FileNode, Share  # noqa: E402

CUTOFF = datetime(2025, 1, 1, tzinfo=timezone.utc)
OLD = int(datetime(2024, 6, 1, tzinfo=timezone.utc).timestamp())
NEW = int(datetime(2025, 2, 1, tzinfo=timezone.utc).timestamp())


def _node(path: str, *, is_folder: bool = False, mtime: int = OLD, upload_time: int = 0) -> FileNode:
    return FileNode(
        id=zlib.crc32(path.encode("utf-8")),
        name=path.rsplit("/", 1)[-1],
        path=path,
        owner="alice",
        is_folder=is_folder,
        mtime=mtime,
        upload_time=upload_time,
    )


class FakeShares:
    def __init__(self, shared_ids: List[int], fail: bool = False) -> None:
        self.shared_ids = shared_ids
        self.fail = fail

    def shares_by(self, owner_id: str, share_type: int, node: FileNode) -> List[Share]:
        if self.fail:
            raise RuntimeError("share backend down")
        if share_type == SHARE_TYPE_LINK and node.id in self.shared_ids:
            return [Share(id=1, share_type=share_type, owner=owner_id, file_id=node.id)]
        return []


class FakeTree:
    def __init__(self, parents: dict) -> None:
        self.parents = parents

    def get_parent(self, node: FileNode) -> Optional[FileNode]:
        return self.parents.get(node.path)


class EligibilityTests(unittest.TestCase):
    def _classifier(self, shares=None, parents=None) -> EligibilityClassifier:
        return EligibilityClassifier(
            shares or FakeShares([]),
            FakeTree(parents or {}),
            protected_folders=["Camera", "Photos"],
        )

    def test_timestamp_source_selection(self) -> None:
        uploaded_later = _node("a.txt", mtime=OLD, upload_time=NEW)
        self.assertEqual(effective_timestamp(uploaded_later, MODE_CTIME), NEW)
        self.assertEqual(effective_timestamp(uploaded_later, MODE_MTIME), NEW)

        edited_later = _node("b.txt", mtime=NEW, upload_time=OLD)
        self.assertEqual(effective_timestamp(edited_later, MODE_CTIME), OLD)
        self.assertEqual(effective_timestamp(edited_later, MODE_MTIME), NEW)

        never_recorded = _node("c.txt", mtime=OLD)
        self.assertEqual(effective_timestamp(never_recorded, MODE_CTIME), OLD)

    def test_old_file_is_archived(self) -> None:
        verdict = self._classifier().classify(_node("docs/a.txt"), CUTOFF, MODE_MTIME, False)
        self.assertTrue(verdict.archive)
        self.assertFalse(verdict.is_shared)

    def test_cutoff_boundary_is_too_recent(self) -> None:
        node = _node("a.txt", mtime=int(CUTOFF.timestamp()))
        verdict = self._classifier().classify(node, CUTOFF, MODE_MTIME, False)
        self.assertFalse(verdict.archive)
        self.assertEqual(verdict.reason, "too recent")

    def test_archive_contents_are_never_candidates(self) -> None:
        for path in (".archive", ".archive/docs/a.txt"):
            verdict = self._classifier().classify(
                _node(path, is_folder=path == ".archive"), CUTOFF, MODE_MTIME, True
            )
            self.assertFalse(verdict.archive)
            self.assertEqual(verdict.reason, "already archived")

    def test_protected_folder_only_in_time_mode(self) -> None:
        camera = _node("Camera", is_folder=True)
        self.assertTrue(is_protected_folder(camera, ["Camera"]))
        self.assertFalse(is_protected_folder(_node("x/Camera", is_folder=True), ["Camera"]))
        self.assertFalse(is_protected_folder(_node("Camera"), ["Camera"]))

        classifier = self._classifier()
        self.assertFalse(classifier.classify(camera, CUTOFF, MODE_MTIME, False).archive)
        self.assertTrue(classifier.classify(camera, CUTOFF, MODE_MTIME, True).archive)

    def test_shared_through_parent(self) -> None:
        parent = _node("team", is_folder=True)
        child = _node("team/plan.txt")
        root = FileNode(id=1, name="", path="", owner="alice", is_folder=True, mtime=OLD)
        classifier = self._classifier(
            shares=FakeShares([parent.id]),
            parents={child.path: parent, parent.path: root},
        )
        self.assertTrue(classifier.classify(child, CUTOFF, MODE_MTIME, False).is_shared)
        self.assertTrue(classifier.is_shared(parent))

    def test_share_lookup_failure_means_not_shared(self) -> None:
        classifier = self._classifier(shares=FakeShares([], fail=True))
        verdict = classifier.classify(_node("a.txt"), CUTOFF, MODE_MTIME, False)
        self.assertTrue(verdict.archive)
        self.assertFalse(verdict.is_shared)


if __name__ == "__main__":
    unittest.main()
