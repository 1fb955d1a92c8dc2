import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from time_archive.constants import (  # noqa: E402
    DEFAULT_PROTECTED_FOLDERS,
    MODE_MTIME,
    UNIT_MONTH,
    mode_from_name,
    protected_folders,
    unit_from_name,
)
from time_archive.models import ArchiveRule, FileNode, RuleKey, RunStatistics  # noqa: E402


class ModelsTests(unittest.TestCase):
    def test_rule_key_parse(self) -> None:
        self.assertEqual(RuleKey.parse("tag:12"), RuleKey.for_tag(12))
        self.assertEqual(RuleKey.parse(" rule:3 "), RuleKey.for_rule(3))
        self.assertEqual(str(RuleKey.for_tag(7)), "tag:7")
        with self.assertRaises(ValueError):
            RuleKey.parse("12")
        with self.assertRaises(ValueError):
            RuleKey.parse("tag:abc")

    def test_rule_key_follows_trigger_mode(self) -> None:
        tag_rule = ArchiveRule(id=4, tag_id=9, time_unit=0, time_amount=1)
        time_rule = ArchiveRule(id=5, tag_id=None, time_unit=0, time_amount=1)
        self.assertEqual(tag_rule.key, RuleKey.for_tag(9))
        self.assertEqual(time_rule.key, RuleKey.for_rule(5))
        self.assertTrue(tag_rule.is_tag_rule)
        self.assertFalse(time_rule.is_tag_rule)

    def test_statistics_fold(self) -> None:
        total = RunStatistics(users_processed=1, files_checked=3) + RunStatistics(
            users_processed=1, files_archived=2, deferred=1
        )
        self.assertEqual(total.users_processed, 2)
        self.assertEqual(total.files_checked, 3)
        self.assertEqual(total.files_archived, 2)
        self.assertEqual(total.bump(errors=1).errors, 1)
        self.assertEqual(total.as_dict()["deferred"], 1)

    def test_node_paths(self) -> None:
        node = FileNode(id=1, name="a.txt", path="x/y/a.txt", owner="u", is_folder=False, mtime=0)
        self.assertEqual(node.parent_path, "x/y")
        self.assertFalse(node.is_top_level)
        self.assertFalse(node.in_archive)
        archived = node.with_path(".archive/x/a (1).txt")
        self.assertTrue(archived.in_archive)
        self.assertEqual(archived.name, "a (1).txt")
        lookalike = node.with_path(".archived/a.txt")
        self.assertFalse(lookalike.in_archive)

    def test_unit_and_mode_names(self) -> None:
        self.assertEqual(unit_from_name("months"), UNIT_MONTH)
        self.assertEqual(unit_from_name("2"), UNIT_MONTH)
        self.assertIsNone(unit_from_name("fortnight"))
        self.assertEqual(mode_from_name("mtime"), MODE_MTIME)
        self.assertIsNone(mode_from_name("access"))

    def test_protected_folders_merge(self) -> None:
        self.assertEqual(protected_folders(), DEFAULT_PROTECTED_FOLDERS)
        merged = protected_folders(" Scans, Camera ,,InstantUpload")
        self.assertEqual(merged[: len(DEFAULT_PROTECTED_FOLDERS)], DEFAULT_PROTECTED_FOLDERS)
        self.assertEqual(merged[len(DEFAULT_PROTECTED_FOLDERS):], ["Scans", "InstantUpload"])


if __name__ == "__main__":
    unittest.main()
