import sys
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from time_archive.clock import FixedClock  # noqa: E402
from time_archive.constants import MODE_MTIME, UNIT_DAY  # noqa: E402
from time_archive.engine.runner import ArchiveRunner  # noqa: E402
from time_archive.host.filesystem import LocalFileTree, LocalUserDirectory  # noqa: E402
from time_archive.host.scheduler import run_due_jobs, run_job, sync_jobs  # noqa: E402
from time_archive.host.store import ArchiveStore  # noqa: E402


class SchedulerTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.store = ArchiveStore(root / "archive.db")
        users = LocalUserDirectory(root / "data")
        self.files = users.create_user("alice")
        self.clock = FixedClock(datetime(2025, 6, 1, tzinfo=timezone.utc))
        self.runner = ArchiveRunner(
            rules=self.store,
            file_tree=LocalFileTree(root / "data"),
            tags=self.store.tags,
            shares=self.store.shares,
            users=users,
            clock=self.clock,
            sleep=lambda _: None,
        )

    def tearDown(self) -> None:
        self.store.close()
        self._tmp.cleanup()

    def test_jobs_run_once_per_interval(self) -> None:
        rule = self.store.create_rule(tag_id=None, time_unit=UNIT_DAY, time_amount=1, time_after=MODE_MTIME)
        first = run_due_jobs(self.store, self.runner, self.clock, interval_seconds=3600)
        self.assertEqual([result.key for result in first], [rule.key])
        self.assertEqual(first[0].stats.users_processed, 1)

        self.assertEqual(run_due_jobs(self.store, self.runner, self.clock, interval_seconds=3600), [])
        forced = run_due_jobs(self.store, self.runner, self.clock, interval_seconds=3600, force=True)
        self.assertEqual(len(forced), 1)

        self.clock.advance(timedelta(hours=1))
        self.assertEqual(len(run_due_jobs(self.store, self.runner, self.clock, interval_seconds=3600)), 1)
        [job] = self.store.list_jobs()
        self.assertEqual(job.last_run(), self.clock.now())

    def test_job_for_deleted_tag_is_removed(self) -> None:
        tag = self.store.tags.create_tag("archive-me")
        rule = self.store.create_rule(tag_id=tag.id, time_unit=UNIT_DAY, time_amount=1)
        self.store.tags.delete_tag(tag.id)
        result = run_job(self.store, self.runner, rule.key)
        self.assertTrue(result.deregistered)
        self.assertIsNone(result.stats)
        self.assertIn("no longer exists", result.message)
        self.assertFalse(self.store.has_job(rule.key))
        self.assertFalse((self.files / ".archive").exists())

    def test_sync_jobs_restores_missing_registrations(self) -> None:
        rule = self.store.create_rule(tag_id=None, time_unit=UNIT_DAY, time_amount=1)
        self.store.remove_job(rule.key)
        self.assertEqual(sync_jobs(self.store), 1)
        self.assertTrue(self.store.has_job(rule.key))


if __name__ == "__main__":
    unittest.main()
