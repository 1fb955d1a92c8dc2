import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from time_archive.host.locks import acquire_lock, find_lock  # noqa: E402


class LocksTests(unittest.TestCase):
    def test_lock_covers_ancestors_and_descendants(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            locks_dir = Path(tmp) / "locks"
            folder = Path(tmp) / "root" / "docs"
            folder.mkdir(parents=True)
            target = folder / "file.txt"
            target.write_text("x", encoding="utf-8")

            self.assertIsNone(find_lock(target, locks_dir=locks_dir))
            handle = acquire_lock(folder, locks_dir=locks_dir, owner="sync-client")
            self.assertTrue(handle.acquired)

            locked, owner = find_lock(target, locks_dir=locks_dir)
            self.assertEqual(locked, folder.resolve())
            self.assertEqual(owner, "sync-client")
            self.assertIsNotNone(find_lock(folder.parent, locks_dir=locks_dir))
            self.assertIsNone(find_lock(Path(tmp) / "elsewhere", locks_dir=locks_dir))

            blocked = acquire_lock(target, locks_dir=locks_dir, owner="editor")
            self.assertFalse(blocked.acquired)

            handle.release()
            handle.release()
            self.assertIsNone(find_lock(target, locks_dir=locks_dir))

    def test_same_owner_reuses_lock(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            locks_dir = Path(tmp) / "locks"
            target = Path(tmp) / "file.txt"
            target.write_text("x", encoding="utf-8")
            first = acquire_lock(target, locks_dir=locks_dir, owner="editor")
            second = acquire_lock(target, locks_dir=locks_dir, owner="editor")
            self.assertTrue(second.acquired)
            self.assertEqual(first.lock_file, second.lock_file)


if __name__ == "__main__":
    unittest.main()
