import csv
from pathlib import Path

from .engine.mover import MoveResult
from .models import FileNode

REPORT_HEADER = ["user", "old_path", "new_path", "reason"]


class CsvReport:
    """Appends one row per archived node."""

    def __init__(self, report_path: Path) -> None:
        self.report_path = report_path

    def __call__(self, node: FileNode, result: MoveResult, reason: str) -> None:
        append_report(self.report_path, node.owner, result.source_path, result.destination, reason)


def append_report(report_path: Path, user: str, old_path: str, new_path: str, reason: str) -> None:
    report_exists = report_path.exists()
    report_path.parent.mkdir(parents=True, exist_ok=True)
    with report_path.open("a", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        if not report_exists:
            writer.writerow(REPORT_HEADER)
        writer.writerow([user, old_path, new_path, reason])
