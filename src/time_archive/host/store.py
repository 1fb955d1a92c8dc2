import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..constants import MODE_NAMES, UNIT_NAMES
from ..errors import InvalidTagError, RuleNotFoundError, RuleValidationError, TagNotFoundError
from ..models import ArchiveRule, FileNode, RuleKey, Share, Tag

_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"

_MIGRATIONS: Dict[int, str] = {
    1: """
    CREATE TABLE IF NOT EXISTS archive_rules (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        tag_id INTEGER,
        time_unit INTEGER NOT NULL,
        time_amount INTEGER NOT NULL,
        time_after INTEGER NOT NULL DEFAULT 0
    );
    CREATE INDEX IF NOT EXISTS archive_rules_tag ON archive_rules(tag_id);
    CREATE TABLE IF NOT EXISTS archive_jobs (
        kind TEXT NOT NULL,
        value INTEGER NOT NULL,
        added_at TEXT NOT NULL,
        last_run_at TEXT,
        PRIMARY KEY (kind, value)
    );
    """,
    2: """
    CREATE TABLE IF NOT EXISTS systemtags (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        user_visible INTEGER NOT NULL DEFAULT 1,
        user_assignable INTEGER NOT NULL DEFAULT 1
    );
    CREATE TABLE IF NOT EXISTS systemtag_object_mapping (
        object_id TEXT NOT NULL,
        object_type TEXT NOT NULL,
        systemtag_id INTEGER NOT NULL,
        PRIMARY KEY (object_type, object_id, systemtag_id)
    );
    CREATE INDEX IF NOT EXISTS systag_by_tag ON systemtag_object_mapping(systemtag_id);
    CREATE TABLE IF NOT EXISTS shares (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        share_type INTEGER NOT NULL,
        uid_owner TEXT NOT NULL,
        file_id INTEGER NOT NULL,
        share_with TEXT NOT NULL DEFAULT ''
    );
    CREATE INDEX IF NOT EXISTS shares_lookup ON shares(uid_owner, share_type, file_id);
    CREATE TABLE IF NOT EXISTS file_upload_times (
        file_id INTEGER PRIMARY KEY,
        upload_time INTEGER NOT NULL
    );
    """,
}


@dataclass(frozen=True)
class JobRecord:
    key: RuleKey
    added_at: str
    last_run_at: Optional[str]

    def last_run(self) -> Optional[datetime]:
        if not self.last_run_at:
            return None
        return datetime.strptime(self.last_run_at, _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def _format_ts(moment: Optional[datetime] = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def _connect(path: Path) -> sqlite3.Connection:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA busy_timeout = 5000")
    return conn


def apply_migrations(conn: sqlite3.Connection) -> None:
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_migrations "
        "(version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)"
    )
    current = conn.execute("SELECT MAX(version) AS v FROM schema_migrations").fetchone()["v"]
    current_version = int(current or 0)
    for version in sorted(_MIGRATIONS.keys()):
        if version <= current_version:
            continue
        with conn:
            conn.executescript(_MIGRATIONS[version])
            conn.execute(
                "INSERT INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                (version, _format_ts()),
            )


def _rule_from_row(row: sqlite3.Row) -> ArchiveRule:
    return ArchiveRule(
        id=int(row["id"]),
        tag_id=int(row["tag_id"]) if row["tag_id"] is not None else None,
        time_unit=int(row["time_unit"]),
        time_amount=int(row["time_amount"]),
        time_after=int(row["time_after"]),
    )


def _tag_from_row(row: sqlite3.Row) -> Tag:
    return Tag(
        id=int(row["id"]),
        name=row["name"],
        user_visible=bool(row["user_visible"]),
        user_assignable=bool(row["user_assignable"]),
    )


def _job_from_row(row: sqlite3.Row) -> JobRecord:
    return JobRecord(
        key=RuleKey(kind=row["kind"], value=int(row["value"])),
        added_at=row["added_at"],
        last_run_at=row["last_run_at"],
    )


class ArchiveStore:
    """sqlite-backed rules, scheduled jobs and host metadata (tags, shares)."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._conn = _connect(db_path)
        apply_migrations(self._conn)
        self.tags = TagStore(self._conn)
        self.shares = ShareStore(self._conn)

    def close(self) -> None:
        self._conn.close()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def schema_version(self) -> int:
        row = self._conn.execute("SELECT MAX(version) AS v FROM schema_migrations").fetchone()
        return int(row["v"] or 0)

    # rules

    def list_rules(self) -> List[ArchiveRule]:
        """All rules with a live trigger; re-registers any job that went missing."""
        rows = self._conn.execute("SELECT * FROM archive_rules ORDER BY id").fetchall()
        rules = [_rule_from_row(row) for row in rows]
        for rule in rules:
            if not self.has_job(rule.key):
                self.add_job(rule.key)
        tag_ids = [rule.tag_id for rule in rules if rule.tag_id is not None]
        if not tag_ids:
            return rules
        try:
            self.tags.tags_by_ids(tag_ids)
        except TagNotFoundError as exc:
            missing = set(exc.missing)
            rules = [rule for rule in rules if rule.tag_id is None or rule.tag_id not in missing]
        return rules

    def get(self, rule_id: int) -> ArchiveRule:
        row = self._conn.execute(
            "SELECT * FROM archive_rules WHERE id = ?", (int(rule_id),)
        ).fetchone()
        if row is None:
            raise RuleNotFoundError(f"archive rule not found: {rule_id}")
        return _rule_from_row(row)

    def get_by_tag(self, tag_id: int) -> ArchiveRule:
        row = self._conn.execute(
            "SELECT * FROM archive_rules WHERE tag_id = ? ORDER BY id LIMIT 1", (int(tag_id),)
        ).fetchone()
        if row is None:
            raise RuleNotFoundError(f"no archive rule for tag {tag_id}")
        return _rule_from_row(row)

    def create_rule(
        self,
        *,
        tag_id: Optional[int],
        time_unit: int,
        time_amount: int,
        time_after: int = 0,
    ) -> ArchiveRule:
        if tag_id is not None:
            try:
                self.tags.resolve_tag(tag_id)
            except (InvalidTagError, TagNotFoundError) as exc:
                raise RuleValidationError("tagid", str(exc)) from exc
        if time_unit not in UNIT_NAMES:
            raise RuleValidationError("timeunit", f"unknown time unit: {time_unit}")
        if int(time_amount) < 1:
            raise RuleValidationError("timeamount", "time amount must be at least 1")
        if time_after not in MODE_NAMES:
            raise RuleValidationError("timeafter", f"unknown time mode: {time_after}")
        with self._conn:
            cursor = self._conn.execute(
                "INSERT INTO archive_rules (tag_id, time_unit, time_amount, time_after) "
                "VALUES (?, ?, ?, ?)",
                (tag_id, int(time_unit), int(time_amount), int(time_after)),
            )
        rule = self.get(int(cursor.lastrowid))
        self.add_job(rule.key)
        return rule

    def delete_rule(self, rule_id: int) -> bool:
        try:
            rule = self.get(rule_id)
        except RuleNotFoundError:
            return False
        with self._conn:
            self._conn.execute("DELETE FROM archive_rules WHERE id = ?", (rule.id,))
        self.remove_job(rule.key)
        return True

    # scheduled jobs

    def add_job(self, key: RuleKey) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR IGNORE INTO archive_jobs (kind, value, added_at) VALUES (?, ?, ?)",
                (key.kind, key.value, _format_ts()),
            )

    def remove_job(self, key: RuleKey) -> None:
        with self._conn:
            self._conn.execute(
                "DELETE FROM archive_jobs WHERE kind = ? AND value = ?", (key.kind, key.value)
            )

    def has_job(self, key: RuleKey) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM archive_jobs WHERE kind = ? AND value = ?", (key.kind, key.value)
        ).fetchone()
        return row is not None

    def list_jobs(self) -> List[JobRecord]:
        rows = self._conn.execute(
            "SELECT * FROM archive_jobs ORDER BY added_at, kind, value"
        ).fetchall()
        return [_job_from_row(row) for row in rows]

    def mark_job_run(self, key: RuleKey, when: Optional[datetime] = None) -> None:
        with self._conn:
            self._conn.execute(
                "UPDATE archive_jobs SET last_run_at = ? WHERE kind = ? AND value = ?",
                (_format_ts(when), key.kind, key.value),
            )

    # upload times

    def record_upload(self, file_id: int, upload_time: int) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO file_upload_times (file_id, upload_time) VALUES (?, ?)",
                (int(file_id), int(upload_time)),
            )

    def upload_time(self, file_id: int) -> int:
        row = self._conn.execute(
            "SELECT upload_time FROM file_upload_times WHERE file_id = ?", (int(file_id),)
        ).fetchone()
        return int(row["upload_time"]) if row else 0


class TagStore:
    OBJECT_TYPE = "files"

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def all_tags(self) -> List[Tag]:
        rows = self._conn.execute("SELECT * FROM systemtags ORDER BY id").fetchall()
        return [_tag_from_row(row) for row in rows]

    def create_tag(self, name: str, user_visible: bool = True, user_assignable: bool = True) -> Tag:
        with self._conn:
            cursor = self._conn.execute(
                "INSERT INTO systemtags (name, user_visible, user_assignable) VALUES (?, ?, ?)",
                (name, int(user_visible), int(user_assignable)),
            )
        return self.resolve_tag(int(cursor.lastrowid))

    def delete_tag(self, tag_id: int) -> None:
        with self._conn:
            self._conn.execute(
                "DELETE FROM systemtag_object_mapping WHERE systemtag_id = ?", (int(tag_id),)
            )
            self._conn.execute("DELETE FROM systemtags WHERE id = ?", (int(tag_id),))

    def tags_by_ids(self, tag_ids: Sequence[object]) -> List[Tag]:
        parsed: List[int] = []
        for raw in tag_ids:
            try:
                parsed.append(int(str(raw)))
            except ValueError:
                raise InvalidTagError(f"invalid tag id: {raw!r}") from None
        tags: List[Tag] = []
        missing: List[int] = []
        for tag_id in parsed:
            row = self._conn.execute("SELECT * FROM systemtags WHERE id = ?", (tag_id,)).fetchone()
            if row is None:
                missing.append(tag_id)
            else:
                tags.append(_tag_from_row(row))
        if missing:
            raise TagNotFoundError(missing)
        return tags

    def resolve_tag(self, tag_id: object) -> Tag:
        return self.tags_by_ids([tag_id])[0]

    def find_by_name(self, name: str) -> Optional[Tag]:
        row = self._conn.execute("SELECT * FROM systemtags WHERE name = ?", (name,)).fetchone()
        return _tag_from_row(row) if row else None

    def object_ids_for_tag(self, tag_id: int, limit: int, offset: str = "") -> List[str]:
        rows = self._conn.execute(
            """
            SELECT object_id FROM systemtag_object_mapping
            WHERE systemtag_id = ? AND object_type = ?
              AND CAST(object_id AS INTEGER) > ?
            ORDER BY CAST(object_id AS INTEGER)
            LIMIT ?
            """,
            (int(tag_id), self.OBJECT_TYPE, int(offset or 0), int(limit)),
        ).fetchall()
        return [row["object_id"] for row in rows]

    def assign(self, file_id: int, tag_ids: Sequence[int]) -> None:
        self.tags_by_ids(tag_ids)
        with self._conn:
            for tag_id in tag_ids:
                self._conn.execute(
                    "INSERT OR IGNORE INTO systemtag_object_mapping "
                    "(object_id, object_type, systemtag_id) VALUES (?, ?, ?)",
                    (str(file_id), self.OBJECT_TYPE, int(tag_id)),
                )

    def unassign(self, file_id: int, tag_ids: Sequence[int]) -> None:
        with self._conn:
            for tag_id in tag_ids:
                self._conn.execute(
                    "DELETE FROM systemtag_object_mapping "
                    "WHERE object_id = ? AND object_type = ? AND systemtag_id = ?",
                    (str(file_id), self.OBJECT_TYPE, int(tag_id)),
                )

    def tag_ids_for_object(self, file_id: int) -> List[int]:
        rows = self._conn.execute(
            "SELECT systemtag_id FROM systemtag_object_mapping "
            "WHERE object_id = ? AND object_type = ? ORDER BY systemtag_id",
            (str(file_id), self.OBJECT_TYPE),
        ).fetchall()
        return [int(row["systemtag_id"]) for row in rows]


class ShareStore:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def add_share(self, *, owner: str, share_type: int, file_id: int, share_with: str = "") -> Share:
        with self._conn:
            cursor = self._conn.execute(
                "INSERT INTO shares (share_type, uid_owner, file_id, share_with) "
                "VALUES (?, ?, ?, ?)",
                (int(share_type), owner, int(file_id), share_with),
            )
        return Share(
            id=int(cursor.lastrowid),
            share_type=int(share_type),
            owner=owner,
            file_id=int(file_id),
            share_with=share_with,
        )

    def shares_by(self, owner_id: str, share_type: int, node: FileNode) -> List[Share]:
        rows = self._conn.execute(
            "SELECT * FROM shares WHERE uid_owner = ? AND share_type = ? AND file_id = ?",
            (owner_id, int(share_type), int(node.id)),
        ).fetchall()
        return [
            Share(
                id=int(row["id"]),
                share_type=int(row["share_type"]),
                owner=row["uid_owner"],
                file_id=int(row["file_id"]),
                share_with=row["share_with"],
            )
            for row in rows
        ]
