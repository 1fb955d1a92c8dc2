import argparse
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .clock import SystemClock
from .config import config_path, load_config, resolve_path
from .constants import (
    MODE_CTIME,
    MODE_NAMES,
    SHARE_TYPE_GROUP,
    SHARE_TYPE_LINK,
    SHARE_TYPE_USER,
    UNIT_NAMES,
    mode_from_name,
    unit_from_name,
)
from .engine.housekeeping import Housekeeping, repair_favorites
from .engine.runner import ArchiveRunner, settings_from_config
from .errors import ArchiveError, RuleValidationError
from .host.filesystem import LocalFileTree, LocalUserDirectory
from .host.launchd import (
    DEFAULT_LAUNCHD_LABEL,
    DEFAULT_STDERR_PATH,
    DEFAULT_STDOUT_PATH,
    render_launchd_plist,
    resolve_program_path,
)
from .host.scheduler import run_due_jobs, run_job, sync_jobs
from .host.store import ArchiveStore
from .log import configure_logging
from .models import RuleKey
from .report import CsvReport

SHARE_TYPES = {
    "user": SHARE_TYPE_USER,
    "group": SHARE_TYPE_GROUP,
    "link": SHARE_TYPE_LINK,
}


@dataclass
class Host:
    cfg: Dict[str, Any]
    store: ArchiveStore
    file_tree: LocalFileTree
    users: LocalUserDirectory

    def runner(self) -> ArchiveRunner:
        report_path = resolve_path(self.cfg, "report_path")
        return ArchiveRunner(
            rules=self.store,
            file_tree=self.file_tree,
            tags=self.store.tags,
            shares=self.store.shares,
            users=self.users,
            clock=SystemClock(),
            settings=settings_from_config(self.cfg),
            reporter=CsvReport(report_path) if report_path else None,
        )

    def close(self) -> None:
        self.store.close()


def _open_host(cfg: Optional[Dict[str, Any]] = None) -> Host:
    cfg = cfg or load_config()
    data_root = resolve_path(cfg, "data_root") or Path.cwd()
    store = ArchiveStore(resolve_path(cfg, "db_path") or data_root / "archive.db")
    file_tree = LocalFileTree(
        data_root,
        locks_dir=resolve_path(cfg, "locks_dir"),
        upload_times=store.upload_time,
    )
    return Host(cfg=cfg, store=store, file_tree=file_tree, users=LocalUserDirectory(data_root))


def _setup_logging(cfg: Dict[str, Any], verbose: bool) -> None:
    level = "DEBUG" if verbose else str(cfg.get("log_level") or "INFO")
    configure_logging(level, resolve_path(cfg, "log_path"))


def cmd_config(_: argparse.Namespace) -> int:
    cfg = load_config()
    print(f"Config: {config_path()}")
    for key, value in cfg.items():
        print(f"{key}: {value}")
    return 0


def cmd_rules_list(args: argparse.Namespace) -> int:
    host = _open_host()
    try:
        rules = host.store.list_rules()
        if args.json:
            print(json.dumps([rule.as_dict() for rule in rules], indent=2))
            return 0
        if not rules:
            print("No archive rules.")
        for rule in rules:
            print(f"{rule.id}\t{rule.key}\t{rule.describe()}")
    finally:
        host.close()
    return 0


def cmd_rules_add(args: argparse.Namespace) -> int:
    unit = unit_from_name(args.unit)
    if unit is None:
        print(f"Unknown time unit: {args.unit}. Use one of: {', '.join(UNIT_NAMES.values())}")
        return 1
    mode = mode_from_name(args.after)
    if mode is None:
        print(f"Unknown time mode: {args.after}. Use one of: {', '.join(MODE_NAMES.values())}")
        return 1
    host = _open_host()
    try:
        rule = host.store.create_rule(
            tag_id=args.tag,
            time_unit=unit,
            time_amount=args.amount,
            time_after=mode,
        )
    except RuleValidationError as exc:
        print(f"Invalid {exc.field}: {exc}")
        return 1
    finally:
        host.close()
    print(f"Created rule {rule.id} ({rule.key}): {rule.describe()}")
    return 0


def cmd_rules_delete(args: argparse.Namespace) -> int:
    host = _open_host()
    try:
        deleted = host.store.delete_rule(args.id)
    finally:
        host.close()
    if not deleted:
        print(f"Rule {args.id} not found.")
        return 1
    print(f"Deleted rule {args.id}.")
    return 0


def cmd_tags_list(_: argparse.Namespace) -> int:
    host = _open_host()
    try:
        for tag in host.store.tags.all_tags():
            flags = []
            if not tag.user_visible:
                flags.append("hidden")
            if not tag.user_assignable:
                flags.append("restricted")
            suffix = f" ({', '.join(flags)})" if flags else ""
            print(f"{tag.id}\t{tag.name}{suffix}")
    finally:
        host.close()
    return 0


def cmd_tags_add(args: argparse.Namespace) -> int:
    host = _open_host()
    try:
        tag = host.store.tags.create_tag(
            args.name, user_visible=not args.hidden, user_assignable=not args.restricted
        )
    finally:
        host.close()
    print(f"Created tag {tag.id}: {tag.name}")
    return 0


def cmd_tags_assign(args: argparse.Namespace) -> int:
    host = _open_host()
    try:
        node = host.file_tree.node_for_path(args.user, args.path)
        host.store.tags.assign(node.id, [args.tag])
    except ArchiveError as exc:
        print(f"Cannot tag {args.path}: {exc}")
        return 1
    finally:
        host.close()
    print(f"Tagged {args.path} ({node.id}) with {args.tag}.")
    return 0


def cmd_share_add(args: argparse.Namespace) -> int:
    host = _open_host()
    try:
        node = host.file_tree.node_for_path(args.user, args.path)
        host.store.shares.add_share(
            owner=args.user,
            share_type=SHARE_TYPES[args.type],
            file_id=node.id,
            share_with=args.share_with or "",
        )
    except ArchiveError as exc:
        print(f"Cannot share {args.path}: {exc}")
        return 1
    finally:
        host.close()
    print(f"Shared {args.path} ({args.type}).")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    try:
        key = RuleKey.parse(args.key)
    except ValueError as exc:
        print(str(exc))
        return 1
    host = _open_host()
    _setup_logging(host.cfg, args.verbose)
    try:
        result = run_job(host.store, host.runner(), key)
    finally:
        host.close()
    print(f"{key}: {result.message}")
    return 2 if result.deregistered else 0


def cmd_run_due(args: argparse.Namespace) -> int:
    host = _open_host()
    _setup_logging(host.cfg, args.verbose)
    try:
        sync_jobs(host.store)
        results = run_due_jobs(
            host.store,
            host.runner(),
            SystemClock(),
            interval_seconds=float(host.cfg.get("job_interval_seconds") or 86400),
            force=args.force,
        )
    finally:
        host.close()
    if not results:
        print("No jobs due.")
    for result in results:
        print(f"{result.key}: {result.message}")
    return 0


def cmd_repair_favorites(args: argparse.Namespace) -> int:
    host = _open_host()
    _setup_logging(host.cfg, args.verbose)
    try:
        counts = repair_favorites(
            host.file_tree, host.users.iter_users(), Housekeeping(host.store.tags)
        )
    finally:
        host.close()
    print(
        f"Processed {counts['processed']} users, added {counts['added']} folders to favorites, "
        f"{counts['skipped']} skipped, {counts['errors']} errors"
    )
    return 0


def cmd_print_plist(args: argparse.Namespace) -> int:
    cfg = load_config()
    program = resolve_program_path(args.program)
    if program is None:
        print("Unable to resolve program path. Use --program to specify a binary.")
        return 1
    interval = int(args.interval or cfg.get("job_interval_seconds") or 86400)
    if interval <= 0:
        print("Interval must be > 0.")
        return 1
    plist_text = render_launchd_plist(
        program=program,
        label=args.label,
        interval_seconds=interval,
        config_path=config_path(),
        stdout_path=Path(args.stdout_path).expanduser() if args.stdout_path else DEFAULT_STDOUT_PATH,
        stderr_path=Path(args.stderr_path).expanduser() if args.stderr_path else DEFAULT_STDERR_PATH,
    )
    print(plist_text, end="")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="time-archive")
    sub = parser.add_subparsers(dest="command", required=True)

    cfg = sub.add_parser("config", help="Show configuration")
    cfg.set_defaults(func=cmd_config)

    rules = sub.add_parser("rules", help="Manage archive rules")
    rules_sub = rules.add_subparsers(dest="rules_command", required=True)
    rules_list = rules_sub.add_parser("list", help="List archive rules")
    rules_list.add_argument("--json", action="store_true", help="Print rules as JSON")
    rules_list.set_defaults(func=cmd_rules_list)
    rules_add = rules_sub.add_parser("add", help="Create an archive rule")
    rules_add.add_argument(
        "--tag", type=int, default=None, help="Tag id (omit for a time-based rule on all files)"
    )
    rules_add.add_argument("--unit", default="day", help="minute, hour, day, week, month or year")
    rules_add.add_argument("--amount", type=int, required=True, help="Amount of time units")
    rules_add.add_argument(
        "--after",
        default=MODE_NAMES[MODE_CTIME],
        help="Count from creation (upload) or modification time",
    )
    rules_add.set_defaults(func=cmd_rules_add)
    rules_delete = rules_sub.add_parser("delete", help="Delete an archive rule")
    rules_delete.add_argument("id", type=int, help="Rule id")
    rules_delete.set_defaults(func=cmd_rules_delete)

    tags = sub.add_parser("tags", help="Manage system tags")
    tags_sub = tags.add_subparsers(dest="tags_command", required=True)
    tags_list = tags_sub.add_parser("list", help="List tags")
    tags_list.set_defaults(func=cmd_tags_list)
    tags_add = tags_sub.add_parser("add", help="Create a tag")
    tags_add.add_argument("name", help="Tag name")
    tags_add.add_argument("--hidden", action="store_true", help="Not visible to users")
    tags_add.add_argument("--restricted", action="store_true", help="Not assignable by users")
    tags_add.set_defaults(func=cmd_tags_add)
    tags_assign = tags_sub.add_parser("assign", help="Tag a file or folder")
    tags_assign.add_argument("tag", type=int, help="Tag id")
    tags_assign.add_argument("user", help="Owner of the file")
    tags_assign.add_argument("path", help="Path relative to the user's files")
    tags_assign.set_defaults(func=cmd_tags_assign)

    share = sub.add_parser("share", help="Record shares")
    share_sub = share.add_subparsers(dest="share_command", required=True)
    share_add = share_sub.add_parser("add", help="Share a file or folder")
    share_add.add_argument("user", help="Owner of the file")
    share_add.add_argument("path", help="Path relative to the user's files")
    share_add.add_argument("--type", choices=sorted(SHARE_TYPES), default="user")
    share_add.add_argument("--with", dest="share_with", default=None, help="Recipient")
    share_add.set_defaults(func=cmd_share_add)

    run = sub.add_parser("run", help="Run one archive job now")
    run.add_argument("key", help="tag:<id> or rule:<id>")
    run.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    run.set_defaults(func=cmd_run)

    run_due = sub.add_parser("run-due", help="Run every archive job that is due")
    run_due.add_argument("--force", action="store_true", help="Ignore the job interval")
    run_due.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    run_due.set_defaults(func=cmd_run_due)

    repair = sub.add_parser(
        "repair-favorites", help="Add existing .archive folders to favorites"
    )
    repair.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    repair.set_defaults(func=cmd_repair_favorites)

    plist = sub.add_parser("print-plist", help="Print a LaunchAgent plist for run-due")
    plist.add_argument("--label", default=DEFAULT_LAUNCHD_LABEL, help="LaunchAgent label")
    plist.add_argument("--program", default=None, help="Path to the time-archive binary")
    plist.add_argument("--interval", type=int, default=None, help="Seconds between runs")
    plist.add_argument("--stdout-path", default=None, help="Override StandardOutPath")
    plist.add_argument("--stderr-path", default=None, help="Override StandardErrorPath")
    plist.set_defaults(func=cmd_print_plist)

    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
