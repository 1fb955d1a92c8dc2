import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..constants import ARCHIVE_FOLDER, protected_folders
from ..errors import (
    DeregisterRule,
    InvalidTagError,
    LockedError,
    MoveError,
    RuleNotFoundError,
    TagNotFoundError,
)
from ..gateways import FileTree, RuleStore, ShareGateway, TagGateway, UserDirectory
from ..models import ArchiveRule, FileNode, RuleKey, RunStatistics
from ..policy import Clock, rule_cutoff
from .eligibility import EligibilityClassifier
from .housekeeping import Housekeeping
from .mover import (
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_SHARED_BASE_DELAY,
    ArchiveMover,
    MoveResult,
)
from .sources import DEFAULT_PAGE_SIZE, KIND_FOLDER, Candidate, TagMemberSource, TreeSource

logger = logging.getLogger(__name__)

Reporter = Callable[[FileNode, MoveResult, str], None]


@dataclass(frozen=True)
class RunnerSettings:
    protected_folders: List[str] = field(default_factory=protected_folders)
    excluded_users: List[str] = field(default_factory=list)
    exclude_paths: List[str] = field(default_factory=list)
    page_size: int = DEFAULT_PAGE_SIZE
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY
    shared_base_delay: float = DEFAULT_SHARED_BASE_DELAY


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item) for item in value]


def settings_from_config(cfg: Dict[str, Any]) -> RunnerSettings:
    return RunnerSettings(
        protected_folders=protected_folders(cfg.get("protected_folders") or None),
        excluded_users=_as_list(cfg.get("excluded_users")),
        exclude_paths=_as_list(cfg.get("exclude_paths")),
        page_size=max(1, _as_int(cfg.get("page_size"), DEFAULT_PAGE_SIZE)),
        max_attempts=max(1, _as_int(cfg.get("max_attempts"), DEFAULT_MAX_ATTEMPTS)),
        base_delay=_as_float(cfg.get("base_delay_seconds"), DEFAULT_BASE_DELAY),
        shared_base_delay=_as_float(
            cfg.get("shared_base_delay_seconds"), DEFAULT_SHARED_BASE_DELAY
        ),
    )


@dataclass(frozen=True)
class _RunContext:
    rule: ArchiveRule
    cutoff: datetime


class ArchiveRunner:
    """Runs one archive rule to completion.

    ``run_rule`` only raises ``DeregisterRule``; every other failure is
    logged and counted in the returned statistics.
    """

    def __init__(
        self,
        *,
        rules: RuleStore,
        file_tree: FileTree,
        tags: TagGateway,
        shares: ShareGateway,
        users: UserDirectory,
        clock: Clock,
        settings: Optional[RunnerSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
        reporter: Optional[Reporter] = None,
    ) -> None:
        self._rules = rules
        self._file_tree = file_tree
        self._tags = tags
        self._users = users
        self._clock = clock
        self._settings = settings or RunnerSettings()
        self._reporter = reporter
        self.housekeeping = Housekeeping(tags)
        self.classifier = EligibilityClassifier(
            shares, file_tree, self._settings.protected_folders
        )
        self.mover = ArchiveMover(
            file_tree,
            on_root_created=self.housekeeping.favorite_archive_root,
            max_attempts=self._settings.max_attempts,
            base_delay=self._settings.base_delay,
            shared_base_delay=self._settings.shared_base_delay,
            sleep=sleep,
        )

    def load_rule(self, key: RuleKey) -> ArchiveRule:
        if key.is_tag:
            try:
                self._tags.resolve_tag(key.value)
            except InvalidTagError as exc:
                raise DeregisterRule(key, f"tag {key.value} is invalid") from exc
            except TagNotFoundError as exc:
                raise DeregisterRule(key, f"tag {key.value} no longer exists") from exc
            try:
                rule = self._rules.get_by_tag(key.value)
            except RuleNotFoundError as exc:
                raise DeregisterRule(key, "no archive rule configured") from exc
            if rule.tag_id != key.value:
                raise DeregisterRule(key, "no archive rule configured")
            return rule
        try:
            rule = self._rules.get(key.value)
        except RuleNotFoundError as exc:
            raise DeregisterRule(key, "no archive rule configured") from exc
        if rule.is_tag_rule:
            raise DeregisterRule(key, "rule is tag based")
        return rule

    def run_rule(self, key: RuleKey) -> RunStatistics:
        rule = self.load_rule(key)
        ctx = _RunContext(rule=rule, cutoff=rule_cutoff(rule, self._clock))
        logger.debug(
            "Running archive for %s with archive before %s", key, ctx.cutoff.isoformat()
        )
        if rule.tag_id is not None:
            source = TagMemberSource(
                self._tags, self._file_tree, rule.tag_id, self._settings.page_size
            )
            stats = self._process(source, ctx)
        else:
            stats = self._run_all_users(ctx)
        logger.info("Archive run %s finished: %s", key, stats.summary())
        return stats

    def _run_all_users(self, ctx: _RunContext) -> RunStatistics:
        stats = RunStatistics()
        for user_id in self._iter_users():
            stats = stats + self._run_user(user_id, ctx)
        return stats

    def _iter_users(self) -> Iterable[str]:
        excluded = set(self._settings.excluded_users)
        for user_id in self._users.iter_users():
            if user_id in excluded:
                logger.debug("Skipping excluded user %s", user_id)
                continue
            yield user_id

    def _run_user(self, user_id: str, ctx: _RunContext) -> RunStatistics:
        stats = RunStatistics(users_processed=1)
        try:
            source = TreeSource(self._file_tree, user_id, self._settings.exclude_paths)
            return stats + self._process(source, ctx)
        except Exception as exc:  # noqa: BLE001 - one user must not abort the run
            logger.warning("Failed to archive files for user %s: %s", user_id, exc)
            return stats.bump(errors=1)

    def _process(self, source: Iterable[Candidate], ctx: _RunContext) -> RunStatistics:
        stats = RunStatistics()
        candidates = iter(source)
        while True:
            try:
                candidate = next(candidates, None)
            except Exception as exc:  # noqa: BLE001 - keep what was archived before the source failed
                logger.error("Stopped listing candidates: %s", exc)
                return stats.bump(errors=1)
            if candidate is None:
                return stats
            try:
                stats = stats + self._handle(candidate, ctx)
            except Exception as exc:  # noqa: BLE001 - one node must not abort the run
                logger.error("Failed to archive %s: %s", candidate.file_id, exc)
                stats = stats.bump(errors=1)

    def _handle(self, candidate: Candidate, ctx: _RunContext) -> RunStatistics:
        if candidate.node is None:
            logger.debug("Skipping %s: %s", candidate.file_id, candidate.error)
            return RunStatistics(errors=1)
        node = candidate.node
        if candidate.kind == KIND_FOLDER:
            if not self._is_emptied(node):
                return RunStatistics()
            checked = RunStatistics()
        else:
            checked = RunStatistics(files_checked=1)

        verdict = self.classifier.classify(
            node, ctx.cutoff, ctx.rule.time_after, ctx.rule.is_tag_rule
        )
        if not verdict.archive:
            logger.debug("Skipping %s from archiving (%s)", node.path, verdict.reason)
            return checked

        # An emptied folder whose mirror already exists lands next to it as "Name (n)".
        try:
            result = self.mover.move(node, is_shared=verdict.is_shared)
        except LockedError as exc:
            logger.warning("Deferring %s to the next run: %s", node.path, exc)
            return checked.bump(deferred=1)
        except MoveError as exc:
            logger.error("Failed to archive %s: %s", node.path, exc)
            return checked.bump(errors=1)

        logger.info("Archived %s of %s to %s", result.source_path, node.owner, result.destination)
        if ctx.rule.tag_id is not None:
            cleanup = self.housekeeping.remove_trigger_tag(node.id, ctx.rule.tag_id)
            if not cleanup.ok:
                logger.warning("Tag cleanup for %s: %s", node.id, cleanup.detail)
        if self._reporter is not None:
            try:
                self._reporter(node, result, str(ctx.rule.key))
            except OSError as exc:
                logger.warning("Could not write archive report: %s", exc)
        if node.is_folder:
            return checked.bump(folders_archived=1)
        return checked.bump(files_archived=1)

    def _is_emptied(self, folder: FileNode) -> bool:
        remaining = [
            child
            for child in self._file_tree.list_children(folder)
            if child.name != ARCHIVE_FOLDER
        ]
        return not remaining
