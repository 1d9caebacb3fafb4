"""Progress state container with a single read-compute-write mutation path."""

import asyncio
import random
from collections.abc import Callable, Coroutine, Iterable, Sequence
from datetime import tzinfo
from typing import Any

import structlog
from pydantic import BaseModel

from mathquest.config import Settings
from mathquest.engine.badges import (
    DEFAULT_RULES,
    BadgeRule,
    evaluate_badges_after_session,
)
from mathquest.engine.level import LEVELUP_BADGE_STEP, apply_level_up
from mathquest.engine.loadout import equip_badge
from mathquest.models.badge import BadgeCatalog, StuffyBadge, default_catalog, load_badge_catalog
from mathquest.models.progress import (
    MAX_SEEN_PROBLEM_IDS,
    ProgressRecord,
    cap_seen_problem_ids,
    create_default_progress,
)
from mathquest.models.session import ProblemRef, SessionStats
from mathquest.storage.cache import JsonFileCache
from mathquest.storage.durable import DurableStore, ProblemProgressRecord
from mathquest.storage.migration import (
    ProgressSchemaError,
    parse_progress_blob,
    read_progress,
    save_progress,
)

logger = structlog.get_logger()

ProgressUpdater = Callable[[ProgressRecord], ProgressRecord]


class SessionOutcome(BaseModel):
    """What a finished round changed."""

    new_badges: list[StuffyBadge]
    spotlight: StuffyBadge | None = None
    bonus: bool = False
    leveled_up: bool = False
    collection_complete: bool = False
    progress: ProgressRecord


class ProgressTracker:
    """Owns the current progress record for one learner.

    All mutations go through ``update_progress``: compute the next record
    from the current one, cap ``seen_problem_ids``, apply level-up, then
    write the synchronous cache (best effort) and schedule a durable write
    without waiting for it.

    Args:
        cache: Synchronous blob cache.
        durable: Durable store; may lag the cache by pending writes.
        catalog: Badge catalog.
        cache_key: Version-qualified cache key for the progress blob.
        max_seen: Cap for ``seen_problem_ids``.
        levelup_step: Badge count per level.
        rules: Badge unlock rules.
        rng: Random source for bonus badges.
        tz: Timezone for calendar-day rules (system local time when None).
        guarantee_reward: Award a bonus badge when no rule fires.
    """

    def __init__(
        self,
        cache: JsonFileCache,
        durable: DurableStore,
        catalog: BadgeCatalog,
        cache_key: str = "mathquest_progress_v2",
        max_seen: int = MAX_SEEN_PROBLEM_IDS,
        levelup_step: int = LEVELUP_BADGE_STEP,
        rules: Sequence[BadgeRule] = DEFAULT_RULES,
        rng: random.Random | None = None,
        tz: tzinfo | None = None,
        guarantee_reward: bool = True,
    ):
        self.cache = cache
        self.durable = durable
        self.catalog = catalog
        self.cache_key = cache_key
        self.max_seen = max_seen
        self.levelup_step = levelup_step
        self.rules = rules
        self.rng = rng or random.Random()
        self.tz = tz
        self.guarantee_reward = guarantee_reward
        self._pending: set[asyncio.Task] = set()

        cached = read_progress(cache, cache_key, max_seen=max_seen)
        self._started_without_cache = cached is None
        self._progress = cached if cached is not None else create_default_progress()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "ProgressTracker":
        if settings.badge_catalog_path is not None:
            catalog = load_badge_catalog(settings.badge_catalog_path)
        else:
            catalog = default_catalog()
        durable = DurableStore(
            settings.durable_db_path if settings.durable_enabled else None,
            version=settings.durable_db_version,
        )
        return cls(
            cache=JsonFileCache(settings.cache_dir),
            durable=durable,
            catalog=catalog,
            cache_key=settings.progress_cache_key,
            max_seen=settings.max_seen_problem_ids,
            levelup_step=settings.levelup_badge_step,
            **kwargs,
        )

    @property
    def progress(self) -> ProgressRecord:
        return self._progress

    def get_progress(self) -> ProgressRecord:
        return self._progress

    # ── Mutation boundary ──

    def update_progress(self, updater: ProgressUpdater) -> ProgressRecord:
        """Apply ``updater`` to the current record and persist the result."""
        prev = self._progress
        next_progress = updater(prev)
        next_progress = cap_seen_problem_ids(next_progress, self.max_seen)
        next_progress = apply_level_up(prev, next_progress, self.levelup_step)

        owned = set(next_progress.badges)
        if any(b not in owned for b in next_progress.equipped_badges.values()):
            next_progress = next_progress.model_copy(
                update={
                    "equipped_badges": {
                        slot: b for slot, b in next_progress.equipped_badges.items() if b in owned
                    }
                }
            )

        self._progress = next_progress
        self._started_without_cache = False

        try:
            save_progress(self.cache, self.cache_key, next_progress)
        except (OSError, TypeError, ValueError) as e:
            logger.warning("progress_cache_write_failed", key=self.cache_key, error=str(e))

        self._dispatch(self.durable.put_progress(next_progress))
        return next_progress

    def _dispatch(self, coro: Coroutine[Any, Any, None]) -> None:
        """Run a durable-store write in the background."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("durable_write_skipped_no_loop")
            return
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait for every scheduled durable write."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    # ── Collaborator operations ──

    def equip(self, badge_id: str) -> ProgressRecord:
        return self.update_progress(lambda prev: equip_badge(prev, badge_id, self.catalog))

    def complete_session(self, session: SessionStats) -> SessionOutcome:
        """Evaluate badges for a finished round and persist the result."""
        result = None

        def updater(prev: ProgressRecord) -> ProgressRecord:
            nonlocal result
            result = evaluate_badges_after_session(
                prev,
                session,
                self.catalog,
                rules=self.rules,
                rng=self.rng,
                tz=self.tz,
                guarantee_reward=self.guarantee_reward,
            )
            return result.updated_progress

        prev_level = self._progress.level
        progress = self.update_progress(updater)
        assert result is not None

        outcome = SessionOutcome(
            new_badges=result.new_badges,
            spotlight=result.new_badges[-1] if result.new_badges else None,
            bonus=result.bonus,
            leveled_up=progress.level > prev_level,
            collection_complete=not self.catalog.unowned(progress.badges),
            progress=progress,
        )
        if outcome.leveled_up:
            logger.info("level_up", level=progress.level, badges=progress.badge_count)
        return outcome

    def record_correct_answer(self, problem: ProblemRef) -> ProgressRecord:
        """Remember a solved exercise and count it toward its category."""

        def updater(prev: ProgressRecord) -> ProgressRecord:
            seen = prev.seen_problem_ids
            if problem.id not in seen:
                seen = seen + [problem.id]
            completed = dict(prev.completed_categories)
            completed[problem.category] = completed.get(problem.category, 0) + 1
            return prev.model_copy(
                update={"seen_problem_ids": seen, "completed_categories": completed}
            )

        return self.update_progress(updater)

    async def record_answer(self, problem: ProblemRef, is_correct: bool) -> ProgressRecord:
        """Handle one answered question: per-exercise stats, then progress."""
        await self.mark_problem_answered(problem, is_correct)
        if is_correct:
            return self.record_correct_answer(problem)
        return self._progress

    async def mark_problems_asked(self, problems: Iterable[ProblemRef]) -> None:
        await self.durable.mark_asked(problems)

    async def mark_problem_answered(self, problem: ProblemRef, is_correct: bool) -> None:
        await self.durable.mark_answered(problem, is_correct)

    async def get_problem_progress(self, problem_id: str) -> ProblemProgressRecord | None:
        return await self.durable.get_problem_progress(problem_id)

    async def restore_from_durable(self) -> bool:
        """Adopt the durable snapshot when the cache was empty at start-up.

        A snapshot is not adopted once ``update_progress`` has run, including
        while the durable read was in flight.

        Returns:
            True if the durable snapshot replaced the in-memory record.
        """
        if not self._started_without_cache:
            return False
        data = await self.durable.get_progress()
        if data is None:
            return False
        if not self._started_without_cache:
            logger.info("durable_restore_superseded")
            return False
        try:
            restored = parse_progress_blob(data, max_seen=self.max_seen)
        except ProgressSchemaError as e:
            logger.warning("durable_snapshot_invalid", reason=str(e))
            return False

        self._started_without_cache = False
        self._progress = restored
        try:
            save_progress(self.cache, self.cache_key, restored)
        except (OSError, TypeError, ValueError) as e:
            logger.warning("progress_cache_write_failed", key=self.cache_key, error=str(e))
        logger.info("progress_restored_from_durable", badges=restored.badge_count)
        return True

    async def close(self) -> None:
        await self.flush()
        await self.durable.close()
