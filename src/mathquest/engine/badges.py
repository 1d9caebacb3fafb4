"""Rule-based badge unlocks after a completed practice round."""

import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo

import structlog
from pydantic import BaseModel

from mathquest.models.badge import BadgeCatalog, StuffyBadge
from mathquest.models.progress import CategoryType, ProgressRecord
from mathquest.models.session import SessionStats

logger = structlog.get_logger()


class BadgeThresholds(BaseModel):
    """Catalog-specific rule thresholds."""

    early_sessions_max: int = 5
    short_focus_minutes: float = 5.0
    long_focus_minutes: float = 10.0
    night_start_hour: int = 21
    night_end_hour: int = 5
    chaos_min_incorrect: int = 2
    chaos_min_accuracy: float = 0.6
    recovery_max_prev_accuracy: float = 0.4
    recovery_min_jump: float = 0.2
    high_accuracy: float = 0.9
    high_accuracy_min_questions: int = 5
    mastery_accuracy: float = 0.95
    mastery_min_questions: int = 8
    streak_short_days: int = 7
    streak_long_days: int = 14
    many_sessions: int = 10
    fast_answer_seconds: float = 4.0
    category_solved_count: int = 50
    improvement_max_prev_accuracy: float = 0.6
    improvement_min_sessions: int = 8


@dataclass(frozen=True)
class RuleContext:
    """Quantities derived once per evaluation and shared by every rule."""

    session: SessionStats
    prev: ProgressRecord
    total_questions: int
    accuracy: float
    duration_minutes: float
    ended_local: datetime
    streak_days: int
    total_sessions: int


@dataclass(frozen=True)
class BadgeRule:
    badge_id: str
    predicate: Callable[[RuleContext], bool]


@dataclass
class BadgeAwardResult:
    updated_progress: ProgressRecord
    new_badges: list[StuffyBadge] = field(default_factory=list)
    bonus: bool = False


def build_default_rules(t: BadgeThresholds | None = None) -> list[BadgeRule]:
    """Rules for the built-in Spooky Study and Galaxy Lab sets."""
    t = t or BadgeThresholds()

    def is_night(ctx: RuleContext) -> bool:
        hour = ctx.ended_local.hour
        return hour >= t.night_start_hour or hour < t.night_end_hour

    def recovered(ctx: RuleContext) -> bool:
        last = ctx.prev.last_session_accuracy
        return (
            last is not None
            and last <= t.recovery_max_prev_accuracy
            and ctx.accuracy >= last + t.recovery_min_jump
        )

    def high_accuracy(ctx: RuleContext) -> bool:
        return (
            ctx.accuracy >= t.high_accuracy
            and ctx.total_questions >= t.high_accuracy_min_questions
        )

    def fast_and_accurate(ctx: RuleContext) -> bool:
        avg = ctx.session.avg_answer_time_seconds
        return avg is not None and avg <= t.fast_answer_seconds and high_accuracy(ctx)

    def long_term_improvement(ctx: RuleContext) -> bool:
        last = ctx.prev.last_session_accuracy
        return (
            last is not None
            and last <= t.improvement_max_prev_accuracy
            and ctx.accuracy >= t.high_accuracy
            and ctx.total_sessions >= t.improvement_min_sessions
        )

    return [
        # Spooky Study
        BadgeRule("milk_teeth_medal", lambda c: 1 <= c.total_sessions <= t.early_sessions_max),
        BadgeRule("brain_melt_marshmallow_lv1", lambda c: c.duration_minutes >= t.short_focus_minutes),
        BadgeRule("night_owl_crown", is_night),
        BadgeRule(
            "chaos_eyes",
            lambda c: c.session.incorrect >= t.chaos_min_incorrect
            and c.accuracy >= t.chaos_min_accuracy,
        ),
        BadgeRule("oopsie_bandage", recovered),
        BadgeRule(
            "slice_and_dice_halo",
            lambda c: c.session.category == CategoryType.FRACTIONS and high_accuracy(c),
        ),
        BadgeRule("shadow_study_buddy", lambda c: c.streak_days >= t.streak_short_days),
        # Galaxy Lab
        BadgeRule("starlight_goggles", high_accuracy),
        BadgeRule("orbiting_notebook", lambda c: c.total_sessions >= t.many_sessions),
        BadgeRule("gravity_boots", lambda c: c.duration_minutes >= t.long_focus_minutes),
        BadgeRule("quantum_pocket_watch", fast_and_accurate),
        BadgeRule(
            "nebula_coat",
            lambda c: c.prev.completed_categories.get(c.session.category, 0)
            >= t.category_solved_count,
        ),
        BadgeRule("black_hole_backpack", long_term_improvement),
        BadgeRule("comet_tail_aura", lambda c: c.streak_days >= t.streak_long_days),
        BadgeRule(
            "alien_theorem_hat",
            lambda c: c.accuracy >= t.mastery_accuracy
            and c.total_questions >= t.mastery_min_questions,
        ),
    ]


DEFAULT_RULES: list[BadgeRule] = build_default_rules()


def to_local(moment: datetime, tz: tzinfo | None = None) -> datetime:
    """Express ``moment`` in ``tz`` (system local time when None).

    Naive datetimes are taken to already be in local time.
    """
    if tz is not None:
        return moment.astimezone(tz)
    if moment.tzinfo is None:
        return moment
    return moment.astimezone()


def next_streak(last_date: date | None, streak_days: int, today: date) -> int:
    """Consecutive-day streak after a round finished on ``today``."""
    if last_date is None:
        return 1
    if last_date == today:
        return streak_days
    if (today - last_date).days == 1:
        return streak_days + 1
    return 1


def evaluate_badges_after_session(
    prev: ProgressRecord,
    session: SessionStats,
    catalog: BadgeCatalog,
    rules: Sequence[BadgeRule] = DEFAULT_RULES,
    rng: random.Random | None = None,
    tz: tzinfo | None = None,
    guarantee_reward: bool = True,
) -> BadgeAwardResult:
    """Compute newly unlocked badges and the next progress record.

    Every rule is checked; a round may unlock several badges. When no rule
    fires and ``guarantee_reward`` is set, one unowned badge is picked with
    ``rng``. The level is left untouched; see ``apply_level_up``.

    Args:
        prev: Progress before the round.
        session: The finished round.
        catalog: Badges that may be unlocked.
        rules: Unlock rules, evaluated in order.
        rng: Random source for the bonus pick.
        tz: Timezone for the calendar day and hour-of-day rules.
        guarantee_reward: Award a bonus badge when no rule fires.

    Returns:
        BadgeAwardResult with the unlocked badges and the updated record.
    """
    ended_local = to_local(session.ended_at, tz)
    today = ended_local.date()
    streak_days = next_streak(prev.last_session_date, prev.streak_days, today)

    ctx = RuleContext(
        session=session,
        prev=prev,
        total_questions=session.total_questions,
        accuracy=session.accuracy,
        duration_minutes=session.duration_minutes,
        ended_local=ended_local,
        streak_days=streak_days,
        total_sessions=prev.total_sessions + 1,
    )

    owned = set(prev.badges)
    newly_unlocked: list[StuffyBadge] = []

    def unlock(badge_id: str) -> None:
        if badge_id in owned:
            return
        badge = catalog.get(badge_id)
        if badge is None:
            return
        owned.add(badge_id)
        newly_unlocked.append(badge)

    for rule in rules:
        if rule.predicate(ctx):
            unlock(rule.badge_id)

    bonus = False
    if not newly_unlocked and guarantee_reward:
        available = catalog.unowned(owned)
        if available:
            pick = (rng or random.Random()).choice(available)
            unlock(pick.id)
            bonus = True

    updated = prev.model_copy(
        update={
            "badges": prev.badges + [b.id for b in newly_unlocked],
            "total_sessions": ctx.total_sessions,
            "last_session_at": session.ended_at,
            "last_session_accuracy": ctx.accuracy,
            "streak_days": streak_days,
            "last_session_date": today,
        }
    )

    logger.info(
        "badges_evaluated",
        category=session.category,
        accuracy=round(ctx.accuracy, 3),
        streak_days=streak_days,
        total_sessions=ctx.total_sessions,
        unlocked=[b.id for b in newly_unlocked],
        bonus=bonus,
    )

    return BadgeAwardResult(new_badges=newly_unlocked, updated_progress=updated, bonus=bonus)
