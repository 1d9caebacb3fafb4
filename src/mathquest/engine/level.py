"""Level-up bookkeeping shared by every mutation path."""

from mathquest.models.progress import ProgressRecord

LEVELUP_BADGE_STEP = 5


def apply_level_up(
    prev: ProgressRecord, next_progress: ProgressRecord, step: int = LEVELUP_BADGE_STEP
) -> ProgressRecord:
    """Raise the level by one when the badge count crosses a multiple of ``step``.

    Never more than +1 per update, however many badges were gained. The
    level is always derived from ``prev``; level edits made by the updater
    are discarded.
    """
    before = prev.badge_count // step
    after = next_progress.badge_count // step
    level = prev.level + 1 if after > before else prev.level
    if level == next_progress.level:
        return next_progress
    return next_progress.model_copy(update={"level": level})
