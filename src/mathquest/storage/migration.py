"""Validate-and-repair pass for persisted progress blobs.

Every field added to ``ProgressRecord`` ships with its default-filling
rule here, so consumers never check for optional fields themselves.
"""

import json
from collections.abc import Iterable
from numbers import Real
from typing import Any

import structlog
from pydantic import ValidationError

from mathquest.engine.loadout import EQUIP_SLOTS
from mathquest.models.progress import (
    MAX_SEEN_PROBLEM_IDS,
    CategoryType,
    ProgressRecord,
    create_default_progress,
)
from mathquest.storage.cache import JsonFileCache

logger = structlog.get_logger()


class ProgressSchemaError(ValueError):
    """A persisted blob does not have the progress record shape."""


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _validate_shape(data: Any) -> None:
    if not isinstance(data, dict):
        raise ProgressSchemaError("top level is not an object")
    if not isinstance(data.get("badges"), list):
        raise ProgressSchemaError("badges is not a list")
    if not _is_number(data.get("level")):
        raise ProgressSchemaError("level is not a number")
    if not isinstance(data.get("completedCategories"), dict):
        raise ProgressSchemaError("completedCategories is not an object")
    if not isinstance(data.get("seenProblemIds"), list):
        raise ProgressSchemaError("seenProblemIds is not a list")


def _valid_equipped(value: Any) -> bool:
    return isinstance(value, dict) and all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    )


def repair_progress(
    progress: ProgressRecord,
    max_seen: int = MAX_SEEN_PROBLEM_IDS,
    categories: Iterable[str] | None = None,
) -> ProgressRecord:
    """Fill missing categories, cap seen ids and drop stale equip entries.

    Idempotent: repairing an already-repaired record returns an equal one.
    """
    known = list(categories) if categories is not None else [c.value for c in CategoryType]

    completed = dict(progress.completed_categories)
    for category in known:
        completed.setdefault(category, 0)

    owned = set(progress.badges)
    equipped = {
        slot: badge_id
        for slot, badge_id in progress.equipped_badges.items()
        if slot in EQUIP_SLOTS and badge_id in owned
    }

    return progress.model_copy(
        update={
            "completed_categories": completed,
            "seen_problem_ids": progress.seen_problem_ids[-max_seen:],
            "equipped_badges": equipped,
        }
    )


def parse_progress_blob(
    data: Any,
    max_seen: int = MAX_SEEN_PROBLEM_IDS,
    categories: Iterable[str] | None = None,
) -> ProgressRecord:
    """Turn decoded JSON into a repaired record.

    Raises:
        ProgressSchemaError: If the data has the wrong shape or field types.
    """
    _validate_shape(data)
    data = dict(data)

    known = list(categories) if categories is not None else [c.value for c in CategoryType]
    # Legacy keys are kept only when they still hold a count
    completed = {k: v for k, v in data["completedCategories"].items() if _is_number(v)}
    for category in known:
        completed.setdefault(category, 0)
    data["completedCategories"] = completed

    if not _valid_equipped(data.get("equippedBadges")):
        data["equippedBadges"] = {}

    try:
        progress = ProgressRecord.model_validate(data)
    except ValidationError as e:
        raise ProgressSchemaError(str(e)) from e

    return repair_progress(progress, max_seen=max_seen, categories=known)


def read_progress(
    cache: JsonFileCache,
    key: str,
    max_seen: int = MAX_SEEN_PROBLEM_IDS,
) -> ProgressRecord | None:
    """Read and repair this schema version's blob from the cache.

    Returns None, after logging why, when there is no usable record.
    """
    try:
        raw = cache.get_item(key)
    except (OSError, ValueError) as e:
        logger.warning("progress_cache_read_failed", key=key, error=str(e))
        return None

    if raw is None:
        logger.warning("progress_cache_empty", key=key)
        return None

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("progress_parse_failed", key=key, error=str(e))
        return None

    try:
        return parse_progress_blob(data, max_seen=max_seen)
    except ProgressSchemaError as e:
        logger.warning("progress_schema_invalid", key=key, reason=str(e))
        return None


def load_progress(
    cache: JsonFileCache,
    key: str,
    max_seen: int = MAX_SEEN_PROBLEM_IDS,
) -> ProgressRecord:
    """Like ``read_progress`` but never raises and never returns None.

    Missing, unreadable or malformed data yields a default record.
    """
    progress = read_progress(cache, key, max_seen=max_seen)
    if progress is None:
        return create_default_progress()
    return progress


def save_progress(cache: JsonFileCache, key: str, progress: ProgressRecord) -> None:
    """Write the record to the cache. Errors propagate to the caller."""
    cache.set_item(key, json.dumps(progress.to_blob()))
