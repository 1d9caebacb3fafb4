"""Tests for loading, validating and repairing persisted progress."""

import json
from datetime import date, datetime

import pytest

from mathquest.models.progress import CategoryType, ProgressRecord, create_default_progress
from mathquest.storage import migration
from mathquest.storage.cache import JsonFileCache
from mathquest.storage.migration import (
    ProgressSchemaError,
    load_progress,
    parse_progress_blob,
    read_progress,
    repair_progress,
    save_progress,
)

KEY = "mathquest_progress_v2"


@pytest.fixture
def cache(tmp_path):
    return JsonFileCache(tmp_path)


def _blob(**overrides):
    blob = {
        "badges": ["chaos_eyes"],
        "level": 1,
        "completedCategories": {c.value: 1 for c in CategoryType},
        "seenProblemIds": ["p1", "p2"],
    }
    blob.update(overrides)
    return blob


class TestLoadFallsBackToDefaults:
    def test_no_blob(self, cache):
        assert load_progress(cache, KEY) == create_default_progress()

    def test_no_blob_is_logged(self, cache, monkeypatch):
        events = []

        class RecordingLogger:
            def warning(self, event, **kw):
                events.append(event)

        monkeypatch.setattr(migration, "logger", RecordingLogger())
        assert read_progress(cache, KEY) is None
        assert events == ["progress_cache_empty"]

    def test_corrupt_blob_reads_as_none(self, cache):
        cache.set_item(KEY, "{not json")
        assert read_progress(cache, KEY) is None

    def test_malformed_json(self, cache):
        cache.set_item(KEY, "{not json")
        assert load_progress(cache, KEY) == create_default_progress()

    @pytest.mark.parametrize(
        "raw",
        [
            [],
            "progress",
            _blob(badges="chaos_eyes"),
            _blob(level="3"),
            _blob(level=True),
            _blob(completedCategories=[]),
            _blob(seenProblemIds=None),
            _blob(totalSessions="many"),
            _blob(level=0),
        ],
    )
    def test_wrong_shape(self, cache, raw):
        cache.set_item(KEY, json.dumps(raw))
        assert load_progress(cache, KEY) == create_default_progress()

    def test_only_reads_own_version_key(self, cache):
        cache.set_item("mathquest_progress_v1", json.dumps(_blob(level=4)))
        assert load_progress(cache, KEY).level == 1


class TestRepair:
    def test_missing_category_filled_with_zero(self, cache):
        completed = {c.value: 3 for c in CategoryType}
        del completed[CategoryType.ESTIMATION.value]
        blob = _blob(completedCategories=completed, level=2)
        cache.set_item(KEY, json.dumps(blob))

        progress = load_progress(cache, KEY)

        assert progress.completed_categories[CategoryType.ESTIMATION.value] == 0
        assert progress.completed_categories[CategoryType.ADDITION.value] == 3
        assert progress.badges == ["chaos_eyes"]
        assert progress.level == 2
        assert progress.seen_problem_ids == ["p1", "p2"]

    def test_legacy_category_keys_tolerated(self):
        completed = {c.value: 0 for c in CategoryType}
        completed["GEOMETRY"] = 7
        progress = parse_progress_blob(_blob(completedCategories=completed))
        assert progress.completed_categories["GEOMETRY"] == 7

    def test_seen_ids_truncated_to_most_recent(self):
        seen = [f"p{i}" for i in range(250)]
        progress = parse_progress_blob(_blob(seenProblemIds=seen))
        assert len(progress.seen_problem_ids) == 200
        assert progress.seen_problem_ids[0] == "p50"
        assert progress.seen_problem_ids[-1] == "p249"

    def test_invalid_equipped_replaced(self):
        progress = parse_progress_blob(_blob(equippedBadges=["chaos_eyes"]))
        assert progress.equipped_badges == {}

    def test_missing_equipped_defaults_empty(self):
        assert parse_progress_blob(_blob()).equipped_badges == {}

    def test_unowned_equipped_entries_dropped(self):
        progress = parse_progress_blob(
            _blob(equippedBadges={"face": "chaos_eyes", "head": "night_owl_crown"})
        )
        assert progress.equipped_badges == {"face": "chaos_eyes"}

    def test_session_meta_from_older_client(self):
        progress = parse_progress_blob(
            _blob(lastSessionAt=1767225600000, lastSessionDate="2026-01-01", streakDays=3)
        )
        assert isinstance(progress.last_session_at, datetime)
        assert progress.last_session_date == date(2026, 1, 1)
        assert progress.streak_days == 3

    def test_repair_is_idempotent(self):
        progress = ProgressRecord(
            badges=["chaos_eyes"],
            completed_categories={"ADDITION": 2},
            seen_problem_ids=[f"p{i}" for i in range(300)],
            equipped_badges={"face": "chaos_eyes", "body_1": "gone"},
        )
        once = repair_progress(progress)
        assert repair_progress(once) == once

    def test_parse_raises_schema_error(self):
        with pytest.raises(ProgressSchemaError):
            parse_progress_blob({"badges": []})


class TestRoundTrip:
    def test_save_then_load(self, cache):
        progress = create_default_progress().model_copy(
            update={
                "badges": ["chaos_eyes", "night_owl_crown"],
                "level": 3,
                "seen_problem_ids": ["a", "b"],
                "equipped_badges": {"head": "night_owl_crown"},
                "total_sessions": 4,
                "last_session_at": datetime(2026, 2, 1, 20, 30),
                "last_session_accuracy": 0.75,
                "streak_days": 2,
                "last_session_date": date(2026, 2, 1),
            }
        )
        save_progress(cache, KEY, progress)
        assert load_progress(cache, KEY) == progress

    def test_save_then_load_over_cap(self, cache):
        progress = create_default_progress().model_copy(
            update={"seen_problem_ids": [str(i) for i in range(205)]}
        )
        save_progress(cache, KEY, progress)
        loaded = load_progress(cache, KEY)
        assert loaded.seen_problem_ids == progress.seen_problem_ids[-200:]
