"""Smoke tests for Pydantic models."""

from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from mathquest.models.badge import (
    STUFFY_BADGES,
    BadgeCatalog,
    BadgeSlot,
    StuffyBadge,
    default_catalog,
    load_badge_catalog,
)
from mathquest.models.progress import (
    CategoryType,
    ProgressRecord,
    cap_seen_problem_ids,
    create_default_progress,
)
from mathquest.models.session import SessionStats


class TestProgressRecord:
    def test_default_values(self):
        progress = create_default_progress()
        assert progress.badges == []
        assert progress.level == 1
        assert progress.seen_problem_ids == []
        assert progress.equipped_badges == {}
        assert progress.total_sessions == 0
        assert progress.last_session_date is None
        assert set(progress.completed_categories) == {c.value for c in CategoryType}
        assert all(v == 0 for v in progress.completed_categories.values())

    def test_duplicate_badges_collapsed(self):
        progress = ProgressRecord(badges=["a", "b", "a"])
        assert progress.badges == ["a", "b"]

    def test_blob_uses_camel_case(self):
        progress = create_default_progress().model_copy(
            update={"last_session_date": date(2026, 3, 1), "streak_days": 2}
        )
        blob = progress.to_blob()
        assert "completedCategories" in blob
        assert "seenProblemIds" in blob
        assert blob["lastSessionDate"] == "2026-03-01"
        assert blob["streakDays"] == 2

    def test_accepts_camel_case_input(self):
        progress = ProgressRecord.model_validate(
            {"badges": [], "level": 2, "completedCategories": {}, "seenProblemIds": ["p1"]}
        )
        assert progress.level == 2
        assert progress.seen_problem_ids == ["p1"]

    def test_level_must_be_positive(self):
        with pytest.raises(Exception):
            ProgressRecord(level=0)

    def test_cap_seen_keeps_most_recent(self):
        progress = ProgressRecord(seen_problem_ids=[f"p{i}" for i in range(10)])
        capped = cap_seen_problem_ids(progress, 3)
        assert capped.seen_problem_ids == ["p7", "p8", "p9"]

    def test_cap_seen_under_limit_returns_same(self):
        progress = ProgressRecord(seen_problem_ids=["p1"])
        assert cap_seen_problem_ids(progress, 3) is progress


class TestSessionStats:
    def _session(self, **kwargs):
        started = datetime(2026, 3, 1, 10, 0, 0)
        defaults = dict(
            category="ADDITION",
            started_at=started,
            ended_at=started + timedelta(minutes=6),
        )
        defaults.update(kwargs)
        return SessionStats(**defaults)

    def test_accuracy(self):
        session = self._session(questions=5, correct=4, incorrect=1)
        assert session.accuracy == pytest.approx(0.8)
        assert session.total_questions == 5

    def test_total_questions_uses_answer_count_when_larger(self):
        session = self._session(questions=2, correct=3, incorrect=1)
        assert session.total_questions == 4

    def test_empty_round_has_zero_accuracy(self):
        session = self._session(questions=0)
        assert session.accuracy == 0.0

    def test_duration_minutes(self):
        assert self._session().duration_minutes == pytest.approx(6.0)

    def test_mixed_naive_and_aware_rejected(self):
        with pytest.raises(ValidationError):
            self._session(ended_at=datetime(2026, 3, 1, 10, 6, tzinfo=timezone.utc))

    def test_both_aware_accepted(self):
        started = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
        session = self._session(started_at=started, ended_at=started + timedelta(minutes=3))
        assert session.duration_minutes == pytest.approx(3.0)

    def test_frozen(self):
        session = self._session()
        with pytest.raises(Exception):
            session.correct = 3


class TestBadgeCatalog:
    def test_builtin_catalog_ids_unique(self):
        catalog = default_catalog()
        assert len(catalog) == len(STUFFY_BADGES)

    def test_duplicate_ids_rejected(self):
        badge = STUFFY_BADGES[0]
        with pytest.raises(ValueError):
            BadgeCatalog([badge, badge])

    def test_unowned_preserves_order(self):
        catalog = default_catalog()
        owned = [catalog.ids[0], catalog.ids[2]]
        unowned = catalog.unowned(owned)
        assert [b.id for b in unowned] == [i for i in catalog.ids if i not in owned]

    def test_lookup(self):
        catalog = default_catalog()
        assert "night_owl_crown" in catalog
        assert catalog.get("night_owl_crown").slot == BadgeSlot.HEAD
        assert catalog.get("missing") is None

    def test_in_set(self):
        galaxy = default_catalog().in_set("galaxy_lab")
        assert galaxy
        assert all(b.set_id == "galaxy_lab" for b in galaxy)

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "badges.yaml"
        path.write_text(
            "badges:\n"
            "  - id: cap\n"
            "    set_id: test\n"
            "    name: Cap\n"
            "    slot: head\n"
            "    rarity: rare\n",
            encoding="utf-8",
        )
        catalog = load_badge_catalog(path)
        assert catalog.ids == ["cap"]
        assert isinstance(catalog.get("cap"), StuffyBadge)

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_badge_catalog(tmp_path / "nope.yaml")
