"""Learner progress record model."""

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MAX_SEEN_PROBLEM_IDS = 200


class CategoryType(StrEnum):
    """Practice categories known to the engine."""

    ADDITION = "ADDITION"
    SUBTRACTION = "SUBTRACTION"
    MULT_BREAKDOWN = "MULT_BREAKDOWN"
    MULT_NEAR = "MULT_NEAR"
    DIVISION = "DIVISION"
    FRACTIONS = "FRACTIONS"
    ESTIMATION = "ESTIMATION"


class ProgressRecord(BaseModel):
    """The single source of truth for one learner.

    Serialized with camelCase keys so blobs written by earlier clients
    remain readable.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    badges: list[str] = Field(default_factory=list)
    level: int = Field(default=1, ge=1)
    completed_categories: dict[str, int] = Field(default_factory=dict)
    seen_problem_ids: list[str] = Field(default_factory=list)
    equipped_badges: dict[str, str] = Field(default_factory=dict)

    # Session-derived meta, written only by the badge evaluator
    total_sessions: int = Field(default=0, ge=0)
    last_session_at: datetime | None = None
    last_session_accuracy: float | None = Field(default=None, ge=0.0, le=1.0)
    streak_days: int = Field(default=0, ge=0)
    last_session_date: date | None = None

    @field_validator("badges")
    @classmethod
    def _unique_badges(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @property
    def badge_count(self) -> int:
        return len(self.badges)

    def owns(self, badge_id: str) -> bool:
        return badge_id in self.badges

    def to_blob(self) -> dict:
        """Dump to the JSON-compatible persisted shape."""
        return self.model_dump(mode="json", by_alias=True)


def create_default_progress() -> ProgressRecord:
    """Fresh record with every known category present and zeroed."""
    return ProgressRecord(
        completed_categories={category.value: 0 for category in CategoryType},
    )


def cap_seen_problem_ids(
    progress: ProgressRecord, max_seen: int = MAX_SEEN_PROBLEM_IDS
) -> ProgressRecord:
    """Keep only the most recent ``max_seen`` ids (oldest dropped first)."""
    if len(progress.seen_problem_ids) <= max_seen:
        return progress
    return progress.model_copy(
        update={"seen_problem_ids": progress.seen_problem_ids[-max_seen:]}
    )
