"""Practice session data models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SessionStats(BaseModel):
    """Immutable summary of one completed practice round.

    ``correct + incorrect`` may be lower than ``questions`` when a round
    ends early.
    """

    model_config = ConfigDict(frozen=True)

    category: str
    started_at: datetime
    ended_at: datetime
    questions: int = Field(default=0, ge=0)
    correct: int = Field(default=0, ge=0)
    incorrect: int = Field(default=0, ge=0)
    avg_answer_time_seconds: float | None = Field(default=None, ge=0.0)

    @model_validator(mode="after")
    def _same_clock(self) -> "SessionStats":
        if (self.started_at.tzinfo is None) != (self.ended_at.tzinfo is None):
            raise ValueError("started_at and ended_at must both be naive or both be timezone-aware")
        return self

    @property
    def total_questions(self) -> int:
        return max(self.questions, self.correct + self.incorrect)

    @property
    def accuracy(self) -> float:
        """Share of correct answers in [0, 1]; 0 for an empty round."""
        total = self.total_questions
        if total == 0:
            return 0.0
        return self.correct / total

    @property
    def duration_minutes(self) -> float:
        return (self.ended_at - self.started_at).total_seconds() / 60


class ProblemRef(BaseModel):
    """Identity of an exercise as seen by the progress engine."""

    id: str
    category: str
