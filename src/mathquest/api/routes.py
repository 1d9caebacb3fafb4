"""REST API routes exposing learner progress to the practice UI."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from mathquest.engine.tracker import ProgressTracker
from mathquest.models.session import ProblemRef, SessionStats

logger = structlog.get_logger()
router = APIRouter(prefix="/api")


class AnswerRequest(BaseModel):
    category: str
    is_correct: bool


def get_tracker(request: Request) -> ProgressTracker:
    return request.app.state.tracker


@router.get("/progress")
async def get_progress(tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    """Current in-memory progress record."""
    return tracker.get_progress().to_blob()


@router.get("/badges")
async def list_badges(tracker: ProgressTracker = Depends(get_tracker)) -> list[dict]:
    """Badge catalog annotated with ownership and equip state."""
    progress = tracker.get_progress()
    equipped = set(progress.equipped_badges.values())
    return [
        {
            **badge.model_dump(mode="json"),
            "owned": progress.owns(badge.id),
            "equipped": badge.id in equipped,
        }
        for badge in tracker.catalog
    ]


@router.post("/sessions")
async def complete_session(
    session: SessionStats, tracker: ProgressTracker = Depends(get_tracker)
) -> dict:
    """Evaluate a finished round and return unlocked badges."""
    outcome = tracker.complete_session(session)
    return outcome.model_dump(mode="json", by_alias=True)


@router.post("/equip/{badge_id}")
async def equip(badge_id: str, tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    if badge_id not in tracker.catalog:
        logger.warning("equip_unknown_badge", badge_id=badge_id)
        raise HTTPException(status_code=404, detail="Badge not found")
    return tracker.equip(badge_id).to_blob()


@router.post("/problems/asked")
async def mark_asked(
    problems: list[ProblemRef], tracker: ProgressTracker = Depends(get_tracker)
) -> dict:
    await tracker.mark_problems_asked(problems)
    return {"status": "ok", "count": len(problems)}


@router.post("/problems/{problem_id}/answer")
async def answer_problem(
    problem_id: str, body: AnswerRequest, tracker: ProgressTracker = Depends(get_tracker)
) -> dict:
    problem = ProblemRef(id=problem_id, category=body.category)
    progress = await tracker.record_answer(problem, body.is_correct)
    return progress.to_blob()


@router.get("/problems/{problem_id}")
async def get_problem_progress(
    problem_id: str, tracker: ProgressTracker = Depends(get_tracker)
) -> dict:
    record = await tracker.get_problem_progress(problem_id)
    if record is None:
        raise HTTPException(status_code=404, detail="No progress for this problem")
    return record.model_dump(mode="json")


@router.get("/health")
async def health_check(tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    """Health check endpoint."""
    return {"status": "ok", "durable_store": tracker.durable.available}
