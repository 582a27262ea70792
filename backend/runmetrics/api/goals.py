from fastapi import APIRouter, Depends, HTTPException

from runmetrics.api.deps import get_engine
from runmetrics.core.exceptions import GoalNotFound
from runmetrics.schemas.goal import Goal, GoalCreate, GoalPeriod, GoalUpdate
from runmetrics.services.engine import RunMetricsEngine

router = APIRouter(prefix="/goals", tags=["goals"])


def _check_window(start, end):
    if start and end and end <= start:
        raise HTTPException(status_code=422, detail="period_end must be after period_start")


@router.get("/", response_model=list[Goal])
def list_goals(engine: RunMetricsEngine = Depends(get_engine)):
    return engine.goals.list()


@router.post("/", response_model=Goal)
def create_goal(payload: GoalCreate, engine: RunMetricsEngine = Depends(get_engine)):
    if payload.target <= 0:
        raise HTTPException(status_code=422, detail="target must be > 0")
    if payload.period == GoalPeriod.custom and not (payload.period_start and payload.period_end):
        raise HTTPException(status_code=422, detail="custom goals need period_start and period_end")
    _check_window(payload.period_start, payload.period_end)
    return engine.create_goal(payload)


@router.put("/{goal_id}", response_model=Goal)
def update_goal(goal_id: str, payload: GoalUpdate, engine: RunMetricsEngine = Depends(get_engine)):
    if payload.target is not None and payload.target <= 0:
        raise HTTPException(status_code=422, detail="target must be > 0")
    _check_window(payload.period_start, payload.period_end)
    try:
        return engine.update_goal(goal_id, payload)
    except GoalNotFound:
        raise HTTPException(status_code=404, detail="Goal not found")


@router.post("/{goal_id}/complete", response_model=Goal)
def complete_goal(goal_id: str, engine: RunMetricsEngine = Depends(get_engine)):
    try:
        return engine.complete_goal(goal_id)
    except GoalNotFound:
        raise HTTPException(status_code=404, detail="Goal not found")


@router.delete("/{goal_id}")
def delete_goal(goal_id: str, engine: RunMetricsEngine = Depends(get_engine)):
    try:
        engine.delete_goal(goal_id)
    except GoalNotFound:
        raise HTTPException(status_code=404, detail="Goal not found")
    return {"message": "Goal deleted"}
