from fastapi import APIRouter, Depends

from runmetrics.api.deps import get_engine
from runmetrics.schemas.achievement import AchievementCheckResult, AchievementRead
from runmetrics.services.achievements import ACHIEVEMENTS, ACHIEVEMENTS_BY_ID
from runmetrics.services.engine import RunMetricsEngine

router = APIRouter(prefix="/achievements", tags=["achievements"])


@router.get("/", response_model=list[AchievementRead])
def list_achievements(engine: RunMetricsEngine = Depends(get_engine)):
    return engine.achievements.list()


@router.post("/check", response_model=AchievementCheckResult)
def check_achievements(engine: RunMetricsEngine = Depends(get_engine)):
    newly = engine.check_achievements()
    return AchievementCheckResult(
        newly_unlocked=[ACHIEVEMENTS_BY_ID[i].to_read(True) for i in newly],
        unlocked_count=len(engine.achievements.unlocked_ids),
        total=len(ACHIEVEMENTS),
    )
