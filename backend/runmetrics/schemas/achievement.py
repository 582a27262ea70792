from enum import Enum

from pydantic import BaseModel


class AchievementCategory(str, Enum):
    runs = "runs"
    stories = "stories"
    streaks = "streaks"
    milestones = "milestones"


class AchievementRead(BaseModel):
    id: str
    title: str
    description: str
    emoji: str
    category: AchievementCategory
    unlocked: bool = False


class AchievementCheckResult(BaseModel):
    newly_unlocked: list[AchievementRead]
    unlocked_count: int
    total: int
