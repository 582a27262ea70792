from fastapi import APIRouter, Depends, HTTPException

from runmetrics.api.deps import get_engine
from runmetrics.core.exceptions import StoryNotFound
from runmetrics.schemas.story import Story, StoryCreate, StoryFromTemplate, StoryInsightsRead, StoryTemplate, StoryUpdate
from runmetrics.services.engine import RunMetricsEngine
from runmetrics.services.story_templates import STORY_TEMPLATES

router = APIRouter(prefix="/stories", tags=["stories"])


@router.get("/", response_model=list[Story])
def list_stories(engine: RunMetricsEngine = Depends(get_engine)):
    return engine.stories.list()


@router.post("/", response_model=Story)
def create_story(payload: StoryCreate, engine: RunMetricsEngine = Depends(get_engine)):
    if not payload.title.strip():
        raise HTTPException(status_code=422, detail="title is required")
    return engine.create_story(payload)


@router.put("/{story_id}", response_model=Story)
def update_story(story_id: str, payload: StoryUpdate, engine: RunMetricsEngine = Depends(get_engine)):
    try:
        return engine.update_story(story_id, payload)
    except StoryNotFound:
        raise HTTPException(status_code=404, detail="Story not found")


@router.delete("/{story_id}")
def delete_story(story_id: str, engine: RunMetricsEngine = Depends(get_engine)):
    try:
        engine.delete_story(story_id)
    except StoryNotFound:
        raise HTTPException(status_code=404, detail="Story not found")
    return {"message": "Story deleted"}


@router.get("/templates", response_model=list[StoryTemplate])
def list_templates():
    return list(STORY_TEMPLATES)


@router.post("/from_template", response_model=Story)
def create_from_template(payload: StoryFromTemplate, engine: RunMetricsEngine = Depends(get_engine)):
    try:
        return engine.create_story_from_template(payload.template_id, payload.run_ids)
    except StoryNotFound:
        raise HTTPException(status_code=404, detail="Story template not found")


@router.get("/{story_id}/insights", response_model=StoryInsightsRead)
def story_insights(story_id: str, engine: RunMetricsEngine = Depends(get_engine)):
    try:
        return engine.story_insights(story_id)
    except StoryNotFound:
        raise HTTPException(status_code=404, detail="Story not found")
