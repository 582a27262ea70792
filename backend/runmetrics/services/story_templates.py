"""Pre-filled starting points for common kinds of stories."""
from typing import Optional, Sequence

from runmetrics.schemas.story import StoryCreate, StoryTemplate

STORY_TEMPLATES: tuple[StoryTemplate, ...] = (
    StoryTemplate(
        id="marathon-training-week",
        name="Marathon Training Week",
        emoji="🏃‍♂️",
        description="Track your consistency and progress during marathon training",
        suggested_title="Marathon Training Week",
        suggested_description="A week of focused marathon training with consistent runs and building endurance.",
        suggested_mood_tags=["motivated", "energetic", "proud"],
        suggested_weather_notes="Training in various conditions",
        suggested_emotional_notes="Building towards my marathon goal, staying consistent and motivated.",
    ),
    StoryTemplate(
        id="race-preparation",
        name="Race Preparation",
        emoji="🏁",
        description="Performance-focused runs leading up to a race",
        suggested_title="Race Preparation",
        suggested_description="Preparing for an upcoming race with speed work and tempo runs.",
        suggested_mood_tags=["motivated", "fast", "energetic"],
        suggested_weather_notes="Race day conditions",
        suggested_emotional_notes="Preparing mentally and physically for race day. Focused on performance.",
    ),
    StoryTemplate(
        id="recovery-journey",
        name="Recovery Journey",
        emoji="💪",
        description="Track your comeback from injury or setback",
        suggested_title="Recovery Journey",
        suggested_description="Getting back into running after a break or injury.",
        suggested_mood_tags=["struggle", "proud", "motivated"],
        suggested_weather_notes="",
        suggested_emotional_notes="Taking it slow and listening to my body. Celebrating small victories.",
    ),
    StoryTemplate(
        id="trail-adventure",
        name="Trail Adventure",
        emoji="🏔️",
        description="Adventure runs exploring trails and nature",
        suggested_title="Trail Adventure",
        suggested_description="Exploring new trails and enjoying nature while running.",
        suggested_mood_tags=["happy", "energetic", "proud"],
        suggested_weather_notes="Trail conditions and weather",
        suggested_emotional_notes="Connecting with nature and enjoying the freedom of trail running.",
    ),
)


def get_template(template_id: str) -> Optional[StoryTemplate]:
    for template in STORY_TEMPLATES:
        if template.id == template_id:
            return template
    return None


def apply_template(template: StoryTemplate, run_ids: Sequence[str]) -> StoryCreate:
    return StoryCreate(
        title=template.suggested_title,
        description=template.suggested_description,
        run_ids=list(run_ids),
        mood_tags=list(template.suggested_mood_tags),
        weather_notes=template.suggested_weather_notes,
        emotional_notes=template.suggested_emotional_notes,
    )
