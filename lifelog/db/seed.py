# lifelog/db/seed.py
"""
Default achievement catalog.

`seed_achievements` is an upsert keyed by name: new definitions are inserted
and existing ones only get their descriptive fields refreshed, so running it
on every deploy never rewrites a published condition.
"""
import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from lifelog import models
from lifelog.core.constants import (
    AchievementCategory,
    ConditionType,
    DefinitionStatus,
    Difficulty,
)
from lifelog.services.condition_evaluator import default_triggers

logger = logging.getLogger(__name__)

# Fields an existing definition may have refreshed from this list
DESCRIPTIVE_FIELDS = ("description", "icon", "difficulty", "points", "sort_order")


def _goal(name, description, icon, category, difficulty, points, condition_type, field, target,
          **extra) -> Dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "icon": icon,
        "category": category,
        "difficulty": difficulty,
        "points": points,
        "condition_type": condition_type,
        "condition_field": field,
        "condition_target": target,
        **extra,
    }


C, S, M = ConditionType.COUNT, ConditionType.STREAK, ConditionType.MILESTONE
B, SI, G, P, D = (
    Difficulty.BRONZE,
    Difficulty.SILVER,
    Difficulty.GOLD,
    Difficulty.PLATINUM,
    Difficulty.DIAMOND,
)

DEFAULT_ACHIEVEMENTS: List[Dict[str, Any]] = [
    # moments
    _goal("First Moment", "Record your first moment", "📝", AchievementCategory.MOMENTS, B, 10, C, "moments", 1),
    _goal("Storyteller", "Record 10 moments", "📚", AchievementCategory.MOMENTS, SI, 50, C, "moments", 10),
    _goal("Chronicler", "Record 50 moments", "📜", AchievementCategory.MOMENTS, G, 200, C, "moments", 50),
    _goal("Life Archivist", "Record 100 moments", "🏛️", AchievementCategory.MOMENTS, P, 500, C, "moments", 100),
    # media
    _goal("First Snapshot", "Share your first photo", "📷", AchievementCategory.MEDIA, B, 10, C, "photos", 1),
    _goal("Shutterbug", "Share 25 photos", "📸", AchievementCategory.MEDIA, SI, 75, C, "photos", 25),
    _goal("Photographer", "Share 100 photos", "🖼️", AchievementCategory.MEDIA, G, 300, C, "photos", 100),
    _goal("Director's Cut", "Share your first video", "🎬", AchievementCategory.MEDIA, B, 15, C, "videos", 1),
    _goal("Filmmaker", "Share 10 videos", "🎥", AchievementCategory.MEDIA, SI, 100, C, "videos", 10),
    # exploration
    _goal("Explorer", "Tag your first location", "🧭", AchievementCategory.EXPLORATION, B, 10, C, "locations", 1),
    _goal("Wanderer", "Visit 10 different places", "🗺️", AchievementCategory.EXPLORATION, SI, 80, C, "unique_locations", 10),
    _goal("Globetrotter", "Record moments in 5 cities", "🌍", AchievementCategory.EXPLORATION, G, 200, C, "unique_cities", 5),
    # streaks
    _goal("One Week Strong", "Record a moment 7 days in a row", "🔥", AchievementCategory.TIME, SI, 30, S, "daily_moments", 7),
    _goal("Monthly Habit", "Record a moment 30 days in a row", "📅", AchievementCategory.TIME, G, 150, S, "daily_moments", 30),
    _goal("Year of Memories", "Record a moment 365 days in a row", "🏆", AchievementCategory.TIME, D, 1000, S, "daily_moments", 365),
    # social
    _goal("First Like", "Receive your first like", "❤️", AchievementCategory.SOCIAL, B, 10, C, "likes_received", 1),
    _goal("Crowd Favourite", "Receive 50 likes", "💖", AchievementCategory.SOCIAL, G, 100, C, "likes_received", 50),
    _goal("Commentator", "Leave 10 comments", "💬", AchievementCategory.SOCIAL, SI, 25, C, "comments_made", 10),
    # special
    _goal("Early Bird", "Record a moment before 6 AM", "🌅", AchievementCategory.SPECIAL, SI, 20, M,
          "early_morning_moments", 1, condition_params={"hour": 6}),
    _goal("Night Owl", "Record a moment after 11 PM", "🦉", AchievementCategory.SPECIAL, SI, 20, M,
          "late_night_moments", 1, condition_params={"hour": 23}),
    _goal("Happy Birthday", "Record a moment on a birthday", "🎂", AchievementCategory.SPECIAL, G, 100, M,
          "birthday_moments", 1, is_repeatable=True),
    _goal("Fresh Start", "Record a moment on New Year's Day", "🎆", AchievementCategory.SPECIAL, G, 100, M,
          "new_year_moments", 1, is_repeatable=True),
]


def seed_achievements(db: Session) -> Dict[str, int]:
    """Insert missing default definitions and refresh descriptive fields. Returns counts."""
    created = updated = 0

    for sort_order, goal in enumerate(DEFAULT_ACHIEVEMENTS):
        data = dict(goal, sort_order=sort_order)
        definition = (
            db.query(models.AchievementDefinition).filter_by(name=data["name"]).first()
        )

        if not definition:
            data.setdefault("trigger_events", default_triggers(data["condition_field"]))
            data.setdefault("status", DefinitionStatus.ACTIVE)
            db.add(models.AchievementDefinition(**data))
            created += 1
            continue

        changed = False
        for key in DESCRIPTIVE_FIELDS:
            if getattr(definition, key) != data[key]:
                setattr(definition, key, data[key])
                changed = True
        if changed:
            db.add(definition)
            updated += 1

    db.commit()
    logger.info(f"Seeded achievements: {created} created, {updated} updated")
    return {"created": created, "updated": updated}
