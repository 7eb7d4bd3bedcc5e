"""Badge catalog and evaluation.

Each badge pairs display metadata with a pure predicate over a profile and
its quiz history. The catalog itself lives in ``config/badges.yaml``; this
module maps the rule names used there onto predicate factories.
"""

import functools
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

import structlog
import yaml

from lingua_progress.config import get_settings
from lingua_progress.errors import BadgeCatalogError
from lingua_progress.models.activity import QuizAttempt
from lingua_progress.models.user_profile import UserProfile

logger = structlog.get_logger()

BadgeCondition = Callable[[UserProfile, Sequence[QuizAttempt]], bool]


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    description: str
    icon: str
    condition: BadgeCondition = field(compare=False, repr=False)


@dataclass(frozen=True)
class BadgeCategory:
    """Presentation tier; evaluation ignores categories."""

    id: str
    title: str
    badges: tuple[Badge, ...]


@dataclass(frozen=True)
class BadgeCatalog:
    version: int
    categories: tuple[BadgeCategory, ...]

    @property
    def badges(self) -> tuple[Badge, ...]:
        return tuple(badge for category in self.categories for badge in category.badges)

    def get(self, badge_id: str) -> Badge | None:
        return next((b for b in self.badges if b.id == badge_id), None)


# Rule factories: threshold -> predicate. Streak rules read the best streak
# ever reached so a badge condition never flips back after a reset.

def _min_xp(threshold: int) -> BadgeCondition:
    return lambda profile, history: profile.xp >= threshold


def _min_streak(threshold: int) -> BadgeCondition:
    return lambda profile, history: max(profile.streak, profile.longest_streak) >= threshold


def _min_quizzes(threshold: int) -> BadgeCondition:
    return lambda profile, history: len(history or ()) >= threshold


def _perfect_quiz(threshold: int = 1) -> BadgeCondition:
    def condition(profile: UserProfile, history: Sequence[QuizAttempt]) -> bool:
        return sum(1 for attempt in history or () if attempt.percentage == 100) >= threshold
    return condition


def _perfect_reading(threshold: int = 1) -> BadgeCondition:
    def condition(profile: UserProfile, history: Sequence[QuizAttempt]) -> bool:
        scores = profile.pronunciation_scores or {}
        return sum(1 for best in scores.values() if best.score >= 100) >= threshold
    return condition


def _min_sentences_read(threshold: int) -> BadgeCondition:
    return lambda profile, history: len(profile.pronunciation_scores or {}) >= threshold


def _min_listening_correct(threshold: int) -> BadgeCondition:
    return lambda profile, history: (
        sum(1 for correct in (profile.listening_scores or {}).values() if correct) >= threshold
    )


def _min_assignments(threshold: int) -> BadgeCondition:
    return lambda profile, history: len(set(profile.completed_assignments or ())) >= threshold


RULES: dict[str, Callable[[int], BadgeCondition]] = {
    "min_xp": _min_xp,
    "min_streak": _min_streak,
    "min_quizzes": _min_quizzes,
    "perfect_quiz": _perfect_quiz,
    "perfect_reading": _perfect_reading,
    "min_sentences_read": _min_sentences_read,
    "min_listening_correct": _min_listening_correct,
    "min_assignments": _min_assignments,
}


def _build_badge(entry: dict) -> Badge:
    try:
        rule = entry["rule"]
        factory = RULES[rule]
    except KeyError as e:
        raise BadgeCatalogError(f"Badge {entry.get('id')!r} has unknown rule: {e}") from e
    threshold = int(entry.get("threshold", 1))
    return Badge(
        id=entry["id"],
        name=entry["name"],
        description=entry.get("description", ""),
        icon=entry.get("icon", "award"),
        condition=factory(threshold),
    )


def parse_badge_catalog(data: dict) -> BadgeCatalog:
    """Build a catalog from its YAML structure."""
    categories = []
    seen: set[str] = set()
    try:
        for cat in data["categories"]:
            badges = tuple(_build_badge(entry) for entry in cat.get("badges", []))
            for badge in badges:
                if badge.id in seen:
                    raise BadgeCatalogError(f"Duplicate badge id: {badge.id}")
                seen.add(badge.id)
            categories.append(BadgeCategory(id=cat["id"], title=cat["title"], badges=badges))
        version = int(data["version"])
    except (KeyError, TypeError, ValueError) as e:
        raise BadgeCatalogError(f"Invalid badge catalog: {e}") from e
    return BadgeCatalog(version=version, categories=tuple(categories))


def load_badge_catalog(path: Path) -> BadgeCatalog:
    """Load badge catalog from YAML file."""
    if not path.exists():
        raise FileNotFoundError(f"Badge catalog not found: {path}")
    with open(path, encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    catalog = parse_badge_catalog(data)
    logger.info("badge_catalog_loaded", version=catalog.version, badges=len(catalog.badges))
    return catalog


@functools.lru_cache
def get_badge_catalog() -> BadgeCatalog:
    """Badge catalog loaded once per process."""
    return load_badge_catalog(get_settings().badge_catalog_file)


def evaluate_badges(
    profile: UserProfile,
    quiz_history: Sequence[QuizAttempt],
    catalog: BadgeCatalog,
) -> set[str]:
    """Return every badge id whose condition currently holds.

    This is the full set, not just new unlocks; callers diff it against
    ``profile.badges``.
    """
    return {
        badge.id
        for badge in catalog.badges
        if badge.condition(profile, quiz_history)
    }
