"""Learner progress statistics and achievements."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from flashdeck.card_state import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

FIRST_CARD = "first_card"
STUDY_STREAK_7 = "study_streak_7"
CARDS_100 = "cards_100"
PERFECT_SESSION = "perfect_session"


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _resolve_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return _utc_now()
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


@dataclass
class Achievement:
    id: str
    title: str
    description: str
    icon: str
    target: int
    progress: int = 0
    unlocked_at: Optional[datetime] = None

    @property
    def is_unlocked(self) -> bool:
        return self.unlocked_at is not None

    def advance(self, progress: int, now: datetime) -> "Achievement":
        """Return a copy with *progress* applied, unlocking at the target."""

        capped = max(0, min(int(progress), self.target))
        unlocked_at = self.unlocked_at
        if unlocked_at is None and capped >= self.target:
            unlocked_at = now
            logger.info("Achievement %s unlocked", self.id)
        return replace(self, progress=capped, unlocked_at=unlocked_at)

    @classmethod
    def from_storage(cls, payload: Mapping[str, Any]) -> "Achievement":
        return cls(
            id=str(payload["id"]),
            title=str(payload.get("title") or ""),
            description=str(payload.get("description") or ""),
            icon=str(payload.get("icon") or ""),
            target=int(payload.get("target") or 1),
            progress=int(payload.get("progress") or 0),
            unlocked_at=parse_timestamp(payload.get("unlockedAt")),
        )

    def to_storage_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "icon": self.icon,
            "progress": self.progress,
            "target": self.target,
        }
        if self.unlocked_at is not None:
            data["unlockedAt"] = format_timestamp(self.unlocked_at)
        return data


def default_achievements() -> List[Achievement]:
    return [
        Achievement(FIRST_CARD, "First Steps", "Study your first flashcard", "🎯", 1),
        Achievement(STUDY_STREAK_7, "Week Warrior", "Study for 7 days in a row", "🔥", 7),
        Achievement(CARDS_100, "Century Club", "Study 100 flashcards", "💯", 100),
        Achievement(
            PERFECT_SESSION,
            "Perfect Score",
            "Get 100% correct in a study session",
            "⭐",
            1,
        ),
    ]


@dataclass
class UserStats:
    """Aggregated study progress for a learner.

    ``total_study_time`` is measured in seconds.
    """

    total_cards_studied: int = 0
    study_streak: int = 0
    last_study_date: Optional[datetime] = None
    total_study_time: int = 0
    achievements: List[Achievement] = field(default_factory=default_achievements)

    def achievement(self, achievement_id: str) -> Optional[Achievement]:
        for entry in self.achievements:
            if entry.id == achievement_id:
                return entry
        return None

    @property
    def unlocked_count(self) -> int:
        return sum(1 for entry in self.achievements if entry.is_unlocked)

    @classmethod
    def from_storage(cls, payload: Mapping[str, Any]) -> "UserStats":
        stored = [
            Achievement.from_storage(entry)
            for entry in payload.get("achievements", [])
            if isinstance(entry, Mapping) and entry.get("id")
        ]
        # Achievements added after the stats were first saved start locked.
        known = {entry.id for entry in stored}
        stored.extend(entry for entry in default_achievements() if entry.id not in known)
        return cls(
            total_cards_studied=int(payload.get("totalCardsStudied") or 0),
            study_streak=int(payload.get("studyStreak") or 0),
            last_study_date=parse_timestamp(payload.get("lastStudyDate")),
            total_study_time=int(payload.get("totalStudyTime") or 0),
            achievements=stored,
        )

    def to_storage_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "totalCardsStudied": self.total_cards_studied,
            "studyStreak": self.study_streak,
            "totalStudyTime": self.total_study_time,
            "achievements": [entry.to_storage_dict() for entry in self.achievements],
        }
        if self.last_study_date is not None:
            data["lastStudyDate"] = format_timestamp(self.last_study_date)
        return data


def default_stats() -> UserStats:
    return UserStats()


def _days_between(earlier: datetime, later: datetime) -> int:
    return (later.date() - earlier.date()).days


def current_streak(stats: UserStats, now: Optional[datetime] = None) -> int:
    """Return the streak that is still alive at *now*.

    A streak survives while the last study day is today or yesterday.
    """

    if stats.last_study_date is None:
        return 0
    gap = _days_between(stats.last_study_date, _resolve_now(now))
    if gap in (0, 1):
        return stats.study_streak
    return 0


def _update_achievements(stats: UserStats, now: datetime) -> List[Achievement]:
    progress = {
        FIRST_CARD: stats.total_cards_studied,
        CARDS_100: stats.total_cards_studied,
        STUDY_STREAK_7: stats.study_streak,
    }
    updated: List[Achievement] = []
    for entry in stats.achievements:
        if entry.id in progress:
            updated.append(entry.advance(progress[entry.id], now))
        else:
            updated.append(entry)
    return updated


def record_card_studied(stats: UserStats, now: Optional[datetime] = None) -> UserStats:
    """Return new stats with one more studied card at *now*."""

    event_dt = _resolve_now(now)
    if stats.last_study_date is None:
        streak = 1
    else:
        gap = _days_between(stats.last_study_date, event_dt)
        if gap <= 0:
            streak = max(stats.study_streak, 1)
        elif gap == 1:
            streak = stats.study_streak + 1
        else:
            streak = 1

    updated = replace(
        stats,
        total_cards_studied=stats.total_cards_studied + 1,
        study_streak=streak,
        last_study_date=event_dt,
    )
    updated.achievements = _update_achievements(updated, event_dt)
    return updated


def record_session_finished(stats: UserStats, session: Any) -> UserStats:
    """Fold a finished :class:`~flashdeck.study.StudySession` into *stats*."""

    end_time = session.end_time or _utc_now()
    elapsed = max(int((end_time - session.start_time).total_seconds()), 0)
    updated = replace(stats, total_study_time=stats.total_study_time + elapsed)
    if session.is_perfect:
        updated.achievements = [
            entry.advance(entry.target, end_time) if entry.id == PERFECT_SESSION else entry
            for entry in updated.achievements
        ]
    else:
        updated.achievements = list(updated.achievements)
    return updated


__all__ = [
    "Achievement",
    "CARDS_100",
    "FIRST_CARD",
    "PERFECT_SESSION",
    "STUDY_STREAK_7",
    "UserStats",
    "current_streak",
    "default_achievements",
    "default_stats",
    "record_card_studied",
    "record_session_finished",
]
