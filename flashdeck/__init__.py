"""Spaced-repetition flashcard scheduling and storage."""

from .card_state import Card, Deck
from .scheduler import (
    InvalidCardState,
    InvalidOutcome,
    SchedulerError,
    card_phase,
    is_due,
    is_new,
    record_review,
)
from .study import StudyQueue, StudySession, build_study_set, deck_stats

__all__ = [
    "Card",
    "Deck",
    "InvalidCardState",
    "InvalidOutcome",
    "SchedulerError",
    "StudyQueue",
    "StudySession",
    "build_study_set",
    "card_phase",
    "deck_stats",
    "is_due",
    "is_new",
    "record_review",
]
