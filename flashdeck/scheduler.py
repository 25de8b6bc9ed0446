"""SM-2 style spaced repetition scheduler.

Every function in this module is pure: it reads a :class:`Card` and returns a
new value without touching storage. The wall-clock "now" is always
injectable so reviews can be replayed deterministically.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from flashdeck.card_state import MIN_EASE_FACTOR, Card

OUTCOMES = ("again", "hard", "good", "easy")
CORRECT_OUTCOMES = frozenset({"good", "easy"})

AGAIN_INTERVAL = 1
AGAIN_EASE_PENALTY = 0.2
HARD_INTERVAL_FACTOR = 1.2
HARD_EASE_PENALTY = 0.15
GOOD_FIRST_INTERVAL = 1
EASY_FIRST_INTERVAL = 4
EASY_BONUS = 1.3
EASY_EASE_BONUS = 0.15
MAX_INTERVAL = 36500

DEFAULT_GRADUATE_AFTER = 2
SECONDS_IN_DAY = 86400


class SchedulerError(ValueError):
    """Base class for review scheduling failures."""


class InvalidCardState(SchedulerError):
    """The card carries scheduling values that break its invariants."""


class InvalidOutcome(SchedulerError):
    """The review outcome is not one of ``again``, ``hard``, ``good``, ``easy``."""


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _resolve_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return _utc_now()
    if not isinstance(now, datetime):
        raise TypeError("now must be a datetime instance")
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _scaled_interval(value: float) -> int:
    return _round_half_up(min(value, MAX_INTERVAL))


def normalise_outcome(outcome: Any) -> str:
    """Return the canonical outcome label or raise :class:`InvalidOutcome`."""

    if isinstance(outcome, str):
        key = outcome.strip().lower()
        if key in OUTCOMES:
            return key
    raise InvalidOutcome(f"Unsupported review outcome: {outcome!r}")


def validate_card(card: Card) -> None:
    """Raise :class:`InvalidCardState` when *card* breaks a scheduling invariant."""

    if not math.isfinite(card.ease_factor):
        raise InvalidCardState(f"Card {card.id!r} has non-finite ease factor {card.ease_factor}")
    if not math.isfinite(card.interval):
        raise InvalidCardState(f"Card {card.id!r} has non-finite interval {card.interval}")
    if card.ease_factor < MIN_EASE_FACTOR:
        raise InvalidCardState(
            f"Card {card.id!r} has ease factor {card.ease_factor} below {MIN_EASE_FACTOR}"
        )
    if card.interval < 0:
        raise InvalidCardState(f"Card {card.id!r} has negative interval {card.interval}")
    if card.repetitions < 0:
        raise InvalidCardState(
            f"Card {card.id!r} has negative repetition count {card.repetitions}"
        )


def record_review(card: Card, outcome: Any, now: Optional[datetime] = None) -> Card:
    """Apply a review *outcome* to *card* and return the rescheduled card.

    The input card is never mutated; on error nothing is returned and the
    caller keeps its previous value.
    """

    rating = normalise_outcome(outcome)
    validate_card(card)
    event_dt = _resolve_now(now)

    ease = card.ease_factor
    if rating == "again":
        repetitions = 0
        interval = AGAIN_INTERVAL
        ease = max(MIN_EASE_FACTOR, round(ease - AGAIN_EASE_PENALTY, 2))
    elif rating == "hard":
        repetitions = card.repetitions + 1
        interval = max(1, _scaled_interval(card.interval * HARD_INTERVAL_FACTOR))
        ease = max(MIN_EASE_FACTOR, round(ease - HARD_EASE_PENALTY, 2))
    elif rating == "good":
        repetitions = card.repetitions + 1
        if repetitions == 1:
            interval = GOOD_FIRST_INTERVAL
        else:
            interval = _scaled_interval(card.interval * ease)
    else:
        repetitions = card.repetitions + 1
        if repetitions == 1:
            interval = EASY_FIRST_INTERVAL
        else:
            interval = _scaled_interval(card.interval * ease * EASY_BONUS)
        ease = round(ease + EASY_EASE_BONUS, 2)

    # A lapsed card that was reset to interval 0 by hand must still move forward.
    if repetitions > 0:
        interval = max(interval, 1)
    interval = min(interval, MAX_INTERVAL)

    return card.replace(
        repetitions=repetitions,
        interval=interval,
        ease_factor=ease,
        last_reviewed=event_dt,
        next_review=event_dt + timedelta(days=interval),
        difficulty=rating,
    )


def is_due(card: Card, now: Optional[datetime] = None) -> bool:
    """Return ``True`` when the card's next review time has arrived."""

    if card.next_review is None:
        return True
    return card.next_review <= _resolve_now(now)


def is_new(card: Card) -> bool:
    """Return ``True`` when the card has no successful repetitions."""

    return card.repetitions == 0


def card_phase(card: Card, graduate_after: int = DEFAULT_GRADUATE_AFTER) -> str:
    """Classify *card* as ``"new"``, ``"learning"`` or ``"review"``.

    The card graduates to ``"review"`` once its repetition count exceeds
    *graduate_after*.
    """

    if card.last_reviewed is None and card.repetitions == 0:
        return "new"
    if card.repetitions > graduate_after:
        return "review"
    return "learning"


def describe_due(card: Card, now: Optional[datetime] = None) -> str:
    """Return a human readable description of when the card is due."""

    if card.next_review is None:
        return "due now"
    current = _resolve_now(now)
    delta = (card.next_review - current).total_seconds()

    if delta <= 0:
        return "due now"

    minutes = delta / 60
    hours = delta / 3600
    days = delta / SECONDS_IN_DAY

    if minutes < 1:
        return "in under a minute"
    if minutes < 60:
        return f"in {_round_half_up(minutes)} minute(s)"
    if hours < 24:
        return f"in {_round_half_up(hours)} hour(s)"
    if days < 7:
        return f"in {_round_half_up(days)} day(s)"
    return f"on {card.next_review.strftime('%Y-%m-%d %H:%M UTC')}"


def next_review_message(card: Optional[Card], now: Optional[datetime] = None) -> str:
    if card is None:
        return "No upcoming reviews"
    return f"Next review {describe_due(card, now)}"


__all__ = [
    "CORRECT_OUTCOMES",
    "DEFAULT_GRADUATE_AFTER",
    "InvalidCardState",
    "InvalidOutcome",
    "MAX_INTERVAL",
    "OUTCOMES",
    "SchedulerError",
    "card_phase",
    "describe_due",
    "is_due",
    "is_new",
    "next_review_message",
    "normalise_outcome",
    "record_review",
    "validate_card",
]
