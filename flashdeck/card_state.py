"""Domain model for flashcards and decks.

This module defines :class:`Card`, a dataclass that stores the content and
spaced-repetition attributes of a single flashcard, and :class:`Deck`, the
collection a card belongs to. It also provides helpers for serialising both
to and from the JSON records that the deck store persists to disk.

Storage records keep the camelCase document shape used by the mobile
client (``deckId``, ``nextReview``, ``easeFactor`` ...) with timestamps as
epoch milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

INITIAL_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
DEFAULT_DIFFICULTY = "good"
DEFAULT_DECK_COLOR = "#3b82f6"


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _ensure_utc(value: datetime) -> datetime:
    """Normalise *value* to a UTC timezone aware datetime."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Convert a stored field into a :class:`datetime` in UTC if possible.

    Numbers are read as epoch milliseconds, strings as ISO-8601.
    """

    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return _ensure_utc(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1]
        try:
            return _ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def format_timestamp(value: Optional[datetime]) -> Optional[int]:
    """Serialise a datetime as epoch milliseconds for JSON storage."""

    if value is None:
        return None
    return int(round(_ensure_utc(value).timestamp() * 1000))


def _to_int(value: Any, fallback: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return fallback


def _to_float(value: Any, fallback: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return fallback


@dataclass
class Card:
    """State container for a single flashcard.

    Parameters
    ----------
    id:
        Stable identifier, unique within the owning deck.
    deck_id:
        Identifier of the deck the card belongs to.
    front / back:
        Text shown on either side of the card.
    created_at:
        Creation timestamp. Never changed after creation.
    last_reviewed / next_review:
        Timestamp of the most recent review and of the next scheduled one.
    interval / ease_factor / repetitions:
        Spaced-repetition scheduling attributes.
    difficulty:
        Label of the most recent review outcome.
    word_frequency:
        Optional frequency rank supplied by imported vocabulary decks.
    """

    id: str
    deck_id: str
    front: str
    back: str
    created_at: Optional[datetime] = None
    last_reviewed: Optional[datetime] = None
    next_review: Optional[datetime] = None
    interval: int = 0
    ease_factor: float = INITIAL_EASE_FACTOR
    repetitions: int = 0
    difficulty: str = DEFAULT_DIFFICULTY
    word_frequency: Optional[int] = None

    def __post_init__(self) -> None:
        self.id = str(self.id)
        self.deck_id = str(self.deck_id)
        for name in ("created_at", "last_reviewed", "next_review"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, datetime):
                setattr(self, name, parse_timestamp(value))
            elif isinstance(value, datetime):
                setattr(self, name, _ensure_utc(value))
        if not self.difficulty:
            self.difficulty = DEFAULT_DIFFICULTY

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        card_id: str,
        deck_id: str,
        front: str,
        back: str,
        *,
        now: Optional[datetime] = None,
        word_frequency: Optional[int] = None,
    ) -> "Card":
        """Return a brand new card that is immediately due and new."""

        created = _ensure_utc(now) if now is not None else _utc_now()
        return cls(
            id=card_id,
            deck_id=deck_id,
            front=front,
            back=back,
            created_at=created,
            next_review=created,
            word_frequency=word_frequency,
        )

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------
    @classmethod
    def from_storage(cls, payload: Mapping[str, Any]) -> "Card":
        """Create a :class:`Card` instance from a JSON record."""

        card_id = payload.get("id")
        deck_id = payload.get("deckId", payload.get("deck_id"))
        if card_id in (None, "") or deck_id in (None, ""):
            raise ValueError("Card records must define an id and a deckId")

        frequency = payload.get("wordFrequency", payload.get("word_frequency"))
        return cls(
            id=str(card_id),
            deck_id=str(deck_id),
            front=str(payload.get("front") or ""),
            back=str(payload.get("back") or ""),
            created_at=parse_timestamp(
                payload.get("createdAt", payload.get("created_at"))
            ),
            last_reviewed=parse_timestamp(
                payload.get("lastReviewed", payload.get("last_reviewed"))
            ),
            next_review=parse_timestamp(
                payload.get("nextReview", payload.get("next_review"))
            ),
            interval=_to_int(payload.get("interval"), 0),
            ease_factor=_to_float(
                payload.get("easeFactor", payload.get("ease_factor")),
                INITIAL_EASE_FACTOR,
            ),
            repetitions=_to_int(payload.get("repetitions"), 0),
            difficulty=str(payload.get("difficulty") or DEFAULT_DIFFICULTY),
            word_frequency=None if frequency in (None, "") else _to_int(frequency, 0),
        )

    def to_storage_dict(self) -> Dict[str, Any]:
        """Serialise the card into a JSON friendly dictionary."""

        data: Dict[str, Any] = {
            "id": self.id,
            "deckId": self.deck_id,
            "front": self.front,
            "back": self.back,
            "createdAt": format_timestamp(self.created_at),
            "nextReview": format_timestamp(self.next_review),
            "interval": self.interval,
            "easeFactor": self.ease_factor,
            "repetitions": self.repetitions,
            "difficulty": self.difficulty,
        }
        if self.last_reviewed is not None:
            data["lastReviewed"] = format_timestamp(self.last_reviewed)
        if self.word_frequency is not None:
            data["wordFrequency"] = self.word_frequency
        return data

    def replace(self, **changes: Any) -> "Card":
        """Return a new instance with *changes* applied."""

        return replace(self, **changes)


@dataclass
class Deck:
    """A named collection of cards."""

    id: str
    name: str
    description: str = ""
    color: str = DEFAULT_DECK_COLOR
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.id = str(self.id)
        if self.created_at is not None and not isinstance(self.created_at, datetime):
            self.created_at = parse_timestamp(self.created_at)
        elif isinstance(self.created_at, datetime):
            self.created_at = _ensure_utc(self.created_at)

    @classmethod
    def from_storage(cls, payload: Mapping[str, Any]) -> "Deck":
        deck_id = payload.get("id")
        if deck_id in (None, ""):
            raise ValueError("Deck records must define an id")
        return cls(
            id=str(deck_id),
            name=str(payload.get("name") or ""),
            description=str(payload.get("description") or ""),
            color=str(payload.get("color") or DEFAULT_DECK_COLOR),
            created_at=parse_timestamp(
                payload.get("createdAt", payload.get("created_at"))
            ),
        )

    def to_storage_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "createdAt": format_timestamp(self.created_at),
        }


__all__ = [
    "Card",
    "DEFAULT_DECK_COLOR",
    "DEFAULT_DIFFICULTY",
    "Deck",
    "INITIAL_EASE_FACTOR",
    "MIN_EASE_FACTOR",
    "format_timestamp",
    "parse_timestamp",
]
