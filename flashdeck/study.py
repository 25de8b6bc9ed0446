"""Study set selection and in-session queue handling."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from flashdeck.card_state import Card
from flashdeck.scheduler import CORRECT_OUTCOMES, is_due, is_new, normalise_outcome

DEFAULT_NEW_CARD_LIMIT = 10
AGAIN_REQUEUE_OFFSET = 2

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def get_due_cards(
    cards: Iterable[Card], deck_id: str, now: Optional[datetime] = None
) -> List[Card]:
    now = now or _utc_now()
    return [card for card in cards if card.deck_id == deck_id and is_due(card, now)]


def get_new_cards(cards: Iterable[Card], deck_id: str) -> List[Card]:
    return [card for card in cards if card.deck_id == deck_id and is_new(card)]


@dataclass
class DeckStats:
    total: int
    new: int
    due: int


def deck_stats(cards: Iterable[Card], now: Optional[datetime] = None) -> DeckStats:
    """Count total, new and due cards in *cards*."""

    now = now or _utc_now()
    total = new = due = 0
    for card in cards:
        total += 1
        if is_new(card):
            new += 1
        if is_due(card, now):
            due += 1
    return DeckStats(total=total, new=new, due=due)


def build_study_set(
    cards: Iterable[Card],
    now: Optional[datetime] = None,
    new_limit: int = DEFAULT_NEW_CARD_LIMIT,
) -> List[Card]:
    """Return due review cards followed by at most *new_limit* new cards.

    New cards are always due as well, so they are only admitted through the
    capped new-card slice.
    """

    now = now or _utc_now()
    pool = list(cards)
    due_reviews = sorted(
        (card for card in pool if not is_new(card) and is_due(card, now)),
        key=lambda card: card.next_review or _EPOCH,
    )
    fresh = sorted(
        (card for card in pool if is_new(card)),
        key=lambda card: card.created_at or _EPOCH,
    )[: max(new_limit, 0)]

    selected: List[Card] = []
    seen = set()
    for card in due_reviews + fresh:
        if card.id in seen:
            continue
        seen.add(card.id)
        selected.append(card)
    return selected


@dataclass
class StudySession:
    id: str
    deck_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    cards_studied: int = 0
    correct_answers: int = 0

    @classmethod
    def start(cls, deck_id: str, now: Optional[datetime] = None) -> "StudySession":
        return cls(id=uuid.uuid4().hex, deck_id=deck_id, start_time=now or _utc_now())

    @property
    def accuracy(self) -> float:
        if self.cards_studied == 0:
            return 0.0
        return self.correct_answers / self.cards_studied

    @property
    def is_perfect(self) -> bool:
        return self.cards_studied > 0 and self.correct_answers == self.cards_studied

    def record(self, outcome: str) -> None:
        self.cards_studied += 1
        if normalise_outcome(outcome) in CORRECT_OUTCOMES:
            self.correct_answers += 1


class StudyQueue:
    """Order the cards of one deck for a study session.

    Cards rated ``again`` come back a couple of cards later; every other
    outcome takes the card out of the queue.
    """

    def __init__(
        self,
        cards: Iterable[Card],
        deck_id: str,
        *,
        now: Optional[datetime] = None,
        new_limit: int = DEFAULT_NEW_CARD_LIMIT,
    ) -> None:
        self.now = now or _utc_now()
        self.deck_id = deck_id
        deck_cards = [card for card in cards if card.deck_id == deck_id]
        self.pending: List[Card] = build_study_set(deck_cards, self.now, new_limit)
        self.total_cards = len(self.pending)
        self.session = StudySession.start(deck_id, self.now)

    @property
    def remaining(self) -> int:
        return len(self.pending)

    @property
    def is_finished(self) -> bool:
        return not self.pending

    @property
    def is_perfect(self) -> bool:
        return self.is_finished and self.session.is_perfect

    def current(self) -> Optional[Card]:
        if not self.pending:
            return None
        return self.pending[0]

    def answer(self, outcome: str, updated: Optional[Card] = None) -> Optional[Card]:
        """Record *outcome* for the current card and return the next one.

        *updated* replaces the queued card, so a re-queued card carries the
        schedule the review produced.
        """

        if not self.pending:
            raise IndexError("The study queue is empty")
        rating = normalise_outcome(outcome)
        card = self.pending.pop(0)
        self.session.record(rating)
        if rating == "again":
            position = min(AGAIN_REQUEUE_OFFSET, len(self.pending))
            self.pending.insert(position, updated or card)
        return self.current()

    def finish(self, now: Optional[datetime] = None) -> StudySession:
        if self.session.end_time is None:
            self.session.end_time = now or _utc_now()
        return self.session


__all__ = [
    "DEFAULT_NEW_CARD_LIMIT",
    "DeckStats",
    "StudyQueue",
    "StudySession",
    "build_study_set",
    "deck_stats",
    "get_due_cards",
    "get_new_cards",
]
