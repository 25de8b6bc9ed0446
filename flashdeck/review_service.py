"""High level helpers that orchestrate reviews and persistence."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from flashdeck.card_state import Card
from flashdeck.deck_store import DeckStore
from flashdeck.scheduler import (
    CORRECT_OUTCOMES,
    SchedulerError,
    card_phase,
    normalise_outcome,
    record_review,
)
from flashdeck.stats import UserStats, record_card_studied, record_session_finished
from flashdeck.study import StudySession

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


async def submit_review(
    store: DeckStore,
    card_id: str,
    outcome: Any,
    *,
    deck_id: Optional[str] = None,
    now: Optional[datetime] = None,
    session: Optional[StudySession] = None,
) -> Tuple[Card, Dict[str, Any]]:
    """Record a review *outcome* for *card_id* and persist the updated card.

    Scheduler errors are re-raised after logging; nothing is written in that
    case. The stored stats are read before any write, then the card, the
    review log entry and the stats are written in that order. The writes are
    not atomic: a failure part way leaves the earlier writes in place.
    """

    if now is None:
        event_dt = _utc_now()
    elif now.tzinfo is None:
        event_dt = now.replace(tzinfo=timezone.utc)
    else:
        event_dt = now.astimezone(timezone.utc)
    card = store.get_card(card_id, deck_id)

    try:
        rating = normalise_outcome(outcome)
        updated = record_review(card, rating, event_dt)
    except SchedulerError as exc:
        logger.warning("Rejected review for card %s: %s", card_id, exc)
        raise

    correct = rating in CORRECT_OUTCOMES
    stats = record_card_studied(store.load_stats(), event_dt)

    store.save_card(updated)
    logger.info(
        "Card %s rated %s, next review in %d day(s)", card_id, rating, updated.interval
    )

    diagnostics: Dict[str, Any] = {
        "outcome": rating,
        "correct": correct,
        "interval": updated.interval,
        "ease_factor": updated.ease_factor,
        "next_review": updated.next_review,
        "previous_phase": card_phase(card),
        "phase": card_phase(updated),
        "before": card,
        "after": updated,
    }

    store.append_review_log(
        {
            "card_id": updated.id,
            "deck_id": updated.deck_id,
            "outcome": rating,
            "interval": updated.interval,
            "ease_factor": updated.ease_factor,
            "correct": correct,
            "before": card,
            "after": updated,
        }
    )

    store.save_stats(stats)

    if session is not None:
        session.record(rating)

    return updated, diagnostics


def submit_review_sync(
    store: DeckStore,
    card_id: str,
    outcome: Any,
    *,
    deck_id: Optional[str] = None,
    now: Optional[datetime] = None,
    session: Optional[StudySession] = None,
) -> Tuple[Card, Dict[str, Any]]:
    """Synchronous wrapper around :func:`submit_review`."""

    return asyncio.run(
        submit_review(
            store,
            card_id,
            outcome,
            deck_id=deck_id,
            now=now,
            session=session,
        )
    )


def finish_session(
    store: DeckStore, session: StudySession, now: Optional[datetime] = None
) -> UserStats:
    """Close *session* and fold its study time into the stored stats."""

    if session.end_time is None:
        session.end_time = now or _utc_now()
    stats = record_session_finished(store.load_stats(), session)
    store.save_stats(stats)
    logger.info(
        "Finished session %s: %d studied, %d correct",
        session.id,
        session.cards_studied,
        session.correct_answers,
    )
    return stats


__all__ = [
    "finish_session",
    "submit_review",
    "submit_review_sync",
]
