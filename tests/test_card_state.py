import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from flashdeck.card_state import Card, Deck, format_timestamp, parse_timestamp

T = datetime(2024, 3, 5, 12, 0, tzinfo=timezone.utc)
T_MS = 1709640000000


def test_create_initialises_scheduling_defaults():
    card = Card.create("1", "spanish-basics", "Hello", "Hola", now=T)

    assert card.interval == 0
    assert card.ease_factor == pytest.approx(2.5)
    assert card.repetitions == 0
    assert card.next_review == T
    assert card.created_at == T
    assert card.last_reviewed is None


def test_storage_record_uses_document_keys():
    card = Card.create("1", "spanish-basics", "Hello", "Hola", now=T)
    data = card.to_storage_dict()

    assert data["deckId"] == "spanish-basics"
    assert data["createdAt"] == T_MS
    assert data["nextReview"] == T_MS
    assert data["easeFactor"] == pytest.approx(2.5)
    assert "lastReviewed" not in data
    assert Card.from_storage(data) == card


def test_from_storage_reads_mobile_document():
    payload = {
        "id": "7",
        "front": "Water",
        "back": "Agua",
        "deckId": "spanish-basics",
        "createdAt": T_MS,
        "nextReview": T_MS,
        "lastReviewed": T_MS - 86400000,
        "interval": 1,
        "easeFactor": 2.5,
        "repetitions": 1,
        "difficulty": "good",
        "wordFrequency": 120,
    }
    card = Card.from_storage(payload)

    assert card.id == "7"
    assert card.next_review == T
    assert card.last_reviewed == datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)
    assert card.word_frequency == 120
    assert card.to_storage_dict()["wordFrequency"] == 120


def test_from_storage_fills_missing_scheduling_fields():
    card = Card.from_storage({"id": "1", "deckId": "d", "front": "a", "back": "b"})
    assert card.interval == 0
    assert card.ease_factor == pytest.approx(2.5)
    assert card.difficulty == "good"
    assert card.next_review is None


def test_from_storage_requires_identity():
    with pytest.raises(ValueError):
        Card.from_storage({"front": "a", "back": "b"})


@pytest.mark.parametrize(
    "raw",
    [T_MS, "2024-03-05T12:00:00Z", "2024-03-05T12:00:00+00:00", datetime(2024, 3, 5, 12, 0)],
)
def test_parse_timestamp_accepts_known_formats(raw):
    assert parse_timestamp(raw) == T


@pytest.mark.parametrize("raw", [None, "", "not a date", True])
def test_parse_timestamp_rejects_garbage(raw):
    assert parse_timestamp(raw) is None


def test_format_timestamp_is_epoch_millis():
    assert format_timestamp(T) == T_MS
    assert format_timestamp(None) is None


def test_deck_round_trip():
    deck = Deck(id="french-verbs", name="French Verbs", description="Common verbs", created_at=T)
    restored = Deck.from_storage(deck.to_storage_dict())
    assert restored == deck
