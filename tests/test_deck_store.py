import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from flashdeck.card_state import Card
from flashdeck.deck_store import DeckStore
from flashdeck.scheduler import record_review
from flashdeck.stats import FIRST_CARD, record_card_studied

T = datetime(2024, 4, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path):
    return DeckStore(tmp_path / "data")


def test_create_and_load_deck(store):
    deck = store.create_deck("Spanish Basics", "Essential vocabulary", "#ef4444", now=T)

    loaded = store.get_deck(deck.id)
    assert loaded == deck
    assert [d.name for d in store.load_decks()] == ["Spanish Basics"]


def test_missing_deck_raises_key_error(store):
    with pytest.raises(KeyError):
        store.get_deck("nope")
    with pytest.raises(KeyError):
        store.add_card("nope", "front", "back")


def test_add_card_persists_new_card(store):
    deck = store.create_deck("French Verbs", now=T)
    card = store.add_card(deck.id, "to be", "être", now=T)

    reloaded = store.get_card(card.id)
    assert reloaded == card
    assert reloaded.next_review == T
    assert reloaded.repetitions == 0

    lines = store.cards_file.read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[0])["deckId"] == deck.id


def test_save_card_replaces_existing_record(store):
    deck = store.create_deck("Deck", now=T)
    card = store.add_card(deck.id, "Hello", "Hola", now=T)
    store.add_card(deck.id, "Goodbye", "Adiós", now=T)

    store.save_card(record_review(card, "good", T))

    cards = store.load_cards(deck.id)
    assert len(cards) == 2
    assert store.get_card(card.id).repetitions == 1


def test_save_cards_rejects_other_types(store):
    with pytest.raises(TypeError):
        store.save_cards([{"id": "1"}])


def test_delete_card(store):
    deck = store.create_deck("Deck", now=T)
    card = store.add_card(deck.id, "Hello", "Hola", now=T)

    store.delete_card(card.id)
    assert store.load_cards() == []
    with pytest.raises(KeyError):
        store.delete_card(card.id)


def test_delete_deck_removes_cards_and_offline_copy(store):
    keep = store.create_deck("Keep", now=T)
    drop = store.create_deck("Drop", now=T)
    store.add_card(keep.id, "a", "b", now=T)
    dropped_card = store.add_card(drop.id, "c", "d", now=T)
    store.save_deck_offline(drop, [dropped_card], now=T)

    store.delete_deck(drop.id)

    assert [d.id for d in store.load_decks()] == [keep.id]
    assert [c.deck_id for c in store.load_cards()] == [keep.id]
    assert not store.is_deck_offline(drop.id)


def test_offline_copy_replaces_previous_save(store):
    deck = store.create_deck("Deck", now=T)
    card = store.add_card(deck.id, "Hello", "Hola", now=T)

    store.save_deck_offline(deck, [], now=T)
    store.save_deck_offline(deck, [card], now=T + timedelta(hours=1))

    saved = store.get_offline_decks()
    assert len(saved) == 1
    assert saved[0]["savedAt"] == int((T + timedelta(hours=1)).timestamp() * 1000)
    assert store.is_deck_offline(deck.id)
    assert store.load_offline_cards(deck.id) == [card]

    store.delete_offline_deck(deck.id)
    assert store.get_offline_decks() == []
    with pytest.raises(KeyError):
        store.load_offline_cards(deck.id)


def test_corrupt_offline_file_reads_as_empty(store):
    store.offline_file.parent.mkdir(parents=True, exist_ok=True)
    store.offline_file.write_text("{not json", encoding="utf-8")

    assert store.get_offline_decks() == []
    assert not store.is_deck_offline("any")


def test_stats_default_and_persist(store):
    stats = store.load_stats()
    assert stats.total_cards_studied == 0

    store.save_stats(record_card_studied(stats, T))
    reloaded = store.load_stats()
    assert reloaded.total_cards_studied == 1
    assert reloaded.achievement(FIRST_CARD).is_unlocked


def test_review_log_requires_fields(store):
    with pytest.raises(ValueError):
        store.append_review_log({"card_id": "1"})
    with pytest.raises(TypeError):
        store.append_review_log(["card_id"])


def test_review_log_serialises_cards(store):
    card = Card.create("1", "deck", "Hello", "Hola", now=T)
    after = record_review(card, "easy", T)
    record = store.append_review_log(
        {
            "card_id": "1",
            "deck_id": "deck",
            "outcome": "easy",
            "interval": after.interval,
            "correct": True,
            "before": card,
            "after": after,
        }
    )

    assert record["after"]["interval"] == 4
    assert "logged_at" in record
    entries = store.read_review_log()
    assert entries[0]["before"]["repetitions"] == 0


def test_import_csv_spreadsheet(store, tmp_path):
    deck = store.create_deck("Imported", now=T)
    source = tmp_path / "cards.csv"
    pd.DataFrame(
        {"Front:": ["Hello", "Water", None, "Ignored"], "Back:": ["Hola", None, None, "x"]}
    ).to_csv(source, index=False)

    cards = store.import_spreadsheet(source, deck.id, now=T)

    assert [(c.front, c.back) for c in cards] == [("Hello", "Hola"), ("Water", "")]
    assert len(store.load_cards(deck.id)) == 2
    assert all(c.next_review == T for c in cards)


def test_import_excel_spreadsheet(store, tmp_path):
    pytest.importorskip("openpyxl")
    deck = store.create_deck("Imported", now=T)
    source = tmp_path / "cards.xlsx"
    pd.DataFrame({"Front": ["to be", "to have"], "Back": ["être", "avoir"]}).to_excel(
        source, index=False
    )

    cards = store.import_spreadsheet(source, deck.id, now=T)
    assert [c.back for c in cards] == ["être", "avoir"]


def test_import_rejects_missing_columns_and_files(store, tmp_path):
    deck = store.create_deck("Imported", now=T)
    source = tmp_path / "cards.csv"
    pd.DataFrame({"Word": ["a"]}).to_csv(source, index=False)

    with pytest.raises(ValueError):
        store.import_spreadsheet(source, deck.id)
    with pytest.raises(FileNotFoundError):
        store.import_spreadsheet(tmp_path / "missing.csv", deck.id)
