"""File backed storage for decks, cards, learner stats and the review log."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional, Union

import pandas as pd

from flashdeck.card_state import Card, Deck, DEFAULT_DECK_COLOR, format_timestamp
from flashdeck.stats import UserStats, default_stats

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Paths and constants
# ---------------------------------------------------------------------------
DEFAULT_DATA_ROOT = Path("res")
DECKS_FILENAME = "decks.json"
CARDS_FILENAME = "cards.jsonl"
STATS_FILENAME = "stats.json"
OFFLINE_FILENAME = "offline_decks.json"
LOG_FILENAME = "review_log.jsonl"

REQUIRED_LOG_FIELDS = ("card_id", "deck_id", "outcome", "interval", "correct")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _load_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _write_json(path: Path, payload: Any) -> None:
    _ensure_parent(path)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=4, ensure_ascii=False)


def _read_jsonl(path: Path) -> List[Dict[str, Any]]:
    if not path.exists():
        return []
    records: List[Dict[str, Any]] = []
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            records.append(json.loads(line))
    return records


def _write_jsonl(path: Path, records: Iterable[Mapping[str, Any]]) -> None:
    _ensure_parent(path)
    with path.open("w", encoding="utf-8") as handle:
        for record in records:
            handle.write(json.dumps(record, ensure_ascii=False))
            handle.write("\n")


def _new_id() -> str:
    return uuid.uuid4().hex


def _find_column(frame: pd.DataFrame, name: str) -> Optional[str]:
    for column in frame.columns:
        if str(column).strip().rstrip(":").lower() == name:
            return column
    return None


class DeckStore:
    """Persist decks and cards as JSON documents under *root*.

    The store rewrites whole files on every change and assumes a single
    writer.
    """

    def __init__(self, root: Union[str, Path] = DEFAULT_DATA_ROOT) -> None:
        self.root = Path(root)
        self.decks_file = self.root / DECKS_FILENAME
        self.cards_file = self.root / CARDS_FILENAME
        self.stats_file = self.root / STATS_FILENAME
        self.offline_file = self.root / OFFLINE_FILENAME
        self.log_file = self.root / LOG_FILENAME

    # ------------------------------------------------------------------
    # Decks
    # ------------------------------------------------------------------
    def _load_deck_records(self) -> MutableMapping[str, Any]:
        payload = _load_json(self.decks_file, {})
        if not isinstance(payload, Mapping):
            raise ValueError(f"Deck file {self.decks_file} must contain a JSON object")
        return dict(payload)

    def load_decks(self) -> List[Deck]:
        return [Deck.from_storage(record) for record in self._load_deck_records().values()]

    def get_deck(self, deck_id: str) -> Deck:
        records = self._load_deck_records()
        if deck_id not in records:
            raise KeyError(f"Deck '{deck_id}' not found in {self.decks_file}")
        return Deck.from_storage(records[deck_id])

    def save_deck(self, deck: Deck) -> Deck:
        records = self._load_deck_records()
        records[deck.id] = deck.to_storage_dict()
        _write_json(self.decks_file, records)
        return deck

    def create_deck(
        self,
        name: str,
        description: str = "",
        color: str = DEFAULT_DECK_COLOR,
        *,
        now: Optional[datetime] = None,
    ) -> Deck:
        deck = Deck(
            id=_new_id(),
            name=name,
            description=description,
            color=color,
            created_at=now or _utc_now(),
        )
        logger.info("Created deck %s (%s)", deck.id, name)
        return self.save_deck(deck)

    def delete_deck(self, deck_id: str) -> None:
        """Remove the deck, its cards and any offline copy."""

        records = self._load_deck_records()
        if deck_id not in records:
            raise KeyError(f"Deck '{deck_id}' not found in {self.decks_file}")
        del records[deck_id]
        _write_json(self.decks_file, records)

        remaining = [
            record for record in _read_jsonl(self.cards_file)
            if record.get("deckId") != deck_id
        ]
        _write_jsonl(self.cards_file, remaining)
        self.delete_offline_deck(deck_id)
        logger.info("Deleted deck %s", deck_id)

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------
    def load_cards(self, deck_id: Optional[str] = None) -> List[Card]:
        cards = [Card.from_storage(record) for record in _read_jsonl(self.cards_file)]
        if deck_id is None:
            return cards
        return [card for card in cards if card.deck_id == deck_id]

    def get_card(self, card_id: str, deck_id: Optional[str] = None) -> Card:
        for card in self.load_cards(deck_id):
            if card.id == card_id:
                return card
        raise KeyError(f"Card '{card_id}' not found in {self.cards_file}")

    def save_card(self, card: Card) -> Card:
        self.save_cards([card])
        return card

    def save_cards(self, cards: Iterable[Card]) -> None:
        records = _read_jsonl(self.cards_file)
        record_map = {(r.get("deckId"), r.get("id")): r for r in records}
        for card in cards:
            if not isinstance(card, Card):
                raise TypeError("save_cards expects Card instances")
            record_map[(card.deck_id, card.id)] = card.to_storage_dict()
        _write_jsonl(self.cards_file, record_map.values())

    def add_card(
        self,
        deck_id: str,
        front: str,
        back: str,
        *,
        now: Optional[datetime] = None,
    ) -> Card:
        self.get_deck(deck_id)
        card = Card.create(_new_id(), deck_id, front, back, now=now)
        self.save_card(card)
        logger.info("Added card %s to deck %s", card.id, deck_id)
        return card

    def delete_card(self, card_id: str, deck_id: Optional[str] = None) -> None:
        records = _read_jsonl(self.cards_file)
        kept = [
            record for record in records
            if not (
                record.get("id") == card_id
                and (deck_id is None or record.get("deckId") == deck_id)
            )
        ]
        if len(kept) == len(records):
            raise KeyError(f"Card '{card_id}' not found in {self.cards_file}")
        _write_jsonl(self.cards_file, kept)

    def import_spreadsheet(
        self,
        path: Union[str, Path],
        deck_id: str,
        *,
        now: Optional[datetime] = None,
    ) -> List[Card]:
        """Import ``Front``/``Back`` rows from an Excel or CSV file into *deck_id*.

        Rows are read until the first blank ``Front`` cell.
        """

        source = Path(path)
        if not source.exists():
            raise FileNotFoundError(f"Spreadsheet not found: {source}")
        self.get_deck(deck_id)

        if source.suffix.lower() == ".csv":
            frame = pd.read_csv(source)
        else:
            frame = pd.read_excel(source)

        front_column = _find_column(frame, "front")
        back_column = _find_column(frame, "back")
        if front_column is None or back_column is None:
            raise ValueError(f"Spreadsheet {source} needs 'Front' and 'Back' columns")

        created = now or _utc_now()
        cards: List[Card] = []
        for _, row in frame.iterrows():
            front = row.get(front_column)
            if pd.isna(front) or not str(front).strip():
                break
            back = row.get(back_column)
            cards.append(
                Card.create(
                    _new_id(),
                    deck_id,
                    str(front).strip(),
                    "" if pd.isna(back) else str(back).strip(),
                    now=created,
                )
            )
        self.save_cards(cards)
        logger.info("Imported %d cards from %s into deck %s", len(cards), source, deck_id)
        return cards

    # ------------------------------------------------------------------
    # Learner stats
    # ------------------------------------------------------------------
    def load_stats(self) -> UserStats:
        payload = _load_json(self.stats_file, None)
        if not payload:
            return default_stats()
        return UserStats.from_storage(payload)

    def save_stats(self, stats: UserStats) -> UserStats:
        _write_json(self.stats_file, stats.to_storage_dict())
        return stats

    # ------------------------------------------------------------------
    # Offline deck copies
    # ------------------------------------------------------------------
    def get_offline_decks(self) -> List[Dict[str, Any]]:
        try:
            payload = _load_json(self.offline_file, [])
        except (OSError, ValueError) as exc:
            logger.error("Error loading offline decks from %s: %s", self.offline_file, exc)
            return []
        if not isinstance(payload, list):
            logger.error("Offline deck file %s is not a list", self.offline_file)
            return []
        return payload

    def save_deck_offline(
        self,
        deck: Deck,
        cards: Iterable[Card],
        *,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        entry = {
            "deck": deck.to_storage_dict(),
            "cards": [card.to_storage_dict() for card in cards],
            "savedAt": format_timestamp(now or _utc_now()),
        }
        downloaded = [
            item for item in self.get_offline_decks()
            if item.get("deck", {}).get("id") != deck.id
        ]
        downloaded.append(entry)
        _write_json(self.offline_file, downloaded)
        logger.info("Saved deck %s offline with %d cards", deck.id, len(entry["cards"]))
        return entry

    def delete_offline_deck(self, deck_id: str) -> None:
        downloaded = self.get_offline_decks()
        kept = [item for item in downloaded if item.get("deck", {}).get("id") != deck_id]
        if len(kept) != len(downloaded):
            _write_json(self.offline_file, kept)

    def is_deck_offline(self, deck_id: str) -> bool:
        return any(
            item.get("deck", {}).get("id") == deck_id for item in self.get_offline_decks()
        )

    def load_offline_cards(self, deck_id: str) -> List[Card]:
        for item in self.get_offline_decks():
            if item.get("deck", {}).get("id") == deck_id:
                return [Card.from_storage(record) for record in item.get("cards", [])]
        raise KeyError(f"Deck '{deck_id}' is not available offline")

    # ------------------------------------------------------------------
    # Review log
    # ------------------------------------------------------------------
    def append_review_log(self, log_entry: Mapping[str, Any]) -> Dict[str, Any]:
        if not isinstance(log_entry, Mapping):
            raise TypeError("log_entry must be a mapping containing card metadata")
        record = dict(log_entry)
        record.setdefault("logged_at", format_timestamp(_utc_now()))
        missing = [name for name in REQUIRED_LOG_FIELDS if name not in record]
        if missing:
            raise ValueError(f"log_entry is missing required fields: {', '.join(missing)}")
        for key in ("before", "after"):
            if isinstance(record.get(key), Card):
                record[key] = record[key].to_storage_dict()
        _ensure_parent(self.log_file)
        with self.log_file.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record, ensure_ascii=False, default=str))
            handle.write("\n")
        return record

    def read_review_log(self) -> List[Dict[str, Any]]:
        return _read_jsonl(self.log_file)


__all__ = [
    "DEFAULT_DATA_ROOT",
    "DeckStore",
]
