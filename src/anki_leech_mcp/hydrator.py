"""
Batch hydration of card ids into full card records.

AnkiConnect runs inside Anki's single-threaded main loop and drops
connections when hit too hard, so cards are processed sequentially in small
groups with fixed pauses in between.
"""

import logging
import time
from typing import Callable, Dict, List, Sequence

from .connector import AnkiConnector
from .records import CardInfo, NoteInfo
from .types import CardRecord

logger = logging.getLogger(__name__)

BATCH_SIZE = 5
ITEM_DELAY = 0.1
BATCH_DELAY = 0.5
PLACEHOLDER_CONTENT = "[Basic card information only]"


def build_card_record(card: CardInfo, note: NoteInfo) -> CardRecord:
    """Combine card-level and note-level information."""
    return {
        "id": card.card_id,
        "noteId": card.note_id,
        "deck": card.deck_name,
        "modelName": note.model_name,
        "fields": {
            name: {"value": field.value, "order": field.order} for name, field in note.fields.items()
        },
        "tags": list(note.tags),
        "front": PLACEHOLDER_CONTENT,
        "back": PLACEHOLDER_CONTENT,
        "statistics": {
            "ease": card.ease,
            "interval": card.interval,
            "reviews": card.reps,
            "lapses": card.lapses,
        },
    }


class BatchHydrator:
    """Turns card ids into CardRecords with two bulk lookups and paced processing."""

    def __init__(
        self,
        connector: AnkiConnector,
        batch_size: int = BATCH_SIZE,
        item_delay: float = ITEM_DELAY,
        batch_delay: float = BATCH_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.connector = connector
        self.batch_size = batch_size
        self.item_delay = item_delay
        self.batch_delay = batch_delay
        self._sleep = sleep

    def hydrate(self, card_ids: Sequence[int]) -> List[CardRecord]:
        """Fetch and join card and note information for ``card_ids``.

        Errors from the bulk ``cardsInfo``/``notesInfo`` calls propagate; a
        card whose note cannot be found is logged and left out.
        """
        if not card_ids:
            return []

        cards: List[CardInfo] = []
        for card_id, card in zip(card_ids, self.connector.cards_info(card_ids)):
            if card is None:
                logger.warning("Card info not found for card ID: %s", card_id)
                continue
            cards.append(card)

        if not cards:
            return []

        note_ids = list(dict.fromkeys(card.note_id for card in cards))
        notes: Dict[int, NoteInfo] = {note.note_id: note for note in self.connector.notes_info(note_ids)}

        records: List[CardRecord] = []
        for start in range(0, len(cards), self.batch_size):
            if start > 0:
                self._sleep(self.batch_delay)

            for index, card in enumerate(cards[start:start + self.batch_size]):
                if index > 0:
                    self._sleep(self.item_delay)

                note = notes.get(card.note_id)
                if note is None:
                    logger.warning("Note info not found for note ID: %s (card %s)", card.note_id, card.card_id)
                    continue
                records.append(build_card_record(card, note))

        logger.debug("Hydrated %d of %d requested cards", len(records), len(card_ids))
        return records
