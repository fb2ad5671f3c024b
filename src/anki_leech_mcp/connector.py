"""
Typed AnkiConnect actions on top of a transport.
"""

from typing import List, Optional, Sequence

from .records import CardInfo, NoteInfo, parse_cards_info, parse_id_list, parse_notes_info
from .transport import AnkiTransport

LEECH_QUERY = "tag:leech"


class AnkiConnector:
    """The AnkiConnect actions this server needs, with validated results."""

    def __init__(self, transport: AnkiTransport):
        self.transport = transport

    def is_available(self) -> bool:
        return self.transport.is_available()

    def version(self) -> int:
        """Get the AnkiConnect API version."""
        return int(self.transport.call("version"))

    def find_cards(self, query: str) -> List[int]:
        """Find cards matching the given search query."""
        return parse_id_list(self.transport.call("findCards", {"query": query}), "findCards")

    def find_leech_cards(self) -> List[int]:
        """Find all cards carrying the leech tag."""
        return self.find_cards(LEECH_QUERY)

    def cards_info(self, card_ids: Sequence[int]) -> List[Optional[CardInfo]]:
        """Get card-level information; unknown cards come back as None."""
        return parse_cards_info(self.transport.call("cardsInfo", {"cards": list(card_ids)}))

    def notes_info(self, note_ids: Sequence[int]) -> List[NoteInfo]:
        """Get detailed information about specific notes."""
        return parse_notes_info(self.transport.call("notesInfo", {"notes": list(note_ids)}))

    def add_tags(self, note_ids: Sequence[int], tags: str) -> None:
        """Add space-separated ``tags`` to every note in ``note_ids``."""
        self.transport.call("addTags", {"notes": list(note_ids), "tags": tags})
