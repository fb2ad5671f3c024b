"""
Validated records for AnkiConnect responses.

AnkiConnect returns loosely shaped JSON. Everything the hydrator consumes is
parsed here first, so a malformed payload fails at the transport boundary
instead of somewhere deep inside a batch.
"""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, TypeAdapter, ValidationError

from .errors import TransportError, TransportErrorKind

_ID_LIST = TypeAdapter(List[StrictInt])


def _malformed(action: str, error: ValidationError) -> TransportError:
    problems = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"]) or "entry"
        problems.append(f"'{location}' {detail['msg']}")
    return TransportError(
        TransportErrorKind.OTHER_NETWORK,
        f"Malformed {action} response: {'; '.join(problems)}",
        action=action,
    )


class AnkiRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class CardInfo(AnkiRecord):
    """Card-level information from ``cardsInfo``."""

    card_id: StrictInt = Field(alias="cardId")
    note_id: StrictInt = Field(alias="note")
    deck_name: StrictStr = Field(alias="deckName")
    model_name: StrictStr = Field(alias="modelName")
    factor: StrictInt
    interval: StrictInt
    reps: StrictInt
    lapses: StrictInt

    @property
    def ease(self) -> float:
        """Ease as a multiplier; Anki stores it scaled by 1000."""
        return self.factor / 1000


class NoteField(AnkiRecord):
    value: StrictStr
    order: StrictInt


class NoteInfo(AnkiRecord):
    """Note-level information from ``notesInfo``."""

    note_id: StrictInt = Field(alias="noteId")
    model_name: StrictStr = Field(alias="modelName")
    tags: Tuple[StrictStr, ...] = ()
    fields: Dict[str, NoteField] = Field(default_factory=dict)


def _require_list(result: Any, action: str) -> List[Any]:
    if not isinstance(result, list):
        raise TransportError(
            TransportErrorKind.OTHER_NETWORK,
            f"Malformed {action} response: expected a list, got {type(result).__name__}",
            action=action,
        )
    return result


def parse_id_list(result: Any, action: str) -> List[int]:
    """Validate a list of card or note ids."""
    try:
        return _ID_LIST.validate_python(result)
    except ValidationError as e:
        raise _malformed(action, e) from e


def parse_cards_info(result: Any) -> List[Optional[CardInfo]]:
    """Parse a ``cardsInfo`` result, keeping ``None`` where Anki knew no card.

    AnkiConnect answers an unknown card id with an empty object, so the
    output stays aligned with the requested ids.
    """
    entries = _require_list(result, "cardsInfo")
    try:
        return [CardInfo.model_validate(entry) if entry != {} else None for entry in entries]
    except ValidationError as e:
        raise _malformed("cardsInfo", e) from e


def parse_notes_info(result: Any) -> List[NoteInfo]:
    """Parse a ``notesInfo`` result, dropping empty entries for unknown notes."""
    entries = _require_list(result, "notesInfo")
    try:
        return [NoteInfo.model_validate(entry) for entry in entries if entry != {}]
    except ValidationError as e:
        raise _malformed("notesInfo", e) from e
