"""
Tool dispatcher for the Anki leech tools.

Validates tool arguments, checks that Anki is reachable, runs the operation
and wraps every outcome, success or failure, in the same ToolResponse
envelope. Nothing raised by the transport escapes to the protocol layer.
"""

import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from .config import DEFAULT_TAG_PREFIX
from .connector import AnkiConnector
from .errors import ToolValidationError, TransportError, TransportErrorKind
from .hydrator import BatchHydrator
from .sampler import sample_card_ids
from .types import ToolResponse

logger = logging.getLogger(__name__)

CONNECTION_ERROR_MESSAGE = (
    "Could not connect to Anki. Please make sure Anki is running and AnkiConnect is installed."
)
NO_LEECHES_MESSAGE = "No leech cards found in Anki."
VALIDATION_ERROR = "ValidationError"
INTERNAL_ERROR = "InternalError"


def _success(message: str, data: Dict[str, Any]) -> ToolResponse:
    return {"success": True, "message": message, "error": None, "data": data}


def _failure(message: str, error: str, kind: str) -> ToolResponse:
    return {"success": False, "message": message, "error": error, "data": {"errorKind": kind}}


def reviewed_tag(prefix: str, day: date) -> str:
    """Build the dated review tag, e.g. ``見直し_20240131``."""
    return f"{prefix}_{day.year:04d}{day.month:02d}{day.day:02d}"


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_detailed(value: Any) -> bool:
    if value is None:
        return True
    if not isinstance(value, bool):
        raise ToolValidationError(f"'detailed' must be a boolean, got {value!r}")
    return value


def validate_count(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not _is_int(value) or value < 1:
        raise ToolValidationError(f"'count' must be a positive integer, got {value!r}")
    return value


def validate_card_ids(value: Any) -> List[int]:
    if value is None or not isinstance(value, list) or len(value) == 0:
        raise ToolValidationError(
            "No card IDs provided. Please provide an array of card IDs to tag."
        )
    for card_id in value:
        if not _is_int(card_id) or card_id < 1:
            raise ToolValidationError(f"Card IDs must be positive integers, got {card_id!r}")
    return value


def validate_tag_prefix(value: Any, default: str) -> str:
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise ToolValidationError(f"'custom_tag_prefix' must be a string, got {value!r}")
    if any(char.isspace() for char in value):
        raise ToolValidationError("'custom_tag_prefix' must not contain whitespace")
    return value


class ToolDispatcher:
    """Runs the ``get_leech_cards`` and ``tag_reviewed_cards`` tools."""

    def __init__(
        self,
        connector: AnkiConnector,
        hydrator: Optional[BatchHydrator] = None,
        rng: Optional[Any] = None,
        today: Callable[[], date] = date.today,
        default_tag_prefix: str = DEFAULT_TAG_PREFIX,
    ):
        self.connector = connector
        self.hydrator = hydrator if hydrator is not None else BatchHydrator(connector)
        self.rng = rng
        self.today = today
        self.default_tag_prefix = default_tag_prefix

    def dispatch(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolResponse:
        """Run a tool invocation given as a name and an arguments mapping."""
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            message = "Tool arguments must be an object"
            return _failure(f"Error: {message}", message, VALIDATION_ERROR)

        if name == "get_leech_cards":
            return self.get_leech_cards(arguments.get("detailed"), arguments.get("count"))
        if name == "tag_reviewed_cards":
            return self.tag_reviewed_cards(
                arguments.get("card_ids"), arguments.get("custom_tag_prefix")
            )

        message = f"Unknown tool: {name}"
        return _failure(f"Error: {message}", message, "UnknownTool")

    def get_leech_cards(self, detailed: Any = True, count: Any = None) -> ToolResponse:
        try:
            detailed = validate_detailed(detailed)
            count = validate_count(count)
        except ToolValidationError as e:
            return self._invalid(e)
        return self._run(self._get_leech_cards, detailed, count)

    def tag_reviewed_cards(self, card_ids: Any, custom_tag_prefix: Any = None) -> ToolResponse:
        try:
            card_ids = validate_card_ids(card_ids)
            prefix = validate_tag_prefix(custom_tag_prefix, self.default_tag_prefix)
        except ToolValidationError as e:
            return self._invalid(e)
        return self._run(self._tag_reviewed_cards, card_ids, prefix)

    @staticmethod
    def _invalid(error: ToolValidationError) -> ToolResponse:
        return _failure(f"Error: {error}", str(error), VALIDATION_ERROR)

    def _run(self, operation: Callable[..., ToolResponse], *args: Any) -> ToolResponse:
        if not self.connector.is_available():
            logger.warning("AnkiConnect is not reachable, skipping %s", operation.__name__.lstrip("_"))
            return _failure(
                CONNECTION_ERROR_MESSAGE,
                CONNECTION_ERROR_MESSAGE,
                TransportErrorKind.CONNECTION_REFUSED.value,
            )

        try:
            return operation(*args)
        except TransportError as e:
            logger.error("%s failed: %s", operation.__name__.lstrip("_"), e.message)
            return _failure(f"Error: {e.message}", e.message, e.kind.value)
        except Exception as e:
            logger.exception("%s failed unexpectedly", operation.__name__.lstrip("_"))
            return _failure(f"Error: {e}", str(e), INTERNAL_ERROR)

    def _get_leech_cards(self, detailed: bool, count: Optional[int]) -> ToolResponse:
        all_ids = self.connector.find_leech_cards()
        if not all_ids:
            return _success(
                NO_LEECHES_MESSAGE,
                {"count": 0, "totalLeechCards": 0, "cardIds": []},
            )

        selected = sample_card_ids(all_ids, count, self.rng) if count else all_ids
        if count:
            message = (
                f"Returning {len(selected)} random cards out of {len(all_ids)} total leech cards."
            )
        else:
            message = f"Returning all {len(selected)} leech cards."

        if not detailed:
            return _success(
                message,
                {"count": len(selected), "totalLeechCards": len(all_ids), "cardIds": selected},
            )

        cards = self.hydrator.hydrate(selected)
        return _success(
            message,
            {
                "count": len(cards),
                "totalLeechCards": len(all_ids),
                "cards": [
                    dict(card, fields={name: field["value"] for name, field in card["fields"].items()})
                    for card in cards
                ],
            },
        )

    def _tag_reviewed_cards(self, card_ids: List[int], prefix: str) -> ToolResponse:
        resolved = [
            (card_id, card)
            for card_id, card in zip(card_ids, self.connector.cards_info(card_ids))
            if card is not None
        ]
        note_ids = list(dict.fromkeys(card.note_id for _, card in resolved))
        if not note_ids:
            message = "Could not find note IDs for the provided card IDs"
            return _failure(f"Error: {message}", message, "NotFound")

        tag = reviewed_tag(prefix, self.today())
        self.connector.add_tags(note_ids, tag)
        logger.info("Tag '%s' added to %d notes (from %d cards)", tag, len(note_ids), len(card_ids))

        tagged = [card_id for card_id, _ in resolved]
        data = {
            "tagged_cards": tagged,
            "tag_added": tag,
            "noteIds": note_ids,
            "noteCount": len(note_ids),
        }
        tagged_set = set(tagged)
        unresolved = [card_id for card_id in card_ids if card_id not in tagged_set]
        if unresolved:
            data["unresolved_cards"] = unresolved
        return _success(f"Successfully tagged {len(tagged)} cards with '{tag}'", data)
