"""
Transports for the AnkiConnect HTTP API.

Two implementations of one interface are provided: ``AnkiConnectTransport``
talks to a running Anki over HTTP, ``MockAnkiTransport`` answers with canned
data so the server can be exercised without Anki. ``create_transport`` picks
one from the settings at start-up.
"""

import errno
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from .config import Settings
from .errors import TransportError, TransportErrorKind

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0
MAX_RESPONSE_BYTES = 50 * 1024 * 1024
MAX_RETRIES = 3
RETRY_BACKOFF = 0.5
THROTTLE_DELAY = 0.05

CONNECTION_REFUSED_MESSAGE = "Could not connect to Anki. Is Anki running with AnkiConnect installed?"


class AnkiTransport(ABC):
    """Issues single AnkiConnect actions."""

    @abstractmethod
    def call(self, action: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Run ``action`` and return its ``result``; raises TransportError."""

    def is_available(self) -> bool:
        """Check whether AnkiConnect answers a version probe. Never raises."""
        try:
            self.call("version")
            return True
        except Exception as e:
            logger.debug("AnkiConnect version probe failed: %s", e)
            return False


def _classify_connection_error(exc: BaseException) -> Optional[TransportErrorKind]:
    """Find a refused or reset socket error anywhere in an exception chain.

    requests and urllib3 wrap the underlying OSError several layers deep
    (``ConnectionError`` -> ``MaxRetryError.reason`` -> ``NewConnectionError``,
    or ``ProtocolError`` args for a reset mid-response).
    """
    seen = set()
    stack: List[Any] = [exc]
    while stack:
        current = stack.pop()
        if not isinstance(current, BaseException) or id(current) in seen:
            continue
        seen.add(id(current))

        if isinstance(current, ConnectionRefusedError):
            return TransportErrorKind.CONNECTION_REFUSED
        if isinstance(current, ConnectionResetError):
            return TransportErrorKind.CONNECTION_RESET
        if isinstance(current, OSError):
            if current.errno == errno.ECONNREFUSED:
                return TransportErrorKind.CONNECTION_REFUSED
            if current.errno == errno.ECONNRESET:
                return TransportErrorKind.CONNECTION_RESET

        stack.append(getattr(current, "reason", None))
        stack.extend(current.args)
        stack.append(current.__cause__)
        stack.append(current.__context__)
    return None


class AnkiConnectTransport(AnkiTransport):
    """Interface for connecting to Anki via the AnkiConnect addon."""

    def __init__(
        self,
        url: str = "http://localhost:8765",
        version: int = 6,
        api_key: Optional[str] = None,
        timeout: float = REQUEST_TIMEOUT,
        max_response_bytes: int = MAX_RESPONSE_BYTES,
        max_retries: int = MAX_RETRIES,
        retry_backoff: float = RETRY_BACKOFF,
        throttle_delay: float = THROTTLE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.url = url
        self.version = version
        self.api_key = api_key
        self.timeout = timeout
        self.max_response_bytes = max_response_bytes
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.throttle_delay = throttle_delay
        self._sleep = sleep
        self.session = requests.Session()

    def _build_payload(self, action: str, params: Dict[str, Any]) -> Dict[str, Any]:
        payload = {"action": action, "version": self.version, "params": params}
        if self.api_key:
            payload["key"] = self.api_key
        return payload

    def call(self, action: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Make a request to the AnkiConnect API, retrying on connection resets."""
        if params is None:
            params = {}
        payload = self._build_payload(action, params)

        for attempt in range(self.max_retries + 1):
            try:
                result = self._post(action, payload)
            except TransportError as e:
                if e.kind is not TransportErrorKind.CONNECTION_RESET:
                    raise
                if attempt == self.max_retries:
                    raise TransportError(
                        TransportErrorKind.CONNECTION_RESET,
                        f"Connection to Anki was reset ({attempt + 1} attempts made)",
                        action=action,
                    ) from e
                delay = self.retry_backoff * (2 ** attempt)
                logger.warning(
                    "Connection reset during %s, retrying in %.1fs (%d attempts left)",
                    action,
                    delay,
                    self.max_retries - attempt,
                )
                self._sleep(delay)
                continue

            # AnkiConnect is single-threaded; space out consecutive requests
            self._sleep(self.throttle_delay)
            return result

    def _post(self, action: str, payload: Dict[str, Any]) -> Any:
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout, stream=True)
            try:
                response.raise_for_status()
                body = self._read_body(action, response)
            finally:
                response.close()
        except TransportError:
            raise
        except requests.exceptions.Timeout:
            raise TransportError(
                TransportErrorKind.OTHER_NETWORK,
                f"Request to Anki timed out after {self.timeout:g}s",
                action=action,
            ) from None
        except (requests.exceptions.RequestException, OSError) as e:
            kind = _classify_connection_error(e)
            if kind is TransportErrorKind.CONNECTION_REFUSED:
                raise TransportError(kind, CONNECTION_REFUSED_MESSAGE, action=action) from e
            if kind is TransportErrorKind.CONNECTION_RESET:
                raise TransportError(kind, f"Connection reset while calling {action}", action=action) from e
            raise TransportError(
                TransportErrorKind.OTHER_NETWORK, f"Network error: {e}", action=action
            ) from e

        return self._parse_envelope(action, body)

    def _read_body(self, action: str, response: requests.Response) -> bytes:
        declared = response.headers.get("Content-Length")
        if declared is not None and declared.isdigit() and int(declared) > self.max_response_bytes:
            raise self._too_large(action)

        chunks = []
        total = 0
        for chunk in response.iter_content(chunk_size=64 * 1024):
            total += len(chunk)
            if total > self.max_response_bytes:
                raise self._too_large(action)
            chunks.append(chunk)
        return b"".join(chunks)

    def _too_large(self, action: str) -> TransportError:
        return TransportError(
            TransportErrorKind.OTHER_NETWORK,
            f"Response from Anki exceeded {self.max_response_bytes} bytes",
            action=action,
        )

    @staticmethod
    def _parse_envelope(action: str, body: bytes) -> Any:
        try:
            envelope = json.loads(body)
        except ValueError as e:
            raise TransportError(
                TransportErrorKind.OTHER_NETWORK,
                f"Invalid JSON from AnkiConnect: {e}",
                action=action,
            ) from e

        if not isinstance(envelope, dict) or "result" not in envelope or "error" not in envelope:
            raise TransportError(
                TransportErrorKind.OTHER_NETWORK,
                "Malformed AnkiConnect response: expected an object with 'result' and 'error'",
                action=action,
            )

        if envelope["error"] is not None:
            raise TransportError(
                TransportErrorKind.REMOTE_ERROR,
                f"AnkiConnect error: {envelope['error']}",
                action=action,
            )
        return envelope["result"]


MOCK_LEECH_CARD_IDS = [1234567890, 1234567891, 1234567892]
MOCK_NOTE_ID_OFFSET = 1000000
MOCK_FACTOR = 2500


class MockAnkiTransport(AnkiTransport):
    """Canned AnkiConnect answers; performs no network I/O."""

    def __init__(self, leech_card_ids: Optional[List[int]] = None):
        self.leech_card_ids = list(MOCK_LEECH_CARD_IDS if leech_card_ids is None else leech_card_ids)
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        logger.info("AnkiConnect transport in MOCK MODE - no actual Anki operations will be performed")

    def call(self, action: str, params: Optional[Dict[str, Any]] = None) -> Any:
        params = params or {}
        self.calls.append((action, params))
        logger.info("[MOCK] AnkiConnect action: %s params=%s", action, json.dumps(params, ensure_ascii=False))

        if action == "version":
            return 6
        if action == "findCards":
            return list(self.leech_card_ids)
        if action == "cardsInfo":
            return [
                {
                    "cardId": card_id,
                    "note": card_id + MOCK_NOTE_ID_OFFSET,
                    "deckName": "Mock Deck",
                    "modelName": "Mock Model",
                    "interval": 10,
                    "factor": MOCK_FACTOR,
                    "reps": 5,
                    "lapses": 2,
                }
                for card_id in params.get("cards", [])
            ]
        if action == "notesInfo":
            return [
                {
                    "noteId": note_id,
                    "modelName": "Mock Model",
                    "tags": ["leech", "mock_tag"],
                    "fields": {
                        "Front": {"value": "Mock front content", "order": 0},
                        "Back": {"value": "Mock back content", "order": 1},
                    },
                }
                for note_id in params.get("notes", [])
            ]
        if action == "addTags":
            logger.info("[MOCK] Would add tag %r to notes: %s", params.get("tags"), params.get("notes"))
            return None

        logger.info("[MOCK] Unknown action: %s", action)
        return None


def create_transport(settings: Settings, sleep: Callable[[float], None] = time.sleep) -> AnkiTransport:
    """Build the transport selected by the settings."""
    if settings.mock_mode:
        return MockAnkiTransport()
    return AnkiConnectTransport(
        url=settings.anki_connect_url,
        version=settings.anki_connect_version,
        api_key=settings.anki_api_key,
        sleep=sleep,
    )
