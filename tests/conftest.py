#!/usr/bin/env python3

import json
import sys
from pathlib import Path

import pytest
import requests

# Add the src directory to the Python path for imports
project_root = Path(__file__).parent.parent
src_path = project_root / "src"
sys.path.insert(0, str(src_path))


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (may require external services)"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to handle integration test marking."""
    for item in items:
        # Automatically mark integration tests
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)


class FakeResponse:
    """Stands in for a streamed ``requests.Response``."""

    def __init__(self, body=b"", headers=None, status_code=200, error_after=None):
        self.body = body
        self.headers = headers or {}
        self.status_code = status_code
        self.error_after = error_after
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Server Error", response=self)

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start:start + chunk_size]
        if self.error_after is not None:
            raise self.error_after

    def close(self):
        self.closed = True


class SleepRecorder:
    """Records requested sleeps instead of waiting."""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


class ScriptedRandom:
    """Random source returning a fixed sequence of ``randint`` results."""

    def __init__(self, values):
        self.values = list(values)
        self.requests = []

    def randint(self, a, b):
        self.requests.append((a, b))
        value = self.values.pop(0)
        assert a <= value <= b
        return value


# Test fixtures
@pytest.fixture
def anki_mock_response():
    """Fixture for mocking AnkiConnect HTTP responses."""

    def _mock_response(result=None, error=None, **kwargs):
        body = json.dumps({"result": result, "error": error}).encode("utf-8")
        return FakeResponse(body, **kwargs)

    return _mock_response


@pytest.fixture
def raw_response():
    """Fixture for responses with an arbitrary body."""
    return FakeResponse


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def scripted_random():
    return ScriptedRandom


@pytest.fixture
def sample_cards_info():
    """Sample ``cardsInfo`` entries: two cards share note 2001."""
    return [
        {
            "cardId": 101,
            "note": 2001,
            "deckName": "Japanese",
            "modelName": "Basic",
            "factor": 1300,
            "interval": 1,
            "reps": 24,
            "lapses": 9,
        },
        {
            "cardId": 102,
            "note": 2001,
            "deckName": "Japanese",
            "modelName": "Basic",
            "factor": 2500,
            "interval": 3,
            "reps": 12,
            "lapses": 8,
        },
        {
            "cardId": 103,
            "note": 2002,
            "deckName": "Japanese::Kanji",
            "modelName": "Basic",
            "factor": 1700,
            "interval": 2,
            "reps": 30,
            "lapses": 11,
        },
    ]


@pytest.fixture
def sample_notes_info():
    """Sample ``notesInfo`` entries matching ``sample_cards_info``."""
    return [
        {
            "noteId": 2001,
            "modelName": "Basic",
            "tags": ["leech", "vocab"],
            "fields": {
                "Front": {"value": "猫", "order": 0},
                "Back": {"value": "cat", "order": 1},
            },
        },
        {
            "noteId": 2002,
            "modelName": "Basic",
            "tags": ["leech"],
            "fields": {
                "Front": {"value": "犬", "order": 0},
                "Back": {"value": "dog", "order": 1},
            },
        },
    ]
