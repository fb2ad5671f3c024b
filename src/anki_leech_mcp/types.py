"""
Shared type definitions for the Anki Leech MCP server.

This module provides the response envelope returned by every tool and the
shape of a hydrated card.
"""

from typing import Any, Dict, List, Optional, TypedDict


class ToolResponse(TypedDict, total=False):
    """Standard response type for MCP tools.

    Success and error results share this structure.

    Attributes:
        success: Whether the operation completed successfully
        data: The actual data returned by the tool (type varies by tool)
        message: Human-readable summary of what happened
        error: Error message if success is False, None otherwise
    """

    success: bool
    data: Any
    message: str
    error: Optional[str]


class FieldValue(TypedDict):
    value: str
    order: int


class CardStatistics(TypedDict):
    """Review statistics of a card."""

    ease: float
    interval: int
    reviews: int
    lapses: int


class CardRecord(TypedDict):
    """A card joined with its note."""

    id: int
    noteId: int
    deck: str
    modelName: str
    fields: Dict[str, FieldValue]
    tags: List[str]
    front: str
    back: str
    statistics: CardStatistics
