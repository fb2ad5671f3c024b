"""MCP server exposing Anki leech cards through AnkiConnect."""

__version__ = "0.1.0"
