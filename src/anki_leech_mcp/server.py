#!/usr/bin/env python3
"""
FastMCP-powered Anki Leech Server

Exposes two tools over MCP: ``get_leech_cards`` retrieves cards Anki has
tagged as leeches, ``tag_reviewed_cards`` stamps reviewed cards with a dated
tag. All Anki access goes through AnkiConnect.
"""

import json
import logging
import sys
from typing import Any, Dict, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from .config import Settings, configure_logging, load_environment
from .connector import AnkiConnector
from .dispatcher import ToolDispatcher
from .transport import create_transport

logger = logging.getLogger(__name__)

# Initialize FastMCP instance
mcp = FastMCP(
    "Anki Leech MCP Server",
    instructions="""Tools for reviewing Anki leech cards (cards failed repeatedly in review).

1. get_leech_cards: list leech cards, optionally a random subset (count) and
   with full note content (detailed, default true).
2. tag_reviewed_cards: after going over leeches with the user, tag their notes
   with '<prefix>_YYYYMMDD' so reviewed cards can be found in Anki later.

All tools return: {"success": bool, "data": Any, "message": str, "error": str|null}.
Check "success" first; if false, check "error" for details.
""",
)

_dispatcher: Optional[ToolDispatcher] = None


def build_dispatcher(settings: Settings) -> ToolDispatcher:
    """Wire transport, connector and dispatcher for the given settings."""
    connector = AnkiConnector(create_transport(settings))
    return ToolDispatcher(connector, default_tag_prefix=settings.tag_prefix)


def get_dispatcher() -> ToolDispatcher:
    """Get the shared dispatcher, building it from the environment on first use."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = build_dispatcher(Settings.from_env())
    return _dispatcher


def reset_dispatcher(dispatcher: Optional[ToolDispatcher] = None) -> None:
    """Replace the shared dispatcher (None rebuilds it lazily)."""
    global _dispatcher
    _dispatcher = dispatcher


def _checked(response: Dict[str, Any]) -> Dict[str, Any]:
    """Return a success envelope, or raise a failed one as the tool error.

    The error text is the serialized envelope, so clients still get the
    same JSON shape with the MCP error flag set.
    """
    if not response["success"]:
        raise ToolError(json.dumps(response, ensure_ascii=False))
    return response


def get_leech_cards(detailed: bool = True, count: Optional[int] = None) -> Dict[str, Any]:
    """Retrieve cards tagged as leeches from Anki

    Args:
        detailed: Whether to return detailed card information or just IDs
        count: Number of random cards to return (defaults to all)
    """
    return _checked(get_dispatcher().get_leech_cards(detailed=detailed, count=count))


# card_ids stays untyped so malformed input reaches the dispatcher's validation
def tag_reviewed_cards(card_ids: Any = None, custom_tag_prefix: Optional[str] = None) -> Dict[str, Any]:
    """Add a 'reviewed on date' tag to specified cards

    Args:
        card_ids: Array of card IDs to tag as reviewed
        custom_tag_prefix: Custom prefix for the tag (default: '見直し')
    """
    return _checked(get_dispatcher().tag_reviewed_cards(card_ids, custom_tag_prefix=custom_tag_prefix))


# Register tools with FastMCP while keeping functions directly callable for tests
mcp.tool(get_leech_cards)
mcp.tool(tag_reviewed_cards)


def _run_server(settings: Settings) -> Any:
    if settings.mcp_transport == "stdio":
        return mcp.run()
    try:
        return mcp.run(
            transport=settings.mcp_transport,
            host=settings.mcp_host,
            port=settings.mcp_port,
            path=settings.mcp_path,
        )
    except TypeError:
        # Fallback for older FastMCP signatures without a path argument.
        return mcp.run(transport=settings.mcp_transport, host=settings.mcp_host, port=settings.mcp_port)


def main():
    """Run the FastMCP Anki Leech server"""
    try:
        env_file = load_environment()
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        if env_file is not None:
            logger.info("Loaded environment from %s", env_file)
        logger.info("Starting Anki Leech MCP server with configuration:")
        settings.log_summary()

        reset_dispatcher(build_dispatcher(settings))
        _run_server(settings)
    except KeyboardInterrupt:
        print("Anki Leech MCP server stopped", file=sys.stderr)
    except Exception as e:
        print(f"Failed to start Anki Leech MCP server: {e}", file=sys.stderr)
        print(f"Error type: {type(e).__name__}", file=sys.stderr)
        import traceback
        traceback.print_exc(file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
