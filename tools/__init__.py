"""Tools package: Agent SDK tool definitions for the book workflow."""

from tools.agent_tools import (
    book_creation_tool,
    search_existing_images_tool,
    workflow_progress_tool,
    get_book_tools_server,
    get_controller,
    set_controller,
)

__all__ = [
    "book_creation_tool",
    "search_existing_images_tool",
    "workflow_progress_tool",
    "get_book_tools_server",
    "get_controller",
    "set_controller",
]
