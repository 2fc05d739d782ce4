"""Custom tool definitions for Claude Agent SDK.

The workflow actions are exposed as @tool functions registered into an
in-process MCP server, so an agent drives book creation by calling
``book_creation`` with one action at a time.
"""

import json
import logging
from typing import Optional

from claude_agent_sdk import tool, create_sdk_mcp_server

from workflow.controller import WorkflowController

logger = logging.getLogger(__name__)

_controller: Optional[WorkflowController] = None

BOOK_CREATION_SCHEMA = {
    "type": "object",
    "properties": {
        "action": {
            "type": "string",
            "enum": ["initialize", "update_step", "approve_step", "regenerate", "finalize"],
        },
        "bookId": {"type": "string"},
        "bookTitle": {"type": "string"},
        "bookConcept": {"type": "string"},
        "targetAge": {"type": "string"},
        "isPictureBook": {"type": "boolean"},
        "stepNumber": {"type": "integer", "minimum": 1, "maximum": 6},
        "stepData": {"type": "object"},
        "searchedMemory": {"type": "boolean"},
        "approved": {"type": "boolean"},
        "feedback": {"type": "string"},
    },
    "required": ["action"],
}

SEARCH_IMAGES_SCHEMA = {
    "type": "object",
    "properties": {
        "bookId": {"type": "string"},
        "searchQuery": {"type": "string"},
        "imageType": {"type": "string", "enum": ["character", "environment", "scene", "any"]},
        "maxResults": {"type": "integer", "minimum": 1},
    },
    "required": ["bookId", "searchQuery", "imageType"],
}

# Tool argument name -> controller keyword, per action
_ACTION_ARGS = {
    "initialize": {
        "bookId": "book_id", "bookTitle": "book_title", "bookConcept": "book_concept",
        "targetAge": "target_age", "isPictureBook": "is_picture_book",
    },
    "update_step": {
        "bookId": "book_id", "stepNumber": "step_number", "stepData": "step_data",
        "searchedMemory": "searched_memory",
    },
    "approve_step": {
        "bookId": "book_id", "stepNumber": "step_number", "approved": "approved",
        "feedback": "feedback",
    },
    "regenerate": {"bookId": "book_id", "stepNumber": "step_number"},
    "finalize": {"bookId": "book_id"},
}


def set_controller(controller: Optional[WorkflowController]) -> None:
    """Install the controller the tools act on (None resets to the default)."""
    global _controller
    _controller = controller


def get_controller() -> WorkflowController:
    """Get the tools' controller, building one from settings on first use."""
    global _controller
    if _controller is None:
        from config.settings import get_settings
        from memory.chroma_store import ChromaStore
        from models.database import Database
        from workflow.store import WorkflowStore

        s = get_settings()
        _controller = WorkflowController(
            WorkflowStore(Database(s.sqlite_db_path)),
            memory=ChromaStore(s.chroma_persist_dir),
            settings=s,
        )
    return _controller


def _text_result(payload: dict) -> dict:
    return {"content": [{"type": "text", "text": json.dumps(payload, ensure_ascii=False, default=str)}]}


@tool(
    "book_creation",
    "Drive the six-step book creation workflow: initialize, update_step, "
    "approve_step, regenerate or finalize. Step data is merged into the step "
    "without erasing existing content; picture books need imageUrl on every "
    "character, environment and scene before those steps complete.",
    BOOK_CREATION_SCHEMA,
)
async def book_creation_tool(args):
    """Run one workflow action."""
    action = args.get("action", "")
    kwargs = {
        kwarg: args[arg]
        for arg, kwarg in _ACTION_ARGS.get(action, {}).items()
        if arg in args
    }
    step_data = kwargs.get("step_data")
    if isinstance(step_data, str):
        try:
            kwargs["step_data"] = json.loads(step_data)
        except json.JSONDecodeError:
            return _text_result({
                "success": False,
                "error": "stepData must be a JSON object",
                "errorType": "validation_error",
            })
    result = get_controller().execute(action, **kwargs)
    return _text_result(result)


@tool(
    "search_existing_images",
    "Search previously generated character, environment and scene images "
    "for reuse before creating new ones.",
    SEARCH_IMAGES_SCHEMA,
)
async def search_existing_images_tool(args):
    """Search the props table and memory for reusable images."""
    result = get_controller().search_existing_images(
        args["bookId"],
        args["searchQuery"],
        image_type=args.get("imageType", "any"),
        max_results=args.get("maxResults", 10),
    )
    return _text_result(result)


@tool("workflow_progress", "Report step statuses and overall progress for a book.", {"bookId": str})
async def workflow_progress_tool(args):
    """Summarize workflow progress for a book."""
    return _text_result(get_controller().progress(args["bookId"]))


def get_book_tools_server():
    """Create an MCP server with all book workflow tools registered.

    Returns:
        McpSdkServerConfig for use with ClaudeAgentOptions.mcp_servers.
    """
    return create_sdk_mcp_server(
        name="book-workflow-tools",
        version="1.0.0",
        tools=[
            book_creation_tool,
            search_existing_images_tool,
            workflow_progress_tool,
        ],
    )
