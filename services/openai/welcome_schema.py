"""Schema definition for the welcome small-talk tool."""

from typing import Any, Dict

FUNCTION_NAME = "continue_welcome_chat"

FUNCTION_DEFINITION: Dict[str, Any] = {
    "type": "function",
    "name": FUNCTION_NAME,
    "description": "Reply to the user and report whether they want to start drawing.",
    "parameters": {
        "type": "object",
        "properties": {
            "reply": {
                "type": "string",
                "description": "What the companion says next, one or two short sentences.",
            },
            "wants_to_draw": {
                "type": "boolean",
                "description": "True when the user showed interest in drawing now.",
            },
            "interests": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Interests or hobbies the user mentioned, if any.",
            },
        },
        "required": ["reply", "wants_to_draw", "interests"],
        "additionalProperties": False,
    },
    "strict": True,
}
