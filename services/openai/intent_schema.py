"""Schema definition for the reply classification tool."""

from typing import Any, Dict

FUNCTION_NAME = "classify_user_reply"

FUNCTION_DEFINITION: Dict[str, Any] = {
    "type": "function",
    "name": FUNCTION_NAME,
    "description": "Return the structured intent behind the user's reply.",
    "parameters": {
        "type": "object",
        "properties": {
            "selected_topic": {
                "type": ["string", "null"],
                "description": "The concrete subject the user named, or null when none was named.",
            },
            "confirmed_topic": {
                "type": "boolean",
                "description": "True only for a plain agreement to the subject proposed in the previous turn.",
            },
            "wants_different_group": {
                "type": "boolean",
                "description": "The user asked for a different kind or category of subject.",
            },
            "wants_different_topics": {
                "type": "boolean",
                "description": "The user wants other options without naming a new category.",
            },
            "interests": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Interests or hobbies the user mentioned, if any.",
            },
        },
        "required": [
            "selected_topic",
            "confirmed_topic",
            "wants_different_group",
            "wants_different_topics",
            "interests",
        ],
        "additionalProperties": False,
    },
    "strict": True,
}
