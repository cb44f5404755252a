# prompts.py
#
# Description: Conversation types and prompt helpers shared by the chat
#              surfaces. Builds the system + user message pair sent to the
#              model and the short message previews used in log context.
#

# --------------------------------------------------------------------------- #
# imports
# --------------------------------------------------------------------------- #
from __future__ import annotations
from typing import TypedDict, List, Optional

# --------------------------------------------------------------------------- #
# constants and type definitions
# --------------------------------------------------------------------------- #
ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

DEFAULT_SYSTEM_PROMPT = (
    "You are a kind and helpful assistant. "
    "Give clear, easy-to-follow answers to the user's questions "
    "and keep a polite tone."
)
PREVIEW_LENGTH = 100

class ChatMessage(TypedDict):
    """A dictionary representing one turn in a conversation."""
    role: str
    content: str

History = List[ChatMessage]

# --------------------------------------------------------------------------- #
# prompt formatting
# --------------------------------------------------------------------------- #
def build_messages(message: str, system_prompt: Optional[str] = None) -> History:
    """
    Builds the message list for a single-shot chat completion:
    the system prompt followed by the user's message.
    """
    return [
        {"role": ROLE_SYSTEM, "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
        {"role": ROLE_USER, "content": message},
    ]


def preview(text: str, limit: int = PREVIEW_LENGTH) -> str:
    """Shorten ``text`` for log context, marking the cut with '...'."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
