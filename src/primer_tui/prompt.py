"""System prompt and message-list construction for the storytelling model."""

from __future__ import annotations

from typing import Dict, List, Sequence

SYSTEM_PROMPT = (
    "You are a lovely and warm teacher who is able to expertly weave education into a story. "
    "You are also able to answer questions about the story. You primarily focus on children "
    "between the ages of 2 and 8 and will modify your tone and language to be appropriate for "
    "that age group. You allow for tangents in the story to help the child learn and grow, but "
    "ultimately try and steer them back to the main goal of the story. If the child asks "
    "completely unrelated questions you will answer as best you can, while trying to steer it "
    "back on topic. Be open and friendly, but also firm when needed."
)


def build_input(message: str, history: Sequence[str], system_prompt: str = SYSTEM_PROMPT) -> List[Dict[str, str]]:
    """Build the Responses API ``input`` list.

    ``history`` alternates user and assistant turns starting with the user,
    matching the transcript layout kept by the TUI model.
    """

    messages = [{"role": "system", "content": system_prompt}]
    for idx, text in enumerate(history):
        role = "user" if idx % 2 == 0 else "assistant"
        messages.append({"role": role, "content": text})
    messages.append({"role": "user", "content": message})
    return messages
