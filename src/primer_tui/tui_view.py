"""Pure rendering of a ``SessionState`` into styled text lines.

Nothing in this module touches curses; ``tui_app`` maps line roles onto
terminal attributes through ``StyleConfig``.
"""

from __future__ import annotations

import textwrap
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from primer_tui.keys import (
    HELP_CHAT,
    HELP_STORY_LIST,
    HELP_STORY_VIEW,
    HELP_TITLE_ENTRY,
    HELP_USER_SELECT,
)
from primer_tui.tui_model import MODE_CHAT, MODE_STORY_LIST, MODE_STORY_VIEW, MODE_USER_SELECT, SessionState

DEFAULT_WRAP_WIDTH = 80
WRAP_MARGIN = 10

ROLE_HEADER = "header"
ROLE_NORMAL = "normal"
ROLE_SELECTED = "selected"
ROLE_PAGE = "page"
ROLE_USER = "user"
ROLE_AI = "ai"
ROLE_INPUT = "input"
ROLE_SPINNER = "spinner"
ROLE_HELP = "help"
ROLE_STATUS = "status"

EMPTY_USERS = "No users found. Run with --seed to load sample data."
EMPTY_STORIES = "No stories yet. Press 'n' to create one."
EMPTY_PAGES = "No pages yet. Press Enter to start the story."
WAITING = "Waiting for response..."
TITLE_PROMPT = "New Story Title:"
INPUT_PLACEHOLDER = "Type your message..."


@dataclass(frozen=True)
class Line:
    text: str
    role: str = ROLE_NORMAL


Frame = Tuple[Line, ...]


@dataclass(frozen=True)
class StyleConfig:
    """Role to terminal attribute mapping plus list markers."""

    attrs: Dict[str, int] = field(default_factory=dict)
    selected_marker: str = "▸ "
    unselected_marker: str = "  "
    input_prefix: str = "> "
    spinner: str = "..."

    def attr_for(self, role: str) -> int:
        return self.attrs.get(role, 0)


def wrap_text(text: str, width: int) -> List[str]:
    """Word-wrap ``text`` keeping its own line breaks; words longer than ``width`` are split."""

    if width <= 0:
        width = DEFAULT_WRAP_WIDTH
    wrapped: List[str] = []
    for paragraph in text.split("\n"):
        lines = textwrap.wrap(paragraph, width=width, break_on_hyphens=False)
        wrapped.extend(lines or [""])
    return wrapped


def _wrap_width(state: SessionState) -> int:
    if state.width <= 0:
        return DEFAULT_WRAP_WIDTH
    return state.width - WRAP_MARGIN


def _labelled(label: str, text: str, role: str, width: int) -> List[Line]:
    body = wrap_text(text, width)
    lines = [Line(f"{label}{body[0]}", role)]
    lines.extend(Line(chunk, ROLE_NORMAL) for chunk in body[1:])
    return lines


def _list_rows(labels: List[str], selected: int, style: StyleConfig) -> List[Line]:
    rows: List[Line] = []
    for idx, label in enumerate(labels):
        if idx == selected:
            rows.append(Line(f"{style.selected_marker}{label}", ROLE_SELECTED))
        else:
            rows.append(Line(f"{style.unselected_marker}{label}", ROLE_NORMAL))
    return rows


def _user_select(state: SessionState, style: StyleConfig) -> List[Line]:
    lines = [Line("Illustrated Primer - Select User", ROLE_HEADER), Line("")]
    if not state.users:
        lines.append(Line(EMPTY_USERS))
    else:
        labels = [f"{user.display_name()} <{user.display_email()}>" for user in state.users]
        lines.extend(_list_rows(labels, state.selection_index, style))
    lines.extend([Line(""), Line(HELP_USER_SELECT, ROLE_HELP)])
    return lines


def _story_list(state: SessionState, style: StyleConfig) -> List[Line]:
    name = state.current_user.display_name() if state.current_user is not None else ""
    lines = [Line(f"Stories - {name}", ROLE_HEADER), Line("")]
    if state.title_entry_active:
        lines.append(Line(TITLE_PROMPT))
        lines.append(Line(f"{style.input_prefix}{state.title_buffer}", ROLE_INPUT))
        lines.append(Line(""))
    if not state.stories:
        lines.append(Line(EMPTY_STORIES))
    else:
        labels = [f"{story.title} - {story.page_count_display()}" for story in state.stories]
        lines.extend(_list_rows(labels, state.selection_index, style))
    lines.append(Line(""))
    lines.append(Line(HELP_TITLE_ENTRY if state.title_entry_active else HELP_STORY_LIST, ROLE_HELP))
    return lines


def _story_view(state: SessionState, style: StyleConfig) -> List[Line]:
    title = state.current_story.title if state.current_story is not None else ""
    width = _wrap_width(state)
    lines = [Line(f"Story: {title}", ROLE_HEADER), Line("")]
    if not state.pages:
        lines.append(Line(EMPTY_PAGES))
    for page in state.pages:
        lines.append(Line(f"--- Page {page.page_num} ---", ROLE_PAGE))
        lines.append(Line(""))
        lines.extend(_labelled("You: ", page.prompt, ROLE_USER, width))
        lines.append(Line(""))
        lines.extend(_labelled("AI: ", page.completion, ROLE_AI, width))
        lines.append(Line(""))
    lines.extend([Line(""), Line(HELP_STORY_VIEW, ROLE_HELP)])
    return lines


def _chat(state: SessionState, style: StyleConfig) -> List[Line]:
    title = state.current_story.title if state.current_story is not None else ""
    width = _wrap_width(state)
    lines = [Line(f"Chat: {title}", ROLE_HEADER), Line("")]
    for idx in range(0, len(state.transcript), 2):
        lines.extend(_labelled("You: ", state.transcript[idx], ROLE_USER, width))
        lines.append(Line(""))
        reply = state.transcript[idx + 1] if idx + 1 < len(state.transcript) else ""
        lines.extend(_labelled("AI: ", reply, ROLE_AI, width))
        lines.append(Line(""))
    if state.is_busy and state.pending_input:
        lines.extend(_labelled("You: ", state.pending_input, ROLE_USER, width))
        lines.append(Line(""))
        lines.extend(_labelled("AI: ", state.streaming_preview, ROLE_AI, width))
        lines.append(Line(style.spinner, ROLE_SPINNER))
        lines.append(Line(""))
    lines.append(Line(""))
    if state.is_busy:
        lines.append(Line(WAITING))
    elif state.input_buffer:
        lines.append(Line(f"{style.input_prefix}{state.input_buffer}", ROLE_INPUT))
    else:
        lines.append(Line(f"{style.input_prefix}{INPUT_PLACEHOLDER}", ROLE_INPUT))
    lines.extend([Line(""), Line(HELP_CHAT, ROLE_HELP)])
    return lines


_RENDERERS = {
    MODE_USER_SELECT: _user_select,
    MODE_STORY_LIST: _story_list,
    MODE_STORY_VIEW: _story_view,
    MODE_CHAT: _chat,
}


def render_frame(state: SessionState, style: StyleConfig | None = None) -> Frame:
    """Render the body for ``state.mode`` followed by the status line."""

    style = style or StyleConfig()
    try:
        renderer = _RENDERERS[state.mode]
    except KeyError:
        raise ValueError(f"unknown mode: {state.mode}") from None
    lines = renderer(state, style)
    lines.append(Line(state.status_text, ROLE_STATUS))
    return tuple(lines)


def fit_to_height(frame: Frame, height: int, pinned: int = 2) -> Frame:
    """Keep the first ``pinned`` lines and as much of the tail as fits."""

    if height <= 0 or len(frame) <= height:
        return frame
    if height <= pinned:
        return frame[:height]
    return frame[:pinned] + frame[len(frame) - (height - pinned) :]


def frame_text(frame: Frame) -> str:
    return "\n".join(line.text for line in frame)
