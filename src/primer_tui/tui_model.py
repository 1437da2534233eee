"""Pure-Python state machine for the story TUI."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional

from primer_tui.errors import ValidationFailure
from primer_tui.keys import NEW_STORY_CHARS, QUIT_CHARS, is_char, nav_delta
from primer_tui.messages import (
    CreateStory,
    CreateStoryResult,
    Event,
    Intent,
    KeyEvent,
    LoadPages,
    LoadPagesResult,
    LoadStories,
    LoadStoriesResult,
    LoadUsers,
    LoadUsersResult,
    SavePage,
    SavePageResult,
    SendMessage,
    SendMessageResult,
    StreamFragment,
    ViewportResize,
)
from primer_tui.models import PageRecord, StoryRef, UserRef

logger = logging.getLogger(__name__)

MODE_USER_SELECT = "USER_SELECT"
MODE_STORY_LIST = "STORY_LIST"
MODE_STORY_VIEW = "STORY_VIEW"
MODE_CHAT = "CHAT"


@dataclass
class SessionState:
    mode: str = MODE_USER_SELECT
    selection_index: int = 0
    users: List[UserRef] = field(default_factory=list)
    stories: List[StoryRef] = field(default_factory=list)
    pages: List[PageRecord] = field(default_factory=list)
    current_user: Optional[UserRef] = None
    current_story: Optional[StoryRef] = None
    transcript: List[str] = field(default_factory=list)
    input_buffer: str = ""
    pending_input: str = ""
    streaming_preview: str = ""
    is_busy: bool = False
    status_text: str = ""
    title_entry_active: bool = False
    title_buffer: str = ""
    width: int = 0
    height: int = 0
    quit_requested: bool = False

    def active_list_length(self) -> int:
        if self.mode == MODE_USER_SELECT:
            return len(self.users)
        if self.mode == MODE_STORY_LIST:
            return len(self.stories)
        return 0


def validate_title(title: str) -> str:
    cleaned = title.strip()
    if not cleaned:
        raise ValidationFailure("Story title cannot be empty")
    return cleaned


def transcript_from_pages(pages: List[PageRecord]) -> List[str]:
    transcript: List[str] = []
    for page in pages:
        transcript.extend([page.prompt, page.completion])
    return transcript


class TuiModel:
    """Session state plus the single transition entry point.

    ``update`` takes a key event, a viewport change or a dispatch result,
    mutates ``state`` and returns the intents the runner must dispatch.
    Nothing here performs I/O.
    """

    def __init__(self, state: SessionState | None = None) -> None:
        self.state = state or SessionState()

    def initial_intents(self) -> List[Intent]:
        self.state.status_text = "Loading users..."
        return [LoadUsers()]

    def update(self, event: Event) -> List[Intent]:
        if isinstance(event, KeyEvent):
            return self.handle_key(event)
        if isinstance(event, ViewportResize):
            self.state.width = event.width
            self.state.height = event.height
            return []
        if isinstance(event, LoadUsersResult):
            return self._on_users_loaded(event)
        if isinstance(event, LoadStoriesResult):
            return self._on_stories_loaded(event)
        if isinstance(event, LoadPagesResult):
            return self._on_pages_loaded(event)
        if isinstance(event, SendMessageResult):
            return self._on_message_result(event)
        if isinstance(event, StreamFragment):
            if self.state.is_busy:
                self.state.streaming_preview += event.text
            return []
        if isinstance(event, CreateStoryResult):
            return self._on_story_created(event)
        if isinstance(event, SavePageResult):
            return self._on_page_saved(event)
        raise TypeError(f"unsupported event: {event!r}")

    def render(self) -> SessionState:
        """Return a detached copy of the state for the view."""

        state = self.state
        current_story = replace(state.current_story) if state.current_story is not None else None
        return replace(
            state,
            users=list(state.users),
            stories=[replace(story) for story in state.stories],
            pages=list(state.pages),
            transcript=list(state.transcript),
            current_story=current_story,
        )

    # Keys

    def handle_key(self, event: KeyEvent) -> List[Intent]:
        state = self.state
        if event.key == "CTRL_C":
            state.quit_requested = True
            return []
        text_entry = state.mode == MODE_CHAT or (state.mode == MODE_STORY_LIST and state.title_entry_active)
        if not text_entry and is_char(event, QUIT_CHARS):
            state.quit_requested = True
            return []
        if state.mode == MODE_USER_SELECT:
            return self._user_select_key(event)
        if state.mode == MODE_STORY_LIST:
            if state.title_entry_active:
                return self._title_entry_key(event)
            return self._story_list_key(event)
        if state.mode == MODE_STORY_VIEW:
            return self._story_view_key(event)
        if state.mode == MODE_CHAT:
            return self._chat_key(event)
        raise ValueError(f"unknown mode: {state.mode}")

    def _move_selection(self, delta: int) -> None:
        length = self.state.active_list_length()
        if length == 0:
            self.state.selection_index = 0
            return
        self.state.selection_index = max(0, min(length - 1, self.state.selection_index + delta))

    def _user_select_key(self, event: KeyEvent) -> List[Intent]:
        state = self.state
        delta = nav_delta(event)
        if delta:
            self._move_selection(delta)
            return []
        if event.key != "ENTER" or not state.users:
            return []
        user = state.users[state.selection_index]
        state.current_user = user
        state.stories = []
        state.mode = MODE_STORY_LIST
        state.selection_index = 0
        state.status_text = "Loading stories..."
        logger.debug("user selected id=%s", user.id)
        return [LoadStories(user.id)]

    def _story_list_key(self, event: KeyEvent) -> List[Intent]:
        state = self.state
        delta = nav_delta(event)
        if delta:
            self._move_selection(delta)
            return []
        if event.key == "ESC":
            state.mode = MODE_USER_SELECT
            state.current_user = None
            state.current_story = None
            state.stories = []
            state.selection_index = 0
            state.status_text = ""
            return []
        if is_char(event, NEW_STORY_CHARS):
            state.title_entry_active = True
            state.title_buffer = ""
            state.status_text = "Enter a title for the new story"
            return []
        if event.key != "ENTER" or not state.stories:
            return []
        story = state.stories[state.selection_index]
        state.current_story = story
        state.pages = []
        state.transcript = []
        state.mode = MODE_STORY_VIEW
        state.selection_index = 0
        state.status_text = "Loading pages..."
        logger.debug("story selected id=%s", story.id)
        return [LoadPages(story.id)]

    def _title_entry_key(self, event: KeyEvent) -> List[Intent]:
        state = self.state
        if event.key == "ESC":
            state.title_entry_active = False
            state.title_buffer = ""
            state.status_text = ""
            return []
        if event.key == "BACKSPACE":
            state.title_buffer = state.title_buffer[:-1]
            return []
        if event.key == "ENTER":
            try:
                title = validate_title(state.title_buffer)
            except ValidationFailure as exc:
                state.status_text = str(exc)
                return []
            if state.current_user is None:
                return []
            state.title_entry_active = False
            state.title_buffer = ""
            state.status_text = "Creating story..."
            return [CreateStory(state.current_user.id, title)]
        if event.key == "CHAR" and event.char:
            state.title_buffer += event.char
        return []

    def _story_view_key(self, event: KeyEvent) -> List[Intent]:
        state = self.state
        if event.key == "ENTER":
            state.mode = MODE_CHAT
            state.streaming_preview = ""
            state.status_text = ""
            return []
        if event.key == "ESC":
            state.mode = MODE_STORY_LIST
            state.current_story = None
            state.pages = []
            state.transcript = []
            state.selection_index = 0
            state.status_text = ""
        return []

    def _chat_key(self, event: KeyEvent) -> List[Intent]:
        state = self.state
        if state.is_busy:
            return []
        if event.key == "ESC":
            if state.input_buffer:
                state.input_buffer = ""
            else:
                state.mode = MODE_STORY_VIEW
            return []
        if event.key == "BACKSPACE":
            state.input_buffer = state.input_buffer[:-1]
            return []
        if event.key == "ENTER":
            if not state.input_buffer:
                return []
            message = state.input_buffer
            state.is_busy = True
            state.pending_input = message
            state.input_buffer = ""
            state.streaming_preview = ""
            state.status_text = "Thinking..."
            return [SendMessage(message, tuple(state.transcript))]
        if event.key == "CHAR" and event.char:
            state.input_buffer += event.char
        return []

    # Results

    def _on_users_loaded(self, result: LoadUsersResult) -> List[Intent]:
        state = self.state
        if result.error is not None:
            state.status_text = f"Error loading users: {result.error}"
            return []
        previous = len(state.users)
        state.users = list(result.users)
        if state.mode == MODE_USER_SELECT:
            if len(state.users) != previous:
                state.selection_index = 0
            else:
                self._move_selection(0)
        state.status_text = f"Loaded {len(state.users)} users"
        return []

    def _on_stories_loaded(self, result: LoadStoriesResult) -> List[Intent]:
        state = self.state
        if state.current_user is None or state.current_user.id != result.user_id:
            logger.debug("dropping stale stories result user_id=%s", result.user_id)
            return []
        if result.error is not None:
            state.status_text = f"Error loading stories: {result.error}"
            return []
        state.stories = list(result.stories)
        if state.mode == MODE_STORY_LIST:
            state.selection_index = 0
        state.status_text = f"Loaded {len(state.stories)} stories"
        return []

    def _on_pages_loaded(self, result: LoadPagesResult) -> List[Intent]:
        state = self.state
        if state.current_story is None or state.current_story.id != result.story_id:
            logger.debug("dropping stale pages result story_id=%s", result.story_id)
            return []
        if result.error is not None:
            state.status_text = f"Error loading pages: {result.error}"
            return []
        state.pages = list(result.pages)
        state.transcript = transcript_from_pages(state.pages)
        state.status_text = f"Loaded {len(state.pages)} pages"
        return []

    def _on_message_result(self, result: SendMessageResult) -> List[Intent]:
        state = self.state
        if not state.is_busy:
            logger.debug("dropping message result with no turn in flight")
            return []
        state.is_busy = False
        state.streaming_preview = ""
        prompt = state.pending_input
        state.pending_input = ""
        if result.error is not None:
            state.status_text = f"AI Error: {result.error}"
            state.input_buffer = prompt
            return []
        state.transcript.extend([prompt, result.text])
        state.status_text = "Response received"
        if state.current_story is None:
            return []
        state.current_story.current_page += 1
        return [SavePage(state.current_story.id, prompt, result.text)]

    def _on_story_created(self, result: CreateStoryResult) -> List[Intent]:
        state = self.state
        if result.error is not None or result.story is None:
            state.status_text = f"Error creating story: {result.error}"
            return []
        story = result.story
        if state.current_user is None or state.current_user.id != story.user_id:
            logger.debug("story created for inactive user id=%s", story.user_id)
            state.status_text = f"Created story: {story.title}"
            return []
        state.stories.insert(0, story)
        # Outside StoryList a story is already open and stays current.
        if state.mode == MODE_STORY_LIST:
            state.current_story = story
            state.selection_index = 0
        state.status_text = f"Created story: {story.title}"
        return []

    def _on_page_saved(self, result: SavePageResult) -> List[Intent]:
        if result.errors:
            details = "; ".join(str(exc) for exc in result.errors)
            self.state.status_text = f"Error saving page: {details}"
            return []
        logger.debug("page saved story_id=%s", result.story_id)
        return []
