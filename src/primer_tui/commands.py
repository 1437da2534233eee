"""Runs dispatch intents off the UI thread and queues their result messages."""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Callable, List, Optional, Protocol, Sequence, Set

from primer_tui.messages import (
    CreateStory,
    CreateStoryResult,
    Intent,
    LoadPages,
    LoadPagesResult,
    LoadStories,
    LoadStoriesResult,
    LoadUsers,
    LoadUsersResult,
    ResultMessage,
    SavePage,
    SavePageResult,
    SendMessage,
    SendMessageResult,
    StreamFragment,
)
from primer_tui.models import PageRecord, StoryRef, UserRef
from primer_tui.redact import redact_text

logger = logging.getLogger(__name__)

_WRITE_INTENTS = (CreateStory, SavePage)


class StoryStore(Protocol):
    def list_users(self) -> List[UserRef]: ...

    def list_stories(self, user_id: str) -> List[StoryRef]: ...

    def list_pages(self, story_id: str) -> List[PageRecord]: ...

    def create_story(self, user_id: str, title: str, summary: str = "") -> StoryRef: ...

    def create_page(
        self, story_id: str, page_num: int, prompt: str, completion: str, summary: str = ""
    ) -> PageRecord: ...

    def next_page_number(self, story_id: str) -> int: ...

    def increment_story_page_count(self, story_id: str) -> None: ...


class GenerationClient(Protocol):
    def collect_stream(
        self,
        message: str,
        history: Sequence[str],
        on_fragment: Optional[Callable[[str], None]] = None,
    ) -> str: ...


class CommandDispatcher:
    """Turns intents into result messages.

    ``execute`` does the work synchronously and never raises for collaborator
    failures; they come back inside the result message. ``dispatch`` runs
    ``execute`` on a daemon thread and puts the result on ``event_queue``.
    Worker threads only ever talk to the UI loop through that queue. Write
    intents are tracked until they finish so shutdown can wait for them
    with ``join_pending``.
    """

    def __init__(
        self,
        store: StoryStore,
        ai: GenerationClient,
        event_queue: "queue.Queue[ResultMessage]",
        *,
        stream_preview: bool = True,
    ) -> None:
        self._store = store
        self._ai = ai
        self._queue = event_queue
        self._stream_preview = stream_preview
        self._pending: Set[threading.Thread] = set()
        self._pending_lock = threading.Lock()

    def dispatch(self, intent: Intent) -> threading.Thread:
        def _run() -> None:
            try:
                self._queue.put(self.execute(intent))
            finally:
                with self._pending_lock:
                    self._pending.discard(thread)

        thread = threading.Thread(target=_run, name=f"cmd-{type(intent).__name__}", daemon=True)
        if isinstance(intent, _WRITE_INTENTS):
            with self._pending_lock:
                self._pending.add(thread)
        thread.start()
        return thread

    def dispatch_all(self, intents: Sequence[Intent]) -> None:
        for intent in intents:
            self.dispatch(intent)

    def join_pending(self, timeout: float) -> int:
        """Wait up to ``timeout`` seconds for in-flight writes; return how many are still running."""

        deadline = time.monotonic() + timeout
        with self._pending_lock:
            threads = list(self._pending)
        for thread in threads:
            thread.join(max(0.0, deadline - time.monotonic()))
        remaining = sum(1 for thread in threads if thread.is_alive())
        if remaining:
            logger.warning("writes still running at shutdown count=%d", remaining)
        return remaining

    def execute(self, intent: Intent) -> ResultMessage:
        if isinstance(intent, LoadUsers):
            return self._load_users()
        if isinstance(intent, LoadStories):
            return self._load_stories(intent)
        if isinstance(intent, LoadPages):
            return self._load_pages(intent)
        if isinstance(intent, SendMessage):
            return self._send_message(intent)
        if isinstance(intent, CreateStory):
            return self._create_story(intent)
        if isinstance(intent, SavePage):
            return self._save_page(intent)
        raise TypeError(f"unsupported intent: {intent!r}")

    def _load_users(self) -> LoadUsersResult:
        try:
            users = self._store.list_users()
        except Exception as exc:
            logger.error("failed to load users: %s", exc)
            return LoadUsersResult(error=exc)
        return LoadUsersResult(users=tuple(users))

    def _load_stories(self, intent: LoadStories) -> LoadStoriesResult:
        try:
            stories = self._store.list_stories(intent.user_id)
        except Exception as exc:
            logger.error("failed to load stories user_id=%s: %s", intent.user_id, exc)
            return LoadStoriesResult(user_id=intent.user_id, error=exc)
        return LoadStoriesResult(user_id=intent.user_id, stories=tuple(stories))

    def _load_pages(self, intent: LoadPages) -> LoadPagesResult:
        try:
            pages = self._store.list_pages(intent.story_id)
        except Exception as exc:
            logger.error("failed to load pages story_id=%s: %s", intent.story_id, exc)
            return LoadPagesResult(story_id=intent.story_id, error=exc)
        return LoadPagesResult(story_id=intent.story_id, pages=tuple(pages))

    def _send_message(self, intent: SendMessage) -> SendMessageResult:
        on_fragment = self._queue_fragment if self._stream_preview else None
        try:
            text = self._ai.collect_stream(intent.message, list(intent.history), on_fragment)
        except Exception as exc:
            logger.error("AI error: %s", redact_text(str(exc)))
            return SendMessageResult(error=exc)
        return SendMessageResult(text=text)

    def _queue_fragment(self, fragment: str) -> None:
        self._queue.put(StreamFragment(fragment))

    def _create_story(self, intent: CreateStory) -> CreateStoryResult:
        try:
            story = self._store.create_story(intent.user_id, intent.title)
        except Exception as exc:
            logger.error("failed to create story user_id=%s: %s", intent.user_id, exc)
            return CreateStoryResult(error=exc)
        logger.info("story created id=%s", story.id)
        return CreateStoryResult(story=story)

    def _save_page(self, intent: SavePage) -> SavePageResult:
        try:
            page_num = self._store.next_page_number(intent.story_id)
        except Exception as exc:
            logger.error("failed to get next page number story_id=%s: %s", intent.story_id, exc)
            return SavePageResult(story_id=intent.story_id, errors=(exc,))

        errors: list[Exception] = []
        try:
            self._store.create_page(intent.story_id, page_num, intent.prompt, intent.completion)
        except Exception as exc:
            logger.error("failed to save page story_id=%s page_num=%d: %s", intent.story_id, page_num, exc)
            errors.append(exc)
        # The counter write is attempted even when the page insert failed.
        try:
            self._store.increment_story_page_count(intent.story_id)
        except Exception as exc:
            logger.error("failed to increment page count story_id=%s: %s", intent.story_id, exc)
            errors.append(exc)
        if not errors:
            logger.info("page saved story_id=%s page_num=%d", intent.story_id, page_num)
        return SavePageResult(story_id=intent.story_id, errors=tuple(errors))
