"""Shared fakes for dispatcher and model tests."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence

from primer_tui.errors import NotFoundError, StorageFailure
from primer_tui.messages import KeyEvent
from primer_tui.models import PageRecord, StoryRef, UserRef, new_page, new_story


def key(name: str) -> KeyEvent:
    return KeyEvent(name)


def char(value: str) -> KeyEvent:
    return KeyEvent("CHAR", value)


def typed(text: str) -> List[KeyEvent]:
    return [char(ch) for ch in text]


class FakeStore:
    """In-memory stand-in for ``SQLiteStoryStore``.

    ``fail`` maps a method name to the exception that method raises.
    """

    def __init__(self) -> None:
        self.users: List[UserRef] = []
        self.stories: Dict[str, StoryRef] = {}
        self.pages: List[PageRecord] = []
        self.fail: Dict[str, Exception] = {}
        self.calls: List[str] = []

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail:
            raise self.fail[name]

    def list_users(self) -> List[UserRef]:
        self._check("list_users")
        return list(self.users)

    def list_stories(self, user_id: str) -> List[StoryRef]:
        self._check("list_stories")
        return [story for story in self.stories.values() if story.user_id == user_id]

    def list_pages(self, story_id: str) -> List[PageRecord]:
        self._check("list_pages")
        return sorted((page for page in self.pages if page.story_id == story_id), key=lambda p: p.page_num)

    def create_story(self, user_id: str, title: str, summary: str = "") -> StoryRef:
        self._check("create_story")
        story = new_story(user_id, title, summary)
        self.stories[story.id] = story
        return story

    def create_page(self, story_id: str, page_num: int, prompt: str, completion: str, summary: str = "") -> PageRecord:
        self._check("create_page")
        page = new_page(story_id, page_num, prompt, completion, summary)
        self.pages.append(page)
        return page

    def next_page_number(self, story_id: str) -> int:
        self._check("next_page_number")
        nums = [page.page_num for page in self.pages if page.story_id == story_id]
        return max(nums, default=0) + 1

    def increment_story_page_count(self, story_id: str) -> None:
        self._check("increment_story_page_count")
        if story_id not in self.stories:
            raise NotFoundError("story", story_id)
        self.stories[story_id].current_page += 1


class FakeAI:
    def __init__(self, fragments: Sequence[str] = ("Hi", " there"), error: Optional[Exception] = None) -> None:
        self.fragments = list(fragments)
        self.error = error
        self.calls: List[tuple[str, List[str]]] = []

    def collect_stream(
        self,
        message: str,
        history: Sequence[str],
        on_fragment: Optional[Callable[[str], None]] = None,
    ) -> str:
        self.calls.append((message, list(history)))
        for fragment in self.fragments:
            if on_fragment is not None:
                on_fragment(fragment)
        if self.error is not None:
            raise self.error
        return "".join(self.fragments)


def storage_failure(text: str = "disk I/O error") -> StorageFailure:
    return StorageFailure(text)
