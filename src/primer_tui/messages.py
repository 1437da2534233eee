"""Dispatch intents and the events consumed by ``TuiModel.update``.

Intents describe work for the command dispatcher. Every intent has exactly
one result message type; results carry either a payload or the collaborator
exception that ended the work.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

from primer_tui.models import PageRecord, StoryRef, UserRef


# Intents


@dataclass(frozen=True)
class LoadUsers:
    pass


@dataclass(frozen=True)
class LoadStories:
    user_id: str


@dataclass(frozen=True)
class LoadPages:
    story_id: str


@dataclass(frozen=True)
class SendMessage:
    message: str
    history: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CreateStory:
    user_id: str
    title: str


@dataclass(frozen=True)
class SavePage:
    story_id: str
    prompt: str
    completion: str


Intent = Union[LoadUsers, LoadStories, LoadPages, SendMessage, CreateStory, SavePage]


# Input events


@dataclass(frozen=True)
class KeyEvent:
    """A normalized key, e.g. ``KeyEvent("UP")`` or ``KeyEvent("CHAR", "a")``."""

    key: str
    char: Optional[str] = None


@dataclass(frozen=True)
class ViewportResize:
    width: int
    height: int


# Result messages


@dataclass(frozen=True)
class LoadUsersResult:
    users: Tuple[UserRef, ...] = ()
    error: Optional[Exception] = None


@dataclass(frozen=True)
class LoadStoriesResult:
    user_id: str
    stories: Tuple[StoryRef, ...] = ()
    error: Optional[Exception] = None


@dataclass(frozen=True)
class LoadPagesResult:
    story_id: str
    pages: Tuple[PageRecord, ...] = ()
    error: Optional[Exception] = None


@dataclass(frozen=True)
class SendMessageResult:
    text: str = ""
    error: Optional[Exception] = None


@dataclass(frozen=True)
class StreamFragment:
    text: str


@dataclass(frozen=True)
class CreateStoryResult:
    story: Optional[StoryRef] = None
    error: Optional[Exception] = None


@dataclass(frozen=True)
class SavePageResult:
    story_id: str
    errors: Tuple[Exception, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.errors


ResultMessage = Union[
    LoadUsersResult,
    LoadStoriesResult,
    LoadPagesResult,
    SendMessageResult,
    StreamFragment,
    CreateStoryResult,
    SavePageResult,
]

Event = Union[KeyEvent, ViewportResize, ResultMessage]
