"""Entity records shared by the store, the dispatcher and the TUI model."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional


def _now_s() -> int:
    return int(time.time())


@dataclass(frozen=True)
class UserRef:
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    created_at: int = 0
    updated_at: int = 0

    def display_name(self) -> str:
        """Return the name, falling back to the email and then the id."""

        if self.name:
            return self.name
        if self.email:
            return self.email
        return self.id

    def display_email(self) -> str:
        return self.email or ""


@dataclass
class StoryRef:
    """A story owned by a user; ``current_page`` grows as pages are saved."""

    id: str
    user_id: str
    title: str
    summary: str = ""
    current_page: int = 1
    created_at: int = 0
    updated_at: int = 0

    def page_count_display(self) -> str:
        if self.current_page == 1:
            return "1 page"
        return f"{self.current_page} pages"


@dataclass(frozen=True)
class PageRecord:
    id: str
    story_id: str
    page_num: int
    prompt: str
    completion: str
    summary: str = ""
    created_at: int = 0
    updated_at: int = 0


def new_user(name: str, email: str) -> UserRef:
    now = _now_s()
    return UserRef(id=str(uuid.uuid4()), name=name, email=email, created_at=now, updated_at=now)


def new_story(user_id: str, title: str, summary: str = "") -> StoryRef:
    now = _now_s()
    return StoryRef(
        id=str(uuid.uuid4()),
        user_id=user_id,
        title=title,
        summary=summary,
        current_page=1,
        created_at=now,
        updated_at=now,
    )


def new_page(story_id: str, page_num: int, prompt: str, completion: str, summary: str = "") -> PageRecord:
    now = _now_s()
    return PageRecord(
        id=str(uuid.uuid4()),
        story_id=story_id,
        page_num=page_num,
        prompt=prompt,
        completion=completion,
        summary=summary,
        created_at=now,
        updated_at=now,
    )


def user_from_dict(entry: Dict[str, Any]) -> UserRef:
    now = _now_s()
    return UserRef(
        id=str(entry["id"]),
        name=entry.get("name"),
        email=entry.get("email"),
        created_at=int(entry.get("created_at") or now),
        updated_at=int(entry.get("updated_at") or now),
    )


def story_from_dict(entry: Dict[str, Any]) -> StoryRef:
    now = _now_s()
    return StoryRef(
        id=str(entry["id"]),
        user_id=str(entry["user_id"]),
        title=str(entry["title"]),
        summary=str(entry.get("summary") or ""),
        current_page=int(entry.get("current_page") or 1),
        created_at=int(entry.get("created_at") or now),
        updated_at=int(entry.get("updated_at") or now),
    )


def page_from_dict(entry: Dict[str, Any]) -> PageRecord:
    now = _now_s()
    return PageRecord(
        id=str(entry["id"]),
        story_id=str(entry["story_id"]),
        page_num=int(entry["page_num"]),
        prompt=str(entry["prompt"]),
        completion=str(entry["completion"]),
        summary=str(entry.get("summary") or ""),
        created_at=int(entry.get("created_at") or now),
        updated_at=int(entry.get("updated_at") or now),
    )
