"""SQLite-backed store for users, stories and pages."""

from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import contextmanager
from typing import Iterator, List

from primer_tui.errors import NotFoundError, StorageFailure
from primer_tui.models import PageRecord, StoryRef, UserRef, new_page, new_story
from primer_tui.sqlite_backend import SQLiteBackend

logger = logging.getLogger(__name__)

_USER_COLUMNS = "id, name, email, created_at, updated_at"
_STORY_COLUMNS = "id, user_id, title, summary, current_page, created_at, updated_at"
_PAGE_COLUMNS = "id, story_id, page_num, prompt, completion, summary, created_at, updated_at"


def _user_from_row(row: sqlite3.Row) -> UserRef:
    return UserRef(id=row[0], name=row[1], email=row[2], created_at=row[3], updated_at=row[4])


def _story_from_row(row: sqlite3.Row) -> StoryRef:
    return StoryRef(
        id=row[0],
        user_id=row[1],
        title=row[2],
        summary=row[3],
        current_page=row[4],
        created_at=row[5],
        updated_at=row[6],
    )


def _page_from_row(row: sqlite3.Row) -> PageRecord:
    return PageRecord(
        id=row[0],
        story_id=row[1],
        page_num=row[2],
        prompt=row[3],
        completion=row[4],
        summary=row[5],
        created_at=row[6],
        updated_at=row[7],
    )


class SQLiteStoryStore:
    """Storage gateway used by the command dispatcher and the seed loader.

    Every method is safe to call from worker threads; statements are
    serialized through the backend lock.
    """

    def __init__(self, backend: SQLiteBackend) -> None:
        self._backend = backend

    @contextmanager
    def _locked(self, action: str) -> Iterator[sqlite3.Connection]:
        with self._backend.lock:
            try:
                yield self._backend.connection
            except sqlite3.Error as exc:
                raise StorageFailure(f"{action}: {exc}") from exc

    # users

    def create_user(self, user: UserRef) -> None:
        with self._locked("insert user") as conn:
            conn.execute(
                f"INSERT INTO users ({_USER_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                (user.id, user.name, user.email, user.created_at, user.updated_at),
            )

    def get_user(self, user_id: str) -> UserRef:
        with self._locked("query user by id") as conn:
            row = conn.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE id=?", (user_id,)).fetchone()
        if row is None:
            raise NotFoundError("user", user_id)
        return _user_from_row(row)

    def list_users(self) -> List[UserRef]:
        with self._locked("query users") as conn:
            rows = conn.execute(f"SELECT {_USER_COLUMNS} FROM users ORDER BY created_at DESC, rowid DESC").fetchall()
        return [_user_from_row(row) for row in rows]

    # stories

    def insert_story(self, story: StoryRef) -> None:
        with self._locked("insert story") as conn:
            conn.execute(
                f"INSERT INTO stories ({_STORY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    story.id,
                    story.user_id,
                    story.title,
                    story.summary,
                    story.current_page,
                    story.created_at,
                    story.updated_at,
                ),
            )

    def create_story(self, user_id: str, title: str, summary: str = "") -> StoryRef:
        story = new_story(user_id, title, summary)
        self.insert_story(story)
        logger.debug("story created id=%s user_id=%s", story.id, user_id)
        return story

    def get_story(self, story_id: str) -> StoryRef:
        with self._locked("query story by id") as conn:
            row = conn.execute(f"SELECT {_STORY_COLUMNS} FROM stories WHERE id=?", (story_id,)).fetchone()
        if row is None:
            raise NotFoundError("story", story_id)
        return _story_from_row(row)

    def list_stories(self, user_id: str) -> List[StoryRef]:
        with self._locked("query stories") as conn:
            rows = conn.execute(
                f"SELECT {_STORY_COLUMNS} FROM stories WHERE user_id=? ORDER BY created_at DESC, rowid DESC",
                (user_id,),
            ).fetchall()
        return [_story_from_row(row) for row in rows]

    def increment_story_page_count(self, story_id: str) -> None:
        with self._locked("increment current page") as conn:
            cursor = conn.execute(
                "UPDATE stories SET current_page = current_page + 1, updated_at=? WHERE id=?",
                (int(time.time()), story_id),
            )
            affected = cursor.rowcount
        if affected == 0:
            raise NotFoundError("story", story_id)

    # pages

    def insert_page(self, page: PageRecord) -> None:
        with self._locked("insert page") as conn:
            conn.execute(
                f"INSERT INTO pages ({_PAGE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    page.id,
                    page.story_id,
                    page.page_num,
                    page.prompt,
                    page.completion,
                    page.summary,
                    page.created_at,
                    page.updated_at,
                ),
            )

    def create_page(
        self,
        story_id: str,
        page_num: int,
        prompt: str,
        completion: str,
        summary: str = "",
    ) -> PageRecord:
        page = new_page(story_id, page_num, prompt, completion, summary)
        self.insert_page(page)
        logger.debug("page created story_id=%s page_num=%d", story_id, page_num)
        return page

    def get_page(self, page_id: str) -> PageRecord:
        with self._locked("query page by id") as conn:
            row = conn.execute(f"SELECT {_PAGE_COLUMNS} FROM pages WHERE id=?", (page_id,)).fetchone()
        if row is None:
            raise NotFoundError("page", page_id)
        return _page_from_row(row)

    def list_pages(self, story_id: str) -> List[PageRecord]:
        with self._locked("query pages") as conn:
            rows = conn.execute(
                f"SELECT {_PAGE_COLUMNS} FROM pages WHERE story_id=? ORDER BY page_num ASC",
                (story_id,),
            ).fetchall()
        return [_page_from_row(row) for row in rows]

    def next_page_number(self, story_id: str) -> int:
        with self._locked("get next page num") as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(page_num), 0) + 1 FROM pages WHERE story_id=?",
                (story_id,),
            ).fetchone()
        return int(row[0])
