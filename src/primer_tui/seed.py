"""Loads sample users, stories and pages from a directory of JSON files."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List

from primer_tui.errors import NotFoundError, PrimerError, SeedError
from primer_tui.models import page_from_dict, story_from_dict, user_from_dict
from primer_tui.story_store import SQLiteStoryStore

logger = logging.getLogger(__name__)

USERS_FILE = "users.json"
STORIES_FILE = "stories.json"
PAGES_FILE = "pages.json"


@dataclass
class SeedReport:
    created: int = 0
    skipped: int = 0
    failed: int = 0


def _read_entries(path: Path) -> List[dict[str, Any]] | None:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning("seed file not found path=%s", path)
        return None
    except OSError as exc:
        raise SeedError(f"read {path}: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SeedError(f"parse {path}: {exc}") from exc
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise SeedError(f"parse {path}: expected a JSON array of objects")
    return data


class SeedLoader:
    """Imports seed rows, skipping ids that already exist.

    A row that fails to insert is logged and counted; it never stops the
    rest of the import. Malformed files raise ``SeedError``.
    """

    def __init__(self, store: SQLiteStoryStore) -> None:
        self._store = store

    def load_directory(self, directory: Path | str) -> SeedReport:
        root = Path(directory)
        report = SeedReport()
        self._load(root / USERS_FILE, "user", user_from_dict, self._store.get_user, self._store.create_user, report)
        self._load(root / STORIES_FILE, "story", story_from_dict, self._store.get_story, self._store.insert_story, report)
        self._load(root / PAGES_FILE, "page", page_from_dict, self._store.get_page, self._store.insert_page, report)
        logger.info(
            "seed data loaded created=%d skipped=%d failed=%d",
            report.created,
            report.skipped,
            report.failed,
        )
        return report

    def _load(
        self,
        path: Path,
        entity: str,
        parse: Callable[[dict[str, Any]], Any],
        lookup: Callable[[str], Any],
        insert: Callable[[Any], None],
        report: SeedReport,
    ) -> None:
        entries = _read_entries(path)
        if entries is None:
            return
        for entry in entries:
            try:
                record = parse(entry)
            except (KeyError, TypeError, ValueError) as exc:
                logger.error("invalid %s seed entry: %s", entity, exc)
                report.failed += 1
                continue
            try:
                lookup(record.id)
            except NotFoundError:
                pass
            except PrimerError as exc:
                logger.error("failed to look up %s id=%s: %s", entity, record.id, exc)
                report.failed += 1
                continue
            else:
                logger.debug("%s already exists, skipping id=%s", entity, record.id)
                report.skipped += 1
                continue
            try:
                insert(record)
            except PrimerError as exc:
                logger.error("failed to create %s id=%s: %s", entity, record.id, exc)
                report.failed += 1
                continue
            logger.info("created %s id=%s", entity, record.id)
            report.created += 1
