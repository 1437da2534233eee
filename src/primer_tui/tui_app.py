"""Curses front end: draws frames and feeds keys and results into the model."""

from __future__ import annotations

import curses
import logging
import queue
import sys
from dataclasses import asdict
from typing import Optional, Sequence

from primer_tui.ai_client import ResponsesClient
from primer_tui.commands import CommandDispatcher
from primer_tui.config import load_config, load_settings, parse_args, persist_settings, read_environment
from primer_tui.errors import ConfigError, SeedError, StorageFailure
from primer_tui.keys import normalize_key
from primer_tui.log_setup import configure_logging
from primer_tui.messages import ResultMessage, ViewportResize
from primer_tui.redact import mask_database_url, redact_mapping
from primer_tui.seed import SeedLoader
from primer_tui.sqlite_backend import SQLiteBackend
from primer_tui.story_store import SQLiteStoryStore
from primer_tui.tui_model import TuiModel
from primer_tui.tui_view import (
    ROLE_AI,
    ROLE_HEADER,
    ROLE_HELP,
    ROLE_INPUT,
    ROLE_PAGE,
    ROLE_SELECTED,
    ROLE_SPINNER,
    ROLE_STATUS,
    ROLE_USER,
    Frame,
    StyleConfig,
    fit_to_height,
    render_frame,
)

logger = logging.getLogger(__name__)

POLL_INTERVAL_MS = 100
ESC_DELAY_MS = 25
WRITE_DRAIN_TIMEOUT_S = 5.0

# role -> (curses colour, extra attributes)
_ROLE_COLORS = {
    ROLE_HEADER: (curses.COLOR_CYAN, curses.A_BOLD),
    ROLE_SELECTED: (curses.COLOR_MAGENTA, curses.A_BOLD),
    ROLE_PAGE: (curses.COLOR_BLUE, curses.A_BOLD),
    ROLE_USER: (curses.COLOR_GREEN, curses.A_BOLD),
    ROLE_AI: (curses.COLOR_CYAN, 0),
    ROLE_INPUT: (-1, curses.A_UNDERLINE),
    ROLE_SPINNER: (curses.COLOR_MAGENTA, 0),
    ROLE_HELP: (-1, curses.A_DIM),
    ROLE_STATUS: (-1, curses.A_DIM),
}


def _render_text(window: curses.window, y: int, x: int, text: str, attr: int = 0) -> None:
    max_y, max_x = window.getmaxyx()
    if 0 <= y < max_y and max_x - x - 1 > 0:
        window.addnstr(y, x, text, max_x - x - 1, attr)


def _init_styles(stdscr: curses.window) -> StyleConfig:
    """Build role attributes, using colour pairs when the terminal has them."""

    attrs = {role: extra for role, (_, extra) in _ROLE_COLORS.items()}
    attrs[ROLE_SELECTED] = attrs[ROLE_SELECTED] | curses.A_REVERSE
    if not curses.has_colors():
        return StyleConfig(attrs=attrs)
    try:
        curses.start_color()
        curses.use_default_colors()
    except curses.error:
        return StyleConfig(attrs=attrs)
    try:
        stdscr.bkgd(" ", curses.color_pair(0))
    except curses.error:
        pass
    for pair_id, (role, (color, extra)) in enumerate(_ROLE_COLORS.items(), start=1):
        try:
            curses.init_pair(pair_id, color, -1)
        except curses.error:
            continue
        attrs[role] = curses.color_pair(pair_id) | extra
    return StyleConfig(attrs=attrs)


def draw_frame(stdscr: curses.window, frame: Frame, style: StyleConfig) -> None:
    stdscr.erase()
    max_y, _ = stdscr.getmaxyx()
    for y, line in enumerate(fit_to_height(frame, max_y)):
        _render_text(stdscr, y, 1, line.text, style.attr_for(line.role))
    stdscr.refresh()


def drain_results(model: TuiModel, dispatcher: CommandDispatcher, event_queue: "queue.Queue[ResultMessage]") -> int:
    """Apply every queued result message; return how many were handled."""

    handled = 0
    while True:
        try:
            result = event_queue.get_nowait()
        except queue.Empty:
            return handled
        dispatcher.dispatch_all(model.update(result))
        handled += 1


def run_session(
    stdscr: curses.window,
    model: TuiModel,
    dispatcher: CommandDispatcher,
    event_queue: "queue.Queue[ResultMessage]",
) -> None:
    try:
        curses.curs_set(0)
    except curses.error:
        pass
    curses.raw()
    curses.set_escdelay(ESC_DELAY_MS)
    stdscr.keypad(True)
    stdscr.timeout(POLL_INTERVAL_MS)
    style = _init_styles(stdscr)

    max_y, max_x = stdscr.getmaxyx()
    model.update(ViewportResize(max_x, max_y))
    dispatcher.dispatch_all(model.initial_intents())

    while not model.state.quit_requested:
        drain_results(model, dispatcher, event_queue)
        draw_frame(stdscr, render_frame(model.render(), style), style)
        key = stdscr.getch()
        if key == -1:
            continue
        event = normalize_key(key)
        if event.key == "RESIZE":
            max_y, max_x = stdscr.getmaxyx()
            model.update(ViewportResize(max_x, max_y))
            continue
        dispatcher.dispatch_all(model.update(event))
    logger.info("quit requested")


def _load_seed(store: SQLiteStoryStore, seed_dir: str) -> None:
    logger.info("loading seed data dir=%s", seed_dir)
    try:
        SeedLoader(store).load_directory(seed_dir)
    except SeedError as exc:
        logger.error("failed to load seed data: %s", exc)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        configure_logging(args.debug, args.log_dir)
    except OSError as exc:
        print(f"Failed to create log file: {exc}", file=sys.stderr)
        return 1
    logger.info("=== primer-tui starting ===")

    try:
        config = load_config(args, read_environment(), load_settings(args.settings_file))
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        logger.error("configuration error: %s", exc)
        return 1
    logger.info("configuration loaded %s", redact_mapping(asdict(config)))
    if args.save_settings:
        persist_settings(config.to_settings(), args.settings_file)
        logger.info("settings saved path=%s", args.settings_file)

    logger.info("initializing database path=%s", mask_database_url(config.db_path))
    try:
        backend = SQLiteBackend(config.db_path)
    except StorageFailure as exc:
        print(f"Failed to connect to database: {exc}", file=sys.stderr)
        logger.error("failed to connect to database: %s", exc)
        return 1
    try:
        try:
            backend.migrate()
        except StorageFailure as exc:
            print(f"Failed to run migrations: {exc}", file=sys.stderr)
            logger.error("failed to run migrations: %s", exc)
            return 1
        store = SQLiteStoryStore(backend)
        if config.seed:
            _load_seed(store, config.seed_dir)

        ai = ResponsesClient(
            config.api_key,
            model=config.model,
            max_tokens=config.max_tokens,
            org_id=config.org_id,
            base_url=config.base_url,
        )
        event_queue: "queue.Queue[ResultMessage]" = queue.Queue()
        dispatcher = CommandDispatcher(store, ai, event_queue, stream_preview=config.stream_preview)
        model = TuiModel()
        logger.info("starting TUI")
        try:
            curses.wrapper(run_session, model, dispatcher, event_queue)
        except curses.error as exc:
            print(f"Error running program: {exc}", file=sys.stderr)
            logger.error("program error: %s", exc)
            return 1
        finally:
            dispatcher.join_pending(WRITE_DRAIN_TIMEOUT_S)
    finally:
        backend.close()
    logger.info("application exited successfully")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
