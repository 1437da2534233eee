"""Key normalization and per-mode key tables."""

from __future__ import annotations

import curses

from primer_tui.messages import KeyEvent

NAV_UP = frozenset({"UP"})
NAV_DOWN = frozenset({"DOWN"})
NAV_UP_CHARS = frozenset({"k"})
NAV_DOWN_CHARS = frozenset({"j"})
QUIT_CHARS = frozenset({"q"})
NEW_STORY_CHARS = frozenset({"n"})

HELP_USER_SELECT = "↑/↓: navigate • enter: select • q: quit"
HELP_STORY_LIST = "↑/↓: navigate • enter: select • n: new story • esc: back • q: quit"
HELP_TITLE_ENTRY = "enter: create • esc: cancel"
HELP_STORY_VIEW = "enter: start chat • esc: back"
HELP_CHAT = "enter: send • esc: back"


def normalize_key(key: int) -> KeyEvent:
    """Map a raw ``getch`` code onto a ``KeyEvent``."""

    if key in (curses.KEY_UP,):
        return KeyEvent("UP")
    if key in (curses.KEY_DOWN,):
        return KeyEvent("DOWN")
    if key in (curses.KEY_ENTER, 10, 13):
        return KeyEvent("ENTER")
    if key in (curses.KEY_BACKSPACE, 127, 8):
        return KeyEvent("BACKSPACE")
    if key == curses.KEY_RESIZE:
        return KeyEvent("RESIZE")
    if key == 3:  # ctrl-c under raw mode
        return KeyEvent("CTRL_C")
    if key == 27:
        return KeyEvent("ESC")
    if 32 <= key <= 126:
        return KeyEvent("CHAR", chr(key))
    return KeyEvent("UNKNOWN")


def nav_delta(event: KeyEvent) -> int:
    """Return -1/+1 for list navigation keys, 0 for anything else."""

    if event.key in NAV_UP or (event.key == "CHAR" and event.char in NAV_UP_CHARS):
        return -1
    if event.key in NAV_DOWN or (event.key == "CHAR" and event.char in NAV_DOWN_CHARS):
        return 1
    return 0


def is_char(event: KeyEvent, chars: frozenset[str]) -> bool:
    return event.key == "CHAR" and event.char in chars
