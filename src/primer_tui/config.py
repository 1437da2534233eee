"""Startup configuration: settings file, ``.env``, environment and flags."""

from __future__ import annotations

import argparse
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

from dotenv import dotenv_values

from primer_tui.ai_client import DEFAULT_BASE_URL, DEFAULT_MAX_TOKENS, DEFAULT_MODEL
from primer_tui.errors import ConfigError
from primer_tui.log_setup import DEFAULT_LOG_DIR

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = Path.home() / ".primer_tui.json"
DEFAULT_DB_PATH = Path.home() / ".primer_tui" / "primer.db"
DEFAULT_SEED_DIR = "seed"
SETTINGS_KEYS = ("model", "max_tokens", "org_id", "base_url", "db_path", "seed_dir", "stream_preview")


@dataclass
class AppConfig:
    api_key: str
    model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    org_id: str = ""
    base_url: str = DEFAULT_BASE_URL
    db_path: str = str(DEFAULT_DB_PATH)
    seed: bool = False
    seed_dir: str = DEFAULT_SEED_DIR
    debug: bool = False
    stream_preview: bool = True
    log_dir: str = DEFAULT_LOG_DIR

    def to_settings(self) -> Dict[str, Any]:
        """Return the persistable (non-secret) part of the config."""

        return {key: getattr(self, key) for key in SETTINGS_KEYS}


def _atomic_write(path: Path | str, content: str) -> None:
    """Write content atomically to ``path`` using fsync + rename."""

    path = Path(path).expanduser()
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.parent.mkdir(parents=True, exist_ok=True)
    with open(tmp_path, "w", encoding="utf-8") as handle:
        handle.write(content)
        handle.flush()
        os.fsync(handle.fileno())
    tmp_path.replace(path)


def load_settings(path: Path | str = DEFAULT_SETTINGS_FILE) -> Dict[str, Any]:
    """Load persisted settings from disk if present."""

    try:
        data = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError:
        logger.warning("ignoring unreadable settings file path=%s", path)
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def persist_settings(settings: Dict[str, Any], path: Path | str = DEFAULT_SETTINGS_FILE) -> None:
    payload = json.dumps(settings, indent=2, sort_keys=True)
    _atomic_write(Path(path).expanduser(), payload)


def read_environment(dotenv_path: Path | str | None = None, environ: Mapping[str, str] | None = None) -> Dict[str, str]:
    """Merge ``.env`` values under the process environment (environment wins)."""

    merged: Dict[str, str] = {}
    path = dotenv_path if dotenv_path is not None else Path.cwd() / ".env"
    if Path(path).is_file():
        for key, value in dotenv_values(path).items():
            if value is not None:
                merged[key] = value
    merged.update(os.environ if environ is None else environ)
    return merged


def database_path_from_url(url: str) -> str:
    """Turn ``DATABASE_URL`` into a SQLite path.

    Accepts a plain path, ``sqlite:///relative.db``, ``sqlite:////abs.db`` and
    ``sqlite://`` / ``:memory:`` for an in-memory database.
    """

    url = url.strip()
    if not url:
        raise ConfigError("DATABASE_URL is empty")
    if url == ":memory:" or url == "sqlite://":
        return ":memory:"
    if url.startswith("sqlite:///"):
        return url[len("sqlite:///") :] or ":memory:"
    if "://" in url:
        scheme = url.split("://", 1)[0]
        raise ConfigError(f"unsupported DATABASE_URL scheme: {scheme}")
    return url


def parse_max_tokens(raw: Any) -> Optional[int]:
    """Return a positive token limit, or None (with a warning) for bad values."""

    try:
        value = int(str(raw).strip())
    except ValueError:
        logger.warning("invalid OPENAI_MAX_TOKENS value, using default value=%s", raw)
        return None
    if value <= 0:
        logger.warning("invalid OPENAI_MAX_TOKENS value, using default value=%s", raw)
        return None
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="primer-tui", description="Co-author illustrated stories in the terminal.")
    parser.add_argument("--seed", action="store_true", help="Load seed data before starting")
    parser.add_argument("--seed-dir", default=None, help="Directory holding users.json, stories.json, pages.json")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--db", default=None, help="SQLite database path")
    parser.add_argument("--model", default=None, help="Model name for the Responses API")
    parser.add_argument(
        "--no-stream-preview",
        dest="stream_preview",
        action="store_false",
        default=None,
        help="Only show the AI reply once it is complete",
    )
    parser.add_argument("--log-dir", default=DEFAULT_LOG_DIR, help="Directory for timestamped log files")
    parser.add_argument(
        "--save-settings",
        action="store_true",
        help="Write the effective non-secret settings to the settings file",
    )
    parser.add_argument("--settings-file", default=str(DEFAULT_SETTINGS_FILE), help=argparse.SUPPRESS)
    return parser


def load_config(
    args: argparse.Namespace,
    environ: Mapping[str, str],
    settings: Mapping[str, Any] | None = None,
) -> AppConfig:
    """Resolve defaults < settings file < environment < flags."""

    api_key = environ.get("OPENAI_API_KEY", "").strip()
    if not api_key:
        raise ConfigError("OPENAI_API_KEY must be set in environment")
    config = AppConfig(api_key=api_key)

    stored = dict(settings or {})
    if stored.get("model"):
        config.model = str(stored["model"])
    if stored.get("max_tokens") is not None:
        config.max_tokens = parse_max_tokens(stored["max_tokens"]) or config.max_tokens
    if stored.get("org_id"):
        config.org_id = str(stored["org_id"])
    if stored.get("base_url"):
        config.base_url = str(stored["base_url"])
    if stored.get("db_path"):
        config.db_path = str(stored["db_path"])
    if stored.get("seed_dir"):
        config.seed_dir = str(stored["seed_dir"])
    if isinstance(stored.get("stream_preview"), bool):
        config.stream_preview = stored["stream_preview"]

    if environ.get("OPENAI_MODEL"):
        config.model = environ["OPENAI_MODEL"]
    if environ.get("OPENAI_MAX_TOKENS"):
        max_tokens = parse_max_tokens(environ["OPENAI_MAX_TOKENS"])
        if max_tokens is not None:
            config.max_tokens = max_tokens
            logger.info("using custom max tokens max_tokens=%d", max_tokens)
    if environ.get("OPENAI_ORG_ID"):
        config.org_id = environ["OPENAI_ORG_ID"]
    if environ.get("OPENAI_BASE_URL"):
        config.base_url = environ["OPENAI_BASE_URL"]
    if environ.get("DATABASE_URL"):
        config.db_path = database_path_from_url(environ["DATABASE_URL"])

    if getattr(args, "db", None):
        config.db_path = args.db
    if getattr(args, "model", None):
        config.model = args.model
    if getattr(args, "seed_dir", None):
        config.seed_dir = args.seed_dir
    if getattr(args, "stream_preview", None) is not None:
        config.stream_preview = args.stream_preview
    config.seed = bool(getattr(args, "seed", False))
    config.debug = bool(getattr(args, "debug", False))
    config.log_dir = getattr(args, "log_dir", None) or DEFAULT_LOG_DIR
    return config


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)
