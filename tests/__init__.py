"""Test package for primer_tui unit and integration tests."""

import logging

logging.getLogger("asyncio").setLevel(logging.ERROR)
