"""Terminal story co-authoring client."""

__version__ = "0.1.0"
