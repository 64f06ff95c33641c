"""Extract learnings and memory votes from coding-assistant conversation logs."""

__version__ = "0.1.0"