"""Utility functions for memvault."""

from memvault.utils.helpers import (
    days_since,
    ensure_dir,
    now_iso,
    parse_timestamp,
    read_json,
    validate_each,
    walk_files,
    write_json_atomic,
)

__all__ = [
    "days_since",
    "ensure_dir",
    "now_iso",
    "parse_timestamp",
    "read_json",
    "validate_each",
    "walk_files",
    "write_json_atomic",
]
