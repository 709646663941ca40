"""Utility helpers used across the project.

Exports:
- time helpers: `now_utc`, `to_iso`
- validation helpers: `is_valid_name`, `sanitize_json`, `VALID_NAME_RE`
"""

from .time import now_utc, to_iso
from .validation import is_valid_name, sanitize_json, VALID_NAME_RE

__all__ = [
	"now_utc",
	"to_iso",
	"is_valid_name",
	"sanitize_json",
	"VALID_NAME_RE",
]
