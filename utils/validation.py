"""Validation and sanitization helpers for inbound packets."""
from typing import Any
import regex as re


# Any Unicode letter/mark/number, spaces, plus a small explicit set of name punctuation
VALID_NAME_RE = re.compile(r"^[\p{L}\p{M}\p{N} .'\-`’·#]+$", flags=re.UNICODE)

RESERVED_NAMES = frozenset({"system", "server"})

FACTORY_NAME_MAX_LENGTH = 32


def clean_name(s: str) -> str:
	"""Trim and collapse inner whitespace."""
	return re.sub(r"\s+", " ", s).strip()


def is_valid_name(s: Any, *, max_length: int = 200) -> bool:
	"""Return True if `s` is a reasonable display name for a factory, team or game."""
	if not isinstance(s, str) or not s or s.isspace():
		return False
	s = clean_name(s)
	if s.lower() in RESERVED_NAMES:
		return False
	if len(s) > max_length:
		return False
	return bool(VALID_NAME_RE.match(s))


def sanitize_json(obj: Any, *, _depth: int = 0, _max_depth: int = 10) -> Any:
	"""Recursively sanitize an inbound JSON-like structure.

	- Drops non-string keys and keys starting with '$' or containing '..'.
	- Enforces max depth to avoid excessive recursion.
	- Returns a cleaned structure containing only dict/list/primitives.
	"""
	if _depth > _max_depth:
		raise ValueError("Input too deeply nested")

	if isinstance(obj, dict):
		clean = {}
		for k, v in obj.items():
			if not isinstance(k, str):
				continue
			if k.startswith("$") or ".." in k:
				continue
			clean[k] = sanitize_json(v, _depth=_depth + 1, _max_depth=_max_depth)
		return clean
	elif isinstance(obj, list):
		return [sanitize_json(v, _depth=_depth + 1, _max_depth=_max_depth) for v in obj]
	elif isinstance(obj, (str, int, float, bool)) or obj is None:
		return obj
	else:
		raise ValueError("Unsupported JSON value type")
