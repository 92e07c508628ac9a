"""Log key sanitization."""

from __future__ import annotations

from typing import Any

from logdriver.constants import DEFAULT_KEY, MAX_KEY_LENGTH

_PRIMITIVES = (str, int, float, bool)


def _primitive_to_str(value: Any) -> str:
    # bools render the way they do on the wire, not as Python reprs
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def sanitize_key(raw: Any = None) -> str:
    """
    Turn any caller-supplied key into a usable log key.

    Strings, numbers and booleans are stringified; lists and tuples of
    primitives are comma-joined. The result is truncated to
    ``MAX_KEY_LENGTH`` characters. Empty or unsupported input yields
    ``DEFAULT_KEY``.
    """
    if isinstance(raw, _PRIMITIVES):
        text = _primitive_to_str(raw)
    elif isinstance(raw, (list, tuple)) and all(isinstance(part, _PRIMITIVES) for part in raw):
        text = ",".join(_primitive_to_str(part) for part in raw)
    else:
        return DEFAULT_KEY

    return text[:MAX_KEY_LENGTH] or DEFAULT_KEY


def sanitize_keys(raw_keys: Any) -> list[str]:
    """Sanitize a collection of keys, dropping duplicates but keeping order."""
    if raw_keys is None:
        return []
    if isinstance(raw_keys, (str, int, float, bool)):
        raw_keys = [raw_keys]

    keys: list[str] = []
    for raw in raw_keys:
        key = sanitize_key(raw)
        if key not in keys:
            keys.append(key)
    return keys
