"""
Event records and their normalization.

Any input handed to ``log()`` becomes an immutable ``EventRecord``. Mappings
are shallow-copied, primitives become ``{"code": raw}``, and everything else
degrades to an ``"unknown"`` record. Normalization never raises.
"""

from __future__ import annotations

import time as _time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Optional

from logdriver.config import EventContext
from logdriver.constants import UNKNOWN_CODE

def _empty_mapping() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True)
class EventRecord:
    """
    A single logged event.

    ``code``, ``time`` and ``metadata`` are always present. Every other
    top-level field the caller supplied (``info``, ``data``, anything custom)
    lives in ``fields``.
    """

    code: Any
    time: float
    metadata: Mapping[str, Any] = field(default_factory=_empty_mapping)
    fields: Mapping[str, Any] = field(default_factory=_empty_mapping)

    @property
    def info(self) -> Any:
        return self.fields.get("info")

    @property
    def data(self) -> Any:
        return self.fields.get("data")

    def as_dict(self) -> dict[str, Any]:
        """Flat wire shape: ``{code, ...fields, time, metadata}``."""
        return {
            "code": self.code,
            **self.fields,
            "time": self.time,
            "metadata": dict(self.metadata),
        }


def _describe(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    try:
        return str(raw)
    except Exception:
        return type(raw).__name__


def _copy_mapping(raw: Any) -> Optional[dict[str, Any]]:
    """Shallow-copy a mapping; None if it is not one or cannot be read."""
    if not isinstance(raw, Mapping):
        return None
    try:
        return dict(raw)
    except Exception:
        return None


def _classify(raw: Any) -> dict[str, Any]:
    if isinstance(raw, Mapping):
        copied = _copy_mapping(raw)
        if copied is None:
            return {"code": UNKNOWN_CODE, "info": type(raw).__name__}
        return copied
    if isinstance(raw, (str, int, float, bool)):
        return {"code": raw}
    return {"code": UNKNOWN_CODE, "info": _describe(raw)}


def _merge_extra(base: dict[str, Any], extra: Any) -> dict[str, Any]:
    if extra is None:
        return base
    if not isinstance(extra, Mapping):
        base["info"] = extra
        return base

    extra = _copy_mapping(extra)
    if extra is None:
        return base
    extra_metadata = _copy_mapping(extra.pop("metadata", None))
    base.update(extra)
    if extra_metadata is not None:
        merged = _copy_mapping(base.get("metadata")) or {}
        merged.update(extra_metadata)
        base["metadata"] = merged
    return base


def normalize_event(
    raw: Any = None,
    extra: Any = None,
    context: Optional[EventContext] = None,
    *,
    now: Optional[float] = None,
) -> EventRecord:
    """
    Build an ``EventRecord`` from arbitrary input.

    Args:
        raw: The logged value (mapping, primitive or anything else)
        extra: Additional info merged on top; a mapping is merged field-wise,
               any other non-None value becomes ``info``
        context: Path/href/user id copied into the metadata
        now: Unix timestamp to stamp the record with (defaults to the clock)

    Returns:
        The normalized record. Caller-supplied ``time`` values, top-level or in
        metadata, are always replaced by the engine timestamp.
    """
    base = _merge_extra(_classify(raw), extra)
    if context is None:
        context = EventContext()
    timestamp = _time.time() if now is None else now

    caller_metadata = base.pop("metadata", None)
    metadata = _copy_mapping(caller_metadata) or {}
    metadata.update({
        "time": timestamp,
        "timeUnix": timestamp,
        "timeISO": datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat(),
        "path": context.path,
        "href": context.href,
        "userId": context.user_id,
    })

    code = base.pop("code", UNKNOWN_CODE)
    base.pop("time", None)

    return EventRecord(
        code=UNKNOWN_CODE if code is None else code,
        time=timestamp,
        metadata=MappingProxyType(metadata),
        fields=MappingProxyType(base),
    )
