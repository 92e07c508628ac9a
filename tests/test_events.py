from __future__ import annotations

import dataclasses

import pytest

from logdriver.config import EventContext
from logdriver.events import EventRecord, normalize_event


def test_mapping_is_shallow_copied_into_record() -> None:
    raw = {"code": "user_click", "info": "clicked X", "data": {"button": 1}}
    record = normalize_event(raw, now=100.0)

    raw["info"] = "changed"
    assert record.code == "user_click"
    assert record.info == "clicked X"
    assert record.data == {"button": 1}


@pytest.mark.parametrize("raw", ["page_view", 42, 1.5, True])
def test_primitives_become_the_code(raw) -> None:
    record = normalize_event(raw, now=1.0)
    assert record.code == raw
    assert "info" not in record.fields


def test_unrecognized_input_degrades_to_unknown() -> None:
    record = normalize_event(object(), now=1.0)
    assert record.code == "unknown"
    assert isinstance(record.info, str)

    empty = normalize_event(None, now=1.0)
    assert empty.code == "unknown"
    assert empty.info is None


def test_mapping_without_code_gets_unknown_code() -> None:
    record = normalize_event({"info": "no code here"}, now=1.0)
    assert record.code == "unknown"
    assert record.info == "no code here"


def test_engine_overwrites_time_fields_but_keeps_caller_metadata() -> None:
    raw = {
        "code": "x",
        "time": 5,
        "metadata": {"userAction": "click", "timeUnix": 3, "path": "/fake"},
    }
    context = EventContext(path="/app/page", href="https://example.test/page", user_id="u-1")
    record = normalize_event(raw, context=context, now=1_700_000_000.0)

    assert record.time == 1_700_000_000.0
    assert record.metadata["userAction"] == "click"
    assert record.metadata["time"] == 1_700_000_000.0
    assert record.metadata["timeUnix"] == 1_700_000_000.0
    assert record.metadata["timeISO"].startswith("2023-11-14T22:13:20")
    assert record.metadata["path"] == "/app/page"
    assert record.metadata["href"] == "https://example.test/page"
    assert record.metadata["userId"] == "u-1"
    assert "time" not in record.fields


def test_user_id_is_none_unless_configured() -> None:
    record = normalize_event("x", now=1.0)
    assert record.metadata["userId"] is None


def test_extra_info_is_merged_on_top() -> None:
    base = {"code": "save", "info": "default", "metadata": {"a": 1}}

    as_info = normalize_event(base, "override", now=1.0)
    assert as_info.info == "override"

    as_mapping = normalize_event(base, {"data": [1, 2], "metadata": {"b": 2}}, now=1.0)
    assert as_mapping.info == "default"
    assert as_mapping.data == [1, 2]
    assert as_mapping.metadata["a"] == 1
    assert as_mapping.metadata["b"] == 2


def test_records_are_immutable() -> None:
    record = normalize_event({"code": "x", "metadata": {"k": "v"}}, now=1.0)

    with pytest.raises(dataclasses.FrozenInstanceError):
        record.code = "y"
    with pytest.raises(TypeError):
        record.metadata["k"] = "changed"
    with pytest.raises(TypeError):
        record.fields["info"] = "changed"


def test_as_dict_produces_flat_wire_shape() -> None:
    record = normalize_event({"code": "x", "info": "i", "custom": 3}, now=2.0)
    wire = record.as_dict()

    assert wire["code"] == "x"
    assert wire["info"] == "i"
    assert wire["custom"] == 3
    assert wire["time"] == 2.0
    assert isinstance(wire["metadata"], dict)
    assert isinstance(record, EventRecord)


def test_records_built_directly_get_their_own_empty_mappings() -> None:
    first = EventRecord(code="a", time=1.0)
    second = EventRecord(code="b", time=2.0)

    assert dict(first.metadata) == {}
    assert dict(first.fields) == {}
    assert first.metadata is not second.metadata
    with pytest.raises(TypeError):
        first.fields["info"] = "x"


class _Unprintable:
    def __str__(self):
        raise RuntimeError("no str")


class _UnreadableMapping(dict):
    def keys(self):
        raise RuntimeError("no keys")

    def __iter__(self):
        raise RuntimeError("no iter")


def test_unprintable_input_still_normalizes() -> None:
    record = normalize_event(_Unprintable(), now=1.0)

    assert record.code == "unknown"
    assert record.info == "_Unprintable"


def test_unreadable_mappings_do_not_break_normalization() -> None:
    broken = _UnreadableMapping(code="x")

    record = normalize_event(broken, now=1.0)
    assert record.code == "unknown"
    assert record.info == "_UnreadableMapping"

    merged = normalize_event({"code": "ok", "metadata": broken}, {"data": 1, "metadata": broken}, now=1.0)
    assert merged.code == "ok"
    assert merged.data == 1
    assert merged.metadata["time"] == 1.0
