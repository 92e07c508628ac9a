from __future__ import annotations

import asyncio

from logdriver.core.sender import NOT_PERFORMED, Logger, LogSender
from logdriver.core.store import LogStore
from logdriver.driver import LogDriver
from logdriver.errors import ConfigurationError


def _codes(records) -> list:
    return [r.code for r in records]


def test_driver_registers_its_keys() -> None:
    store = LogStore()
    driver = LogDriver(keys=["exampleEvent", "anotherEvent"], store=store)

    assert driver.keys == ["exampleEvent", "anotherEvent"]
    assert store.known_keys() == ["exampleEvent", "anotherEvent"]
    assert driver.register_keys(["anotherEvent", "third"]) == ["third"]
    assert driver.keys == ["exampleEvent", "anotherEvent", "third"]


def test_driver_without_keys_tracks_the_whole_registry() -> None:
    store = LogStore()
    driver = LogDriver(store=store)
    Logger("a", store=store)
    Logger("b", store=store)

    assert driver.keys == ["a", "b"]


def test_jam_true_covers_tracked_keys_only() -> None:
    store = LogStore()
    store.register_keys(["outside"])
    driver = LogDriver(keys=["a", "b"], store=store)

    assert driver.jam(True) == ["a", "b"]
    assert driver.jammed == ["a", "b"]
    assert driver.driving == []
    assert not store.is_paused("outside")


def test_jam_false_is_a_no_op() -> None:
    store = LogStore()
    driver = LogDriver(keys=["a"], store=store)

    assert driver.jam(False) == []
    assert store.paused_keys() == {}


def test_jam_drops_unknown_keys_by_default() -> None:
    store = LogStore()
    driver = LogDriver(keys=["a"], store=store)

    assert driver.jam(["a", "never-seen"]) == ["a"]
    assert not store.is_known("never-seen")


def test_jam_can_register_unknown_keys() -> None:
    store = LogStore()
    driver = LogDriver(keys=["a"], store=store, unknown_keys="register")

    assert driver.jam(["later"], ["logging"]) == ["later"]
    assert Logger("later", store=store).log("x") is None


def test_invalid_unknown_key_policy_is_collected() -> None:
    driver = LogDriver(store=LogStore(), unknown_keys="explode")

    assert driver.errors
    assert driver.unknown_keys == "drop"


def test_jam_logging_blocks_appends() -> None:
    store = LogStore()
    logger = Logger("K", store=store)
    driver = LogDriver(store=store)

    driver.jam(["K"], ["logging"])
    logger.log("x")

    assert logger.events == []


def test_jam_sending_then_trigger_is_not_performed() -> None:
    async def _send(records):
        return {"success": True}

    async def scenario():
        store = LogStore()
        sender = LogSender("K", _send, store=store, pending_send_max=100, time_interval_ms=0)
        for i in range(5):
            sender.log({"code": "x"})
        LogDriver(store=store).jam(["K"], ["sending"])
        return sender, sender.trigger()

    sender, result = asyncio.run(scenario())

    assert result is NOT_PERFORMED
    assert len(sender.events) == 5


def test_drive_without_arguments_clears_every_pause() -> None:
    store = LogStore()
    store.jam(["untracked"], ["sending"])
    driver = LogDriver(keys=["a", "b"], store=store)
    driver.jam(True)

    driver.drive()

    assert store.paused_keys() == {}
    assert driver.driving == ["a", "b"]


def test_drive_with_keys_resumes_exactly_those() -> None:
    store = LogStore()
    driver = LogDriver(keys=["a", "b"], store=store)
    driver.jam(True)

    assert driver.drive(["a"]) == ["a"]
    assert driver.jammed == ["b"]
    assert driver.driving == ["a"]


def test_clear_all_tracked_or_selected_keys() -> None:
    store = LogStore()
    driver = LogDriver(keys=["a", "b"], store=store)
    for key in ("a", "b", "c"):
        store.log(key, "x")

    driver.clear(["a"])
    assert store.read_all("a") == []
    assert len(store.read_all("b")) == 1

    driver.clear()
    assert store.read_all("b") == []
    assert len(store.read_all("c")) == 1
    assert store.is_known("a")


def test_read_aggregate_merges_active_and_staging_fresh_each_time() -> None:
    store = LogStore()
    driver = LogDriver(keys=["a", "b"], store=store)
    store.log("a", "first")
    store.begin_send("a")
    store.log("a", "second")

    logs = driver.read_aggregate()
    assert _codes(logs["a"]) == ["first", "second"]
    assert logs["b"] == []

    store.log("b", "later")
    assert _codes(driver.logs["b"]) == ["later"]
    assert list(driver.read_aggregate(["b"])) == ["b"]


def test_status_reports_keys_logs_and_pause_split() -> None:
    store = LogStore()
    driver = LogDriver(keys=["a", "b"], store=store)
    store.log("a", "x")
    driver.jam(["b"])

    status = driver.status()

    assert status.keys == ["a", "b"]
    assert _codes(status.logs["a"]) == ["x"]
    assert status.jammed == ["b"]
    assert status.driving == ["a"]


def test_logout_without_unload_jams_and_clears_without_sending() -> None:
    calls = []

    async def _send(records):
        calls.append(records)
        return {"success": True}

    async def scenario():
        store = LogStore()
        sender = LogSender("K", _send, store=store, pending_send_max=100, time_interval_ms=0)
        sender.log("x")
        driver = LogDriver(store=store)
        outcomes = await driver.logout()
        return store, driver, outcomes

    store, driver, outcomes = asyncio.run(scenario())

    assert outcomes == []
    assert calls == []
    assert store.read_all("K") == []
    assert driver.jammed == ["K"]


def test_logout_with_unload_flushes_every_key_once() -> None:
    owned, fallback = [], []

    async def _owned_send(records):
        owned.append(_codes(records))
        return {"success": True}

    async def _fallback_send(records):
        fallback.append(_codes(records))
        raise ConnectionError("offline")

    async def scenario():
        store = LogStore()
        sender = LogSender("owned", _owned_send, store=store, pending_send_max=100, time_interval_ms=0)
        sender.log("a")
        Logger("loose", store=store).log("b")
        Logger("empty", store=store)
        driver = LogDriver(store=store)
        outcomes = await driver.logout(unload_all=True, send_fn=_fallback_send)
        return store, outcomes

    store, outcomes = asyncio.run(scenario())

    assert owned == [["a"]]
    assert fallback == [["b"]]
    assert sorted((o.key, o.success) for o in outcomes) == [("loose", False), ("owned", True)]
    assert all(store.read_all(k) == [] for k in ("owned", "loose", "empty"))
    assert set(store.paused_keys()) == {"owned", "loose", "empty"}


def test_unknown_capability_names_are_collected_not_raised() -> None:
    store = LogStore()
    driver = LogDriver(keys=["K"], store=store)

    assert driver.jam(["K"], ["flying"]) == []
    assert driver.jammed == []
    assert len(driver.errors) == 1
    assert isinstance(driver.errors[0], ConfigurationError)

    assert driver.jam(["K"], ["sending", "flying"]) == ["K"]
    assert store.is_paused("K", "sending")
    assert not store.is_paused("K", "logging")

    driver.drive(["K"], ["hovering"])
    assert store.is_paused("K", "sending")
    assert len(driver.errors) == 3
