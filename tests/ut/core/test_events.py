"""事件总线测试"""

import logging
from typing import Any

import pytest

from assetmirror.core.events import EventBus


class TestEventBus:
    def test_emit_to_listener(self) -> None:
        bus = EventBus()
        got: list[tuple[str, dict[str, Any]]] = []
        bus.on("file_completed", lambda e, p: got.append((e, p)))

        bus.emit("file_completed", {"path": "a.ls"})
        bus.emit("file_failed", {"path": "b.ls"})

        assert len(got) == 1
        event, payload = got[0]
        assert event == "file_completed"
        assert payload["path"] == "a.ls"
        assert isinstance(payload["timestamp"], float)

    def test_wildcard_receives_all(self) -> None:
        bus = EventBus()
        events: list[str] = []
        bus.on("*", lambda e, p: events.append(e))
        bus.emit("start", {})
        bus.emit("complete", {})
        assert events == ["start", "complete"]

    def test_off(self) -> None:
        bus = EventBus()
        events: list[str] = []

        def listener(e: str, p: dict[str, Any]) -> None:
            events.append(e)

        bus.on("start", listener)
        bus.off("start", listener)
        bus.off("start", listener)
        bus.emit("start", {})
        assert events == []

    def test_listener_error_contained(self, caplog: pytest.LogCaptureFixture) -> None:
        bus = EventBus()
        events: list[str] = []

        def bad(e: str, p: dict[str, Any]) -> None:
            raise ValueError("监听器出错")

        bus.on("cycle_detected", bad)
        bus.on("cycle_detected", lambda e, p: events.append(e))

        with caplog.at_level(logging.ERROR, logger="assetmirror.core.events"):
            bus.emit("cycle_detected", {"source": "a.ls", "target": "b.ls"})

        assert events == ["cycle_detected"]
        assert "cycle_detected" in caplog.text

    def test_unknown_event_rejected(self) -> None:
        with pytest.raises(ValueError, match="未知的事件类型"):
            EventBus().on("file_exploded", lambda e, p: None)

    def test_payload_not_mutated(self) -> None:
        bus = EventBus()
        payload = {"path": "a.ls"}
        bus.emit("file_started", payload)
        assert payload == {"path": "a.ls"}
