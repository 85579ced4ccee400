from __future__ import annotations

from mc_navigator.telemetry import LoggingTelemetry


def test_event_history_keeps_only_the_most_recent_events() -> None:
    telemetry = LoggingTelemetry(max_events=3)

    for index in range(5):
        telemetry.emit("navigation_finished", {"index": index})

    assert len(telemetry.events) == 3
    assert [payload["index"] for _, payload in telemetry.events] == [2, 3, 4]
