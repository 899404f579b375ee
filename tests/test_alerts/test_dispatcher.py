"""Tests for AlertDispatcher fan-out and channel isolation."""

import asyncio
from decimal import Decimal

import pytest

from factories import RecordingChannel, make_record

from fundmon.alerts.dispatcher import AlertDispatcher
from fundmon.models import AlertEvent, AlertType


def _events(*rates: str) -> list[AlertEvent]:
    events = []
    for index, rate in enumerate(rates):
        value = Decimal(rate)
        alert_type = AlertType.POSITIVE if value > 0 else AlertType.NEGATIVE
        events.append(
            AlertEvent(make_record(code=f"f{index}", discount_rate=rate), alert_type, Decimal("3"))
        )
    return events


class TestDispatch:
    @pytest.mark.asyncio
    async def test_one_failing_channel_does_not_block_others(self) -> None:
        good_a = RecordingChannel("a")
        bad = RecordingChannel("b", fail=True)
        good_c = RecordingChannel("c")
        dispatcher = AlertDispatcher([good_a, bad, good_c])

        outcomes = await dispatcher.dispatch(_events("3.5"))

        assert [(o.channel, o.success) for o in outcomes] == [
            ("a", True),
            ("b", False),
            ("c", True),
        ]
        assert "b unavailable" in outcomes[1].error
        assert len(good_a.sent) == 1
        assert len(good_c.sent) == 1

    @pytest.mark.asyncio
    async def test_summary_covers_all_events(self) -> None:
        channel = RecordingChannel()
        dispatcher = AlertDispatcher([channel])

        await dispatcher.dispatch(_events("3.5", "-4.0"))

        [(title, message, records)] = channel.sent
        assert title == "Fund premium/discount alert (2 funds)"
        assert "premium 3.50%" in message
        assert "discount 4.00%" in message
        assert [r.code for r in records] == ["f0", "f1"]

    @pytest.mark.asyncio
    async def test_no_events_sends_nothing(self) -> None:
        channel = RecordingChannel()
        dispatcher = AlertDispatcher([channel])

        assert await dispatcher.dispatch([]) == []
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self) -> None:
        active = 0
        peak = 0

        class SlowChannel(RecordingChannel):
            async def send(self, title, message, records=None):  # type: ignore[no-untyped-def]
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1

        dispatcher = AlertDispatcher([SlowChannel(str(i)) for i in range(6)], max_concurrency=2)
        outcomes = await dispatcher.broadcast("t", "m")

        assert len(outcomes) == 6
        assert peak == 2

    @pytest.mark.asyncio
    async def test_single_and_system_alerts(self) -> None:
        channel = RecordingChannel()
        dispatcher = AlertDispatcher([channel])

        await dispatcher.send_single_alert(_events("-5")[0])
        await dispatcher.send_system_alert("started", "up")

        assert channel.sent[0][0] == "Fund discount alert"
        assert channel.sent[1][:2] == ("System started", "up")
        assert channel.sent[1][2] is None


class TestChannelTests:
    @pytest.mark.asyncio
    async def test_reports_per_channel(self) -> None:
        dispatcher = AlertDispatcher([RecordingChannel("ok"), RecordingChannel("down", fail=True)])

        results = await dispatcher.test_channels()

        assert results["ok"] == {"success": True}
        assert results["down"]["success"] is False
        assert "down unavailable" in results["down"]["error"]

    @pytest.mark.asyncio
    async def test_close_closes_every_channel(self) -> None:
        channels = [RecordingChannel("a"), RecordingChannel("b")]
        await AlertDispatcher(channels).close()
        assert all(c.closed for c in channels)
