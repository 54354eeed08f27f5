import asyncio

import pytest

from codearena_core import DeadlineTimer, format_remaining, parse_timer_preset

TICK = 0.01


def test_parse_timer_preset_handles_valid_and_invalid():
    assert parse_timer_preset("10:00") == 600
    assert parse_timer_preset("3:30") == 210
    assert parse_timer_preset("00:00") == 0
    assert parse_timer_preset(None) is None
    assert parse_timer_preset("invalid") is None
    assert parse_timer_preset("1:2:3") is None


def test_format_remaining():
    assert format_remaining(600) == "10:00"
    assert format_remaining(59) == "0:59"
    assert format_remaining(3725) == "1:02:05"
    assert format_remaining(-4) == "0:00"


def test_runs_to_completion_and_expires_once():
    async def scenario():
        ticks, expiries = [], []
        timer = DeadlineTimer(TICK)
        timer.start(3, ticks.append, lambda: expiries.append(True))
        await asyncio.sleep(TICK * 30)
        return timer, ticks, expiries

    timer, ticks, expiries = asyncio.run(scenario())
    assert ticks == [2, 1, 0]
    assert expiries == [True]
    assert timer.phase == "expired"
    assert timer.running is False


def test_expires_exactly_once_for_various_start_values():
    async def scenario(start):
        expiries = []
        timer = DeadlineTimer(TICK)
        timer.start(start, lambda _: None, lambda: expiries.append(True))
        await asyncio.sleep(TICK * (start + 10))
        timer.stop()
        timer.stop()
        return expiries

    for start in (1, 2, 5):
        assert asyncio.run(scenario(start)) == [True]


def test_stop_prevents_expiry_and_is_idempotent():
    async def scenario():
        ticks, expiries = [], []
        timer = DeadlineTimer(TICK)
        timer.start(20, ticks.append, lambda: expiries.append(True))
        await asyncio.sleep(TICK * 2.5)
        timer.stop()
        timer.stop()
        await asyncio.sleep(TICK * 10)
        return timer, ticks, expiries

    timer, ticks, expiries = asyncio.run(scenario())
    assert expiries == []
    assert timer.phase == "stopped"
    assert len(ticks) < 20


def test_stop_during_final_tick_wins():
    async def scenario():
        expiries = []
        timer = DeadlineTimer(TICK)

        def on_tick(remaining):
            if remaining == 0:
                timer.stop()

        timer.start(2, on_tick, lambda: expiries.append(True))
        await asyncio.sleep(TICK * 10)
        return timer, expiries

    timer, expiries = asyncio.run(scenario())
    assert expiries == []
    assert timer.phase == "stopped"


def test_stop_from_expire_callback_is_a_noop():
    async def scenario():
        expiries = []
        timer = DeadlineTimer(TICK)

        def on_expire():
            expiries.append(True)
            timer.stop()

        timer.start(1, lambda _: None, on_expire)
        await asyncio.sleep(TICK * 10)
        return timer, expiries

    timer, expiries = asyncio.run(scenario())
    assert expiries == [True]
    assert timer.phase == "expired"


def test_timer_cannot_be_restarted():
    async def scenario():
        timer = DeadlineTimer(TICK)
        timer.start(1, lambda _: None, lambda: None)
        with pytest.raises(RuntimeError):
            timer.start(1, lambda _: None, lambda: None)
        timer.stop()

    asyncio.run(scenario())


def test_rejects_bad_arguments():
    with pytest.raises(ValueError):
        DeadlineTimer(0)

    async def scenario():
        with pytest.raises(ValueError):
            DeadlineTimer(TICK).start(-1, lambda _: None, lambda: None)

    asyncio.run(scenario())
