import asyncio
import threading

from courtbook import main


def test_expiry_sweep_does_not_block_the_event_loop(monkeypatch):
    released = threading.Event()
    outcomes = []

    def slow_sweep():
        # Only returns True if the event loop kept running while we waited
        outcomes.append(released.wait(timeout=2))
        return 0

    monkeypatch.setattr(main, "run_expiry_sweep", slow_sweep)

    async def scenario():
        task = asyncio.create_task(main._expiry_sweep_loop(3600))
        await asyncio.sleep(0.05)
        released.set()
        while not outcomes:
            await asyncio.sleep(0.01)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    asyncio.run(scenario())
    assert outcomes == [True]


def test_expiry_sweep_survives_errors(monkeypatch):
    calls = []

    def failing_sweep():
        calls.append(1)
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(main, "run_expiry_sweep", failing_sweep)

    async def scenario():
        task = asyncio.create_task(main._expiry_sweep_loop(0))
        while len(calls) < 2:
            await asyncio.sleep(0.01)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    asyncio.run(scenario())
    assert len(calls) >= 2
