import asyncio

from mapquery.observability.metrics import MetricsRegistry
from mapquery.orchestrator.debounce import LatestWins


def test_newer_request_supersedes_older():
    async def _run():
        metrics = MetricsRegistry()
        gate = LatestWins(delay=0.01, metrics=metrics, name="test")
        calls = []

        def lookup(value):
            async def _factory():
                calls.append(value)
                return value

            return _factory

        first, second = await asyncio.gather(gate.submit(lookup("par")), gate.submit(lookup("paris")))
        return first, second, calls, metrics.get("requests_superseded")

    first, second, calls, superseded = asyncio.run(_run())
    assert first is None
    assert second == "paris"
    assert calls == ["paris"]
    assert superseded == 1


def test_sequential_requests_both_complete():
    async def _run():
        gate = LatestWins(delay=0)

        async def one():
            return 1

        async def two():
            return 2

        return await gate.submit(one), await gate.submit(two)

    assert asyncio.run(_run()) == (1, 2)


def test_cancel_drops_pending_request():
    async def _run():
        gate = LatestWins(delay=0.05)

        async def never():
            return "stale"

        pending = asyncio.ensure_future(gate.submit(never))
        await asyncio.sleep(0)
        gate.cancel()
        return await pending

    assert asyncio.run(_run()) is None
