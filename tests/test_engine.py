import asyncio

import pytest
from unittest.mock import patch

from core.engine import TradingEngine
from core.sources import ScriptedSignalSource, SentimentSource, SignalSource, StaticSentimentSource
from models.position import CloseReason
from models.risk import RiskLevel
from modules.portfolio import utc_date
from utils.event_bus import DECISION, EMERGENCY_STOP, ENGINE_HALTED, RISK_LEVEL

MIDNIGHT = 1_699_920_000.0
NOON = MIDNIGHT + 12 * 3600


# ------------------------- Helpers ------------------------- #

class SlowSignals(SignalSource):
    async def scan(self):
        await asyncio.sleep(1)
        return []


class BrokenSentiment(SentimentSource):
    async def sentiment(self):
        raise ConnectionError("feed down")


@pytest.fixture
def engine(manager, bus):
    return TradingEngine(
        manager,
        sentiment_source=StaticSentimentSource(0.0),
        bus=bus,
        tick_seconds=60,
        lookup_timeout=0.05,
        queue_size=5,
        clock=lambda: NOON,
    )


@pytest.fixture
def published(bus):
    seen = []
    for topic in (DECISION, EMERGENCY_STOP, RISK_LEVEL, ENGINE_HALTED):
        bus.subscribe(topic, lambda payload, t=topic: seen.append((t, payload)))
    return seen


# ------------------------- Tick ------------------------- #

@pytest.mark.asyncio
async def test_tick_opens_queued_opportunity(engine, bus, published, make_opportunity):
    assert engine.submit_nowait(make_opportunity())
    decisions = await engine.tick(now=NOON)
    await bus.drain()

    assert len(decisions) == 1
    assert decisions[0].position_size == pytest.approx(20)
    assert len(engine.open_positions()) == 1
    assert engine.pending == 0
    assert len(engine.snapshots) == 1
    assert (DECISION, decisions[0]) in published


@pytest.mark.asyncio
async def test_tick_scans_signal_source(engine, make_opportunity):
    engine.signal_source = ScriptedSignalSource([[make_opportunity()]])
    assert len(await engine.tick(now=NOON)) == 1
    assert await engine.tick(now=NOON + 60) == []


@pytest.mark.asyncio
async def test_tick_closes_on_fresh_mark(engine, oracle, make_opportunity):
    engine.submit_nowait(make_opportunity())
    await engine.tick(now=NOON)

    oracle.set_price("pepe", 0.94)
    await engine.tick(now=NOON + 60)
    assert engine.open_positions() == []
    assert engine.positions.history[0].close_reason is CloseReason.STOP_LOSS


@pytest.mark.asyncio
async def test_single_position_raises_concentration_alert(engine, bus, published, make_opportunity):
    engine.submit_nowait(make_opportunity())
    await engine.tick(now=NOON)
    await bus.drain()
    assert engine.portfolio_risk.risk_level is RiskLevel.HIGH
    assert [t for t, _ in published].count(RISK_LEVEL) == 1


@pytest.mark.asyncio
async def test_emergency_stop_blocks_new_trades_but_keeps_positions(engine, bus, published, make_opportunity):
    engine.submit_nowait(make_opportunity())
    await engine.tick(now=NOON)

    engine.positions.daily_pnl_by_date[utc_date(NOON)] = -250.0
    engine.submit_nowait(make_opportunity())
    assert await engine.tick(now=NOON + 60) == []
    await bus.drain()

    assert engine.emergency.should_stop
    assert "Daily loss exceeds 20%" in engine.emergency.reasons
    assert len(engine.open_positions()) == 1
    assert [t for t, _ in published].count(EMERGENCY_STOP) == 1


@pytest.mark.asyncio
async def test_lookup_failures_degrade_to_no_data(engine, make_opportunity):
    engine.sentiment = 0.4
    engine.sentiment_source = BrokenSentiment()
    engine.signal_source = SlowSignals()
    engine.submit_nowait(make_opportunity())

    decisions = await engine.tick(now=NOON)
    assert len(decisions) == 1
    assert engine.sentiment == 0.4
    assert engine.metrics["lookup_failures"] == 2


@pytest.mark.asyncio
async def test_sentiment_is_clamped(engine):
    engine.sentiment_source = StaticSentimentSource(5.0)
    await engine.tick(now=NOON)
    assert engine.sentiment == 1.0


def test_queue_backpressure(engine, make_opportunity):
    for _ in range(5):
        assert engine.submit_nowait(make_opportunity())
    assert not engine.submit_nowait(make_opportunity())
    assert engine.metrics["dropped_signals"] == 1


# ------------------------- Halting ------------------------- #

@pytest.mark.asyncio
async def test_mutation_failure_halts_and_preserves_positions(engine, bus, published, make_opportunity):
    engine.submit_nowait(make_opportunity())
    await engine.tick(now=NOON)

    with patch.object(engine.positions, "apply_marks", side_effect=RuntimeError("corrupt book")):
        assert await engine.tick(now=NOON + 60) == []
    await bus.drain()

    assert engine.halted and not engine.accepting
    assert len(engine.open_positions()) == 1
    assert any(t == ENGINE_HALTED for t, _ in published)

    engine.submit_nowait(make_opportunity())
    assert await engine.tick(now=NOON + 120) == []
    assert len(engine.open_positions()) == 1


@pytest.mark.asyncio
async def test_persistent_failure_publishes_halt_once(engine, bus, published):
    with patch.object(engine.positions, "apply_marks", side_effect=RuntimeError("corrupt book")):
        for i in range(3):
            await engine.tick(now=NOON + i * 60)
    await bus.drain()

    assert engine.halted
    assert [t for t, _ in published].count(ENGINE_HALTED) == 1


# ------------------------- Manual operations ------------------------- #

@pytest.mark.asyncio
async def test_manual_close_waits_for_gate(engine, make_opportunity):
    engine.submit_nowait(make_opportunity())
    await engine.tick(now=NOON)
    pid = engine.open_positions()[0].id

    async with engine._gate:
        task = asyncio.create_task(engine.close_position(pid))
        await asyncio.sleep(0.01)
        assert not task.done()
        assert engine.positions.get(pid) is not None

    record = await task
    assert record.close_reason is CloseReason.MANUAL
    assert await engine.close_position(pid) is None


@pytest.mark.asyncio
async def test_close_all(engine, make_opportunity):
    engine.submit_nowait(make_opportunity())
    engine.submit_nowait(make_opportunity(token={"id": "wif", "symbol": "WIF"}))
    await engine.tick(now=NOON)

    records = await engine.close_all(now=NOON + 60)
    assert len(records) == 2
    assert engine.open_positions() == []
    assert engine.performance_report().overview.total_trades == 2


# ------------------------- Loop control ------------------------- #

@pytest.mark.asyncio
async def test_stop_leaves_positions_open(engine, make_opportunity):
    engine.submit_nowait(make_opportunity())
    engine.start()
    await asyncio.sleep(0.05)

    await engine.stop()
    assert not engine.accepting
    assert engine.tick_count == 1
    assert len(engine.open_positions()) == 1

    engine.submit_nowait(make_opportunity())
    assert await engine.tick(now=NOON + 60) == []
    assert len(engine.open_positions()) == 1


@pytest.mark.asyncio
async def test_run_with_max_ticks(engine):
    engine.tick_seconds = 0.01
    await engine.run(max_ticks=3)
    assert engine.tick_count == 3


def test_risk_report_includes_breaker_state(engine):
    report = engine.risk_report()
    assert report["emergency_stop"] == {"active": False, "reasons": []}
    assert report["halted"] is False
