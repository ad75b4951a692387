import pytest

from models.opportunity import Opportunity
from models.position import CloseReason
from modules.backtest import BacktestSimulator
from modules.market_data import generate_price_series, to_points
from modules.strategy.base import FunctionStrategy
from modules.strategy.meme import MemeStrategy


def momentum(point, token):
    if point.change_24h <= 2:
        return None
    return Opportunity(
        token=token,
        entry_price=point.price,
        stop_loss=point.price * 0.95,
        take_profit=point.price * 1.10,
        confidence=0.7,
        market_cap=point.market_cap,
        volume_24h=point.volume,
        price_change_24h=point.change_24h,
        timestamp=point.timestamp,
    )


@pytest.fixture
def series():
    return generate_price_series(days=5, seed=7)


@pytest.fixture
def simulator(limits):
    return BacktestSimulator(limits, FunctionStrategy(momentum, "momentum"), initial_cash=1000)


def test_backtest_is_deterministic(simulator, series):
    first = simulator.run(series)
    second = simulator.run(series)

    assert first.trades
    assert first.trades == second.trades
    assert first.decisions == second.decisions
    assert first.final_value == second.final_value


def test_backtest_closes_everything_at_end(simulator, series):
    result = simulator.run(series)

    assert len(result.trades) == len(result.decisions)
    assert result.trades[-1].closed_at <= series["timestamp"].iloc[-1]
    assert result.final_value == pytest.approx(1000 + sum(t.pnl for t in result.trades))
    assert len(result.snapshots) == len(series) + 1
    assert result.report.overview.total_trades == len(result.trades)


def test_backtest_can_leave_positions_open(limits, series):
    sim = BacktestSimulator(limits, FunctionStrategy(momentum), close_at_end=False)
    result = sim.run(series)
    assert len(result.trades) <= len(result.decisions)
    assert all(t.close_reason is not CloseReason.MANUAL for t in result.trades)


def test_backtest_accepts_point_dicts(simulator):
    bars = [
        {"timestamp": 1_699_963_200 + i * 3600, "price": p, "volume": 500_000,
         "market_cap": 5_000_000, "change_24h": 5}
        for i, p in enumerate([1.0, 1.02, 0.94, 1.0])
    ]
    result = simulator.run(bars)
    assert result.trades[0].close_reason is CloseReason.STOP_LOSS
    assert result.trades[0].exit_price == 0.94


def test_empty_series(simulator):
    result = simulator.run([])
    assert result.trades == []
    assert result.final_value == 1000
    assert result.report.overview.total_trades == 0
    assert result.summary()["total_return"] == 0.0


def test_default_strategy_is_memecoin(limits):
    sim = BacktestSimulator(limits)
    assert isinstance(sim.strategy, MemeStrategy)


def test_millisecond_series_matches_seconds(simulator, series):
    in_ms = series.assign(timestamp=series["timestamp"] * 1000)

    seconds = simulator.run(series)
    millis = simulator.run(in_ms)

    assert millis.trades
    assert millis.trades == seconds.trades
    assert millis.decisions == seconds.decisions


def test_sub_second_bars_fall_back_to_daily_periods(simulator):
    bars = [{"timestamp": 1_699_963_200 + i * 0.5, "price": 1.0} for i in range(4)]
    assert BacktestSimulator._periods_per_year(to_points(bars)) == 365.0
    result = simulator.run(bars)
    assert len(result.snapshots) == len(bars) + 1
