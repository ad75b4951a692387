import pytest
from unittest.mock import MagicMock

from models.decision import TradeAction, Verdict
from models.opportunity import TokenInfo
from models.position import Position
from modules.opportunity_evaluator import OpportunityEvaluator, sentiment_multiplier

MIDNIGHT = 1_699_920_000.0
NOON = MIDNIGHT + 12 * 3600


# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def evaluator(limits):
    return OpportunityEvaluator(limits)


def _held(n, size=20.0):
    return [
        Position(
            id=f"pos_{i:06d}",
            token=TokenInfo(id=f"t{i}", symbol=f"TOK{i}", name=""),
            action=TradeAction.BUY,
            size=size,
            entry_price=1.0,
            current_price=1.0,
            stop_loss=0.95,
            take_profit=1.15,
            confidence=0.5,
            opened_at=NOON,
        )
        for i in range(n)
    ]


# ------------------------- Tests ------------------------- #

def test_accepts_clean_opportunity(evaluator, make_opportunity):
    ev = evaluator.evaluate(make_opportunity(), 0.0, [], 1000, now=NOON)

    assert ev.verdict is Verdict.ACCEPT
    assert ev.accepted
    d = ev.decision
    assert d.action is TradeAction.BUY
    assert d.position_size == pytest.approx(20)
    assert d.stop_loss == pytest.approx(0.95)
    assert d.take_profit == pytest.approx(1.15)
    assert d.confidence == pytest.approx(0.8)
    assert d.timestamp == NOON
    assert d.risk_score == 0.0
    assert d.reasons == ("High confidence signal", "Memecoin opportunity", "Low risk profile")


def test_emergency_stop_rejects_everything(evaluator, make_opportunity):
    ev = evaluator.evaluate(make_opportunity(), 0.0, [], 1000, emergency_stop_active=True, now=NOON)
    assert ev.verdict is Verdict.REJECT
    assert ev.decision is None
    assert ev.reasons == ["Emergency stop active"]


def test_high_risk_rejected(evaluator, make_opportunity):
    opp = make_opportunity(market_cap=50_000, price_change_24h=60, volume_24h=20_000)
    ev = evaluator.evaluate(opp, 0.0, [], 1000, now=NOON)
    assert ev.reasons == ["High risk score"]
    assert ev.risk.overall == pytest.approx(1.0)


def test_max_active_positions(evaluator, make_opportunity):
    ev = evaluator.evaluate(make_opportunity(), 0.0, _held(10), 1000, now=NOON)
    assert ev.reasons == ["Maximum active positions reached"]


def test_minimum_size_above_cap_rejected(evaluator, make_opportunity):
    ev = evaluator.evaluate(make_opportunity(), 0.0, [], 100, now=NOON)
    assert ev.reasons == ["Position below minimum size"]


def test_exposure_limit(evaluator, make_opportunity):
    ev = evaluator.evaluate(make_opportunity(), 0.0, _held(9, size=88), 1000, now=NOON)
    assert ev.reasons == ["Portfolio exposure limit reached"]


@pytest.mark.parametrize("stop", [0.99, 0.5])
def test_out_of_band_stop_replaced_with_default(evaluator, make_opportunity, stop):
    ev = evaluator.evaluate(make_opportunity(stop_loss=stop), 0.0, [], 1000, now=NOON)
    assert ev.accepted
    assert ev.decision.stop_loss == pytest.approx(0.95)
    assert "Stop loss adjusted" in ev.decision.reasons


def test_elevated_risk_gives_resize(evaluator, make_opportunity):
    opp = make_opportunity(market_cap=500_000, price_change_24h=25, volume_24h=75_000)
    ev = evaluator.evaluate(opp, 0.0, [], 1000, now=MIDNIGHT + 3 * 3600)

    assert ev.risk.overall == pytest.approx(0.5)
    assert ev.verdict is Verdict.RESIZE
    assert ev.decision.position_size == pytest.approx(20)
    assert "Size reduced for elevated risk" in ev.decision.reasons
    assert "Market cap consideration" in ev.decision.reasons
    assert "Liquidity analysis" in ev.decision.reasons
    assert "Low risk profile" not in ev.decision.reasons


def test_bullish_sentiment_boosts_and_clamps(evaluator, make_opportunity):
    ev = evaluator.evaluate(make_opportunity(confidence=0.9), 0.5, [], 1000, now=NOON)
    assert ev.decision.confidence == pytest.approx(1.0)
    assert "Bullish market sentiment" in ev.decision.reasons


def test_bearish_sentiment_dampens(evaluator, make_opportunity):
    ev = evaluator.evaluate(make_opportunity(), -0.5, [], 1000, now=NOON)
    assert ev.decision.confidence == pytest.approx(0.64)


@pytest.mark.parametrize(
    "sentiment,mult", [(0.5, 1.2), (0.2, 1.1), (0.0, 1.0), (-0.2, 0.9), (-0.9, 0.8)]
)
def test_sentiment_multiplier(sentiment, mult):
    assert sentiment_multiplier(sentiment) == mult


def test_fallback_reason(evaluator, make_opportunity):
    opp = make_opportunity(confidence=0.5, price_change_24h=60, type="other")
    ev = evaluator.evaluate(opp, 0.0, [], 1000, now=NOON)
    assert ev.decision.reasons == ("Technical analysis signal",)


def test_unexpected_failure_becomes_reject(evaluator, make_opportunity):
    evaluator.risk_assessor = MagicMock()
    evaluator.risk_assessor.assess_trade_risk.side_effect = RuntimeError("boom")
    ev = evaluator.evaluate(make_opportunity(), 0.0, [], 1000, now=NOON)
    assert ev.verdict is Verdict.REJECT
    assert ev.reasons == ["Evaluation failed"]


@pytest.mark.parametrize("confidence", [0.1, 0.3, 0.6, 0.9, 1.0])
@pytest.mark.parametrize("portfolio_value", [500, 1000, 5000, 20_000])
def test_accepted_sizes_respect_bounds(evaluator, limits, make_opportunity, confidence, portfolio_value):
    ev = evaluator.evaluate(make_opportunity(confidence=confidence), 0.3, [], portfolio_value, now=NOON)
    if ev.accepted:
        size = ev.decision.position_size
        assert size <= limits.max_position_size
        assert size <= portfolio_value * limits.risk_percentage / 100 + 1e-9
        assert size >= limits.min_position_size
