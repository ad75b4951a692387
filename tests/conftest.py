import pytest

from models.decision import Decision, TradeAction
from models.opportunity import Opportunity, TokenInfo
from models.risk import RiskAssessment
from modules.portfolio import PositionManager
from modules.price_oracle import StaticPriceOracle
from modules.wallet import PaperWallet
from utils.config_manager import TradingLimits
from utils.event_bus import EventBus

# 2023-11-14 00:00:00 UTC (a Tuesday)
MIDNIGHT = 1_699_920_000.0
NOON = MIDNIGHT + 12 * 3600


@pytest.fixture
def limits():
    return TradingLimits()


@pytest.fixture
def noon():
    return NOON


@pytest.fixture
def token():
    return TokenInfo(id="pepe", symbol="PEPE", name="Pepe")


@pytest.fixture
def make_opportunity(token):
    """Low-risk defaults; override any field by keyword."""

    def _make(**kw):
        data = dict(
            token=token,
            entry_price=1.0,
            stop_loss=0.95,
            take_profit=1.15,
            confidence=0.8,
            market_cap=5_000_000,
            volume_24h=500_000,
            price_change_24h=5.0,
            timestamp=NOON,
        )
        data.update(kw)
        return Opportunity(**data)

    return _make


@pytest.fixture
def make_decision(token):
    def _make(**kw):
        data = dict(
            action=TradeAction.BUY,
            token=token,
            position_size=20.0,
            entry=1.0,
            stop_loss=0.95,
            take_profit=1.15,
            confidence=0.8,
            risk=RiskAssessment(overall=0.0),
            timestamp=NOON,
            reasons=("High confidence signal",),
        )
        data.update(kw)
        return Decision(**data)

    return _make


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def oracle():
    return StaticPriceOracle()


@pytest.fixture
def wallet():
    return PaperWallet(1000.0)


@pytest.fixture
def manager(limits, wallet, oracle, bus):
    return PositionManager(limits, wallet, oracle, bus=bus, lookup_timeout=0.5)
