import logging
import os

import pytest

from core.initialization import initialize_components, load_configuration
from utils.config_manager import ConfigManager, TradingLimits
from utils.config_validator import validate_config
from utils.logger import setup_logger
from utils.timeframe import interval_seconds, normalize_tf, periods_per_year

ENV_KEYS = (
    "TRADING_MODE", "MAX_POSITION_SIZE", "RISK_PERCENTAGE", "MAX_PORTFOLIO_RISK",
    "MAX_ACTIVE_POSITIONS", "MIN_POSITION_SIZE", "STOP_LOSS_PERCENTAGE",
    "TAKE_PROFIT_PERCENTAGE", "MAX_HOLD_HOURS", "INITIAL_CASH", "EMERGENCY_STOP_LOSS",
    "SLIPPAGE_PCT", "TICK_INTERVAL", "LOOKUP_TIMEOUT", "SIGNAL_QUEUE_SIZE", "TELEGRAM_TOKEN", "TELEGRAM_CHAT_ID",
)


# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def clean_env(monkeypatch):
    # load_dotenv writes into os.environ; keep that local to the test
    monkeypatch.setattr(os, "environ", {k: v for k, v in os.environ.items() if k not in ENV_KEYS})
    return monkeypatch


@pytest.fixture
def config():
    return {
        "TRADING_MODE": "paper",
        "TRADING": {"max_position_size": 50, "risk_percentage": 5, "min_position_size": 5},
        "WALLET": {"initial_cash": 2500, "emergency_stop_loss": 0.1},
        "ENGINE": {"tick_interval": "30s", "lookup_timeout": 2, "signal_queue_size": 7},
        "TELEGRAM": {"token": None, "chat_id": None},
    }


# ------------------------- .env loading ------------------------- #

def test_load_configuration_defaults(clean_env, tmp_path):
    conf = load_configuration(str(tmp_path / "missing.env"))
    assert conf["TRADING_MODE"] == "paper"
    assert conf["TRADING"]["max_position_size"] == 100
    assert conf["TRADING"]["max_portfolio_risk"] == 0.8
    assert conf["WALLET"] == {"initial_cash": 1000.0, "emergency_stop_loss": 0.2}
    assert conf["ENGINE"]["tick_interval"] == "1m"
    assert ConfigManager(conf).get_trading_limits() == TradingLimits()


def test_load_configuration_from_file(clean_env, tmp_path):
    env = tmp_path / "config.env"
    env.write_text("TRADING_MODE=LIVE\nMAX_POSITION_SIZE=250\nTICK_INTERVAL=minute5\nTELEGRAM_CHAT_ID=42\nSLIPPAGE_PCT=0.002\n")
    conf = load_configuration(str(env))
    assert conf["TRADING_MODE"] == "live"
    assert conf["TRADING"]["max_position_size"] == 250
    assert conf["ENGINE"]["tick_interval"] == "5m"
    assert conf["TELEGRAM"]["chat_id"] == "42"
    assert ConfigManager(conf).get_trading_limits().slippage_pct == 0.002


# ------------------------- ConfigManager ------------------------- #

def test_config_manager_accessors(config):
    cfg = ConfigManager(config)
    limits = cfg.get_trading_limits()
    assert limits.max_position_size == 50
    assert limits.risk_percentage == 5
    assert limits.emergency_stop_loss == 0.1
    assert limits.max_active_positions == 10
    assert cfg.get_tick_seconds() == 30
    assert cfg.get_lookup_timeout() == 2.0
    assert cfg.get_signal_queue_size() == 7
    assert cfg.get_initial_cash() == 2500
    assert cfg.get_trading_mode() == "paper"


# ------------------------- Validation ------------------------- #

def test_validate_config_ok(config):
    assert validate_config(config) is True


def test_missing_section_raises(config):
    del config["ENGINE"]
    with pytest.raises(ValueError, match="ENGINE"):
        validate_config(config)


def test_section_must_be_dict(config):
    config["TRADING"] = ["nope"]
    with pytest.raises(TypeError):
        validate_config(config)


def test_invalid_mode_falls_back_to_paper(config, caplog):
    config["TRADING_MODE"] = "yolo"
    with caplog.at_level(logging.WARNING):
        validate_config(config)
    assert config["TRADING_MODE"] == "paper"
    assert "Defaulting to paper" in caplog.text


@pytest.mark.parametrize(
    "section,key,value",
    [
        ("TRADING", "max_position_size", 0),
        ("TRADING", "min_position_size", 500),
        ("TRADING", "max_portfolio_risk", 1.5),
        ("TRADING", "max_active_positions", 0),
        ("TRADING", "slippage_pct", 0.5),
        ("WALLET", "emergency_stop_loss", 1.0),
        ("ENGINE", "tick_interval", "soon"),
    ],
)
def test_bad_values_raise(config, section, key, value):
    config[section][key] = value
    with pytest.raises(ValueError):
        validate_config(config)


# ------------------------- Timeframes ------------------------- #

@pytest.mark.parametrize(
    "raw,canon,seconds",
    [("minute1", "1m", 60), ("1min", "1m", 60), ("hour4", "4h", 14400), ("daily", "1d", 86400),
     ("30sec", "30s", 30), ("90", "90", 90)],
)
def test_timeframes(raw, canon, seconds):
    assert normalize_tf(raw) == canon
    assert interval_seconds(raw) == seconds


def test_periods_per_year():
    assert periods_per_year("1d") == 365
    assert periods_per_year("1h") == 365 * 24


@pytest.mark.parametrize("bad", ["0m", "5y", "", "abc"])
def test_bad_interval(bad):
    with pytest.raises(ValueError):
        interval_seconds(bad)


# ------------------------- Wiring ------------------------- #

def test_initialize_components(config):
    components = initialize_components(config, logger=logging.getLogger("test"))
    engine = components["engine"]
    assert engine.tick_seconds == 30
    assert engine.limits.max_position_size == 50
    assert engine.positions.wallet.cash == 2500
    assert components["alert_hub"].backends == []


def test_setup_logger_is_idempotent(tmp_path):
    log_file = tmp_path / "engine.log"
    a = setup_logger("test-idempotent", log_file=str(log_file), to_console=False)
    b = setup_logger("test-idempotent", log_file=str(log_file), to_console=False)
    assert a is b
    assert len(a.handlers) == 1
    a.info("hello")
    assert "hello" in log_file.read_text()
