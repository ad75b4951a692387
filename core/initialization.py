"""
core/initialization.py
----------------------
Loads configuration from .env, validates it, and wires all runtime components
with simple dependency-injection (DI) overrides.
"""

from __future__ import annotations

import os
import logging
from typing import Dict, Optional

from dotenv import load_dotenv

from core.engine import TradingEngine
from modules.opportunity_evaluator import OpportunityEvaluator
from modules.performance_analyzer import PerformanceAnalyzer
from modules.portfolio import PositionManager
from modules.risk_assessor import RiskAssessor
from modules.position_sizer import PositionSizer
from modules.wallet import PaperWallet
from notifiers.hub import AlertHub
from utils.config_manager import ConfigManager
from utils.config_validator import validate_config
from utils.event_bus import BUS
from utils.timeframe import normalize_tf, periods_per_year


def load_configuration(env_path: str = "config.env") -> Dict:
    """
    Load settings from an .env-style file and return a structured config dict.
    """
    log = logging.getLogger(__name__)
    load_dotenv(dotenv_path=env_path)

    conf: Dict[str, object] = {
        "TRADING_MODE": (os.getenv("TRADING_MODE", "paper") or "paper").strip().lower(),
        "TRADING": {
            "max_position_size": float(os.getenv("MAX_POSITION_SIZE", "100")),
            "risk_percentage": float(os.getenv("RISK_PERCENTAGE", "2")),
            "max_portfolio_risk": float(os.getenv("MAX_PORTFOLIO_RISK", "0.8")),
            "max_active_positions": int(os.getenv("MAX_ACTIVE_POSITIONS", "10")),
            "min_position_size": float(os.getenv("MIN_POSITION_SIZE", "10")),
            "stop_loss_percentage": float(os.getenv("STOP_LOSS_PERCENTAGE", "5")),
            "take_profit_percentage": float(os.getenv("TAKE_PROFIT_PERCENTAGE", "15")),
            "max_hold_hours": float(os.getenv("MAX_HOLD_HOURS", "24")),
            "slippage_pct": float(os.getenv("SLIPPAGE_PCT", "0")),
        },
        "WALLET": {
            "initial_cash": float(os.getenv("INITIAL_CASH", "1000")),
            "emergency_stop_loss": float(os.getenv("EMERGENCY_STOP_LOSS", "0.2")),
        },
        "ENGINE": {
            "tick_interval": normalize_tf(os.getenv("TICK_INTERVAL", "1m")),
            "lookup_timeout": float(os.getenv("LOOKUP_TIMEOUT", "5")),
            "signal_queue_size": int(os.getenv("SIGNAL_QUEUE_SIZE", "100")),
        },
        "TELEGRAM": {
            "token": os.getenv("TELEGRAM_TOKEN"),
            "chat_id": os.getenv("TELEGRAM_CHAT_ID"),
        },
    }

    log.debug("Parsed TRADING: %s", conf["TRADING"])
    log.debug("Parsed ENGINE: %s", conf["ENGINE"])
    return conf


def initialize_components(
    config: Dict,
    overrides: Optional[Dict[str, object]] = None,
    logger: Optional[logging.Logger] = None,
) -> Dict[str, object]:
    """
    Construct and wire together all runtime components (supports DI via overrides).

    Keys you can override:
    {"logger", "bus", "wallet", "price_oracle", "signal_source",
     "sentiment_source", "alert_hub"}
    """
    overrides = overrides or {}
    validate_config(config)
    cfg = ConfigManager(config)

    # 1) Logger
    if logger is None:
        from utils.logger import setup_logger
        logger = overrides.get("logger") or setup_logger("TradingEngine")

    bus = overrides.get("bus") or BUS
    limits = cfg.get_trading_limits()

    # 2) Wallet + position book
    wallet = overrides.get("wallet") or PaperWallet(cfg.get_initial_cash())
    positions = PositionManager(
        limits,
        wallet,
        overrides.get("price_oracle"),
        bus=bus,
        lookup_timeout=cfg.get_lookup_timeout(),
    )

    # 3) Decision core
    risk_assessor = RiskAssessor(limits)
    evaluator = OpportunityEvaluator(limits, risk_assessor, PositionSizer(limits))
    tick_seconds = cfg.get_tick_seconds()
    engine = TradingEngine(
        positions,
        evaluator=evaluator,
        signal_source=overrides.get("signal_source"),
        sentiment_source=overrides.get("sentiment_source"),
        analyzer=PerformanceAnalyzer(periods_per_year=periods_per_year(str(tick_seconds))),
        bus=bus,
        logger=logger,
        tick_seconds=tick_seconds,
        lookup_timeout=cfg.get_lookup_timeout(),
        queue_size=cfg.get_signal_queue_size(),
    )

    # 4) Alerts
    alert_hub = overrides.get("alert_hub") or AlertHub(config)
    alert_hub.attach(bus)

    logger.info("✅ Mode: %s", cfg.get_trading_mode())
    logger.info("✅ Limits: %s", limits)
    logger.info("✅ AlertHub initialized with %d back-ends.", len(alert_hub.backends))
    logger.info("✅ TradingEngine initialized.")

    return {
        "logger": logger,
        "config": cfg,
        "limits": limits,
        "bus": bus,
        "wallet": wallet,
        "positions": positions,
        "evaluator": evaluator,
        "engine": engine,
        "alert_hub": alert_hub,
    }
