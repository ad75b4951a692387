import logging

from utils.timeframe import interval_seconds

logger = logging.getLogger(__name__)

TRADING_MODES = ("paper", "live")


def validate_config(config: dict):
    required_keys = [
        "TRADING_MODE",
        "TRADING",
        "WALLET",
        "ENGINE",
    ]

    missing = [k for k in required_keys if k not in config or not config[k]]
    if missing:
        raise ValueError(f"Missing required configuration keys: {missing}")

    for section in ("TRADING", "WALLET", "ENGINE"):
        if not isinstance(config[section], dict):
            raise TypeError(f"{section} must be a dictionary.")

    if config["TRADING_MODE"] not in TRADING_MODES:
        logger.warning(
            "TRADING_MODE should be either 'paper' or 'live' (got %r). Defaulting to paper.",
            config["TRADING_MODE"],
        )
        config["TRADING_MODE"] = "paper"

    trading = config["TRADING"]
    for key in ("max_position_size", "risk_percentage", "min_position_size"):
        if float(trading.get(key, 1)) <= 0:
            raise ValueError(f"TRADING.{key} must be positive.")

    if float(trading.get("min_position_size", 10)) > float(trading.get("max_position_size", 100)):
        raise ValueError("TRADING.min_position_size cannot exceed TRADING.max_position_size.")

    if not 0 < float(trading.get("max_portfolio_risk", 0.8)) <= 1:
        raise ValueError("TRADING.max_portfolio_risk must be in (0, 1].")

    if int(trading.get("max_active_positions", 10)) < 1:
        raise ValueError("TRADING.max_active_positions must be at least 1.")

    if not 0 <= float(trading.get("slippage_pct", 0)) < 0.1:
        raise ValueError("TRADING.slippage_pct must be in [0, 0.1).")

    if not 0 < float(config["WALLET"].get("emergency_stop_loss", 0.2)) < 1:
        raise ValueError("WALLET.emergency_stop_loss must be in (0, 1).")

    # raises ValueError on garbage like "soon"
    interval_seconds(config["ENGINE"].get("tick_interval", "1m"))

    return True
