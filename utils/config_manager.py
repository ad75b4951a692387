from dataclasses import dataclass
from typing import Any, Dict

from utils.timeframe import interval_seconds


@dataclass(frozen=True)
class TradingLimits:
    max_position_size: float = 100.0
    risk_percentage: float = 2.0          # percent of portfolio per position
    max_portfolio_risk: float = 0.8       # fraction of portfolio deployed
    max_active_positions: int = 10
    min_position_size: float = 10.0
    stop_loss_percentage: float = 5.0     # default stop when a signal's stop is out of band
    take_profit_percentage: float = 15.0
    emergency_stop_loss: float = 0.2      # daily loss fraction
    max_total_loss: float = 0.30
    max_consecutive_losses: int = 5
    max_token_concentration: float = 0.30
    max_hold_hours: float = 24.0
    min_stop_distance: float = 0.02
    max_stop_distance: float = 0.20
    slippage_pct: float = 0.0          # fill estimate for paper trades, fraction per leg


class ConfigManager:
    def __init__(self, config: Dict[str, Any]):
        self.config = config

    def get(self, key: str, default: Any = None) -> Any:
        return self.config.get(key, default)

    def get_trading_limits(self) -> TradingLimits:
        t = self.config.get("TRADING", {}) or {}
        w = self.config.get("WALLET", {}) or {}
        defaults = TradingLimits()
        return TradingLimits(
            max_position_size=float(t.get("max_position_size", defaults.max_position_size)),
            risk_percentage=float(t.get("risk_percentage", defaults.risk_percentage)),
            max_portfolio_risk=float(t.get("max_portfolio_risk", defaults.max_portfolio_risk)),
            max_active_positions=int(t.get("max_active_positions", defaults.max_active_positions)),
            min_position_size=float(t.get("min_position_size", defaults.min_position_size)),
            stop_loss_percentage=float(t.get("stop_loss_percentage", defaults.stop_loss_percentage)),
            take_profit_percentage=float(
                t.get("take_profit_percentage", defaults.take_profit_percentage)
            ),
            emergency_stop_loss=float(w.get("emergency_stop_loss", defaults.emergency_stop_loss)),
            max_hold_hours=float(t.get("max_hold_hours", defaults.max_hold_hours)),
            slippage_pct=float(t.get("slippage_pct", defaults.slippage_pct)),
        )

    def get_trading_mode(self) -> str:
        return self.config.get("TRADING_MODE") or "paper"

    def get_tick_seconds(self) -> int:
        return interval_seconds(self.config.get("ENGINE", {}).get("tick_interval", "1m"))

    def get_lookup_timeout(self) -> float:
        return float(self.config.get("ENGINE", {}).get("lookup_timeout", 5.0))

    def get_signal_queue_size(self) -> int:
        return int(self.config.get("ENGINE", {}).get("signal_queue_size", 100))

    def get_initial_cash(self) -> float:
        return float(self.config.get("WALLET", {}).get("initial_cash", 1000.0))

    def get_telegram(self) -> Dict[str, Any]:
        return self.config.get("TELEGRAM") or {}
