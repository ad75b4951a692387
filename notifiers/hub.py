"""
notifiers/hub.py
----------------
Fan-out layer that owns the back-end notifiers, listens to the engine's event
bus and keeps the most recent alerts in memory.
"""
from __future__ import annotations
import logging
import time
from collections import deque
from typing import Deque, Dict, List, Optional

from models.risk import EmergencyStopCheck, PortfolioRisk
from models.trade_record import TradeRecord
from notifiers.base import BaseNotifier
from notifiers.telegram import TelegramNotifier
from utils.event_bus import (
    BUS,
    ENGINE_HALTED,
    EMERGENCY_STOP,
    POSITION_CLOSED,
    RISK_LEVEL,
    EventBus,
)

logger = logging.getLogger(__name__)

MAX_ALERTS = 100


class AlertHub:
    """Collects active back-ends based on config and broadcasts engine alerts."""

    def __init__(
        self,
        cfg: Optional[Dict] = None,
        *,
        backends: Optional[List[BaseNotifier]] = None,
        max_alerts: int = MAX_ALERTS,
    ) -> None:
        cfg = cfg or {}
        self.backends: List[BaseNotifier] = list(backends or [])
        self.alerts: Deque[Dict] = deque(maxlen=max_alerts)

        if backends is None:
            tg_cfg = cfg.get("TELEGRAM", {}) or {}
            if tg_cfg.get("token") and tg_cfg.get("chat_id"):
                self.backends.append(
                    TelegramNotifier(token=tg_cfg["token"], chat_id=tg_cfg["chat_id"])
                )
            else:
                logger.info("Telegram alerts disabled – token or chat id missing")

    # ------------------------------------------------------------------ #
    # Wiring
    # ------------------------------------------------------------------ #
    def attach(self, bus: EventBus = BUS) -> "AlertHub":
        bus.subscribe(POSITION_CLOSED, self.on_position_closed)
        bus.subscribe(EMERGENCY_STOP, self.on_emergency_stop)
        bus.subscribe(RISK_LEVEL, self.on_risk_level)
        bus.subscribe(ENGINE_HALTED, self.on_engine_halted)
        return self

    # ------------------------------------------------------------------ #
    # Event handlers
    # ------------------------------------------------------------------ #
    async def on_position_closed(self, record: TradeRecord) -> None:
        icon = "✅" if record.is_win else "❌"
        await self.alert(
            "position_closed",
            "info",
            f"{icon} {record.symbol} closed ({record.close_reason.value}) "
            f"@ {record.exit_price:g}  PnL {record.pnl:+.2f}",
        )

    async def on_emergency_stop(self, check: EmergencyStopCheck) -> None:
        await self.alert("emergency_stop", "critical", "🚨 Emergency stop: " + "; ".join(check.reasons))

    async def on_risk_level(self, risk: PortfolioRisk) -> None:
        text = f"⚠️ Portfolio risk {risk.risk_level.value.upper()} – exposure {risk.exposure:.0%}"
        if risk.warnings:
            text += "\n" + "\n".join(risk.warnings)
        await self.alert("risk_level", "warning", text)

    async def on_engine_halted(self, reason: str) -> None:
        await self.alert("engine_halted", "critical", f"🛑 Engine halted: {reason}")

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def alert(self, kind: str, severity: str, text: str) -> None:
        self.alerts.append({"type": kind, "severity": severity, "message": text, "timestamp": time.time()})
        level = logging.WARNING if severity in ("warning", "critical") else logging.INFO
        logger.log(level, "[AlertHub] %s", text)

        for b in self.backends:
            try:
                await b.send(text)
            except Exception as exc:  # noqa: BLE001 (keep hub robust)
                # one failing back-end must not silence the others
                logger.warning("[AlertHub] back-end %s failed: %s", b.__class__.__name__, exc)

    def recent(self, n: int = 10) -> List[Dict]:
        return list(self.alerts)[-n:]
