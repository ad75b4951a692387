# utils/timeframe.py
import re

_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def normalize_tf(tf: str) -> str:
    """
    Map a bunch of aliases to a canonical key ('1h', '4h', ...).
    Extend if you add more.
    """
    t = str(tf).strip().lower()
    aliases = {
        "1s": ["1s", "1sec", "second1"],
        "5s": ["5s", "5sec", "second5"],
        "15s": ["15s", "15sec", "second15"],
        "30s": ["30s", "30sec", "second30"],
        "1m": ["1m", "1min", "minute1"],
        "5m": ["5m", "5min", "minute5"],
        "15m": ["15m", "15min", "minute15"],
        "30m": ["30m", "30min", "minute30"],
        "1h": ["1h", "h1", "hour1"],
        "4h": ["4h", "h4", "hour4"],
        "12h": ["12h", "hour12"],
        "1d": ["1d", "day1", "daily"],
        "1w": ["1w", "week1", "weekly"],
    }
    for canon, alts in aliases.items():
        if t in alts:
            return canon
    return t


def interval_seconds(tf: str) -> int:
    """'15m' -> 900. Plain integers are taken as seconds."""
    t = normalize_tf(tf)
    if t.isdigit():
        return int(t)
    m = re.fullmatch(r"(\d+)([smhdw])", t)
    if not m or int(m.group(1)) == 0:
        raise ValueError(f"Unknown interval '{tf}'")
    return int(m.group(1)) * _UNIT_SECONDS[m.group(2)]


def periods_per_year(tf: str) -> float:
    """How many bars of this interval fit in a 365-day year."""
    return 365 * 86400 / interval_seconds(tf)
