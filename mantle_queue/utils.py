from datetime import datetime, timezone
import re
import time

# e.g., "20s", "5m", "1h30m", "2d3h", "90m", "  2h  "
DELAY_RE = re.compile(r"(?i)^\s*(?:(\d+)\s*d)?\s*(?:(\d+)\s*h)?\s*(?:(\d+)\s*m)?\s*(?:(\d+)\s*s)?\s*$")


def parse_delay_to_seconds(s: str) -> int:
    """
    Parse delay strings like '20s', '5m', '1h30m', '2d3h', '90m' or a bare
    number of seconds. Returns total seconds (int). Raises ValueError on bad
    input.
    """
    if s is None or not str(s).strip():
        raise ValueError("delay string is empty")
    s = str(s)
    if s.strip().isdigit():
        return int(s)
    m = DELAY_RE.match(s)
    if not m or not any(m.groups()):
        raise ValueError(f"Invalid delay format: {s!r}")
    d, h, m_, s_ = m.groups()
    total = 0
    if d:  total += int(d) * 86400
    if h:  total += int(h) * 3600
    if m_: total += int(m_) * 60
    if s_: total += int(s_)
    return total


def now_ts() -> float:
    return time.time()


def to_iso(ts) -> str:
    """UTC timestamp like '2025-11-06T09:12:34Z' for an epoch value, '-' for None."""
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts, timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
