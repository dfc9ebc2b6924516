"""Pure time predicates for the interval and draw-timeout gates."""


def interval_elapsed(now: int, last_timestamp: int, interval: int) -> bool:
    return now - last_timestamp >= interval


def draw_timed_out(now: int, drawing_started_at: int, draw_timeout: int) -> bool:
    """True once a drawing that began at ``drawing_started_at`` may be declared failed."""
    return now - drawing_started_at >= draw_timeout


def seconds_until(now: int, since: int, duration: int) -> int:
    """Seconds left before ``duration`` has passed since ``since`` (never negative)."""
    return max(0, since + duration - now)
