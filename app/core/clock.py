from datetime import datetime, timezone


class SystemClock:
    """UTC wall clock that never runs backwards between calls."""

    def __init__(self):
        self._last: datetime | None = None

    def now(self) -> datetime:
        current = datetime.now(timezone.utc)
        if self._last is not None and current < self._last:
            current = self._last
        self._last = current
        return current
