"""Sleep timer: pause after N minutes or after N finished songs."""

import time
from enum import Enum
from typing import Optional


class TimerType(str, Enum):
    TIME = "TIME"
    SONGS = "SONGS"


def _now_ms() -> int:
    return int(time.time() * 1000)


class SleepTimer:
    """
    At most one mode is active. Both ``check`` and ``on_auto_transition``
    return True exactly once, when playback should pause; the timer resets
    itself at that point.
    """

    def __init__(self) -> None:
        self.type: Optional[TimerType] = None
        self.value = 0
        self._deadline_ms = 0
        self._remaining_songs = 0

    @property
    def active(self) -> bool:
        return self.type is not None

    @property
    def label(self) -> str:
        if self.type == TimerType.SONGS:
            return f"{self.value} songs"
        return f"{self.value} min"

    def start(self, timer_type: TimerType, value: int, now: Optional[int] = None) -> None:
        """Start (or replace) the timer; a non-positive value resets it."""
        if value <= 0:
            self.reset()
            return
        self.reset()
        self.type = timer_type
        self.value = value
        if timer_type == TimerType.TIME:
            self._deadline_ms = (_now_ms() if now is None else now) + value * 60 * 1000
        else:
            self._remaining_songs = value

    def check(self, now: Optional[int] = None) -> bool:
        """Progress-tick check for TIME mode; refreshes the minutes label."""
        if self.type != TimerType.TIME:
            return False
        now = _now_ms() if now is None else now
        if now >= self._deadline_ms:
            self.reset()
            return True
        # Whole minutes left, rounded up
        self.value = (self._deadline_ms - now + 59999) // 60000
        return False

    def on_auto_transition(self) -> bool:
        """Count down one finished song in SONGS mode."""
        if self.type != TimerType.SONGS:
            return False
        self._remaining_songs -= 1
        if self._remaining_songs <= 0:
            self.reset()
            return True
        self.value = self._remaining_songs
        return False

    def reset(self) -> None:
        self.type = None
        self.value = 0
        self._deadline_ms = 0
        self._remaining_songs = 0
