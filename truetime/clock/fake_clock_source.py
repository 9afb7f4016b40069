import threading

from truetime.clock.clock_source import ClockSource


class FakeClockSource(ClockSource):
    """
    A manually driven ClockSource.

    Neither clock moves unless told to. `advance` moves both clocks together,
    the way real time passes. `set_wall_clock` and `reboot` each disturb only
    one of them, the way a manual time change or a restart would.
    """

    def __init__(
        self, wall_clock_ms: int = 0, monotonic_clock_ms: int = 0
    ) -> None:
        self.__lock = threading.Lock()
        self.__wall_clock_ms = wall_clock_ms
        self.__monotonic_clock_ms = monotonic_clock_ms

    def wall_clock_ms(self) -> int:
        with self.__lock:
            return self.__wall_clock_ms

    def monotonic_clock_ms(self) -> int:
        with self.__lock:
            return self.__monotonic_clock_ms

    def advance(self, delta_ms: int) -> None:
        """Moves both clocks forward by |delta_ms|."""
        with self.__lock:
            self.__wall_clock_ms += delta_ms
            self.__monotonic_clock_ms += delta_ms

    def set_wall_clock(self, wall_clock_ms: int) -> None:
        """Jumps the wall clock only."""
        with self.__lock:
            self.__wall_clock_ms = wall_clock_ms

    def reboot(self, monotonic_clock_ms: int = 0) -> None:
        """Resets the monotonic clock only."""
        with self.__lock:
            self.__monotonic_clock_ms = monotonic_clock_ms
