"""Entry point for obtaining the true time from SNTP servers."""

import logging
from collections.abc import Callable
from functools import partial
from typing import List, Optional

from truetime.aggregation.best_of_repeat import best_of_repeat
from truetime.aggregation.running_median_collator import (
    RunningMedianCollator,
)
from truetime.cache.key_value_store import KeyValueStore
from truetime.cache.offset_cache import OffsetCache
from truetime.clock.clock_source import ClockSource, SystemClockSource
from truetime.config.sntp_config import SntpConfig
from truetime.network.address_resolver import resolve_reachable_addresses
from truetime.repair.clock_event import ClockEvent
from truetime.repair.clock_event_repairer import ClockEventRepairer
from truetime.sntp.constants import kClockDisagreementToleranceMs
from truetime.sntp.errors import MissingTimeDataError
from truetime.sntp.offset_sample import OffsetSample
from truetime.sntp.sntp_client import SntpClient
from truetime.threading.parallel_sampler import ParallelSampler

logger = logging.getLogger(__name__)


class TrueTime:
    """
    Provides the network-authoritative time, resistant to local clock changes.

    Typical use, from a background thread since requests block on the
    network:

        true_time = TrueTime(store=JsonFileKeyValueStore("time.json"))
        true_time.request_time_from_servers("time.google.com",
                                            "time.apple.com")
        ...
        now_ms = true_time.now()  # Raises MissingTimeDataError if unknown.

    Hosts that deliver reboot or clock-change notifications should forward
    them to `on_clock_event` so cached data survives those events.
    """

    # pylint: disable=too-many-arguments # Every collaborator is injectable.
    def __init__(
        self,
        clock: Optional[ClockSource] = None,
        store: Optional[KeyValueStore] = None,
        config: Optional[SntpConfig] = None,
        client: Optional[SntpClient] = None,
        resolver: Optional[Callable[[str], List[str]]] = None,
    ) -> None:
        """
        Initializes TrueTime.

        Args:
            clock: Local clock pair. Defaults to the system clocks.
            store: Persistent mirror for time data. Without one, time data
                lives only as long as this object.
            config: Query configuration. Defaults to `SntpConfig()`.
            client: SNTP client. Defaults to one using |clock|.
            resolver: Maps a host name to the addresses worth querying.
                Defaults to DNS resolution plus a TCP reachability probe.
        """
        self.__clock = clock if clock is not None else SystemClockSource()
        self.__config = config if config is not None else SntpConfig()
        self.__client = (
            client if client is not None else SntpClient(self.__clock)
        )
        self.__resolver = (
            resolver
            if resolver is not None
            else partial(
                resolve_reachable_addresses,
                port=self.__config.reachability_port,
                timeout_seconds=self.__config.reachability_timeout_seconds,
            )
        )
        self.__cache = OffsetCache(self.__clock, store)
        self.__repairer = ClockEventRepairer(self.__cache, self.__clock)

    @property
    def cache(self) -> OffsetCache:
        return self.__cache

    @property
    def config(self) -> SntpConfig:
        return self.__config

    def request_time_from_server(self, host: str) -> OffsetSample:
        """
        Queries |host| once and stores the result.

        This is 'simple' because the server is only queried once. Prefer
        `request_time_from_servers`, which compensates for anomalous delays
        and misbehaving servers.

        Raises:
            OSError: On network failure.
            InvalidNtpResponseError: If the response fails validation.
        """
        sample = self.__query(host)
        self.__cache.put(sample)
        return sample

    def request_time_from_servers(self, *hosts: str) -> Optional[OffsetSample]:
        """
        Queries every reachable address of every host and stores a consensus.

        Hosts are resolved in parallel. Each distinct address is then queried
        `repeat_count` times in parallel and its lowest-delay response kept.
        Those per-address results feed a running median, and every change of
        median is stored as it happens, so usable time data is available
        before the slowest server answers. Failures of individual hosts or
        addresses are logged and skipped.

        Blocks until every address has finished.

        Returns:
            The final median, or None if no address produced a valid response.
        """
        logger.info(
            "Getting the time from %d host(s): %s", len(hosts), list(hosts)
        )

        resolution = ParallelSampler(
            self.__resolver, on_failure=self.__on_resolution_failure
        )
        resolved = resolution.one_worker_per_element(hosts)
        addresses = list(
            dict.fromkeys(address for group in resolved for address in group)
        )
        if not addresses:
            logger.warning("No reachable addresses found for %s", list(hosts))
            return None

        collator = RunningMedianCollator(self.__cache.put)
        per_address = ParallelSampler(
            partial(self.__best_response_from_address, collator=collator),
            on_failure=self.__on_address_failure,
        )
        per_address.one_worker_per_element(addresses)

        median = collator.median
        if median is None:
            logger.warning(
                "None of %d address(es) returned a valid response.",
                len(addresses),
            )
        return median

    def now(self) -> int:
        """
        Returns the true time, in milliseconds since the Unix epoch.

        Raises:
            MissingTimeDataError: If the true time is not known, or the cached
                offsets no longer agree on it. A network request is required.
        """
        sample = self.__cache.get()
        time_from_clock = (
            self.__clock.wall_clock_ms() + sample.system_clock_offset
        )
        time_from_uptime = (
            self.__clock.monotonic_clock_ms() + sample.uptime_offset
        )

        if abs(time_from_clock - time_from_uptime) > (
            kClockDisagreementToleranceMs
        ):
            raise MissingTimeDataError(
                "Offsets for the two clocks did not agree on the time: the "
                f"uptime offset makes it {time_from_uptime}, but the clock "
                f"offset makes it {time_from_clock}"
            )
        return time_from_clock

    def has_the_time(self) -> bool:
        """Whether a call to `now()` would succeed."""
        try:
            self.now()
            return True
        except MissingTimeDataError:
            return False

    def on_clock_event(self, event: ClockEvent) -> Optional[OffsetSample]:
        """Repairs cached time data after a reboot or a clock change."""
        return self.__repairer.on_clock_event(event)

    def __query(self, host: str) -> OffsetSample:
        return self.__client.query(
            host,
            timeout_seconds=self.__config.timeout_seconds,
            root_delay_max=self.__config.root_delay_max_ms,
            root_dispersion_max=self.__config.root_dispersion_max_ms,
            max_response_delay=self.__config.max_response_delay_ms,
            port=self.__config.ntp_port,
        )

    def __best_response_from_address(
        self, address: str, collator: RunningMedianCollator
    ) -> Optional[OffsetSample]:
        """
        Queries |address| `repeat_count` times and admits the best response.

        Returns None if no request to the address produced a valid response.
        """
        repeats = ParallelSampler(self.__query)
        responses = repeats.repeat_on_input(
            self.__config.repeat_count, address
        )
        best = best_of_repeat(responses)
        logger.debug(
            "Best of %d response(s) from %s: %s", len(responses), address, best
        )
        if best is not None:
            collator.admit(best)
        return best

    def __on_resolution_failure(self, host: str, error: Exception) -> None:
        logger.warning("Could not resolve %s: %s", host, error)

    def __on_address_failure(self, address: str, error: Exception) -> None:
        logger.warning("Sampling %s failed: %r", address, error)
