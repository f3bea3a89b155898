"""
Poll loop: every tick, check each campground and notify about new sites.

Campgrounds are processed one after another by default so that the
reservation service sees at most one request at a time. ``workers > 1``
opts into processing them concurrently within a tick; notified-set
updates stay serialized either way.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor

from adapters.base import FetchError
from availability import build_availability_index, find_matches, months_to_query
from state import NotifiedSet

RUNNING = "running"
STOPPED = "stopped"

LOGGER = logging.getLogger(__name__)


class Poller:
    def __init__(
        self,
        adapter,
        dispatcher,
        allow_partial: bool = False,
        notified: NotifiedSet = None,
        workers: int = 1,
        stop_event: threading.Event = None,
    ):
        """
        Args:
            stop_event: set to request a stop; observed by ``poll`` and by
                ``run_tick`` between campgrounds. A private event is used when
                none is given. Once set, the poller stays stopped.
        """
        self.adapter = adapter
        self.dispatcher = dispatcher
        self.allow_partial = allow_partial
        self.notified = notified if notified is not None else NotifiedSet()
        self.workers = max(1, int(workers))
        self._stop = stop_event if stop_event is not None else threading.Event()
        self.state = STOPPED

    @property
    def running(self) -> bool:
        return self.state == RUNNING

    def stop(self):
        self.state = STOPPED
        self._stop.set()

    def poll(self, campgrounds: list, window, interval: float):
        """
        Runs ticks every ``interval`` seconds until stopped. Blocking.

        Raises:
            ValidationError: if the window is invalid; raised before the first tick
        """
        window.validate()
        if self._stop.is_set():
            LOGGER.info("Stop already requested, not polling")
            return
        self.state = RUNNING
        LOGGER.info(
            "Polling %d campground(s) every %ss for nights %s to %s",
            len(campgrounds), interval, window.start, window.end,
        )
        try:
            while not self._stop.is_set():
                self.run_tick(campgrounds, window)
                if self._stop.wait(interval):
                    break
        finally:
            self.state = STOPPED
        LOGGER.info("Polling stopped")

    def run_tick(self, campgrounds: list, window) -> list:
        """One pass over every campground; returns the matches that were dispatched."""
        if self.workers > 1 and len(campgrounds) > 1:
            new = self._run_parallel(campgrounds, window)
        else:
            new = []
            for campground in campgrounds:
                if self._stop.is_set():
                    LOGGER.info("Stop requested, skipping remaining campgrounds")
                    break
                new.extend(self._check_campground(campground, window))

        if new:
            LOGGER.info("Congrats, new available campsites were found for your dates!")
            for m in new:
                LOGGER.info("  %s (%s): site %s", m.campground_name, m.campground_id, m.site)
            self.dispatcher.dispatch(new)
        elif not self._stop.is_set():
            LOGGER.info("Sorry, no new available campsites were found for your dates. We'll try again.")
        return new

    def _run_parallel(self, campgrounds: list, window) -> list:
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            results = pool.map(lambda cg: self._check_campground(cg, window), campgrounds)
            return [m for matches in results for m in matches]

    def _check_campground(self, campground, window) -> list:
        if self._stop.is_set():
            LOGGER.debug("Stop requested, skipping %s", campground.name)
            return []
        LOGGER.debug("Checking for availability in campground %s", campground.name)
        try:
            index = build_availability_index(
                self.adapter.get_month_availability,
                campground.entity_id,
                months_to_query(window),
            )
        except FetchError as e:
            LOGGER.error("Couldn't retrieve availabilities for %s, will retry on the next tick: %s", campground.name, e)
            return []
        except Exception:
            LOGGER.exception("Unexpected error checking %s, will retry on the next tick", campground.name)
            return []
        matches = find_matches(index, campground, window, self.allow_partial)
        return self.notified.filter_new(matches)
