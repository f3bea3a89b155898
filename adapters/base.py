from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date


class FetchError(Exception):
    """Raised when the reservation service can't be reached or returns unusable data."""


@dataclass(frozen=True)
class Campground:
    entity_id: str
    name: str


class BaseAdapter(ABC):
    @abstractmethod
    def search(self, query: str) -> list["Campground"]:
        """Returns campgrounds whose name matches the free-text query."""
        raise NotImplementedError

    @abstractmethod
    def get_campground(self, entity_id: str) -> "Campground":
        raise NotImplementedError

    @abstractmethod
    def get_month_availability(self, entity_id: str, month) -> dict[str, dict[date, str]]:
        """
        Returns the availability of every site of a campground for one calendar month.

        Args:
            entity_id: campground identifier (e.g. "232447")
            month: availability.MonthKey for the month to fetch

        Returns:
            {site: {date: status}}, status being e.g. "Available" or "Reserved"

        Raises:
            FetchError: on any network, HTTP or decoding failure
        """
        raise NotImplementedError
