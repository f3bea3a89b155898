import logging
from datetime import date

import requests

from .base import BaseAdapter, Campground, FetchError

RIDB_BASE = "https://ridb.recreation.gov/api/v1"
AVAIL_BASE = "https://www.recreation.gov/api/camps/availability/campground"
DEFAULT_TIMEOUT = 30

# The availability endpoint sits behind CloudFront, which blocks non-browser agents.
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_4) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/81.0.4044.138 Safari/537.36"
)

LOGGER = logging.getLogger(__name__)


class RecreationGovAdapter(BaseAdapter):
    def __init__(self, api_key: str = None, timeout: float = DEFAULT_TIMEOUT):
        self.api_key = api_key
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})

    # ── Campground lookup ──────────────────────────────────────────────────────

    def search(self, query: str) -> list:
        data = self._get_json(
            f"{RIDB_BASE}/facilities",
            params={"query": query, "activity": 9, "full": "true", "limit": 50},
            headers=self._ridb_headers(),
        )
        return [
            Campground(entity_id=str(f["FacilityID"]), name=_title(f.get("FacilityName", "")))
            for f in data.get("RECDATA", [])
        ]

    def get_campground(self, entity_id: str) -> Campground:
        if not self.api_key:
            LOGGER.debug("No RIDB API key, using placeholder name for %s", entity_id)
            return Campground(entity_id=entity_id, name=f"Campground {entity_id}")
        data = self._get_json(f"{RIDB_BASE}/facilities/{entity_id}", headers=self._ridb_headers())
        return Campground(entity_id=str(entity_id), name=_title(data.get("FacilityName") or entity_id))

    def _ridb_headers(self) -> dict:
        return {"apikey": self.api_key} if self.api_key else {}

    # ── Availability ───────────────────────────────────────────────────────────

    def get_month_availability(self, entity_id: str, month) -> dict:
        LOGGER.debug("Requesting availability for %s, month %s", entity_id, month)
        data = self._get_json(
            f"{AVAIL_BASE}/{entity_id}/month",
            params={"start_date": f"{month.first_day.isoformat()}T00:00:00.000Z"},
        )
        try:
            campsites = data.get("campsites", {})
            record = {}
            for campsite_id, site_data in campsites.items():
                site = site_data.get("site") or campsite_id
                days = record.setdefault(site, {})
                for dt_str, status in site_data.get("availabilities", {}).items():
                    days[date.fromisoformat(dt_str[:10])] = status
        except (AttributeError, TypeError, ValueError) as e:
            raise FetchError(f"Unexpected availability payload for {entity_id} ({month}): {e}") from e
        return record

    def _get_json(self, url: str, params: dict = None, headers: dict = None) -> dict:
        try:
            resp = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise FetchError(f"GET {url} failed: {e}") from e
        if not isinstance(data, dict):
            raise FetchError(f"GET {url} returned {type(data).__name__}, expected an object")
        return data


def _title(name: str) -> str:
    # RIDB returns names in upper case
    return name.title() if name.isupper() else name
