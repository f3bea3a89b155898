import threading


def make_key(campground_id: str, site: str) -> tuple:
    return (campground_id, site)


class NotifiedSet:
    """
    (campground, site) pairs already reported during this process.

    Append-only: once a site has been reported it is never reported again,
    even if its available dates change later on.
    """

    def __init__(self):
        self._keys = set()
        self._lock = threading.Lock()

    def __contains__(self, key) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def add_if_new(self, key: tuple) -> bool:
        """Records the key; returns False if it was already there."""
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def filter_new(self, matches: list) -> list:
        return [m for m in matches if self.add_if_new(make_key(m.campground_id, m.site))]
