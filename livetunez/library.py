"""
Per-device user state kept next to the Spotify tokens: saved concerts and
recent setlist searches.

Each lives in its own document of the same store ('<device>/concerts',
'<device>/searches') so token writes never touch them.
"""

import logging
import threading

from .models import Concert

log = logging.getLogger(__name__)

MAX_RECENT_SEARCHES = 10


class UserLibrary:
    def __init__(self, store, device_id):
        self.store = store
        self.device_id = device_id
        self._lock = threading.Lock()

    @property
    def _concerts_key(self):
        return f'{self.device_id}/concerts'

    @property
    def _searches_key(self):
        return f'{self.device_id}/searches'

    def _read(self, key):
        try:
            return self.store.get(key)
        except OSError as e:
            log.warning(f'Error loading {key}: {e}')
            return {}

    def _write(self, key, doc):
        try:
            self.store.set(key, doc)
        except OSError as e:
            log.warning(f'Error saving {key}: {e}')
            return False
        return True

    # ─── saved concerts ──────────────────────────────────────────────────

    def saved_concerts(self):
        """Saved concerts, most recent event first. Unreadable entries are skipped."""
        concerts = []
        for setlist_id, data in self._read(self._concerts_key).items():
            try:
                concerts.append(Concert.from_dict(data))
            except ValueError as e:
                log.warning(f'Invalid saved concert {setlist_id}: {e}')
        return sorted(concerts, key=lambda c: c.event_date, reverse=True)

    def is_saved(self, setlist_id):
        return setlist_id in self._read(self._concerts_key)

    def save_concert(self, concert):
        """Save a concert. Returns False if it was already saved."""
        with self._lock:
            doc = self._read(self._concerts_key)
            if concert.setlist_id in doc:
                return False
            doc[concert.setlist_id] = concert.to_dict()
            saved = self._write(self._concerts_key, doc)
        if saved:
            log.info(f'Concert saved: {concert.artist_name}')
        return saved

    def unsave_concert(self, setlist_id):
        """Forget a saved concert. Returns False if it wasn't saved."""
        with self._lock:
            doc = self._read(self._concerts_key)
            if doc.pop(setlist_id, None) is None:
                return False
            return self._write(self._concerts_key, doc)

    # ─── recent searches ─────────────────────────────────────────────────

    def recent_searches(self):
        searches = self._read(self._searches_key).get('searches')
        if not isinstance(searches, list):
            return []
        return [s for s in searches if isinstance(s, str)]

    def add_recent_search(self, term):
        """
        Put a search at the front of the list. Terms already present stay
        where they are; the list never grows past MAX_RECENT_SEARCHES.
        """
        term = (term or '').strip()
        if not term:
            return self.recent_searches()
        with self._lock:
            searches = self.recent_searches()
            if term not in searches:
                searches = [term] + searches[:MAX_RECENT_SEARCHES - 1]
                self._write(self._searches_key, {'searches': searches})
        return searches

    def remove_recent_search(self, term):
        with self._lock:
            searches = self.recent_searches()
            if term in searches:
                searches.remove(term)
                self._write(self._searches_key, {'searches': searches})
        return searches
