"""
setlist.fm REST client: concerts by city or artist and full setlists by id.

Payload fields are type-checked as they are read; an entry that doesn't
have the expected shape is skipped and logged, never raised.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import requests

from .models import Concert, Setlist

log = logging.getLogger(__name__)

EVENT_DATE_FORMAT = '%d-%m-%Y'


def _obj(value) -> dict:
    return value if isinstance(value, dict) else {}


def _text(value) -> str:
    return value.strip() if isinstance(value, str) else ''


def _location(venue: dict) -> str:
    city = _obj(venue.get('city'))
    country = _text(_obj(city.get('country')).get('name'))
    return ', '.join(p for p in (_text(city.get('name')), country) if p)


def flatten_songs(sets) -> tuple[str, ...]:
    """Song names across every set (encores included) in performance order."""
    set_list = _obj(sets).get('set')
    if not isinstance(set_list, list):
        return ()
    names = []
    for set_data in set_list:
        songs = _obj(set_data).get('song')
        if not isinstance(songs, list):
            continue
        for song in songs:
            name = _text(_obj(song).get('name'))
            if name:
                names.append(name)
    return tuple(names)


def parse_concert(item) -> Optional[Concert]:
    """One search hit as a Concert, or None if its id or date is unusable."""
    item = _obj(item)
    setlist_id = _text(item.get('id'))
    try:
        event_date = datetime.strptime(item['eventDate'], EVENT_DATE_FORMAT).date()
    except (KeyError, TypeError, ValueError):
        log.warning(f'Error parsing date for setlist id: {setlist_id or "?"}')
        return None
    if not setlist_id:
        log.warning('Skipping search result without a setlist id')
        return None
    venue = _obj(item.get('venue'))
    return Concert(
        setlist_id=setlist_id,
        artist_name=_text(_obj(item.get('artist')).get('name')),
        event_date=event_date,
        venue_name=_text(venue.get('name')),
        location=_location(venue),
    )


class SetlistFmClient:
    def __init__(self, api_key: str, base_url: str = 'https://api.setlist.fm/rest/1.0',
                 timeout: float = 15):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            'Accept': 'application/json',
            'x-api-key': api_key,
        })

    def _get(self, path: str, params: Optional[dict] = None) -> Optional[dict]:
        try:
            r = self.session.get(f'{self.base_url}{path}', params=params,
                                 timeout=self.timeout)
        except requests.RequestException as e:
            log.warning(f'setlist.fm request {path} failed: {e}')
            return None
        if r.status_code == 404:
            return None
        if not r.ok:
            log.warning(f'setlist.fm {path} returned HTTP {r.status_code}')
            return None
        try:
            data = r.json()
        except ValueError as e:
            log.warning(f'setlist.fm {path} returned invalid JSON: {e}')
            return None
        return data if isinstance(data, dict) else None

    def _search(self, params: dict) -> list[Concert]:
        data = self._get('/search/setlists', params)
        if not data:
            return []
        items = data.get('setlist')
        if not isinstance(items, list):
            return []
        concerts = []
        for item in items:
            concert = parse_concert(item)
            if concert is not None:
                concerts.append(concert)
        return concerts

    def search_concerts(self, city: str, page: int = 1) -> list[Concert]:
        # GET /search/setlists?cityName=&p=
        return self._search({'cityName': city, 'p': page})

    def search_by_artist(self, artist: str, page: int = 1) -> list[Concert]:
        # GET /search/setlists?artistName=&p=
        return self._search({'artistName': artist, 'p': page})

    def get_setlist(self, setlist_id: str) -> Optional[Setlist]:
        data = self._get(f'/setlist/{setlist_id}')
        if not data:
            log.info(f'Setlist not found for id {setlist_id}')
            return None
        artist = _text(_obj(data.get('artist')).get('name'))
        event_date = _text(data.get('eventDate'))
        if not artist or not event_date:
            log.warning(f'Setlist {setlist_id} is missing artist or event date')
            return None
        venue = _obj(data.get('venue'))
        return Setlist(
            id=_text(data.get('id')) or setlist_id,
            artist_name=artist,
            event_date=event_date,
            venue_name=_text(venue.get('name')),
            location=_location(venue),
            songs=flatten_songs(data.get('sets')),
            url=_text(data.get('url')),
        )
