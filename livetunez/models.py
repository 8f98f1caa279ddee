"""
Value types shared by the Spotify, setlist and export layers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional


@dataclass
class Credential:
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[float] = None  # unix seconds

    def to_document(self):
        """Field names used by the device document in the token store."""
        return {'accessToken': self.access_token,
                'refreshToken': self.refresh_token}


@dataclass(frozen=True)
class TrackQuery:
    song_title: str
    artist_name: str


@dataclass(frozen=True)
class CandidateTrack:
    id: str
    name: str
    artists: tuple[str, ...] = ()

    @property
    def uri(self):
        return f'spotify:track:{self.id}'

    @classmethod
    def from_api(cls, item):
        """Build from a Spotify track object; raises ValueError on junk."""
        if not isinstance(item, dict):
            raise ValueError(f'track item is {type(item).__name__}, not an object')
        track_id, name = item.get('id'), item.get('name')
        if not (isinstance(track_id, str) and track_id):
            raise ValueError(f'track id {track_id!r} is not a string')
        if not (isinstance(name, str) and name):
            raise ValueError(f'track name {name!r} is not a string')
        artists = item.get('artists') or []
        if not isinstance(artists, list):
            raise ValueError('track artists is not a list')
        names = tuple(a.get('name') if isinstance(a, dict) else a for a in artists)
        if not all(isinstance(n, str) for n in names):
            raise ValueError(f'track {track_id} has a malformed artist')
        return cls(id=track_id, name=name, artists=names)


@dataclass(frozen=True)
class ResolvedTrack:
    song_title: str
    track_id: Optional[str] = None

    @property
    def found(self):
        return self.track_id is not None


@dataclass(frozen=True)
class Concert:
    setlist_id: str
    artist_name: str
    event_date: date
    venue_name: str
    location: str

    def to_dict(self):
        return {
            'setlist_id': self.setlist_id,
            'artist': self.artist_name,
            'date': self.event_date.isoformat(),
            'venue': self.venue_name,
            'location': self.location,
        }

    @classmethod
    def from_dict(cls, data):
        """Inverse of to_dict; raises ValueError if a field is missing or mistyped."""
        if not isinstance(data, dict):
            raise ValueError('concert is not an object')
        setlist_id = data.get('setlist_id')
        if not (isinstance(setlist_id, str) and setlist_id):
            raise ValueError('concert has no setlist_id')
        try:
            event_date = date.fromisoformat(data.get('date'))
        except TypeError:
            raise ValueError('concert has no date')
        fields = {k: data.get(k) or '' for k in ('artist', 'venue', 'location')}
        if not all(isinstance(v, str) for v in fields.values()):
            raise ValueError(f'concert {setlist_id} has a non-text field')
        return cls(setlist_id, fields['artist'], event_date,
                   fields['venue'], fields['location'])


@dataclass(frozen=True)
class Setlist:
    id: str
    artist_name: str
    event_date: str  # dd-MM-yyyy, as setlist.fm reports it
    venue_name: str = ''
    location: str = ''
    songs: tuple[str, ...] = ()
    url: str = ''

    @property
    def playlist_name(self):
        return f'{self.artist_name} - {self.event_date}'


class ExportStatus(Enum):
    OK = 'ok'
    AUTH_REQUIRED = 'auth_required'
    SETLIST_NOT_FOUND = 'setlist_not_found'
    PLAYLIST_FAILED = 'playlist_failed'
    ADD_TRACKS_FAILED = 'add_tracks_failed'


@dataclass
class ExportResult:
    status: ExportStatus
    playlist_id: Optional[str] = None
    tracks: list[ResolvedTrack] = field(default_factory=list)

    @property
    def ok(self):
        return self.status == ExportStatus.OK

    @property
    def playlist_url(self):
        if not self.playlist_id:
            return None
        return f'https://open.spotify.com/playlist/{self.playlist_id}'

    @property
    def found(self):
        return [t for t in self.tracks if t.found]

    @property
    def missing(self):
        return [t.song_title for t in self.tracks if not t.found]

    def to_dict(self):
        return {
            'status': self.status.value,
            'playlist_id': self.playlist_id,
            'playlist_url': self.playlist_url,
            'added': len(self.found),
            'missing': self.missing,
            'tracks': [{'song': t.song_title, 'track_id': t.track_id}
                       for t in self.tracks],
        }
