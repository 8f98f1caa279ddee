"""
Spotify Web API client wrapper.
Handles catalog search, the current-user profile, and playlist creation /
track insertion. Credentials come from a token provider (normally
CredentialManager.ensure_token), so this module never owns tokens.

Every public method reports failure as an empty/absent value and logs it.
"""

import logging

import requests
import spotipy

from .models import CandidateTrack

log = logging.getLogger(__name__)

PLAYLIST_BATCH = 100


def probe_token(access_token, requests_timeout=10):
    """
    Lightweight authenticated call (GET /me).
    Returns the HTTP status, or None when no response came back at all.
    """
    sp = spotipy.Spotify(auth=access_token, requests_timeout=requests_timeout,
                         retries=0, status_retries=0)
    try:
        sp.current_user()
        return 200
    except spotipy.SpotifyException as e:
        return e.http_status
    except requests.RequestException as e:
        # connection errors and timeouts surface as requests exceptions
        log.warning(f'Token probe failed: {e}')
        return None


class SpotifyClient:
    def __init__(self, token_provider, market=None, requests_timeout=10):
        self.token_provider = token_provider
        self.market = market
        self.requests_timeout = requests_timeout

    def _api(self):
        token = self.token_provider()
        if not token:
            return None
        # no retries: callers decide whether to re-query with a different string
        return spotipy.Spotify(auth=token, requests_timeout=self.requests_timeout,
                               retries=0, status_retries=0)

    # ─── Catalog search ──────────────────────────────────────────────────

    def search(self, query, limit=10):
        """
        Search the catalog for tracks matching a query string.
        Returns a list of CandidateTrack, empty on any failure.
        """
        if not query:
            return []
        sp = self._api()
        if sp is None:
            log.warning('Search skipped: no access token')
            return []
        try:
            results = sp.search(q=query, limit=limit, type='track',
                                market=self.market)
        except spotipy.SpotifyException as e:
            log.warning(f'Search failed ({e.http_status}) for {query!r}: {e.msg}')
            return []
        except requests.RequestException as e:
            log.warning(f'Search request error for {query!r}: {e}')
            return []
        return self._parse_tracks(results, query)

    def _parse_tracks(self, results, query):
        try:
            items = (results or {}).get('tracks', {}).get('items', [])
        except AttributeError as e:
            log.warning(f'Malformed search payload for {query!r}: {e!r}')
            return []
        if not isinstance(items, list):
            log.warning(f'Malformed search payload for {query!r}: items is not a list')
            return []
        tracks = []
        for item in items:
            if not item:
                continue
            try:
                tracks.append(CandidateTrack.from_api(item))
            except ValueError as e:
                log.warning(f'Skipping malformed search item for {query!r}: {e}')
        return tracks

    # ─── User / playlists ────────────────────────────────────────────────

    def get_current_user(self):
        """Get the current user's profile as a small dict, or None."""
        sp = self._api()
        if sp is None:
            return None
        try:
            u = sp.current_user()
        except (spotipy.SpotifyException, requests.RequestException) as e:
            log.warning(f'Could not fetch user profile: {e}')
            return None
        if not u:
            return None
        images = u.get('images') or []
        return {
            'id': u.get('id', ''),
            'display_name': u.get('display_name', ''),
            'email': u.get('email', ''),
            'image': images[0].get('url') if images else None,
        }

    def create_playlist(self, name, public=False, description='Setlist exported by LiveTunez'):
        """Create a playlist for the current user. Returns its id or None."""
        sp = self._api()
        if sp is None:
            return None
        # Spotify enforces limits: name ≤ 100 chars, description ≤ 300 chars
        safe_name = (name or 'LiveTunez Setlist').strip()[:100]
        safe_desc = (description or '').strip()[:300]
        try:
            user = sp.current_user()
            playlist = sp.user_playlist_create(
                user['id'], safe_name, public=public, description=safe_desc
            )
        except (spotipy.SpotifyException, requests.RequestException) as e:
            log.warning(f'Error creating playlist {safe_name!r}: {e}')
            return None
        except (KeyError, TypeError) as e:
            log.warning(f'Unexpected response creating playlist: {e!r}')
            return None
        playlist_id = (playlist or {}).get('id')
        if not playlist_id:
            log.warning('Playlist creation returned no id')
        return playlist_id

    def add_tracks_to_playlist(self, playlist_id, track_ids):
        """Add tracks to a playlist in batches of 100. Returns True on success."""
        uris = [f'spotify:track:{t}' for t in track_ids if t]
        if not playlist_id or not uris:
            log.warning('No playlist id or no tracks to add')
            return False
        sp = self._api()
        if sp is None:
            return False
        try:
            for i in range(0, len(uris), PLAYLIST_BATCH):
                sp.playlist_add_items(playlist_id, uris[i:i + PLAYLIST_BATCH])
        except (spotipy.SpotifyException, requests.RequestException) as e:
            log.warning(f'Failed to add tracks to playlist {playlist_id}: {e}')
            return False
        return True
