"""
Export a setlist.fm setlist as a private Spotify playlist.
"""

import logging

from .models import ExportResult, ExportStatus

log = logging.getLogger(__name__)


class SetlistExporter:
    def __init__(self, setlists, spotify, resolver, credentials):
        self.setlists = setlists
        self.spotify = spotify
        self.resolver = resolver
        self.credentials = credentials

    def export_setlist(self, setlist_id):
        """
        Create "{artist} - {date}", resolve every song, add the found tracks.
        Always returns an ExportResult; check `status` for the outcome.
        """
        if not self.credentials.ensure_token():
            return ExportResult(ExportStatus.AUTH_REQUIRED)

        setlist = self.setlists.get_setlist(setlist_id)
        if setlist is None:
            return ExportResult(ExportStatus.SETLIST_NOT_FOUND)

        playlist_id = self.spotify.create_playlist(setlist.playlist_name)
        if not playlist_id:
            log.warning('Failed to create playlist')
            return ExportResult(ExportStatus.PLAYLIST_FAILED)

        tracks = self.resolver.resolve_all(setlist.songs, setlist.artist_name)
        found_ids = [t.track_id for t in tracks if t.found]
        if not found_ids:
            log.warning(f'No tracks resolved for setlist {setlist_id}')
            return ExportResult(ExportStatus.OK, playlist_id, tracks)

        if not self.spotify.add_tracks_to_playlist(playlist_id, found_ids):
            log.warning(f'Failed to add tracks to playlist {playlist_id}')
            return ExportResult(ExportStatus.ADD_TRACKS_FAILED, playlist_id, tracks)

        log.info(f'Playlist {playlist_id} created with {len(found_ids)} tracks')
        return ExportResult(ExportStatus.OK, playlist_id, tracks)
