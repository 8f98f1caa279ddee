"""
LiveTunez: Flask backend.
Serves JSON endpoints for concert lookup, setlists, saved concerts, recent
searches, Spotify login and the setlist → playlist export.

create_app() is the composition root: it builds one CredentialManager,
SpotifyClient, TrackResolver, SetlistFmClient, SetlistExporter and
UserLibrary and hands them to the routes through app.extensions['livetunez'].
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from flask import Blueprint, Flask, current_app, jsonify, request

from .config_manager import (
    get_config_value, get_device_id, is_configured,
)
from .credentials import CredentialManager
from .exporter import SetlistExporter
from .library import UserLibrary
from .models import Concert, ExportStatus
from .resolver import TrackResolver, parse_search_plan
from .setlistfm import SetlistFmClient
from .spotify_client import SpotifyClient
from .token_store import JsonFileTokenStore

logging.basicConfig(level=logging.INFO)
log = logging.getLogger(__name__)

bp = Blueprint('livetunez', __name__)

AUTH_REQUIRED = {'error': 'authentication required'}


@dataclass
class Services:
    credentials: Optional[CredentialManager] = None
    spotify: Optional[SpotifyClient] = None
    resolver: Optional[TrackResolver] = None
    setlists: Optional[SetlistFmClient] = None
    exporter: Optional[SetlistExporter] = None
    library: Optional[UserLibrary] = None


def build_services(redirect_waiter=None):
    """Wire up the service graph from saved config / environment."""
    store = JsonFileTokenStore(get_config_value('token_store_path'))
    services = Services(library=UserLibrary(store, get_device_id()))
    setlist_key = get_config_value('setlistfm_api_key')
    if setlist_key:
        services.setlists = SetlistFmClient(setlist_key)
    else:
        log.warning('SETLISTFM_API_KEY not set; concert lookup disabled')

    if not is_configured():
        log.warning('Spotify client id/secret not set; Spotify features disabled')
        return services

    credentials = CredentialManager.from_settings(
        client_id=get_config_value('spotify_client_id'),
        client_secret=get_config_value('spotify_client_secret'),
        redirect_uri=get_config_value('spotify_redirect_uri'),
        store=store,
        device_id=get_device_id(),
        redirect_waiter=redirect_waiter,
    )
    credentials.load()
    services.credentials = credentials
    services.spotify = SpotifyClient(credentials.ensure_token)
    services.resolver = TrackResolver(
        services.spotify, credentials,
        plan=parse_search_plan(get_config_value('search_plan')),
    )
    if services.setlists:
        services.exporter = SetlistExporter(services.setlists, services.spotify,
                                            services.resolver, credentials)
    return services


def create_app(services=None):
    """Application factory; pass `services` to inject collaborators."""
    app = Flask(__name__)
    app.secret_key = os.urandom(24)
    app.extensions['livetunez'] = services if services is not None else build_services()
    app.register_blueprint(bp)
    return app


def _services() -> Services:
    return current_app.extensions['livetunez']


# ═════════════════════════════════════════════════════════════════════════════
# AUTH ROUTES
# ═════════════════════════════════════════════════════════════════════════════

@bp.route('/api/status')
def api_status():
    """Report configuration and Spotify auth state."""
    s = _services()
    result = {
        'spotify_configured': s.credentials is not None,
        'setlistfm_configured': s.setlists is not None,
        'authenticated': False,
        'auth_required': False,
        'user': None,
    }
    if s.credentials:
        result.update(s.credentials.status())
        if s.credentials.is_authenticated:
            result['user'] = s.spotify.get_current_user()
    return jsonify(result)


@bp.route('/api/auth/login')
def api_login():
    """Get Spotify authorization URL."""
    s = _services()
    if not s.credentials:
        return jsonify({'error': 'Spotify not configured'}), 400
    return jsonify({'auth_url': s.credentials.authorize_url()})


@bp.route('/callback')
def callback():
    """Handle Spotify OAuth callback."""
    s = _services()
    if not s.credentials:
        return jsonify({'error': 'Spotify not configured'}), 400
    error = request.args.get('error')
    if error:
        log.warning(f'Spotify authorization denied: {error}')
        return jsonify({'error': 'auth_denied'}), 400
    if not s.credentials.handle_redirect(request.url):
        return jsonify({'error': 'auth_failed'}), 400
    return jsonify({'authenticated': True})


@bp.route('/api/auth/logout', methods=['POST'])
def api_logout():
    """Forget the Spotify tokens for this device."""
    s = _services()
    if s.credentials:
        s.credentials.sign_out()
    return jsonify({'success': True})


# ═════════════════════════════════════════════════════════════════════════════
# CONCERTS / SETLISTS
# ═════════════════════════════════════════════════════════════════════════════

@bp.route('/api/concerts')
def api_concerts():
    """Concerts with setlists in a city."""
    s = _services()
    if not s.setlists:
        return jsonify({'error': 'setlist.fm not configured'}), 400
    city = (request.args.get('city') or '').strip()
    if not city:
        return jsonify({'error': 'Provide a city'}), 400
    concerts = s.setlists.search_concerts(city)
    return jsonify({'concerts': [c.to_dict() for c in concerts]})


@bp.route('/api/search')
def api_search_artist():
    """Setlists for an artist; the term is remembered as a recent search."""
    s = _services()
    if not s.setlists:
        return jsonify({'error': 'setlist.fm not configured'}), 400
    artist = (request.args.get('artist') or '').strip()
    if not artist:
        return jsonify({'error': 'Provide an artist'}), 400
    if s.library:
        s.library.add_recent_search(artist)
    concerts = s.setlists.search_by_artist(artist)
    return jsonify({'concerts': [c.to_dict() for c in concerts]})


@bp.route('/api/searches/recent')
def api_recent_searches():
    s = _services()
    return jsonify({'searches': s.library.recent_searches() if s.library else []})


@bp.route('/api/searches/recent', methods=['DELETE'])
def api_remove_recent_search():
    s = _services()
    if not s.library:
        return jsonify({'error': 'Storage not configured'}), 400
    data = request.get_json(silent=True) or {}
    term = data.get('search')
    if not isinstance(term, str) or not term:
        return jsonify({'error': 'Provide a search'}), 400
    return jsonify({'searches': s.library.remove_recent_search(term)})


# ═════════════════════════════════════════════════════════════════════════════
# SAVED CONCERTS
# ═════════════════════════════════════════════════════════════════════════════

@bp.route('/api/concerts/saved')
def api_saved_concerts():
    s = _services()
    concerts = s.library.saved_concerts() if s.library else []
    return jsonify({'concerts': [c.to_dict() for c in concerts]})


@bp.route('/api/concerts/saved', methods=['POST'])
def api_save_concert():
    """Save a concert (the same shape /api/concerts returns)."""
    s = _services()
    if not s.library:
        return jsonify({'error': 'Storage not configured'}), 400
    try:
        concert = Concert.from_dict(request.get_json(silent=True))
    except ValueError as e:
        return jsonify({'error': f'Invalid concert: {e}'}), 400
    created = s.library.save_concert(concert)
    return jsonify({'saved': True, 'created': created}), (201 if created else 200)


@bp.route('/api/concerts/saved/<setlist_id>')
def api_is_concert_saved(setlist_id):
    s = _services()
    return jsonify({'saved': bool(s.library and s.library.is_saved(setlist_id))})


@bp.route('/api/concerts/saved/<setlist_id>', methods=['DELETE'])
def api_unsave_concert(setlist_id):
    s = _services()
    if not s.library or not s.library.unsave_concert(setlist_id):
        return jsonify({'error': 'Concert not saved'}), 404
    return jsonify({'saved': False})


@bp.route('/api/setlists/<setlist_id>')
def api_setlist(setlist_id):
    s = _services()
    if not s.setlists:
        return jsonify({'error': 'setlist.fm not configured'}), 400
    setlist = s.setlists.get_setlist(setlist_id)
    if setlist is None:
        return jsonify({'error': 'Setlist not found'}), 404
    return jsonify({
        'id': setlist.id,
        'artist': setlist.artist_name,
        'event_date': setlist.event_date,
        'venue': setlist.venue_name,
        'location': setlist.location,
        'songs': list(setlist.songs),
        'url': setlist.url,
    })


# ═════════════════════════════════════════════════════════════════════════════
# SPOTIFY EXPORT
# ═════════════════════════════════════════════════════════════════════════════

EXPORT_ERRORS = {
    ExportStatus.AUTH_REQUIRED: (AUTH_REQUIRED, 401),
    ExportStatus.SETLIST_NOT_FOUND: ({'error': 'Setlist not found'}, 404),
    ExportStatus.PLAYLIST_FAILED: ({'error': 'Failed to create playlist'}, 502),
}


@bp.route('/api/setlists/<setlist_id>/export', methods=['POST'])
def api_export_setlist(setlist_id):
    """Create a Spotify playlist from a setlist."""
    s = _services()
    if not s.exporter:
        return jsonify({'error': 'Spotify or setlist.fm not configured'}), 400
    result = s.exporter.export_setlist(setlist_id)
    if result.status in EXPORT_ERRORS:
        body, code = EXPORT_ERRORS[result.status]
        if result.status == ExportStatus.AUTH_REQUIRED:
            body = dict(body, auth_url=s.credentials.authorize_url())
        return jsonify(body), code
    body = result.to_dict()
    body['success'] = result.ok
    return jsonify(body), (200 if result.ok else 502)


@bp.route('/api/resolve', methods=['POST'])
def api_resolve():
    """Resolve song titles for one artist to Spotify track ids."""
    s = _services()
    if not s.resolver:
        return jsonify({'error': 'Spotify not configured'}), 400
    data = request.get_json(silent=True) or {}
    songs = [str(x) for x in data.get('songs') or [] if x]
    artist = (data.get('artist') or '').strip()
    if not songs:
        return jsonify({'error': 'No songs provided'}), 400
    if not s.credentials.ensure_token():
        return jsonify(dict(AUTH_REQUIRED, auth_url=s.credentials.authorize_url())), 401
    resolved = s.resolver.resolve_all(songs, artist)
    return jsonify({'tracks': [{'song': t.song_title, 'track_id': t.track_id}
                               for t in resolved]})
