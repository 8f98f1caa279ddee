"""
Spotify credential lifecycle.

CredentialManager owns the access/refresh token pair for one device:
validates it against the API, exchanges authorization codes, refreshes
expired tokens, and persists the pair to a TokenStore document keyed by
the device id.

    UNAUTHENTICATED → AUTHENTICATING → AUTHENTICATED → EXPIRED
                                           ↑               ↓
                                           └── REFRESHING ─┴→ UNAUTHENTICATED

A failed refresh clears everything and gets exactly one interactive
re-authorization. If the next refresh fails too, the manager stops and
reports `auth_required` instead of prompting again.

State changes are serialized through one lock. Refreshing, together with
the re-authorization it may trigger, runs under a second lock, so concurrent
`ensure_token` callers share a single refresh.
"""

import base64
import json
import logging
import threading
import time
import webbrowser
from enum import Enum
from urllib.parse import parse_qs, urlparse

import requests
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from .models import Credential
from .spotify_client import probe_token

log = logging.getLogger(__name__)

DEFAULT_SCOPE = (
    'playlist-modify-private '
    'playlist-modify-public '
    'user-read-private '
    'user-read-email'
)

TOKEN_FIELDS = ('accessToken', 'refreshToken')


class AuthState(Enum):
    UNAUTHENTICATED = 'unauthenticated'
    AUTHENTICATING = 'authenticating'
    AUTHENTICATED = 'authenticated'
    EXPIRED = 'expired'
    REFRESHING = 'refreshing'


def token_expiry(access_token):
    """
    Read the `exp` claim from a three-part dot-separated token.
    Returns the unix timestamp, or None if the token doesn't decode.
    """
    if not isinstance(access_token, str):
        return None
    parts = access_token.split('.')
    if len(parts) != 3:
        return None
    payload = parts[1]
    padded = payload + '=' * (-len(payload) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(padded))
        return float(claims['exp'])
    except (ValueError, TypeError, KeyError):
        return None


def is_token_fresh(access_token, now=None):
    """True only for a decodable token whose `exp` lies in the future."""
    exp = token_expiry(access_token)
    if exp is None:
        return False
    return (time.time() if now is None else now) < exp


def extract_code(redirect_url):
    """Pull the `code` query parameter out of an OAuth redirect URL."""
    if not redirect_url:
        return None
    values = parse_qs(urlparse(redirect_url).query).get('code')
    return values[0] if values else None


def browser_redirect_waiter(auth_url):
    """Open the authorize page and read the redirect URL the user pastes back."""
    print('Opening browser for Spotify authorization...')
    print(f'If the browser does not open, visit:\n  {auth_url}')
    webbrowser.open(auth_url)
    return input('Paste the full redirect URL: ').strip()


class CredentialManager:
    def __init__(self, oauth, store, device_id, probe=probe_token,
                 redirect_waiter=None, clock=time.time):
        self.oauth = oauth
        self.store = store
        self.device_id = device_id
        self.probe = probe
        # None means there is no interactive channel (web server); the
        # /callback route drives handle_redirect instead
        self.redirect_waiter = redirect_waiter
        self.clock = clock

        self.credential = Credential()
        self.state = AuthState.UNAUTHENTICATED
        self.auth_required = False
        self._recovery_spent = False
        self._lock = threading.RLock()
        self._refresh_lock = threading.RLock()
        self._refresh_count = 0

    @classmethod
    def from_settings(cls, client_id, client_secret, redirect_uri, store,
                      device_id, scope=DEFAULT_SCOPE, **kwargs):
        oauth = SpotifyOAuth(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scope=scope,
            cache_handler=MemoryCacheHandler(),
            open_browser=False,
        )
        return cls(oauth, store, device_id, **kwargs)

    # ─── state helpers ───────────────────────────────────────────────────

    @property
    def access_token(self):
        return self.credential.access_token

    @property
    def is_authenticated(self):
        return self.state == AuthState.AUTHENTICATED

    def _set_state(self, state):
        with self._lock:
            if self.state != state:
                log.info(f'Spotify auth state: {self.state.value} -> {state.value}')
            self.state = state

    def _store_credential(self, access_token, refresh_token, token_info=None):
        expires_at = token_expiry(access_token)
        if expires_at is None and token_info:
            expires_at = token_info.get('expires_at')
            if expires_at is None and token_info.get('expires_in'):
                expires_at = self.clock() + int(token_info['expires_in'])
        with self._lock:
            self.credential = Credential(access_token, refresh_token, expires_at)
            self.auth_required = False
            self._recovery_spent = False
            self._set_state(AuthState.AUTHENTICATED)
            try:
                self.store.set(self.device_id, self.credential.to_document())
            except OSError as e:
                log.warning(f'Error saving Spotify tokens: {e}')

    def _clear(self):
        with self._lock:
            self.credential = Credential()
            self._set_state(AuthState.UNAUTHENTICATED)
            try:
                self.store.delete(self.device_id, TOKEN_FIELDS)
            except OSError as e:
                log.warning(f'Error removing Spotify tokens: {e}')

    def _token_is_live(self):
        cred = self.credential
        if not cred.access_token:
            return False
        if is_token_fresh(cred.access_token, now=self.clock()):
            return True
        # opaque tokens carry no payload; trust the expiry the token endpoint gave us
        return (token_expiry(cred.access_token) is None
                and cred.expires_at is not None
                and self.clock() < cred.expires_at)

    def status(self):
        return {
            'state': self.state.value,
            'authenticated': self.is_authenticated,
            'auth_required': self.auth_required,
        }

    # ─── lifecycle operations ────────────────────────────────────────────

    def load(self):
        """Restore tokens saved for this device and check they still work."""
        try:
            doc = self.store.get(self.device_id)
        except OSError as e:
            log.warning(f'Error loading Spotify tokens: {e}')
            return False
        access_token = doc.get('accessToken')
        if not access_token:
            log.info('No stored Spotify access token')
            return False
        with self._lock:
            self.credential = Credential(access_token, doc.get('refreshToken'),
                                         token_expiry(access_token))
        return self.validate()

    def validate(self):
        """
        Probe the API with the current token. 401 marks the token expired;
        any other HTTP status counts as valid.
        """
        token = self.credential.access_token
        if not token:
            return False
        status = self.probe(token)
        if status is None:
            log.warning('Could not validate Spotify token: no response')
            return False
        if status == 401:
            log.info('Access token is invalid or expired')
            self._set_state(AuthState.EXPIRED)
            return False
        self._set_state(AuthState.AUTHENTICATED)
        return True

    def authorize_url(self):
        return self.oauth.get_authorize_url()

    def authorize(self):
        """Make sure we hold a working token, prompting the user if needed."""
        if self.validate():
            return True
        if self.redirect_waiter is None:
            log.info('Spotify authorization needed; waiting for /callback')
            self._set_state(AuthState.UNAUTHENTICATED)
            return False
        self._set_state(AuthState.AUTHENTICATING)
        try:
            redirect_url = self.redirect_waiter(self.authorize_url())
        except (OSError, EOFError) as e:
            log.warning(f'Authorization prompt failed: {e}')
            redirect_url = None
        if not redirect_url:
            self._set_state(AuthState.UNAUTHENTICATED)
            return False
        return self.handle_redirect(redirect_url)

    def handle_redirect(self, redirect_url):
        code = extract_code(redirect_url)
        if not code:
            log.warning('No code found in redirect URL, cannot exchange for token')
            self._set_state(AuthState.UNAUTHENTICATED)
            return False
        return self.exchange_code(code)

    def exchange_code(self, code):
        """Trade an authorization code for an access/refresh token pair."""
        self._set_state(AuthState.AUTHENTICATING)
        try:
            token_info = self.oauth.get_access_token(code, as_dict=True,
                                                     check_cache=False)
        except (SpotifyOauthError, requests.RequestException) as e:
            log.warning(f'Authorization code exchange failed: {e}')
            token_info = None
        if (not token_info or not token_info.get('access_token')
                or not token_info.get('refresh_token')):
            self._set_state(AuthState.UNAUTHENTICATED)
            log.info('Authentication failed')
            return False
        self._store_credential(token_info['access_token'],
                               token_info['refresh_token'], token_info)
        log.info('Authentication succeeded')
        return True

    def refresh(self):
        """
        Get a new access token with the stored refresh token. On failure,
        clear everything and re-authorize once; a second consecutive failure
        sets `auth_required` and returns False.
        """
        with self._refresh_lock:
            return self._refresh()

    def _refresh(self):
        try:
            return self._attempt_refresh()
        finally:
            # bumped once the attempt is over so callers queued behind it see it
            self._refresh_count += 1

    def _attempt_refresh(self):
        self._set_state(AuthState.REFRESHING)
        try:
            refresh_token = self.store.get(self.device_id).get('refreshToken')
        except OSError as e:
            log.warning(f'Error loading refresh token: {e}')
            refresh_token = None
        refresh_token = refresh_token or self.credential.refresh_token

        token_info = None
        if not refresh_token:
            log.info('Refresh token not available')
        else:
            try:
                token_info = self.oauth.refresh_access_token(refresh_token)
            except (SpotifyOauthError, requests.RequestException) as e:
                log.warning(f'Error refreshing access token: {e}')

        if token_info and token_info.get('access_token'):
            self._store_credential(token_info['access_token'],
                                   token_info.get('refresh_token') or refresh_token,
                                   token_info)
            log.info('Access token refreshed successfully')
            return True
        return self._recover_from_failed_refresh()

    def _recover_from_failed_refresh(self):
        with self._lock:
            spent = self._recovery_spent
            self._recovery_spent = True
        self._clear()
        if spent:
            with self._lock:
                self.auth_required = True
            log.warning('Refresh failed again; authentication required')
            return False
        log.info('Refresh token failed. Prompting user to re-authenticate.')
        return self.authorize()

    def ensure_token(self):
        """Current access token, refreshed first if it has expired; else None."""
        if self._token_is_live():
            return self.credential.access_token
        attempt = self._refresh_count
        with self._refresh_lock:
            if self._token_is_live():
                return self.credential.access_token
            if self._refresh_count != attempt:
                # someone else's refresh failed while we waited; don't count a second failure
                return None
            if self.credential.access_token:
                log.info('Access token has expired, attempting to refresh...')
            if self._refresh():
                return self.credential.access_token
            return None

    def sign_out(self):
        with self._lock:
            self.auth_required = False
            self._recovery_spent = False
        self._clear()
