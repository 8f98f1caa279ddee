from __future__ import annotations

import requests
import spotipy

from livetunez import spotify_client as client_module
from livetunez.models import CandidateTrack
from livetunez.resolver import TrackResolver, similarity_picker
from livetunez.spotify_client import SpotifyClient, probe_token

SEARCH_PAYLOAD = {
    "tracks": {
        "items": [
            {"id": "t1", "name": "Yesterday", "artists": [{"name": "The Beatles"}]},
            {"id": "t2", "name": "Yesterday", "artists": [{"name": "Cover"}, {"name": "Band"}]},
        ]
    }
}


def _install_fake_spotify(monkeypatch, **behaviour):
    created = []

    class _FakeSpotify:
        def __init__(self, auth=None, **kwargs):
            self.auth = auth
            self.kwargs = kwargs
            self.added = []
            created.append(self)

        def _run(self, name, *args, **kwargs):
            result = behaviour.get(name)
            if isinstance(result, Exception):
                raise result
            return result(*args, **kwargs) if callable(result) else result

        def search(self, q, limit=10, type="track", market=None):
            return self._run("search", q)

        def current_user(self):
            return self._run("current_user")

        def user_playlist_create(self, user, name, public=True, description=""):
            return self._run("user_playlist_create", user, name)

        def playlist_add_items(self, playlist_id, items):
            self.added.append((playlist_id, list(items)))
            return self._run("playlist_add_items")

    monkeypatch.setattr(client_module.spotipy, "Spotify", _FakeSpotify)
    return created


def test_search_parses_candidate_tracks(monkeypatch):
    created = _install_fake_spotify(monkeypatch, search=SEARCH_PAYLOAD)
    client = SpotifyClient(lambda: "tok")

    tracks = client.search("track:Yesterday")

    assert tracks == [
        CandidateTrack("t1", "Yesterday", ("The Beatles",)),
        CandidateTrack("t2", "Yesterday", ("Cover", "Band")),
    ]
    assert tracks[0].uri == "spotify:track:t1"
    assert created[0].auth == "tok"
    assert created[0].kwargs["retries"] == 0


def test_search_swallows_api_errors(monkeypatch):
    _install_fake_spotify(monkeypatch, search=spotipy.SpotifyException(401, -1, "expired"))
    assert SpotifyClient(lambda: "tok").search("track:x") == []


def test_search_swallows_transport_errors(monkeypatch):
    _install_fake_spotify(monkeypatch, search=requests.ConnectionError("offline"))
    assert SpotifyClient(lambda: "tok").search("track:x") == []


def test_search_treats_malformed_payload_as_no_results(monkeypatch):
    _install_fake_spotify(monkeypatch, search={"tracks": {"items": [{"name": "no id"}]}})
    assert SpotifyClient(lambda: "tok").search("track:x") == []

    _install_fake_spotify(monkeypatch, search=None)
    assert SpotifyClient(lambda: "tok").search("track:x") == []


def test_search_drops_malformed_items_and_keeps_good_ones(monkeypatch):
    payload = {"tracks": {"items": [
        {"id": None, "name": None},
        "junk",
        {"id": "t3", "name": "Creep", "artists": [{"name": 7}]},
        {"id": "t1", "name": "Yesterday", "artists": [{"name": "The Beatles"}]},
    ]}}
    _install_fake_spotify(monkeypatch, search=payload)

    assert SpotifyClient(lambda: "tok").search("track:x") == [
        CandidateTrack("t1", "Yesterday", ("The Beatles",)),
    ]


def test_null_items_do_not_stop_resolver_fallback(monkeypatch):
    responses = {
        "track:Creep artist:Radiohead": {"tracks": {"items": [{"id": None, "name": None}]}},
        "track:Creep": {"tracks": {"items": [
            {"id": "good", "name": "Creep", "artists": [{"name": "Radiohead"}]},
        ]}},
    }
    _install_fake_spotify(monkeypatch, search=lambda q: responses.get(q))
    client = SpotifyClient(lambda: "tok")

    assert TrackResolver(client).resolve("Creep", "Radiohead") == "good"
    assert TrackResolver(client, pick=similarity_picker()).resolve("Creep", "Radiohead") == "good"


def test_search_without_token_does_not_call_api(monkeypatch):
    created = _install_fake_spotify(monkeypatch, search=SEARCH_PAYLOAD)
    assert SpotifyClient(lambda: None).search("track:x") == []
    assert created == []


def test_create_playlist_returns_id(monkeypatch):
    _install_fake_spotify(
        monkeypatch,
        current_user={"id": "me"},
        user_playlist_create=lambda user, name: {"id": f"{user}:{name}"},
    )
    assert SpotifyClient(lambda: "tok").create_playlist("Muse - 01-06-2024") == "me:Muse - 01-06-2024"


def test_create_playlist_failure_returns_none(monkeypatch):
    _install_fake_spotify(monkeypatch, current_user={"id": "me"},
                          user_playlist_create=spotipy.SpotifyException(403, -1, "forbidden"))
    assert SpotifyClient(lambda: "tok").create_playlist("x") is None


def test_add_tracks_batches_by_100(monkeypatch):
    created = _install_fake_spotify(monkeypatch, playlist_add_items={"snapshot_id": "s"})
    ids = [f"id{i}" for i in range(150)]

    assert SpotifyClient(lambda: "tok").add_tracks_to_playlist("pl", ids) is True

    batches = created[0].added
    assert [len(uris) for _, uris in batches] == [100, 50]
    assert batches[0][1][0] == "spotify:track:id0"


def test_add_tracks_with_nothing_to_add_is_false(monkeypatch):
    created = _install_fake_spotify(monkeypatch)
    assert SpotifyClient(lambda: "tok").add_tracks_to_playlist("pl", []) is False
    assert created == []


def test_add_tracks_failure_is_false(monkeypatch):
    _install_fake_spotify(monkeypatch, playlist_add_items=spotipy.SpotifyException(404, -1, "nope"))
    assert SpotifyClient(lambda: "tok").add_tracks_to_playlist("pl", ["a"]) is False


def test_probe_token_reports_status(monkeypatch):
    _install_fake_spotify(monkeypatch, current_user={"id": "me"})
    assert probe_token("tok") == 200

    _install_fake_spotify(monkeypatch, current_user=spotipy.SpotifyException(401, -1, "expired"))
    assert probe_token("tok") == 401

    _install_fake_spotify(monkeypatch, current_user=requests.ConnectionError("offline"))
    assert probe_token("tok") is None
