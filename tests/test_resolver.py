from __future__ import annotations

import threading

import pytest

from livetunez.models import CandidateTrack, ResolvedTrack
from livetunez.resolver import (
    DEFAULT_SEARCH_PLAN, TrackResolver, exact_match, parse_search_plan,
    similarity_picker,
)


def _track(track_id, name="Song", *artists):
    return CandidateTrack(track_id, name, tuple(artists))


class _FakeCatalog:
    def __init__(self, responses=None, fail_on=()):
        self.responses = responses or {}
        self.fail_on = set(fail_on)
        self.queries = []
        self._lock = threading.Lock()

    def search(self, query, limit=10):
        with self._lock:
            self.queries.append(query)
        if query in self.fail_on:
            raise RuntimeError("boom")
        return list(self.responses.get(query, []))


class _FakeCredentials:
    def __init__(self, token="tok"):
        self.token = token
        self.calls = 0

    def ensure_token(self):
        self.calls += 1
        return self.token


def test_artist_filtered_hit_skips_title_only_search():
    catalog = _FakeCatalog({
        "track:Yesterday artist:The Beatles": [_track("beatles-1", "Yesterday", "The Beatles")],
    })
    resolver = TrackResolver(catalog, _FakeCredentials())

    assert resolver.resolve("Yesterday", "The Beatles") == "beatles-1"
    assert "track:Yesterday" not in catalog.queries


def test_all_empty_searches_return_not_found():
    catalog = _FakeCatalog()
    resolver = TrackResolver(catalog, _FakeCredentials())

    assert resolver.resolve("Yesterday", "The Beatles") is None
    assert catalog.queries[-1] == "track:Yesterday"


def test_direct_artist_query_wins_even_if_reversed_finishes_first():
    direct = "track:This Is What You Came For artist:Calvin Harris & Rihanna"
    reversed_ = "track:This Is What You Came For artist:Rihanna & Calvin Harris"
    reversed_done = threading.Event()
    completed = []

    class _RacingCatalog:
        def search(self, query, limit=10):
            if query == direct:
                reversed_done.wait(timeout=5)
                completed.append(query)
                return [_track("direct-id")]
            if query == reversed_:
                completed.append(query)
                reversed_done.set()
                return [_track("reversed-id")]
            return []

    resolver = TrackResolver(_RacingCatalog(), _FakeCredentials())

    assert resolver.resolve("This Is What You Came For", "Calvin Harris & Rihanna") == "direct-id"
    assert completed == [reversed_, direct]


def test_reversed_artist_used_when_direct_is_empty():
    catalog = _FakeCatalog({
        "track:We Found Love artist:Calvin Harris & Rihanna": [_track("wfl")],
    })
    resolver = TrackResolver(catalog, _FakeCredentials())

    assert resolver.resolve("We Found Love", "Rihanna & Calvin Harris") == "wfl"


def test_falls_back_to_title_only_query():
    catalog = _FakeCatalog({"track:Creep": [_track("creep-1"), _track("creep-2")]})
    resolver = TrackResolver(catalog, _FakeCredentials())

    assert resolver.resolve("Creep (Acoustic)", "Radiohead") == "creep-1"
    assert catalog.queries[:2] == ["track:Creep artist:Radiohead", "track:Creep"]


def test_falls_back_to_unnormalized_artist():
    catalog = _FakeCatalog({"track:Thunderstruck artist:AC/DC": [_track("acdc")]})
    resolver = TrackResolver(catalog, _FakeCredentials())

    assert resolver.resolve("Thunderstruck", "AC/DC") == "acdc"
    assert catalog.queries == [
        "track:Thunderstruck artist:ACDC",
        "track:Thunderstruck",
        "track:Thunderstruck artist:AC/DC",
    ]


def test_song_that_normalizes_to_empty_is_not_searched():
    catalog = _FakeCatalog()
    resolver = TrackResolver(catalog, _FakeCredentials())

    assert resolver.resolve("(Intro)", "Muse") is None
    assert catalog.queries == []


def test_no_token_means_no_search():
    catalog = _FakeCatalog({"track:Creep": [_track("creep-1")]})
    resolver = TrackResolver(catalog, _FakeCredentials(token=None))

    assert resolver.resolve("Creep", "Radiohead") is None
    assert resolver.resolve_all(["Creep", "Nude"], "Radiohead") == [
        ResolvedTrack("Creep"), ResolvedTrack("Nude"),
    ]
    assert catalog.queries == []


def test_custom_plan_is_honoured():
    catalog = _FakeCatalog()
    resolver = TrackResolver(catalog, plan=[["title"]])

    resolver.resolve("Creep", "Radiohead")
    assert catalog.queries == ["track:Creep"]


def test_parse_search_plan():
    assert parse_search_plan(None) == DEFAULT_SEARCH_PLAN
    assert parse_search_plan(["title", ["artist", "artist_raw"]]) == (
        ("title",), ("artist", "artist_raw"),
    )
    with pytest.raises(ValueError):
        parse_search_plan([["album"]])


def test_similarity_picker_skips_karaoke_and_weak_matches():
    catalog = _FakeCatalog({
        "track:Hallelujah artist:Jeff Buckley": [
            _track("karaoke", "Hallelujah (Karaoke Version)", "Sing King"),
            _track("other", "Hallelujah", "Pentatonix"),
            _track("right", "Hallelujah", "Jeff Buckley"),
        ],
    })
    resolver = TrackResolver(catalog, pick=similarity_picker())

    assert resolver.resolve("Hallelujah", "Jeff Buckley") == "right"


def test_resolve_all_keeps_input_order():
    catalog = _FakeCatalog({
        "track:Airbag artist:Radiohead": [_track("airbag")],
        "track:Lucky artist:Radiohead": [_track("lucky")],
    })
    credentials = _FakeCredentials()
    resolver = TrackResolver(catalog, credentials, plan=[["artist"]])

    result = resolver.resolve_all(["Airbag", "Paranoid Android", "Lucky"], "Radiohead")

    assert result == [
        ResolvedTrack("Airbag", "airbag"),
        ResolvedTrack("Paranoid Android", None),
        ResolvedTrack("Lucky", "lucky"),
    ]
    assert credentials.calls == 1


def test_resolve_all_reports_failed_song_as_not_found():
    catalog = _FakeCatalog(
        {"track:Lucky artist:Radiohead": [_track("lucky")]},
        fail_on={"track:Airbag artist:Radiohead"},
    )
    resolver = TrackResolver(catalog, plan=[["artist"]])

    result = resolver.resolve_all(["Airbag", "Lucky"], "Radiohead")

    assert [t.track_id for t in result] == [None, "lucky"]


def test_exact_match_picker_falls_through_to_next_stage():
    catalog = _FakeCatalog({
        "track:Yesterday artist:The Beatles": [_track("cover", "Yesterday", "Tribute Band")],
        "track:Yesterday": [_track("real", "Yesterday - Remastered", "The Beatles"),
                            _track("exact", "Yesterday", "The Beatles")],
    })
    resolver = TrackResolver(catalog, pick=exact_match)

    assert resolver.resolve("Yesterday", "The Beatles") == "exact"
