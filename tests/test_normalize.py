from __future__ import annotations

import pytest

from livetunez.models import CandidateTrack
from livetunez.normalize import (
    best_match, normalize, normalize_artist, reverse_artist_name,
    similarity_ratio,
    similarity_score,
)


def test_normalize_strips_parenthetical_annotation():
    assert normalize("Shape of You (Live at BBC)") == "Shape of You"


def test_normalize_keeps_hyphens_and_drops_punctuation():
    assert normalize("Don't Stop Me Now!") == "Dont Stop Me Now"
    assert normalize("Jay-Z") == "Jay-Z"
    assert normalize("AC/DC") == "ACDC"


@pytest.mark.parametrize("text", [
    "Shape of You (Live at BBC)",
    "  (Intro)  Song (Remix) ",
    "Who's Next?? (1971)",
    "((nested) paren) tail",
    "broken ( paren",
    "Beyoncé & JAY-Z",
    "",
])
def test_normalize_is_idempotent(text):
    once = normalize(text)
    assert normalize(once) == once


def test_normalize_of_only_removable_characters_is_empty():
    assert normalize("(Intro)") == ""
    assert normalize("?!...") == ""
    assert normalize(None) == ""


def test_reverse_artist_name():
    assert reverse_artist_name("Calvin Harris & Rihanna") == "Rihanna & Calvin Harris"
    assert reverse_artist_name(reverse_artist_name("Calvin Harris & Rihanna")) == "Calvin Harris & Rihanna"
    assert reverse_artist_name("Adele") == "Adele"


def test_similarity_helpers():
    assert similarity_score("Hey Jude", "hey jude remastered") == 2
    assert similarity_score("Hey Jude", "Let It Be") == 0
    assert similarity_ratio("Hey Jude (Remastered 2015)", "Hey Jude") == 1.0


def test_best_match_requires_title_and_artist():
    tracks = [
        CandidateTrack("1", "Yesterday", ("Some Cover Band",)),
        CandidateTrack("2", "Yesterday (Remastered 2009)", ("The Beatles",)),
        CandidateTrack("3", "We Found Love", ("Rihanna", "Calvin Harris")),
    ]
    assert best_match(tracks, "Yesterday", "The Beatles").id == "2"
    assert best_match(tracks, "We Found Love", "Calvin Harris & Rihanna").id == "3"
    assert best_match(tracks, "Help!", "The Beatles") is None


def test_normalize_artist_keeps_collaborator_separator():
    assert normalize_artist("Calvin Harris & Rihanna (feat.)") == "Calvin Harris & Rihanna"
    assert normalize_artist("Simon & Garfunkel!") == "Simon & Garfunkel"
    assert normalize_artist("AC/DC") == "ACDC"
    assert normalize_artist("& (Live)") == ""
