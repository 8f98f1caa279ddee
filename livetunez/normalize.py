"""
Name normalization and fuzzy comparison helpers for song/artist names.

`normalize` produces the text that goes into catalog queries; `_comparable`
is the looser form used when scoring candidates against each other.
"""

import re
from difflib import SequenceMatcher

# parenthesized annotations ("(Live)") plus anything that is not a word
# character, whitespace or hyphen
_QUERY_JUNK = re.compile(r'\s*\([^)]*\)|[^\w\s-]')

KARAOKE_MARKERS = ('karaoke', 'tribute', 'in the style of',
                   'originally performed')


def normalize(text):
    """Strip parentheticals and punctuation from a song or artist name."""
    if not text:
        return ''
    return _QUERY_JUNK.sub('', text).strip()


def normalize_artist(artist_name):
    """Normalize each '&'-joined collaborator, keeping the '&' between them."""
    parts = (normalize(p) for p in (artist_name or '').split('&'))
    return ' & '.join(p for p in parts if p)


def reverse_artist_name(artist_name):
    """'A & B' -> 'B & A'. Names without '&' come back trimmed."""
    parts = [p.strip() for p in artist_name.split('&')]
    return ' & '.join(reversed(parts))


def similarity_score(original, candidate):
    """Number of lowercase words the two strings share."""
    return len(set(original.lower().split()) & set(candidate.lower().split()))


def _comparable(s):
    s = s.lower()
    # remove (feat. ...) / [Remastered] / (Live at ...)
    s = re.sub(r'\(.*?\)|\[.*?\]', '', s)
    s = re.sub(
        r'\b(remaster(ed)?|deluxe|bonus|version|edit|mix|live|mono|stereo|radio\s*edit|demo)\b',
        '',
        s,
        flags=re.I,
    )
    s = s.replace('&', 'and')
    s = re.sub(r'[^a-z0-9 ]', '', s)
    return ' '.join(s.split())


def similarity_ratio(a, b):
    """Similarity ratio (0..1) between two names after loose normalization."""
    return SequenceMatcher(None, _comparable(a), _comparable(b)).ratio()


def is_karaoke(track):
    combined = (track.name + ' ' + ' '.join(track.artists)).lower()
    return any(k in combined for k in KARAOKE_MARKERS)


def best_match(candidates, song_title, artist_name):
    """
    First candidate whose normalized title equals the song and whose credited
    artists contain the artist (in either '&' order).
    """
    wanted_title = normalize(song_title)
    wanted_artist = normalize_artist(artist_name)
    reversed_artist = reverse_artist_name(wanted_artist)
    for track in candidates:
        credited = ' & '.join(normalize(a) for a in track.artists)
        if normalize(track.name) != wanted_title:
            continue
        if wanted_artist in credited or reversed_artist in credited:
            return track
    return None
