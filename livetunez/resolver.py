"""
Track resolution: map a setlist song title + artist to a Spotify track id.

The search plan is a sequence of stages; each stage is a group of query
templates issued concurrently. Within a stage the first query (in plan
order, not completion order) whose candidates yield a pick wins; if none
does, the next stage runs. The default plan is:

  1. track:{song} artist:{artist}  |  track:{song} artist:{reversed artist}
  2. track:{song}
  3. track:{song} artist:{raw artist}   (un-normalized artist)
  4. track:{song}

Song and artist are normalized first. Picking the first candidate is a
heuristic; pass `pick=similarity_picker()` (or any callable) to rank
candidates differently.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

from .models import ResolvedTrack, TrackQuery
from .normalize import (
    best_match, is_karaoke, normalize, normalize_artist, reverse_artist_name,
    similarity_ratio,
)

log = logging.getLogger(__name__)

QUERY_TEMPLATES = {
    'artist': 'track:{song} artist:{artist}',
    'artist_reversed': 'track:{song} artist:{artist_reversed}',
    'artist_raw': 'track:{song} artist:{artist_raw}',
    'title': 'track:{song}',
}

DEFAULT_SEARCH_PLAN = (
    ('artist', 'artist_reversed'),
    ('title',),
    ('artist_raw',),
    ('title',),
)


def first_candidate(candidates, query):
    return candidates[0] if candidates else None


def exact_match(candidates, query):
    """Only accept a candidate whose title and credited artists line up exactly."""
    return best_match(candidates, query.song_title, query.artist_name)


def similarity_picker(title_threshold=0.65, artist_threshold=0.55):
    """
    Build a pick function that scores candidates by title/artist similarity
    and drops karaoke/tribute junk. Returns None when nothing clears the
    thresholds, so the resolver moves on to the next query.
    """
    def pick(candidates, query):
        best, best_score = None, -1.0
        for track in candidates:
            if is_karaoke(track):
                continue
            title_score = similarity_ratio(query.song_title, track.name)
            if query.artist_name:
                artist_score = max((similarity_ratio(query.artist_name, a)
                                    for a in track.artists), default=0.0)
            else:
                artist_score = artist_threshold
            if title_score < title_threshold or artist_score < artist_threshold:
                continue
            if title_score + artist_score > best_score:
                best, best_score = track, title_score + artist_score
        return best
    return pick


def parse_search_plan(plan):
    """Validate a plan given as nested lists of template names (e.g. from config)."""
    if not plan:
        return DEFAULT_SEARCH_PLAN
    stages = []
    for stage in plan:
        if isinstance(stage, str):
            stage = [stage]
        unknown = [name for name in stage if name not in QUERY_TEMPLATES]
        if unknown:
            raise ValueError(f'Unknown search templates: {", ".join(unknown)}')
        if stage:
            stages.append(tuple(stage))
    return tuple(stages)


class TrackResolver:
    def __init__(self, catalog, credentials=None, plan=DEFAULT_SEARCH_PLAN,
                 pick=first_candidate, limit=10, max_workers=8):
        self.catalog = catalog
        self.credentials = credentials
        self.plan = parse_search_plan(plan)
        self.pick = pick
        self.limit = limit
        self.max_workers = max_workers

    def _has_token(self):
        if self.credentials is None:
            return True
        return bool(self.credentials.ensure_token())

    def resolve(self, song_name, artist_name):
        """Return the best track id for a song, or None if nothing matched."""
        if not self._has_token():
            log.warning(f'Not resolving {song_name!r}: no valid Spotify token')
            return None
        return self._resolve(song_name, artist_name)

    def resolve_all(self, song_names, artist_name):
        """
        Resolve every song concurrently. Returns ResolvedTrack objects in input
        order once all songs have finished.
        """
        song_names = list(song_names)
        if not song_names:
            return []
        if not self._has_token():
            log.warning('Not resolving setlist: no valid Spotify token')
            return [ResolvedTrack(song) for song in song_names]

        workers = min(self.max_workers, len(song_names))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self._resolve, song, artist_name)
                       for song in song_names]
            resolved = []
            for song, future in zip(song_names, futures):
                try:
                    track_id = future.result()
                except Exception:
                    log.exception(f'Resolving {song!r} failed')
                    track_id = None
                if track_id is None:
                    log.info(f'No track ID found for song: {song}')
                resolved.append(ResolvedTrack(song, track_id))
        return resolved

    # ─── internals ───────────────────────────────────────────────────────

    def _resolve(self, song_name, artist_name):
        song = normalize(song_name)
        if not song:
            return None
        artist = normalize_artist(artist_name)
        fields = {
            'song': song,
            'artist': artist,
            'artist_reversed': reverse_artist_name(artist) if artist else '',
            'artist_raw': (artist_name or '').strip(),
        }
        query = TrackQuery(song_name, artist_name)

        for stage in self.plan:
            queries = self._build_queries(stage, fields)
            if not queries:
                continue
            track = self._run_stage(queries, query)
            if track is not None:
                return track.id
        return None

    @staticmethod
    def _build_queries(stage, fields):
        queries = []
        for name in stage:
            template = QUERY_TEMPLATES[name]
            # template names double as field names
            if name.startswith('artist') and not fields[name]:
                continue
            q = template.format(**fields)
            if q not in queries:
                queries.append(q)
        return queries

    def _run_stage(self, queries, query):
        if len(queries) == 1:
            return self.pick(self.catalog.search(queries[0], limit=self.limit), query)

        pool = ThreadPoolExecutor(max_workers=len(queries))
        try:
            futures = [pool.submit(self.catalog.search, q, limit=self.limit)
                       for q in queries]
            # rank by issue order; a later query finishing first doesn't matter
            for future in futures:
                track = self.pick(future.result(), query)
                if track is not None:
                    return track
            return None
        finally:
            # leftover searches finish in the background and are ignored
            pool.shutdown(wait=False)
