"""Subsequence fuzzy matching over the log-group catalog."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Optional, Sequence, TypeVar

T = TypeVar("T")

WORD_SEPARATORS = frozenset("/-_.: ")


@dataclass(frozen=True)
class MatchScore:
    """Ranking features, compared as a tuple; larger is better."""

    longest_run: int
    word_boundary: bool
    length: int
    position: int

    def key(self) -> tuple[int, int, int, int]:
        return (self.longest_run, int(self.word_boundary), -self.length, -self.position)


@dataclass(frozen=True)
class Match(Generic[T]):
    candidate: T
    score: Optional[MatchScore]
    positions: tuple[int, ...] = ()


def rank(
    query: str,
    candidates: Iterable[T],
    key: Callable[[T], str] = str,
) -> list[Match[T]]:
    """Rank *candidates* whose text contains *query* as a subsequence.

    An empty query keeps every candidate in catalog order. Ties keep
    catalog order because :func:`sorted` is stable.
    """
    items = list(candidates)
    if not query:
        return [Match(candidate, None) for candidate in items]

    needle = query.lower()
    matches: list[Match[T]] = []
    for candidate in items:
        found = score_candidate(needle, key(candidate))
        if found is None:
            continue
        score, positions = found
        matches.append(Match(candidate, score, positions))
    return sorted(matches, key=lambda match: match.score.key(), reverse=True)


def score_candidate(needle: str, text: str) -> Optional[tuple[MatchScore, tuple[int, ...]]]:
    """Return the best alignment of *needle* inside *text*, or ``None``.

    Every occurrence of the first character is tried as a start, and for each
    start the alignment with the longest contiguous run is kept.
    """
    haystack = text.lower()
    best: Optional[tuple[MatchScore, tuple[int, ...]]] = None
    start = haystack.find(needle[0])
    while start != -1:
        positions = _align_from(needle, haystack, start)
        if positions is None:
            break
        score = MatchScore(
            longest_run=_longest_run(positions),
            word_boundary=is_word_boundary(text, start),
            length=len(text),
            position=start,
        )
        if best is None or score.key() > best[0].key():
            best = (score, positions)
        start = haystack.find(needle[0], start + 1)
    return best


def is_word_boundary(text: str, index: int) -> bool:
    if index == 0:
        return True
    previous = text[index - 1]
    current = text[index]
    if previous in WORD_SEPARATORS:
        return True
    return previous.islower() and current.isupper()


def _align_from(needle: str, haystack: str, start: int) -> Optional[tuple[int, ...]]:
    """Align *needle* with its first character pinned at *start*.

    Tries every contiguous slice ``needle[i:i + size]`` placed verbatim in the
    haystack and keeps the longest one whose prefix still fits before it and
    whose suffix still fits after it.
    """
    size = len(needle)
    earliest = _earliest_ends(needle, haystack, start)
    if earliest is None:
        return None
    latest = _latest_starts(needle, haystack)

    best_size, best_at = 1, (0, start)
    for offset in range(size):
        if offset == 0:
            anchors = [start]
        else:
            anchors = _occurrences(haystack, needle[offset], earliest[offset])
        for anchor in anchors:
            length = 1
            while (
                offset + length <= size
                and anchor + length <= len(haystack)
                and haystack[anchor + length - 1] == needle[offset + length - 1]
            ):
                if anchor + length <= latest[offset + length] and length > best_size:
                    best_size, best_at = length, (offset, anchor)
                length += 1

    offset, anchor = best_at
    head = [start] + _greedy(needle[1:offset], haystack, start + 1) if offset else []
    run = list(range(anchor, anchor + best_size))
    tail = _greedy(needle[offset + best_size:], haystack, anchor + best_size)
    return tuple(head + run + tail)


def _earliest_ends(needle: str, haystack: str, start: int) -> Optional[list[int]]:
    # ends[i]: first haystack index free after placing needle[:i] as early as possible
    ends = [start, start + 1]
    cursor = start + 1
    for char in needle[1:]:
        index = haystack.find(char, cursor)
        if index == -1:
            return None
        cursor = index + 1
        ends.append(cursor)
    return ends


def _latest_starts(needle: str, haystack: str) -> list[int]:
    # starts[i]: last haystack index where needle[i:] can still begin
    starts = [0] * (len(needle) + 1)
    starts[-1] = len(haystack)
    for index in range(len(needle) - 1, -1, -1):
        starts[index] = haystack.rfind(needle[index], 0, starts[index + 1])
    return starts


def _occurrences(haystack: str, char: str, cursor: int) -> list[int]:
    found = []
    index = haystack.find(char, cursor)
    while index != -1:
        found.append(index)
        index = haystack.find(char, index + 1)
    return found


def _greedy(chars: str, haystack: str, cursor: int) -> list[int]:
    positions = []
    for char in chars:
        cursor = haystack.find(char, cursor)
        positions.append(cursor)
        cursor += 1
    return positions


def _longest_run(positions: Sequence[int]) -> int:
    longest = current = 1
    for previous, index in zip(positions, positions[1:]):
        if index == previous + 1:
            current += 1
            longest = max(longest, current)
        else:
            current = 1
    return longest


class FuzzyMatcher(Generic[T]):
    """Holds the current catalog; every :meth:`rank` call recomputes from scratch."""

    def __init__(self, candidates: Iterable[T] = (), key: Callable[[T], str] = str) -> None:
        self._candidates: list[T] = list(candidates)
        self._key = key

    @property
    def candidates(self) -> list[T]:
        return list(self._candidates)

    def set_candidates(self, candidates: Iterable[T]) -> None:
        self._candidates = list(candidates)

    def rank(self, query: str) -> list[Match[T]]:
        return rank(query, self._candidates, key=self._key)
