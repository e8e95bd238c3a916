"""
Fuzzy matching primitive shared by line search and the directory picker.

Queries are split on whitespace into atoms; every atom must match. Plain atoms
are fuzzy subsequences scored fzf-style (boundary, camelCase and consecutive
bonuses, gap penalties). Prefixes select other atom kinds:

    'foo    substring        ^foo   prefix
    foo$    suffix           ^foo$  exact
    !foo    must not contain foo (adds no score)

Matching ignores case. Diacritics in the haystack are folded when the atom is
plain ASCII, so "cafe" finds "café" but "café" only finds "café".
"""
from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

SCORE_MATCH = 16
SCORE_GAP_START = -3
SCORE_GAP_EXTENSION = -1
BONUS_BOUNDARY = SCORE_MATCH // 2
BONUS_NON_WORD = SCORE_MATCH // 2
BONUS_CAMEL_123 = BONUS_BOUNDARY + SCORE_GAP_EXTENSION
BONUS_CONSECUTIVE = -(SCORE_GAP_START + SCORE_GAP_EXTENSION)
BONUS_FIRST_CHAR_MULTIPLIER = 2
BONUS_BOUNDARY_WHITE = BONUS_BOUNDARY + 2
BONUS_BOUNDARY_DELIMITER = BONUS_BOUNDARY + 1

# Upper bound on alternative alignments tried per fuzzy atom.
_MAX_ALIGNMENTS = 8
_DELIMITERS = frozenset("/,:;|")


class AtomKind(Enum):
    FUZZY = "fuzzy"
    SUBSTRING = "substring"
    PREFIX = "prefix"
    SUFFIX = "suffix"
    EXACT = "exact"


class _CharClass(int, Enum):
    WHITE = 0
    NON_WORD = 1
    DELIMITER = 2
    LOWER = 3
    UPPER = 4
    LETTER = 5
    NUMBER = 6


@dataclass(frozen=True)
class Atom:
    text: str
    kind: AtomKind
    negated: bool = False

    @property
    def normalize(self) -> bool:
        return self.text.isascii()


@lru_cache(maxsize=4096)
def _char_class(ch: str) -> _CharClass:
    if ch.isspace():
        return _CharClass.WHITE
    if ch in _DELIMITERS:
        return _CharClass.DELIMITER
    if ch.isdigit():
        return _CharClass.NUMBER
    if ch.islower():
        return _CharClass.LOWER
    if ch.isupper():
        return _CharClass.UPPER
    if ch.isalpha():
        return _CharClass.LETTER
    return _CharClass.NON_WORD


@lru_cache(maxsize=8192)
def _fold_char(ch: str, normalize: bool) -> str:
    """Folds one character to exactly one character so offsets stay aligned."""
    lowered = ch.lower()
    if len(lowered) != 1:
        lowered = ch
    if normalize and not lowered.isascii():
        decomposed = unicodedata.normalize("NFKD", lowered)
        if decomposed and not unicodedata.combining(decomposed[0]):
            return decomposed[0]
    return lowered


def _fold(text: str, normalize: bool) -> str:
    return "".join(_fold_char(ch, normalize) for ch in text)


def _bonus_for(prev: _CharClass, cls: _CharClass) -> int:
    if cls > _CharClass.DELIMITER:
        if prev == _CharClass.WHITE:
            return BONUS_BOUNDARY_WHITE
        if prev == _CharClass.DELIMITER:
            return BONUS_BOUNDARY_DELIMITER
        if prev == _CharClass.NON_WORD:
            return BONUS_BOUNDARY
    if prev == _CharClass.LOWER and cls == _CharClass.UPPER:
        return BONUS_CAMEL_123
    if prev != _CharClass.NUMBER and cls == _CharClass.NUMBER:
        return BONUS_CAMEL_123
    if cls == _CharClass.WHITE:
        return BONUS_BOUNDARY_WHITE
    if cls in (_CharClass.NON_WORD, _CharClass.DELIMITER):
        return BONUS_NON_WORD
    return 0


def _score_window(
    original: str,
    folded: str,
    needle: str,
    start: int,
    end: int,
) -> tuple[int, list[int]]:
    """Scores the needle greedily inside [start, end) of the haystack."""
    score = 0
    positions: list[int] = []
    in_gap = False
    consecutive = 0
    first_bonus = 0
    pidx = 0
    prev_class = _char_class(original[start - 1]) if start > 0 else _CharClass.WHITE

    for idx in range(start, end):
        cls = _char_class(original[idx])
        if pidx < len(needle) and folded[idx] == needle[pidx]:
            positions.append(idx)
            score += SCORE_MATCH
            bonus = _bonus_for(prev_class, cls)
            if consecutive == 0:
                first_bonus = bonus
            else:
                if bonus >= BONUS_BOUNDARY and bonus > first_bonus:
                    first_bonus = bonus
                bonus = max(bonus, first_bonus, BONUS_CONSECUTIVE)
            if pidx == 0:
                score += bonus * BONUS_FIRST_CHAR_MULTIPLIER
            else:
                score += bonus
            in_gap = False
            consecutive += 1
            pidx += 1
        else:
            score += SCORE_GAP_EXTENSION if in_gap else SCORE_GAP_START
            in_gap = True
            consecutive = 0
            first_bonus = 0
        prev_class = cls
    return score, positions


def _fuzzy_window(folded: str, needle: str, offset: int) -> tuple[int, int] | None:
    """Finds the shortest window ending at the first full subsequence match after offset."""
    pidx = 0
    end = -1
    for idx in range(offset, len(folded)):
        if folded[idx] == needle[pidx]:
            pidx += 1
            if pidx == len(needle):
                end = idx + 1
                break
    if end < 0:
        return None

    pidx = len(needle) - 1
    start = end - 1
    for idx in range(end - 1, offset - 1, -1):
        if folded[idx] == needle[pidx]:
            pidx -= 1
            if pidx < 0:
                start = idx
                break
    return start, end


def _match_fuzzy(original: str, folded: str, needle: str) -> tuple[int, list[int]] | None:
    best: tuple[int, list[int]] | None = None
    offset = 0
    for _ in range(_MAX_ALIGNMENTS):
        window = _fuzzy_window(folded, needle, offset)
        if window is None:
            break
        start, end = window
        candidate = _score_window(original, folded, needle, start, end)
        if best is None or candidate[0] > best[0]:
            best = candidate
        offset = start + 1
    return best


def _match_literal(original: str, folded: str, atom: Atom, needle: str) -> tuple[int, list[int]] | None:
    size = len(needle)
    if atom.kind is AtomKind.EXACT:
        starts = [0] if folded == needle else []
    elif atom.kind is AtomKind.PREFIX:
        starts = [0] if folded.startswith(needle) else []
    elif atom.kind is AtomKind.SUFFIX:
        starts = [len(folded) - size] if folded.endswith(needle) else []
    else:
        starts = []
        found = folded.find(needle)
        while found >= 0 and len(starts) < _MAX_ALIGNMENTS:
            starts.append(found)
            found = folded.find(needle, found + 1)

    best: tuple[int, list[int]] | None = None
    for start in starts:
        candidate = _score_window(original, folded, needle, start, start + size)
        if best is None or candidate[0] > best[0]:
            best = candidate
    return best


def _parse_atom(raw: str) -> Atom:
    negated = False
    kind = AtomKind.FUZZY
    text = raw

    if text.startswith("\\") and len(text) > 1 and text[1] in "'^!":
        text = text[1:]
        return Atom(text=text, kind=kind)

    if text.startswith("!"):
        negated = True
        text = text[1:]
        kind = AtomKind.SUBSTRING

    if text.startswith("^"):
        kind = AtomKind.PREFIX
        text = text[1:]
    elif text.startswith("'"):
        kind = AtomKind.SUBSTRING
        text = text[1:]

    if text.endswith("\\$"):
        text = text[:-2] + "$"
    elif text.endswith("$") and len(text) > 1:
        kind = AtomKind.EXACT if kind is AtomKind.PREFIX else AtomKind.SUFFIX
        text = text[:-1]

    return Atom(text=text, kind=kind, negated=negated)


class FuzzyPattern:
    """Parsed query that can score haystacks and report matched offsets."""

    def __init__(self, atoms: list[Atom]):
        self.atoms = [atom for atom in atoms if atom.text]
        self._needles = {
            (atom.text, atom.normalize): _fold(atom.text, atom.normalize) for atom in self.atoms
        }

    @classmethod
    def parse(cls, query: str) -> "FuzzyPattern":
        return cls([_parse_atom(raw) for raw in query.split()])

    @property
    def is_empty(self) -> bool:
        return not self.atoms

    def _match(self, haystack: str) -> tuple[int, list[int]] | None:
        folded_cache: dict[bool, str] = {}
        total = 0
        positions: set[int] = set()
        for atom in self.atoms:
            normalize = atom.normalize
            folded = folded_cache.get(normalize)
            if folded is None:
                folded = _fold(haystack, normalize)
                folded_cache[normalize] = folded
            needle = self._needles[(atom.text, normalize)]
            if atom.kind is AtomKind.FUZZY:
                result = _match_fuzzy(haystack, folded, needle)
            else:
                result = _match_literal(haystack, folded, atom, needle)

            if atom.negated:
                if result is not None:
                    return None
                continue
            if result is None:
                return None
            total += result[0]
            positions.update(result[1])
        return total, sorted(positions)

    def score(self, haystack: str) -> int | None:
        """Returns the match score, or None when the haystack is rejected."""
        result = self._match(haystack)
        return None if result is None else result[0]

    def indices(self, haystack: str) -> list[int]:
        """Returns matched character offsets; empty when the haystack is rejected."""
        result = self._match(haystack)
        return [] if result is None else result[1]
