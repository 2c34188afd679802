"""Fuzzy deduplication of candidate points of interest across providers.

Two providers frequently surface the same landmark under different labels
("Duomo di Milano" vs "Milan Cathedral") or with slightly shifted
coordinates.  :func:`is_duplicate` decides whether two candidates refer to the
same place and :func:`dedupe_candidates` filters a batch against a
caller-owned :class:`DedupSeenSet`.

The seen set is an explicit accumulator: every call returns a new set and
never mutates the one it was given, so concurrent runs cannot interfere.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Sequence, Set, Tuple

import config
from tools.geo import distance_km
from workflows.state import CandidatePOI

logger = logging.getLogger(__name__)

STOPWORDS = frozenset({"de", "du", "des", "la", "le", "les", "the", "of", "and", "et", "a", "au"})

# Names shorter than this are too generic for the substring rule
MIN_SUBSTRING_NAME_LENGTH = 12

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")

_DUOMO = re.compile(r"\b(duomo|cathedral|cathedrale?|cattedrale)\b")
_MILAN = re.compile(r"\bmilano?\b")
_LAST_SUPPER = re.compile(r"\b(last supper|la cene|cene|cenacolo|leonard[oa]?|da vinci|ultima cena)\b")


@dataclass(frozen=True)
class DedupOptions:
    token_overlap: float = field(default_factory=lambda: config.DEDUP_TOKEN_OVERLAP)
    near_distance_km: float = field(default_factory=lambda: config.DEDUP_NEAR_DISTANCE_KM)
    canonical_distance_km: float = field(default_factory=lambda: config.DEDUP_CANONICAL_DISTANCE_KM)


@dataclass(frozen=True)
class DedupSeenSet:
    """Accepted candidates of one run. Only ever grows."""

    items: Tuple[CandidatePOI, ...] = ()

    def extend(self, accepted: Iterable[CandidatePOI]) -> "DedupSeenSet":
        return DedupSeenSet(self.items + tuple(accepted))

    def __iter__(self) -> Iterator[CandidatePOI]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class DedupResult:
    kept: List[CandidatePOI]
    dropped: List[CandidatePOI]
    seen: DedupSeenSet


# ----------------------------------------------------------------------
# Name canonicalization
# ----------------------------------------------------------------------

def normalize_text(text: Optional[str]) -> str:
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = _NON_ALNUM.sub(" ", stripped.lower())
    return _WHITESPACE.sub(" ", cleaned).strip()


def _apply_aliases(normalized: str) -> str:
    if _DUOMO.search(normalized) and _MILAN.search(normalized):
        return "duomo milan"
    if _LAST_SUPPER.search(normalized):
        return "last supper da vinci"
    return normalized


def canonicalize_name(name: Optional[str]) -> str:
    """Comparable key for a free-text place name."""
    return _apply_aliases(normalize_text(name))


def tokenize(name: Optional[str]) -> Set[str]:
    return {
        token
        for token in normalize_text(name).split(" ")
        if len(token) > 1 and token not in STOPWORDS
    }


def token_overlap(a: Optional[str], b: Optional[str]) -> float:
    """Intersection over the larger token set."""
    ta, tb = tokenize(a), tokenize(b)
    if not ta or not tb:
        return 0.0
    return len(ta & tb) / max(len(ta), len(tb))


# ----------------------------------------------------------------------
# Pairwise decision
# ----------------------------------------------------------------------

def is_duplicate(a: CandidatePOI, b: CandidatePOI, options: Optional[DedupOptions] = None) -> bool:
    options = options or DedupOptions()

    if a.id and b.id and a.id == b.id:
        return True

    name_a = canonicalize_name(a.name)
    name_b = canonicalize_name(b.name)
    if not name_a or not name_b:
        return False

    dist = distance_km(a.coord, b.coord)
    within_near = dist is not None and dist <= options.near_distance_km

    if name_a == name_b:
        return dist is None or dist <= options.canonical_distance_km

    if token_overlap(a.name, b.name) >= options.token_overlap:
        # Similar wording alone is not enough: two "Museo de ..." can be far apart.
        return within_near

    if min(len(name_a), len(name_b)) >= MIN_SUBSTRING_NAME_LENGTH and (name_a in name_b or name_b in name_a):
        return within_near

    return False


def dedupe_candidates(
    candidates: Sequence[CandidatePOI],
    seen: Optional[DedupSeenSet] = None,
    options: Optional[DedupOptions] = None,
) -> DedupResult:
    """Drop candidates equivalent to anything already seen in this run."""
    seen = seen or DedupSeenSet()
    options = options or DedupOptions()

    accepted: List[CandidatePOI] = []
    dropped: List[CandidatePOI] = []
    for candidate in candidates:
        pool = list(seen.items) + accepted
        match = next((existing for existing in pool if is_duplicate(candidate, existing, options)), None)
        if match is not None:
            logger.debug(f"Dropping duplicate '{candidate.name}' ({candidate.source}) ~ '{match.name}' ({match.source})")
            dropped.append(candidate)
        else:
            accepted.append(candidate)

    if dropped:
        logger.info(f"Deduplication dropped {len(dropped)} of {len(candidates)} candidates")
    return DedupResult(kept=accepted, dropped=dropped, seen=seen.extend(accepted))
