"""
Primer pair matching.

Locates the primers of a catalog in a read. A read only matches a primer pair
when both its primers are found in the same orientation: the forward primer
near the start of the read and the reverse primer near its end. Each primer
is compared base-by-base (Hamming distance, no indels) against every offset
of a bounded search window at its end of the read. Degenerate primer
positions (IUPAC codes such as R or N) accept any of the bases they stand for.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple, Union

from rapidfuzz.distance import Hamming

from .constants import DEFAULT_MAX_MISMATCHES, DEFAULT_SEARCH_WINDOW, IUPAC_BASES
from .primers import PrimerCatalog, PrimerPair
from .sequencing_read import Read, reverse_complement

logger = logging.getLogger(__name__)


class Orientation(Enum):
    """Strand on which the amplicon was found."""

    FORWARD = 'forward'
    REVERSE = 'reverse'


@dataclass(frozen=True)
class PrimerHit:
    """Location of one primer in an oriented read sequence."""

    start: int
    stop: int
    mismatches: int


@dataclass(frozen=True)
class NoMatch:
    """No single primer pair was found in the read."""

    ambiguous: bool = False
    matched = False


@dataclass(frozen=True)
class Matched:
    """
    A primer pair found in a read.

    Spans are half-open (start, stop) offsets into the read *as oriented*:
    for a REVERSE match they refer to the reverse complement of the read.

    Attributes
    ----------
    amplicon : str
        Name of the matched amplicon.
    forward_span : tuple of int
        Location of the forward primer.
    reverse_span : tuple of int
        Location of the reverse primer.
    orientation : Orientation
        Strand the amplicon was found on.
    mismatches : int
        Combined mismatches of both primers.
    """

    amplicon: str
    forward_span: Tuple[int, int]
    reverse_span: Tuple[int, int]
    orientation: Orientation
    mismatches: int = 0
    matched = True

    @property
    def insert(self) -> Tuple[int, int]:
        """Bases between the two primers."""
        return self.forward_span[1], self.reverse_span[0]


MatchResult = Union[NoMatch, Matched]

_PLAIN_BASES = frozenset("ACGT")


def _degenerate_distance(primer: str, window: str, score_cutoff: int) -> int:
    """Mismatches between a degenerate primer and a read window, capped at score_cutoff + 1."""
    dist = 0
    for code, base in zip(primer, window):
        if base not in IUPAC_BASES[code]:
            dist += 1
            if dist > score_cutoff:
                break
    return dist


def find_primer(
    seq: str,
    primer: str,
    max_mismatches: int,
    start: int = 0,
    end: Optional[int] = None,
) -> Optional[PrimerHit]:
    """
    Find the best occurrence of a primer within seq[start:end].

    The occurrence with the fewest mismatches wins; ties go to the leftmost
    offset. With no mismatches allowed and a primer of plain A, C, G and T
    bases this is a plain substring search.

    Parameters
    ----------
    seq : str
        Uppercase sequence to search.
    primer : str
        Uppercase primer sequence.
    max_mismatches : int
        Maximum Hamming distance accepted.
    start, end : int
        Search window. The whole primer must fit inside it.

    Returns
    -------
    PrimerHit or None
    """
    end = len(seq) if end is None else min(end, len(seq))
    start = max(start, 0)
    plen = len(primer)

    if end - start < plen:
        return None

    degenerate = not _PLAIN_BASES.issuperset(primer)
    distance = _degenerate_distance if degenerate else Hamming.distance

    if max_mismatches == 0 and not degenerate:
        idx = seq.find(primer, start, end)
        if idx < 0:
            return None
        return PrimerHit(idx, idx + plen, 0)

    best: Optional[PrimerHit] = None
    for offset in range(start, end - plen + 1):
        # Only strictly better hits can replace the current best
        cutoff = max_mismatches if best is None else best.mismatches - 1
        dist = distance(primer, seq[offset:offset + plen], score_cutoff=cutoff)
        if dist <= cutoff:
            best = PrimerHit(offset, offset + plen, dist)
            if dist == 0:
                break
    return best


class PrimerMatcher:
    """
    Match reads against a primer catalog.

    Parameters
    ----------
    max_mismatches : int, default 0
        Per-primer Hamming distance allowed when a pair does not set its own.
    search_window : int or None, default 50
        Bases beyond the primer length searched at each read end. None
        searches the whole read.
    keep_multi : bool, default False
        Resolve ties between different amplicons by catalog order instead of
        reporting the read as unmatched.

    Examples
    --------
    >>> catalog = PrimerCatalog([PrimerPair("ampA", "ACGT", "TGCA")])
    >>> PrimerMatcher().match(Read("r1", "ACGTAAAAATGCA", "I" * 13), catalog).amplicon
    'ampA'
    """

    def __init__(
        self,
        max_mismatches: int = DEFAULT_MAX_MISMATCHES,
        search_window: Optional[int] = DEFAULT_SEARCH_WINDOW,
        keep_multi: bool = False,
    ):
        if max_mismatches < 0:
            raise ValueError("max_mismatches must be >= 0")
        if search_window is not None and search_window < 0:
            raise ValueError("search_window must be >= 0 or None")
        self.max_mismatches = max_mismatches
        self.search_window = search_window
        self.keep_multi = keep_multi

    def _match_pair(self, seq: str, pair: PrimerPair) -> Optional[Tuple[PrimerHit, PrimerHit]]:
        k = pair.mismatches_allowed(self.max_mismatches)
        n = len(seq)

        fwd_end = n if self.search_window is None else len(pair.forward) + self.search_window
        fwd_hit = find_primer(seq, pair.forward, k, 0, fwd_end)
        if fwd_hit is None:
            return None

        rev_start = fwd_hit.stop
        if self.search_window is not None:
            rev_start = max(rev_start, n - len(pair.reverse) - self.search_window)
        rev_hit = find_primer(seq, pair.reverse, k, rev_start, n)
        if rev_hit is None:
            return None

        return fwd_hit, rev_hit

    def match(self, read: Read, catalog: PrimerCatalog) -> MatchResult:
        """
        Determine which primer pair, if any, bounds the read.

        Raises
        ------
        MalformedReadError
            If the read fails validation. No matching is attempted.
        """
        read.validate()

        oriented = {Orientation.FORWARD: read.sequence.upper()}
        oriented[Orientation.REVERSE] = reverse_complement(oriented[Orientation.FORWARD])

        candidates: List[Matched] = []
        for pair in catalog.values():
            for orientation, seq in oriented.items():
                hits = self._match_pair(seq, pair)
                if hits is None:
                    continue
                fwd_hit, rev_hit = hits
                candidates.append(
                    Matched(
                        amplicon=pair.amplicon,
                        forward_span=(fwd_hit.start, fwd_hit.stop),
                        reverse_span=(rev_hit.start, rev_hit.stop),
                        orientation=orientation,
                        mismatches=fwd_hit.mismatches + rev_hit.mismatches,
                    )
                )

        if not candidates:
            return NoMatch()

        # Stable sort keeps catalog order, then forward before reverse, among equals
        candidates.sort(key=lambda m: (m.mismatches, m.forward_span[0]))
        best = candidates[0]
        tied = {
            m.amplicon
            for m in candidates
            if (m.mismatches, m.forward_span[0]) == (best.mismatches, best.forward_span[0])
        }
        if len(tied) > 1 and not self.keep_multi:
            logger.debug(f"Read '{read.identifier}' ambiguously matches {sorted(tied)}")
            return NoMatch(ambiguous=True)

        return best


def match(
    read: Read,
    catalog: PrimerCatalog,
    max_mismatches: int = DEFAULT_MAX_MISMATCHES,
    search_window: Optional[int] = DEFAULT_SEARCH_WINDOW,
    keep_multi: bool = False,
) -> MatchResult:
    """Convenience function wrapping PrimerMatcher.match."""
    matcher = PrimerMatcher(
        max_mismatches=max_mismatches,
        search_window=search_window,
        keep_multi=keep_multi,
    )
    return matcher.match(read, catalog)
