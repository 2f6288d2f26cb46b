"""
Unique-sequence index and dataset-wide read filters.

Some filters need to know the whole dataset before any read is written, e.g.
the frequency of each unique amplicon sequence. The index records those
frequencies in a first pass, tied to the primer scheme by its hash, so that a
later trim run can drop rare variants and over-long inserts on the fly.
"""

import json
import logging
from dataclasses import dataclass
from os import PathLike
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from .classifier import RejectReason
from .exceptions import IndexMismatchError
from .sequencing_read import TrimmedRead
from .stacks import Stack

logger = logging.getLogger(__name__)


class SequenceIndex:
    """
    Per-amplicon counts of unique trimmed sequences.

    Parameters
    ----------
    scheme_hash : str
        Hash of the primer catalog the index was built with.
    counts : dict
        {amplicon: {sequence: count}}.
    """

    def __init__(self, scheme_hash: str, counts: Dict[str, Dict[str, int]]):
        self.scheme_hash = scheme_hash
        self._counts = counts
        self._totals = {amplicon: sum(seqs.values()) for amplicon, seqs in counts.items()}

    @classmethod
    def from_stacks(cls, stacks: Iterable[Stack], scheme_hash: str) -> "SequenceIndex":
        return cls(scheme_hash, {stack.amplicon: stack.counts for stack in stacks})

    @property
    def amplicons(self):
        return list(self._counts)

    def total(self, amplicon: str) -> int:
        return self._totals.get(amplicon, 0)

    def frequency(self, amplicon: str, sequence: str) -> float:
        """Share of the amplicon's reads with this exact sequence; 0 if unseen."""
        total = self._totals.get(amplicon, 0)
        if total == 0:
            return 0.0
        return self._counts[amplicon].get(sequence, 0) / total

    def save(self, index_fn: Union[PathLike, str]) -> None:
        index_fn = Path(index_fn)
        index_fn.parent.mkdir(parents=True, exist_ok=True)
        with open(index_fn, 'w') as f:
            json.dump({'scheme_hash': self.scheme_hash, 'amplicons': self._counts}, f)
        logger.info(f"Index for {len(self._counts)} amplicons saved to {index_fn}")

    @classmethod
    def load(cls, index_fn: Union[PathLike, str], expected_hash: Optional[str] = None) -> "SequenceIndex":
        """
        Load an index from JSON.

        Raises
        ------
        IndexMismatchError
            If `expected_hash` is given and differs from the stored hash.
        """
        with open(index_fn) as f:
            data = json.load(f)

        index = cls(data['scheme_hash'], data['amplicons'])
        if expected_hash is not None and index.scheme_hash != expected_hash:
            raise IndexMismatchError(
                f"Index {index_fn} was built with a different primer scheme; rebuild it with 'amplicon-tk index'"
            )
        return index


@dataclass(frozen=True)
class FilterSettings:
    """
    Read filters applied to trimmed reads.

    Parameters
    ----------
    min_freq : float, optional
        Minimum frequency of the read's sequence within its amplicon.
        Requires an index.
    max_len : int, optional
        Maximum trimmed length.
    index : SequenceIndex, optional
        Index providing sequence frequencies.
    """

    min_freq: Optional[float] = None
    max_len: Optional[int] = None
    index: Optional[SequenceIndex] = None

    def __post_init__(self):
        if self.min_freq is not None and self.index is None:
            raise ValueError("Filtering by min_freq requires an index")

    @property
    def active(self) -> bool:
        return self.min_freq is not None or self.max_len is not None

    def check(self, read: TrimmedRead) -> Optional[RejectReason]:
        """Return the reason the read fails a filter, or None if it passes."""
        if self.max_len is not None and len(read) > self.max_len:
            return RejectReason.TOO_LONG
        if self.min_freq is not None and self.index.frequency(read.amplicon, read.sequence) < self.min_freq:
            return RejectReason.BELOW_MIN_FREQUENCY
        return None
