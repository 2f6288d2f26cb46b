"""
Consensus ("amplitype") calling.

Turns each amplicon's stack into one or more consensus sequences. Because
every read in a stack was trimmed at the same primer boundaries, sequences
are anchored at the forward primer and any length difference reflects real
insertions or deletions.

Three policies are available:

majority
    The most frequent unique sequence (ties: lexicographically smallest).
frequency
    Every unique sequence whose share of the stack reaches `min_frequency`,
    to keep mixed templates apart instead of collapsing them.
column
    The per-position majority base across all sequences, left-anchored.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from multiprocessing import Pool
from typing import Dict, Iterable, List

import numpy as np

from .constants import GAP
from .stacks import Stack

logger = logging.getLogger(__name__)


class ConsensusPolicy(Enum):
    MAJORITY = 'majority'
    FREQUENCY = 'frequency'
    COLUMN = 'column'


@dataclass(frozen=True)
class Amplitype:
    """
    A consensus sequence for one amplicon.

    Attributes
    ----------
    amplicon : str
        Amplicon the stack belongs to.
    sequence : str
        Consensus sequence.
    support : int
        Reads in the stack identical to `sequence`.
    total : int
        Reads in the stack.
    """

    amplicon: str
    sequence: str
    support: int
    total: int

    @property
    def frequency(self) -> float:
        return self.support / self.total if self.total else 0.0


def _ranked(counts: Dict[str, int]) -> List[tuple]:
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))


def column_consensus(counts: Dict[str, int]) -> str:
    """
    Per-position weighted majority across sequences of a stack.

    Sequences are left-anchored; positions past the end of a shorter
    sequence count as gaps. Columns whose majority is a gap are dropped.
    Ties go to the alphabetically first base.

    Examples
    --------
    >>> column_consensus({"AAAAA": 2, "AAAAT": 1, "AAA": 1})
    'AAAAA'
    """
    if not counts:
        return ""

    width = max(len(seq) for seq in counts)
    alphabet = sorted({base for seq in counts for base in seq} - {GAP}) + [GAP]
    row_of = {base: i for i, base in enumerate(alphabet)}

    # Rows are bases (gap last), columns are positions
    count_array = np.zeros((len(alphabet), width), dtype=np.int64)
    for seq, n in counts.items():
        for pos, base in enumerate(seq):
            count_array[row_of[base], pos] += n
        count_array[row_of[GAP], len(seq):] += n

    nucleotide_indexes = np.argmax(count_array, axis=0)
    return "".join(alphabet[i] for i in nucleotide_indexes if alphabet[i] != GAP)


def build_from_counts(
    amplicon: str,
    counts: Dict[str, int],
    min_frequency: float = 0.0,
    policy: ConsensusPolicy = ConsensusPolicy.MAJORITY,
) -> List[Amplitype]:
    """
    Call amplitypes from a unique-sequence count table.

    Parameters
    ----------
    amplicon : str
        Amplicon name.
    counts : dict of str to int
        Unique sequence -> number of reads.
    min_frequency : float, default 0.0
        Minimum share of the stack for the 'frequency' policy.
    policy : ConsensusPolicy, default MAJORITY

    Returns
    -------
    list of Amplitype
        Empty when the stack holds no reads.
    """
    if not 0.0 <= min_frequency <= 1.0:
        raise ValueError(f"min_frequency must be between 0 and 1, got {min_frequency}")

    policy = ConsensusPolicy(policy)
    total = sum(counts.values())
    if total == 0:
        logger.warning(f"Amplicon '{amplicon}' has no reads; no consensus called")
        return []

    ranked = _ranked(counts)

    if policy is ConsensusPolicy.MAJORITY:
        seq, support = ranked[0]
        return [Amplitype(amplicon, seq, support, total)]

    if policy is ConsensusPolicy.FREQUENCY:
        return [
            Amplitype(amplicon, seq, support, total)
            for seq, support in ranked
            if support / total >= min_frequency
        ]

    seq = column_consensus(counts)
    return [Amplitype(amplicon, seq, counts.get(seq, 0), total)]


def build(
    stack: Stack,
    min_frequency: float = 0.0,
    policy: ConsensusPolicy = ConsensusPolicy.MAJORITY,
) -> List[Amplitype]:
    """Call amplitypes for one stack."""
    return build_from_counts(stack.amplicon, stack.counts, min_frequency, policy)


def build_all(
    stacks: Iterable[Stack],
    min_frequency: float = 0.0,
    policy: ConsensusPolicy = ConsensusPolicy.MAJORITY,
    num_cores: int = 1,
) -> Dict[str, List[Amplitype]]:
    """
    Call amplitypes for many stacks, in parallel when `num_cores` > 1.

    Returns
    -------
    dict of str to list of Amplitype
        Keyed by amplicon, in the order the stacks were given.
    """
    arguments = [(stack.amplicon, stack.counts, min_frequency, policy) for stack in stacks]

    if num_cores > 1 and len(arguments) > 1:
        logger.info(f"Calling consensus for {len(arguments)} amplicons on {num_cores} cores")
        with Pool(processes=min(num_cores, len(arguments))) as pool:
            results = pool.starmap(build_from_counts, arguments)
    else:
        results = [build_from_counts(*args) for args in arguments]

    return {args[0]: amplitypes for args, amplitypes in zip(arguments, results)}
