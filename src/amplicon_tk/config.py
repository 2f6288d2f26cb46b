"""Run configuration for the amplicon pipeline."""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from multiprocessing import cpu_count
from os import PathLike
from typing import Optional, Union

from .consensus import ConsensusPolicy
from .constants import DEFAULT_CHUNKSIZE, DEFAULT_MAX_MISMATCHES, DEFAULT_SEARCH_WINDOW

logger = logging.getLogger(__name__)


class Mode(Enum):
    """What the pipeline does with accepted reads."""

    EXTRACT = 'extract'
    TRIM = 'trim'
    SORT = 'sort'
    CONSENSUS = 'consensus'
    INDEX = 'index'


def default_num_cores() -> int:
    """Available CPU cores minus two, at least one."""
    if hasattr(os, 'sched_getaffinity'):
        return max(1, len(os.sched_getaffinity(0)) - 2)
    return max(1, cpu_count() - 2)


@dataclass(frozen=True)
class PipelineConfig:
    """
    Parameters for one pipeline run.

    Parameters
    ----------
    mode : Mode or str, default 'trim'
        Terminal mode.
    max_mismatches : int, default 0
        Per-primer Hamming distance allowed, unless a primer pair sets its own.
    search_window : int or None, default 50
        Bases beyond the primer length searched at each read end.
    keep_multi : bool, default False
        Keep reads matching several amplicons equally well (first in catalog wins).
    policy : ConsensusPolicy or str, default 'majority'
        Consensus policy for consensus mode.
    min_frequency : float, default 0.0
        Minimum amplitype frequency for the 'frequency' policy.
    track_read_ids : bool, default False
        Keep contributing read names on each stack.
    spill_threshold : int, optional
        Unique sequences per stack held in memory before spilling to disk.
    spill_dir : PathLike or str, optional
        Where the run's spill directory is created.
    lenient : bool, default False
        Count undecodable input records as malformed reads instead of failing.
    num_cores : int, default 1
        Worker processes for classification and consensus calling. 1 runs
        everything in a single sequential pass.
    chunksize : int, default 1000
        Reads per worker task.
    demux : bool, default False
        Extract mode: write one FASTQ per amplicon into the output directory.
    debug : bool, default False
        Stop after the first 100,000 reads.
    min_freq : float, optional
        Trim mode filter: minimum sequence frequency within its amplicon (needs an index).
    max_len : int, optional
        Trim mode filter: maximum trimmed read length.
    """

    mode: Union[Mode, str] = Mode.TRIM
    max_mismatches: int = DEFAULT_MAX_MISMATCHES
    search_window: Optional[int] = DEFAULT_SEARCH_WINDOW
    keep_multi: bool = False
    policy: Union[ConsensusPolicy, str] = ConsensusPolicy.MAJORITY
    min_frequency: float = 0.0
    track_read_ids: bool = False
    spill_threshold: Optional[int] = None
    spill_dir: Optional[Union[PathLike, str]] = None
    lenient: bool = False
    num_cores: int = 1
    chunksize: int = DEFAULT_CHUNKSIZE
    demux: bool = False
    debug: bool = False
    min_freq: Optional[float] = None
    max_len: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, 'mode', Mode(self.mode))
        object.__setattr__(self, 'policy', ConsensusPolicy(self.policy))
        if self.max_mismatches < 0:
            raise ValueError("max_mismatches must be >= 0")
        if self.search_window is not None and self.search_window < 0:
            raise ValueError("search_window must be >= 0 or None")
        if not 0.0 <= self.min_frequency <= 1.0:
            raise ValueError("min_frequency must be between 0 and 1")
        if self.min_freq is not None and not 0.0 <= self.min_freq <= 1.0:
            raise ValueError("min_freq must be between 0 and 1")
        if self.max_len is not None and self.max_len < 1:
            raise ValueError("max_len must be >= 1")
        if self.spill_threshold is not None and self.spill_threshold < 1:
            raise ValueError("spill_threshold must be >= 1")
        if self.num_cores < 1:
            raise ValueError("num_cores must be >= 1")
        if self.chunksize < 1:
            raise ValueError("chunksize must be >= 1")
