"""
Per-amplicon read stacks.

A stack holds the unique trimmed sequences of one amplicon and how often each
was seen. Stacks are the only state that grows with the input, so the count
table behind each one is pluggable: an in-memory table by default, or a table
that spills to a private temporary directory once it holds too many unique
sequences.
"""

import logging
import shutil
import tempfile
import threading
from abc import ABC, abstractmethod
from collections import Counter
from os import PathLike
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union

import pandas as pd

from .naming import safe_file_name
from .sequencing_read import TrimmedRead

logger = logging.getLogger(__name__)


class CountStore(ABC):
    """Get-or-create counting of sequences, independent of backing storage."""

    @abstractmethod
    def increment(self, sequence: str, count: int = 1) -> None:
        pass

    @abstractmethod
    def counts(self) -> Dict[str, int]:
        """All sequences and their counts."""
        pass

    @property
    @abstractmethod
    def total(self) -> int:
        pass

    def close(self) -> None:
        pass


class InMemoryCounts(CountStore):
    """Counts held in a Counter."""

    def __init__(self):
        self._counts: Counter = Counter()
        self._total = 0

    def increment(self, sequence: str, count: int = 1) -> None:
        self._counts[sequence] += count
        self._total += count

    def counts(self) -> Dict[str, int]:
        return dict(self._counts)

    @property
    def total(self) -> int:
        return self._total


class SpillingCounts(CountStore):
    """
    Counts buffered in memory and appended to a CSV file when the buffer
    holds more than `threshold` unique sequences.

    The same sequence may appear in several spilled chunks; `counts()` merges
    them back together.

    Parameters
    ----------
    spill_path : PathLike or str
        CSV file the buffer is appended to. Created on first spill.
    threshold : int
        Unique sequences kept in memory before spilling.
    """

    def __init__(self, spill_path: Union[PathLike, str], threshold: int):
        if threshold < 1:
            raise ValueError("Spill threshold must be >= 1")
        self._spill_path = Path(spill_path)
        self._threshold = threshold
        self._buffer: Counter = Counter()
        self._total = 0
        self.n_spills = 0

    def increment(self, sequence: str, count: int = 1) -> None:
        self._buffer[sequence] += count
        self._total += count
        if len(self._buffer) > self._threshold:
            self._spill()

    def _spill(self) -> None:
        chunk = pd.DataFrame(
            {'sequence': list(self._buffer.keys()), 'count': list(self._buffer.values())}
        )
        chunk.to_csv(self._spill_path, mode='a', header=self.n_spills == 0, index=False)
        self.n_spills += 1
        logger.debug(f"Spilled {len(chunk)} unique sequences to {self._spill_path}")
        self._buffer.clear()

    def counts(self) -> Dict[str, int]:
        if self.n_spills == 0:
            return dict(self._buffer)

        spilled = pd.read_csv(
            self._spill_path,
            dtype={'sequence': str, 'count': int},
            keep_default_na=False,
        )
        merged = Counter(spilled.groupby('sequence')['count'].sum().to_dict())
        merged.update(self._buffer)
        return {seq: int(n) for seq, n in merged.items()}

    @property
    def total(self) -> int:
        return self._total

    def close(self) -> None:
        self._buffer.clear()
        if self._spill_path.exists():
            self._spill_path.unlink()


class Stack:
    """
    Unique-sequence frequency table for one amplicon.

    Parameters
    ----------
    amplicon : str
        Amplicon name.
    store : CountStore, optional
        Backing count table. Defaults to InMemoryCounts.
    track_read_ids : bool, default False
        Keep the identifiers of every read added, for traceability.

    Examples
    --------
    >>> stack = Stack("ampA")
    >>> for seq in ("AAAAA", "AAAAA", "AAAAT"):
    ...     stack.add(seq)
    >>> stack.counts
    {'AAAAA': 2, 'AAAAT': 1}
    >>> stack.total
    3
    """

    def __init__(self, amplicon: str, store: Optional[CountStore] = None, track_read_ids: bool = False):
        self.amplicon = amplicon
        self._store = store or InMemoryCounts()
        self.read_ids: Optional[Set[str]] = set() if track_read_ids else None
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Stack({self.amplicon!r}, total={self.total})"

    def add(self, sequence: str, read_id: Optional[str] = None) -> None:
        """Insert a sequence, or increment its count if already present."""
        with self._lock:
            self._store.increment(sequence)
            if self.read_ids is not None and read_id is not None:
                self.read_ids.add(read_id)

    @property
    def counts(self) -> Dict[str, int]:
        return self._store.counts()

    @property
    def total(self) -> int:
        return self._store.total

    @property
    def n_unique(self) -> int:
        return len(self._store.counts())

    def most_common(self) -> List[Tuple[str, int]]:
        """Unique sequences by descending count, ties in lexicographic order."""
        return sorted(self.counts.items(), key=lambda item: (-item[1], item[0]))

    def to_frame(self) -> pd.DataFrame:
        """
        Export the stack as a DataFrame.

        Returns
        -------
        pd.DataFrame
            Columns 'sequence', 'count' and 'frequency', sorted like
            `most_common()`.
        """
        rows = self.most_common()
        df = pd.DataFrame(rows, columns=['sequence', 'count'])
        df['frequency'] = df['count'] / self.total if self.total else 0.0
        return df

    def close(self) -> None:
        self._store.close()


class StackManager:
    """
    Create and fill stacks as trimmed reads arrive.

    Stacks are created the first time a read is assigned to an amplicon and
    live until the manager is closed. Assignment is safe from several
    threads: creating a stack takes the manager lock, and each stack has its
    own lock so distinct amplicons never contend.

    Parameters
    ----------
    spill_threshold : int, optional
        Unique sequences a stack keeps in memory before spilling to disk.
        None keeps everything in memory.
    spill_dir : PathLike or str, optional
        Parent directory for the run's private spill directory. Defaults to
        the system temporary directory.
    track_read_ids : bool, default False
        Record contributing read identifiers on each stack.
    """

    def __init__(
        self,
        spill_threshold: Optional[int] = None,
        spill_dir: Optional[Union[PathLike, str]] = None,
        track_read_ids: bool = False,
    ):
        self._spill_threshold = spill_threshold
        self._spill_parent = spill_dir
        self._spill_dir: Optional[Path] = None
        self._track_read_ids = track_read_ids
        self._stacks: Dict[str, Stack] = {}
        self._lock = threading.Lock()

    def __enter__(self) -> "StackManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __getitem__(self, amplicon: str) -> Stack:
        return self._stacks[amplicon]

    def __contains__(self, amplicon: str) -> bool:
        return amplicon in self._stacks

    def __iter__(self) -> Iterator[Stack]:
        return iter(list(self._stacks.values()))

    def __len__(self) -> int:
        return len(self._stacks)

    def _new_store(self, amplicon: str) -> CountStore:
        if self._spill_threshold is None:
            return InMemoryCounts()
        if self._spill_dir is None:
            self._spill_dir = Path(tempfile.mkdtemp(prefix='amplicon_tk_', dir=self._spill_parent))
            logger.info(f"Spilling large stacks to {self._spill_dir}")
        spill_path = self._spill_dir / f"{len(self._stacks):05d}_{safe_file_name(amplicon)}.csv"
        return SpillingCounts(spill_path, self._spill_threshold)

    def _get_or_create(self, amplicon: str) -> Stack:
        stack = self._stacks.get(amplicon)
        if stack is None:
            with self._lock:
                stack = self._stacks.get(amplicon)
                if stack is None:
                    stack = Stack(amplicon, self._new_store(amplicon), self._track_read_ids)
                    self._stacks[amplicon] = stack
        return stack

    def assign(self, trimmed_read: TrimmedRead, amplicon: Optional[str] = None) -> None:
        """
        Add a trimmed read's sequence to its amplicon's stack.

        Only the sequence is kept; quality scores are discarded.
        """
        amplicon = amplicon or trimmed_read.amplicon
        self._get_or_create(amplicon).add(trimmed_read.sequence, trimmed_read.identifier)

    @property
    def total_reads(self) -> int:
        return sum(stack.total for stack in self._stacks.values())

    def sizes(self) -> Dict[str, int]:
        """Reads per amplicon."""
        return {name: stack.total for name, stack in self._stacks.items()}

    def close(self) -> None:
        """Release every stack and delete the run's spill directory."""
        for stack in self._stacks.values():
            stack.close()
        if self._spill_dir is not None and self._spill_dir.exists():
            shutil.rmtree(self._spill_dir)
            self._spill_dir = None
