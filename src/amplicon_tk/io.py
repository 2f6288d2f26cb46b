"""
Read input and output.

FASTQ decoding follows the four-line record layout and transparently handles
gzip-compressed files. Sinks are context managers so their file handles are
released on every exit path, including errors and cancellation.
"""

import gzip
import logging
from os import PathLike
from pathlib import Path
from typing import IO, Dict, Iterable, Iterator, Optional, Set, Union

from Bio import SeqIO
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord

from .consensus import Amplitype
from .constants import DEMUX_FILE_SUFFIX, STACK_FILE_SUFFIX
from .exceptions import ReadDecodeError
from .naming import unique_file_name
from .sequencing_read import Read
from .stacks import Stack

logger = logging.getLogger(__name__)


def open_text(path: Union[PathLike, str], mode: str = 'rt') -> IO[str]:
    """Open a text file, through gzip when the name ends in '.gz'."""
    path = Path(path)
    if path.suffix == '.gz':
        return gzip.open(path, mode)
    return open(path, mode.replace('t', ''))


def read_fastq(fastq_fn: Union[PathLike, str], lenient: bool = False) -> Iterator[Read]:
    """
    Stream reads from a FASTQ file.

    Parameters
    ----------
    fastq_fn : PathLike or str
        FASTQ file, optionally gzip compressed.
    lenient : bool, default False
        Yield an empty (malformed) read in place of an undecodable record
        instead of raising. Decoding stops at a truncated final record.

    Yields
    ------
    Read

    Raises
    ------
    ReadDecodeError
        On a broken record, unless `lenient`.
    """
    with open_text(fastq_fn, 'rt') as f:
        record_number = 0
        while True:
            header = f.readline()
            if not header:
                return
            if not header.strip():
                continue

            record_number += 1
            seq = f.readline()
            plus = f.readline()
            qual = f.readline()

            problem = None
            if not qual:
                problem = "truncated record"
            elif not header.startswith('@'):
                problem = f"header does not start with '@': {header.strip()[:50]!r}"
            elif not plus.startswith('+'):
                problem = "separator line does not start with '+'"

            if problem is not None:
                message = f"{fastq_fn}: record {record_number}: {problem}"
                if not lenient:
                    raise ReadDecodeError(message, record_number)
                logger.warning(message)
                yield Read(f"record_{record_number}", "", "")
                if not qual:
                    return
                continue

            identifier = header[1:].strip().split()[0] if header[1:].strip() else f"record_{record_number}"
            yield Read(identifier, seq.rstrip('\r\n'), qual.rstrip('\r\n'))


class FastqWriter:
    """
    Write reads as FASTQ, gzip-compressed when the name ends in '.gz'.

    Examples
    --------
    >>> with FastqWriter("trimmed.fastq.gz") as writer:
    ...     writer.write(read)
    """

    def __init__(self, output_fn: Union[PathLike, str]):
        self.path = Path(output_fn)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = open_text(self.path, 'wt')
        self.n_written = 0

    def __enter__(self) -> "FastqWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def write(self, read: Read) -> None:
        self._handle.write(f"@{read.identifier}\n{read.sequence}\n+\n{read.quality}\n")
        self.n_written += 1

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()


class DemuxWriter:
    """
    Fan reads out into one FASTQ per amplicon.

    Files are opened the first time a read arrives for an amplicon. Names
    that sanitize to the same file name get a numeric suffix.
    """

    def __init__(self, output_dir: Union[PathLike, str], suffix: str = DEMUX_FILE_SUFFIX):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._suffix = suffix
        self._writers: Dict[str, FastqWriter] = {}
        self._taken: Set[str] = set()

    def __enter__(self) -> "DemuxWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def write(self, read: Read, amplicon: str) -> None:
        writer = self._writers.get(amplicon)
        if writer is None:
            name = unique_file_name(amplicon, self._taken)
            writer = FastqWriter(self.output_dir / f"{name}{self._suffix}")
            self._writers[amplicon] = writer
        writer.write(read)

    @property
    def paths(self) -> Dict[str, Path]:
        return {amplicon: writer.path for amplicon, writer in self._writers.items()}

    def close(self) -> None:
        for writer in self._writers.values():
            writer.close()


class AmplitypeWriter:
    """
    Write amplitypes to a FASTA file.

    Records are named '<amplicon>_<rank>' and carry their support, the
    stack size and the resulting frequency in the description.
    """

    def __init__(self, output_fn: Union[PathLike, str]):
        self.path = Path(output_fn)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = open_text(self.path, 'wt')
        self.n_written = 0

    def __enter__(self) -> "AmplitypeWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def write(self, amplitypes: Iterable[Amplitype]) -> None:
        records = [
            SeqRecord(
                Seq(a.sequence),
                id=f"{a.amplicon}_{rank}",
                description=f"support={a.support} total={a.total} frequency={a.frequency:.4f}",
            )
            for rank, a in enumerate(amplitypes, start=1)
        ]
        self.n_written += SeqIO.write(records, self._handle, 'fasta')

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()


class StackWriter:
    """
    Write each stack to its own FASTA file in a directory.

    Every unique sequence becomes one record, most frequent first, named
    '<amplicon>_<rank>' with its count and frequency in the description.
    Amplicons whose names sanitize to the same file name get a numeric suffix.
    """

    def __init__(self, output_dir: Union[PathLike, str], suffix: str = STACK_FILE_SUFFIX):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._suffix = suffix
        self.paths: Dict[str, Path] = {}
        self._taken: Set[str] = set()

    def __enter__(self) -> "StackWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def write(self, stack: Stack) -> Optional[Path]:
        if stack.total == 0:
            return None

        path = self.paths.get(stack.amplicon)
        if path is None:
            path = self.output_dir / f"{unique_file_name(stack.amplicon, self._taken)}{self._suffix}"
        records = (
            SeqRecord(
                Seq(row.sequence),
                id=f"{stack.amplicon}_{rank}",
                description=f"count={row.count} frequency={row.frequency:.4f}",
            )
            for rank, row in enumerate(stack.to_frame().itertuples(index=False), start=1)
        )
        with open_text(path, 'wt') as handle:
            SeqIO.write(records, handle, 'fasta')
        self.paths[stack.amplicon] = path
        return path

    def close(self) -> None:
        pass
