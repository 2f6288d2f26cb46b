"""
Streaming amplicon pipeline.

Pulls reads one at a time, classifies and trims them, and either writes them
straight out (extract and trim modes) or adds them to per-amplicon stacks
that are written, consensed or indexed once the input is exhausted.

A run moves through IDLE -> STREAMING -> DRAINING -> DONE. Only the stacks
persist across reads, so memory does not grow with the input except through
the unique sequences held in the stacks (which may spill to disk).
"""

import itertools
import logging
import threading
from collections import Counter
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum
from multiprocessing import Pool
from os import PathLike
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Literal, NamedTuple, Optional, Union

import pandas as pd

from .classifier import AmpliconClassifier, RejectReason
from .config import Mode, PipelineConfig
from .consensus import Amplitype, build_all
from .constants import DEBUG_READ_LIMIT, PROGRESS_INTERVAL
from .exceptions import IndexMismatchError, ReadDecodeError, TrimmedEmptyError, WriteError
from .index import FilterSettings, SequenceIndex
from .io import AmplitypeWriter, DemuxWriter, FastqWriter, StackWriter
from .matcher import PrimerMatcher
from .primers import PrimerCatalog
from .sequencing_read import Read
from .stacks import StackManager
from .trimming import trim

logger = logging.getLogger(__name__)


class RunState(Enum):
    IDLE = 'idle'
    STREAMING = 'streaming'
    DRAINING = 'draining'
    DONE = 'done'


class RunStatus(Enum):
    COMPLETE = 'complete'
    PARTIAL = 'partial'
    FAILED = 'failed'


class ReadOutcome(NamedTuple):
    """Result of pushing one read through classification and trimming."""

    read: Optional[Read]
    amplicon: Optional[str]
    reason: Optional[RejectReason]


def process_read(
    read: Read,
    classifier: AmpliconClassifier,
    trim_reads: bool = True,
    filters: Optional[FilterSettings] = None,
) -> ReadOutcome:
    """
    Classify, trim and filter a single read.

    Pure with respect to shared state, so it runs equally well in the main
    process or in a worker.
    """
    result = classifier.classify(read)
    if not result.accepted:
        return ReadOutcome(None, None, result.reason)

    if not trim_reads:
        return ReadOutcome(read, result.amplicon, None)

    try:
        trimmed = trim(read, result.span)
    except TrimmedEmptyError as e:
        logger.debug(str(e))
        return ReadOutcome(None, result.amplicon, RejectReason.TRIMMED_EMPTY)

    if filters is not None:
        reason = filters.check(trimmed)
        if reason is not None:
            return ReadOutcome(None, result.amplicon, reason)

    return ReadOutcome(trimmed, result.amplicon, None)


# Per-process state for worker pools
_worker_state: Dict[str, object] = {}


def _init_worker(classifier: AmpliconClassifier, trim_reads: bool, filters: Optional[FilterSettings]) -> None:
    _worker_state['classifier'] = classifier
    _worker_state['trim_reads'] = trim_reads
    _worker_state['filters'] = filters


def _process_in_worker(read: Read) -> ReadOutcome:
    return process_read(
        read,
        _worker_state['classifier'],
        _worker_state['trim_reads'],
        _worker_state['filters'],
    )


@dataclass
class RunSummary:
    """
    Counts and status of a pipeline run.

    Attributes
    ----------
    mode : Mode
        Terminal mode of the run.
    status : RunStatus
        COMPLETE, PARTIAL (cancelled) or FAILED (run-level error).
    reads_processed : int
        Reads pulled from the input and pushed through classification.
    reads_accepted : int
        Reads that reached the terminal stage.
    rejected : Counter
        Rejected reads per RejectReason.
    amplicon_reads : Counter
        Accepted reads per amplicon.
    unique_sequences : dict
        Unique trimmed sequences per amplicon (stacking modes only).
    amplitypes : dict
        Amplitypes called per amplicon (consensus mode only).
    empty_amplicons : list of str
        Catalog amplicons that received no reads.
    error : str, optional
        Description of the run-level error for FAILED runs.
    outputs : list of Path
        Files written.
    """

    mode: Mode
    status: RunStatus = RunStatus.COMPLETE
    reads_processed: int = 0
    reads_accepted: int = 0
    rejected: Counter = field(default_factory=Counter)
    amplicon_reads: Counter = field(default_factory=Counter)
    unique_sequences: Dict[str, int] = field(default_factory=dict)
    amplitypes: Dict[str, int] = field(default_factory=dict)
    empty_amplicons: List[str] = field(default_factory=list)
    error: Optional[str] = None
    outputs: List[Path] = field(default_factory=list)

    @property
    def reads_rejected(self) -> int:
        return sum(self.rejected.values())

    def to_frame(self) -> pd.DataFrame:
        """
        Per-amplicon summary.

        Returns
        -------
        pd.DataFrame
            One row per amplicon (including empty ones) with columns
            'reads', 'unique_sequences', 'amplitypes' and 'empty'.
        """
        amplicons = list(self.amplicon_reads) + [a for a in self.empty_amplicons if a not in self.amplicon_reads]
        df = pd.DataFrame(
            {
                'reads': [self.amplicon_reads.get(a, 0) for a in amplicons],
                'unique_sequences': [self.unique_sequences.get(a, 0) for a in amplicons],
                'amplitypes': [self.amplitypes.get(a, 0) for a in amplicons],
                'empty': [a in self.empty_amplicons for a in amplicons],
            },
            index=pd.Index(amplicons, name='amplicon'),
        )
        return df.astype({'reads': int, 'unique_sequences': int, 'amplitypes': int})

    def rejections_frame(self) -> pd.DataFrame:
        """Rejected reads per reason, every reason listed."""
        return pd.DataFrame(
            {'reads': [self.rejected.get(reason, 0) for reason in RejectReason]},
            index=pd.Index([reason.value for reason in RejectReason], name='reason'),
        )

    def serialize(
        self,
        results_path: Union[PathLike, str],
        format: Literal['excel', 'csv'] = 'csv',
    ) -> None:
        """
        Save the summary tables to a directory.

        Parameters
        ----------
        results_path : PathLike or str
            Directory to save results.
        format : {'excel', 'csv'}, default 'csv'
            Output format.
        """
        results_path = Path(results_path)
        results_path.mkdir(parents=True, exist_ok=True)

        if format == 'excel':
            self.to_frame().to_excel(results_path / 'amplicon_summary.xlsx')
            self.rejections_frame().to_excel(results_path / 'rejection_summary.xlsx')
        else:
            self.to_frame().to_csv(results_path / 'amplicon_summary.csv')
            self.rejections_frame().to_csv(results_path / 'rejection_summary.csv')

        logger.info(f"Run summary saved to {results_path}")

    def print_summary(self) -> None:
        """Print a summary of the run."""
        print(f"Mode: {self.mode.value}")
        print(f"Status: {self.status.value}")
        if self.error:
            print(f"Error: {self.error}")
        print(f"Reads processed: {self.reads_processed:,}")
        print(f"Reads accepted: {self.reads_accepted:,}")
        for reason in RejectReason:
            if self.rejected.get(reason):
                print(f"Rejected ({reason.value}): {self.rejected[reason]:,}")
        for amplicon, n in self.amplicon_reads.items():
            print(f"  {amplicon}: {n:,} reads")
        if self.empty_amplicons:
            print(f"Empty amplicons: {', '.join(self.empty_amplicons)}")


class AmpliconPipeline:
    """
    Run one pass of reads through classification, trimming and a terminal mode.

    Parameters
    ----------
    catalog : PrimerCatalog
        Primer pairs; shared read-only by every stage.
    config : PipelineConfig, optional
        Run parameters. Defaults to trim mode with exact matching.
    index : SequenceIndex, optional
        Index for the trim-mode frequency filter. Must have been built with
        the same primer catalog.
    cancel_event : threading.Event, optional
        Setting this event stops the run at the next read boundary. Output
        derived from the reads already processed is still written.

    Examples
    --------
    >>> catalog = PrimerCatalog([PrimerPair("ampA", "ACGT", "TGCA")])
    >>> pipeline = AmpliconPipeline(catalog, PipelineConfig(mode='consensus'))
    >>> summary = pipeline.run(read_fastq("reads.fastq.gz"), "amplicons.fasta")
    >>> summary.status
    <RunStatus.COMPLETE: 'complete'>
    """

    def __init__(
        self,
        catalog: PrimerCatalog,
        config: Optional[PipelineConfig] = None,
        index: Optional[SequenceIndex] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.catalog = catalog
        self.config = config or PipelineConfig()
        self.state = RunState.IDLE
        self._cancel = cancel_event or threading.Event()

        matcher = PrimerMatcher(
            max_mismatches=self.config.max_mismatches,
            search_window=self.config.search_window,
            keep_multi=self.config.keep_multi,
        )
        self.classifier = AmpliconClassifier(catalog, matcher)

        self.filters = self._build_filters(index)

        self.stacks = StackManager(
            spill_threshold=self.config.spill_threshold,
            spill_dir=self.config.spill_dir,
            track_read_ids=self.config.track_read_ids,
        )
        self.amplitypes: Dict[str, List[Amplitype]] = {}
        self.index: Optional[SequenceIndex] = None

    def _build_filters(self, index: Optional[SequenceIndex]) -> Optional[FilterSettings]:
        if self.config.min_freq is None and self.config.max_len is None:
            return None
        if self.config.mode is not Mode.TRIM:
            logger.warning("Read filters only apply in trim mode; ignoring them")
            return None
        if index is not None and index.scheme_hash != self.catalog.scheme_hash():
            raise IndexMismatchError("Index was built with a different primer scheme")
        return FilterSettings(min_freq=self.config.min_freq, max_len=self.config.max_len, index=index)

    def __enter__(self) -> "AmpliconPipeline":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Discard the stacks and any spill files."""
        self.stacks.close()

    def cancel(self) -> None:
        """Request the run to stop at the next read boundary."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def _trims(self) -> bool:
        return self.config.mode is not Mode.EXTRACT

    @property
    def _stacks_reads(self) -> bool:
        return self.config.mode in (Mode.SORT, Mode.CONSENSUS, Mode.INDEX)

    def process(self, read: Read) -> ReadOutcome:
        """Push a single read through classification, trimming and filters."""
        return process_read(read, self.classifier, self._trims, self.filters)

    def _pull(self, reads: Iterable[Read]) -> Iterator[Read]:
        """Yield reads until the input ends or cancellation is requested."""
        it = iter(reads)
        while not self.cancelled:
            try:
                read = next(it)
            except StopIteration:
                return
            # A read pulled after cancellation is discarded
            if self.cancelled:
                return
            yield read

    def _outcomes(self, reads: Iterable[Read]) -> Iterator[ReadOutcome]:
        if self.config.debug:
            logger.info(f"Debug mode: processing at most {DEBUG_READ_LIMIT:,} reads")
            reads = itertools.islice(reads, DEBUG_READ_LIMIT)

        if self.config.num_cores == 1:
            for read in self._pull(reads):
                yield self.process(read)
            return

        logger.info(f"Using {self.config.num_cores} cores for read classification")
        with Pool(
            processes=self.config.num_cores,
            initializer=_init_worker,
            initargs=(self.classifier, self._trims, self.filters),
        ) as pool:
            # imap returns results in input order
            for outcome in pool.imap(_process_in_worker, self._pull(reads), chunksize=self.config.chunksize):
                if self.cancelled:
                    return
                yield outcome

    def _open_writer(self, output: Optional[Union[PathLike, str]], stack: ExitStack):
        if output is None:
            return None
        if self.config.mode is Mode.TRIM or (self.config.mode is Mode.EXTRACT and not self.config.demux):
            return stack.enter_context(FastqWriter(output))
        if self.config.mode is Mode.EXTRACT:
            return stack.enter_context(DemuxWriter(output))
        return None

    def _fail(self, summary: RunSummary, error: str) -> None:
        summary.status = RunStatus.FAILED
        summary.error = error
        logger.error(f"{error} ({summary.reads_processed:,} reads processed)")

    def _write(self, writer, outcome: ReadOutcome) -> None:
        try:
            if isinstance(writer, DemuxWriter):
                writer.write(outcome.read, outcome.amplicon)
            else:
                writer.write(outcome.read)
        except OSError as e:
            raise WriteError(f"Output could not be written: {e}") from e

    def _stream(self, reads: Iterable[Read], writer, summary: RunSummary) -> None:
        """Pull reads until the input ends, the run is cancelled or an I/O error occurs."""
        try:
            for outcome in self._outcomes(reads):
                summary.reads_processed += 1
                if summary.reads_processed % PROGRESS_INTERVAL == 0:
                    logger.info(f"{summary.reads_processed:,} reads processed...")

                if outcome.reason is not None:
                    summary.rejected[outcome.reason] += 1
                    continue

                summary.reads_accepted += 1
                summary.amplicon_reads[outcome.amplicon] += 1

                if self._stacks_reads:
                    self.stacks.assign(outcome.read, outcome.amplicon)
                elif writer is not None:
                    self._write(writer, outcome)
        except ReadDecodeError as e:
            self._fail(summary, str(e))
        except WriteError as e:
            self._fail(summary, str(e))
        except OSError as e:
            self._fail(summary, f"Input could not be read: {e}")
        except KeyboardInterrupt:
            logger.warning("Interrupted")
            self.cancel()

    def run(self, reads: Iterable[Read], output: Optional[Union[PathLike, str]] = None) -> RunSummary:
        """
        Stream reads through the pipeline and write the mode's output.

        Parameters
        ----------
        reads : iterable of Read
            Input reads, pulled lazily.
        output : PathLike or str, optional
            FASTQ file (trim, extract), directory (sort, extract with demux),
            FASTA file (consensus) or JSON file (index). With no output the
            results are only kept on the pipeline (`stacks`, `amplitypes`,
            `index`).

        Returns
        -------
        RunSummary
        """
        if self.state is not RunState.IDLE:
            raise RuntimeError("An AmpliconPipeline can only run once")

        summary = RunSummary(mode=self.config.mode)
        mode = self.config.mode
        writer = None

        try:
            with ExitStack() as stack:
                writer = self._open_writer(output, stack)
                self.state = RunState.STREAMING
                logger.info(f"Running {mode.value} mode against {len(self.catalog)} amplicons")
                self._stream(reads, writer, summary)

                if self.cancelled and summary.status is RunStatus.COMPLETE:
                    summary.status = RunStatus.PARTIAL
                    logger.warning(
                        f"Run cancelled after {summary.reads_processed:,} reads; writing partial output"
                    )

                self.state = RunState.DRAINING
                self._drain(output, summary)
        except OSError as e:
            # Opening, draining or closing a sink failed
            self._fail(summary, f"Output could not be written: {e}")

        demuxed = mode is Mode.EXTRACT and self.config.demux
        if isinstance(writer, DemuxWriter):
            summary.outputs.extend(writer.paths.values())
        elif output is not None and mode is not Mode.SORT and not demuxed and Path(output).exists():
            summary.outputs.append(Path(output))

        self.state = RunState.DONE
        logger.info(
            f"Done ({summary.status.value}): {summary.reads_accepted:,} of "
            f"{summary.reads_processed:,} reads accepted"
        )
        return summary

    def _drain(self, output: Optional[Union[PathLike, str]], summary: RunSummary) -> None:
        mode = self.config.mode

        summary.empty_amplicons = [a for a in self.catalog if a not in summary.amplicon_reads]
        for amplicon in summary.empty_amplicons:
            logger.warning(f"Amplicon '{amplicon}' received no reads")

        if not self._stacks_reads:
            return

        # Catalog order keeps output deterministic
        ordered = [self.stacks[a] for a in self.catalog if a in self.stacks]
        summary.unique_sequences = {stack.amplicon: stack.n_unique for stack in ordered}

        if mode is Mode.SORT:
            if output is not None:
                with StackWriter(output) as writer:
                    for stack in ordered:
                        path = writer.write(stack)
                        if path is not None:
                            summary.outputs.append(path)

        elif mode is Mode.CONSENSUS:
            self.amplitypes = build_all(
                ordered,
                min_frequency=self.config.min_frequency,
                policy=self.config.policy,
                num_cores=self.config.num_cores,
            )
            summary.amplitypes = {a: len(types) for a, types in self.amplitypes.items()}
            if output is not None:
                with AmplitypeWriter(output) as writer:
                    for amplitypes in self.amplitypes.values():
                        writer.write(amplitypes)

        elif mode is Mode.INDEX:
            self.index = SequenceIndex.from_stacks(ordered, self.catalog.scheme_hash())
            if output is not None:
                self.index.save(output)
