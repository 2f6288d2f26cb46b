"""
amplicon-tk - primer-based classification of amplicon sequencing reads.

Reads are matched against a catalog of primer pairs, trimmed to the insert
between their primers and then written out, stacked per amplicon, indexed or
collapsed into consensus sequences ("amplitypes").

Main Classes
------------
AmpliconPipeline
    Stream reads through classification, trimming and a terminal mode.

PrimerCatalog, PrimerPair
    The read-only set of primer pairs reads are classified against.

AmpliconClassifier, PrimerMatcher
    Assign a read to at most one amplicon.

StackManager, Stack
    Per-amplicon unique-sequence frequency tables.

SequenceIndex
    Per-amplicon sequence frequencies for dataset-wide filters.

Examples
--------
>>> from amplicon_tk import AmpliconPipeline, PipelineConfig, load_primer_table, read_fastq
>>> catalog = load_primer_table('/path/to/primers.tsv')
>>> with AmpliconPipeline(catalog, PipelineConfig(mode='consensus')) as pipeline:
...     summary = pipeline.run(read_fastq('/path/to/reads.fastq.gz'), 'amplicons.fasta')
>>> summary.print_summary()
"""

from .classifier import Accepted, AmpliconClassifier, Rejected, RejectReason, classify
from .config import Mode, PipelineConfig, default_num_cores
from .consensus import Amplitype, ConsensusPolicy, build, build_all, build_from_counts, column_consensus
from .exceptions import (
    AmpliconTkError,
    CatalogLoadError,
    IndexMismatchError,
    MalformedReadError,
    ReadDecodeError,
    TrimmedEmptyError,
    WriteError,
)
from .index import FilterSettings, SequenceIndex
from .io import AmplitypeWriter, DemuxWriter, FastqWriter, StackWriter, read_fastq
from .matcher import Matched, NoMatch, Orientation, PrimerMatcher, match
from .pipeline import AmpliconPipeline, RunState, RunStatus, RunSummary, process_read
from .primers import PrimerCatalog, PrimerPair, load_primer_table, load_primers_from_bed
from .sequencing_read import Read, TrimmedRead, reverse_complement
from .stacks import Stack, StackManager
from .trimming import trim

__all__ = [
    # Main classes
    "AmpliconPipeline",
    "PipelineConfig",
    "RunSummary",
    "PrimerCatalog",
    "PrimerPair",
    # Classification
    "AmpliconClassifier",
    "PrimerMatcher",
    "Accepted",
    "Rejected",
    "RejectReason",
    "Matched",
    "NoMatch",
    "Orientation",
    # Stacks and consensus
    "Stack",
    "StackManager",
    "Amplitype",
    "ConsensusPolicy",
    "SequenceIndex",
    "FilterSettings",
    # Reads and I/O
    "Read",
    "TrimmedRead",
    "FastqWriter",
    "DemuxWriter",
    "AmplitypeWriter",
    "StackWriter",
    # Enums
    "Mode",
    "RunState",
    "RunStatus",
    # Errors
    "AmpliconTkError",
    "CatalogLoadError",
    "IndexMismatchError",
    "MalformedReadError",
    "ReadDecodeError",
    "TrimmedEmptyError",
    "WriteError",
    # Convenience functions
    "build",
    "build_all",
    "build_from_counts",
    "classify",
    "column_consensus",
    "default_num_cores",
    "load_primer_table",
    "load_primers_from_bed",
    "match",
    "process_read",
    "read_fastq",
    "reverse_complement",
    "trim",
]

__version__ = "0.1.0"
