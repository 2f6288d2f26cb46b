"""Command-line interface for the amplicon pipeline."""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import Mode, PipelineConfig, default_num_cores
from .consensus import ConsensusPolicy
from .constants import (
    DEFAULT_CHUNKSIZE,
    DEFAULT_CONSENSUS_OUTPUT,
    DEFAULT_EXTRACT_OUTPUT,
    DEFAULT_INDEX_OUTPUT,
    DEFAULT_LEFT_SUFFIX,
    DEFAULT_MAX_MISMATCHES,
    DEFAULT_RIGHT_SUFFIX,
    DEFAULT_SEARCH_WINDOW,
    DEFAULT_SORT_OUTPUT,
    DEFAULT_TRIM_OUTPUT,
)
from .exceptions import AmpliconTkError, CatalogLoadError
from .index import SequenceIndex
from .io import read_fastq
from .pipeline import AmpliconPipeline, RunStatus
from .primers import PrimerCatalog, load_primer_table, load_primers_from_bed

logger = logging.getLogger(__name__)

DEFAULT_OUTPUTS = {
    Mode.EXTRACT: DEFAULT_EXTRACT_OUTPUT,
    Mode.TRIM: DEFAULT_TRIM_OUTPUT,
    Mode.SORT: DEFAULT_SORT_OUTPUT,
    Mode.CONSENSUS: DEFAULT_CONSENSUS_OUTPUT,
    Mode.INDEX: DEFAULT_INDEX_OUTPUT,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='amplicon-tk',
        description='Classify amplicon reads by primer pair, then extract, trim, sort, index or call consensus',
    )

    parser.add_argument(
        'mode',
        choices=[m.value for m in Mode],
        help='What to do with reads matching a primer pair',
    )
    parser.add_argument(
        '-f', '--fastq',
        required=True,
        help='Input FASTQ file (optionally gzip compressed)',
    )
    parser.add_argument(
        '-o', '--output',
        default=None,
        help='Output file, or directory for sort mode and demultiplexed extract mode',
    )

    catalog = parser.add_argument_group('primer catalog')
    catalog.add_argument(
        '--primer_table',
        default=None,
        help='Primer table (tsv, csv or xlsx) with amplicon, forward and reverse columns',
    )
    catalog.add_argument(
        '--bed',
        default=None,
        help='BED file of primer coordinates (use with --reference)',
    )
    catalog.add_argument(
        '--reference',
        default=None,
        help='Reference FASTA the BED coordinates refer to',
    )
    catalog.add_argument(
        '--left_suffix',
        default=DEFAULT_LEFT_SUFFIX,
        help='BED name suffix of forward primers',
    )
    catalog.add_argument(
        '--right_suffix',
        default=DEFAULT_RIGHT_SUFFIX,
        help='BED name suffix of reverse primers',
    )

    matching = parser.add_argument_group('matching')
    matching.add_argument(
        '--max_mismatches',
        type=int,
        default=DEFAULT_MAX_MISMATCHES,
        help='Mismatches allowed per primer',
    )
    matching.add_argument(
        '--search_window',
        type=int,
        default=DEFAULT_SEARCH_WINDOW,
        help='Bases beyond the primer length searched at each read end (negative: whole read)',
    )
    matching.add_argument(
        '--keep_multi',
        action='store_true',
        help='Keep reads matching several amplicons equally well (first in catalog wins)',
    )

    consensus = parser.add_argument_group('consensus')
    consensus.add_argument(
        '--policy',
        choices=[p.value for p in ConsensusPolicy],
        default=ConsensusPolicy.MAJORITY.value,
        help='Consensus policy',
    )
    consensus.add_argument(
        '--min_frequency',
        type=float,
        default=0.0,
        help='Minimum amplitype frequency for the frequency policy',
    )

    filters = parser.add_argument_group('trim filters')
    filters.add_argument(
        '--index',
        default=None,
        help="Index from 'amplicon-tk index' for the --min_freq filter",
    )
    filters.add_argument(
        '--min_freq',
        type=float,
        default=None,
        help='Drop trimmed reads whose sequence frequency is below this value',
    )
    filters.add_argument(
        '--max_len',
        type=int,
        default=None,
        help='Drop trimmed reads longer than this',
    )

    parser.add_argument(
        '--demux',
        action='store_true',
        help='Extract mode: write one FASTQ per amplicon into the output directory',
    )
    parser.add_argument(
        '--spill_threshold',
        type=int,
        default=None,
        help='Unique sequences per stack kept in memory before spilling to disk',
    )
    parser.add_argument(
        '--spill_dir',
        default=None,
        help='Directory for temporary spill files',
    )
    parser.add_argument(
        '--track_read_ids',
        action='store_true',
        help='Record read names contributing to each stack',
    )
    parser.add_argument(
        '--lenient',
        action='store_true',
        help='Count undecodable FASTQ records as malformed reads instead of failing',
    )
    parser.add_argument(
        '--num_cores',
        type=int,
        default=None,
        help='Number of CPU cores (default: available cores minus two)',
    )
    parser.add_argument(
        '--chunksize',
        type=int,
        default=DEFAULT_CHUNKSIZE,
        help='Reads per worker task',
    )
    parser.add_argument(
        '--summary_path',
        default=None,
        help='Directory to save run summary tables',
    )
    parser.add_argument(
        '--format',
        choices=['excel', 'csv'],
        default='csv',
        help='Summary table format',
    )
    parser.add_argument(
        '-d', '--debug',
        action='store_true',
        help='Enable debug mode (first 100,000 reads only)',
    )

    return parser


def load_catalog(args: argparse.Namespace) -> PrimerCatalog:
    if args.primer_table is not None:
        return load_primer_table(args.primer_table)
    if args.bed is not None and args.reference is not None:
        return load_primers_from_bed(args.bed, args.reference, args.left_suffix, args.right_suffix)
    raise CatalogLoadError("Provide --primer_table, or --bed together with --reference")


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line interface for AmpliconPipeline."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    try:
        catalog = load_catalog(args)
    except CatalogLoadError as e:
        logger.error(str(e))
        return 2

    try:
        config = PipelineConfig(
            mode=args.mode,
            max_mismatches=args.max_mismatches,
            search_window=None if args.search_window < 0 else args.search_window,
            keep_multi=args.keep_multi,
            policy=args.policy,
            min_frequency=args.min_frequency,
            track_read_ids=args.track_read_ids,
            spill_threshold=args.spill_threshold,
            spill_dir=args.spill_dir,
            lenient=args.lenient,
            num_cores=args.num_cores or default_num_cores(),
            chunksize=args.chunksize,
            demux=args.demux,
            debug=args.debug,
            min_freq=args.min_freq,
            max_len=args.max_len,
        )
        index = None
        if args.index is not None:
            index = SequenceIndex.load(args.index, expected_hash=catalog.scheme_hash())
    except (ValueError, AmpliconTkError) as e:
        logger.error(str(e))
        return 2

    if not Path(args.fastq).exists():
        logger.error(f"FASTQ file not found: {args.fastq}")
        return 2

    output = args.output or DEFAULT_OUTPUTS[config.mode]

    try:
        with AmpliconPipeline(catalog, config, index=index) as pipeline:
            summary = pipeline.run(read_fastq(args.fastq, lenient=config.lenient), output)
    except (ValueError, AmpliconTkError) as e:
        logger.error(str(e))
        return 2

    summary.print_summary()
    if args.summary_path is not None:
        summary.serialize(args.summary_path, format=args.format)

    return 1 if summary.status is RunStatus.FAILED else 0


if __name__ == '__main__':
    sys.exit(main())
