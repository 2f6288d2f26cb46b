"""
Constants for amplicon-aware read processing.

Contains the defaults shared by the primer catalog loaders, the primer
matcher, the streaming pipeline and the command-line interface.
"""

# BED primer naming convention
# Primer records are named <amplicon><suffix>, e.g. 'SARS2_1_LEFT'
DEFAULT_LEFT_SUFFIX = "_LEFT"
DEFAULT_RIGHT_SUFFIX = "_RIGHT"

# Bases beyond the primer length searched at each read end
DEFAULT_SEARCH_WINDOW = 50

# Hamming distance allowed per primer when the catalog gives no value
DEFAULT_MAX_MISMATCHES = 0

# Reads between progress log lines
PROGRESS_INTERVAL = 100_000

# Reads processed in debug mode before the input is cut off
DEBUG_READ_LIMIT = 100_000

# Reads handed to each worker per task when running in parallel
DEFAULT_CHUNKSIZE = 1_000

# Primer table column names
PRIMER_TABLE_COLUMNS = {
    'amplicon': 'amplicon',
    'forward': 'forward',
    'reverse': 'reverse',
    'max_mismatches': 'max_mismatches',
}

# Output naming
DEFAULT_TRIM_OUTPUT = "trimmed.fastq.gz"
DEFAULT_EXTRACT_OUTPUT = "extracted_amplicons.fastq.gz"
DEFAULT_SORT_OUTPUT = "amplicon_stacks"
DEFAULT_CONSENSUS_OUTPUT = "amplicons.fasta"
DEFAULT_INDEX_OUTPUT = "amplicon_index.json"
STACK_FILE_SUFFIX = ".fasta"
DEMUX_FILE_SUFFIX = ".fastq.gz"

# Gap character used when aligning stacked sequences column by column
GAP = "-"

# Read bases accepted at each IUPAC primer position
IUPAC_BASES = {
    'A': 'A',
    'C': 'C',
    'G': 'G',
    'T': 'TU',
    'U': 'TU',
    'R': 'AG',
    'Y': 'CTU',
    'S': 'CG',
    'W': 'ATU',
    'K': 'GTU',
    'M': 'AC',
    'B': 'CGTU',
    'D': 'AGTU',
    'H': 'ACTU',
    'V': 'ACG',
    'N': 'ACGTUN',
}
