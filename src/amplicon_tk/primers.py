"""
Primer pairs and the primer catalog.

The catalog maps each amplicon name to the pair of primers that bound it. It
is loaded once before any read is processed and is never modified afterwards,
so every pipeline stage (and every worker process) can share it freely.
"""

import hashlib
import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from os import PathLike
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Optional, Union

import pandas as pd
from Bio import SeqIO

from .constants import DEFAULT_LEFT_SUFFIX, DEFAULT_RIGHT_SUFFIX, PRIMER_TABLE_COLUMNS
from .exceptions import CatalogLoadError
from .sequencing_read import reverse_complement

logger = logging.getLogger(__name__)

_IUPAC = re.compile(r"^[ACGTUNRYKMSWBDHV]+$")


@dataclass(frozen=True)
class PrimerPair:
    """
    The two primers bounding one amplicon.

    Both primers are given as they read on the amplicon's forward strand:
    the forward primer 5'->3', and the reverse primer as the reference
    sequence it anneals to (the reverse complement of the oligo). This is
    what slicing the reference with BED coordinates produces.

    Parameters
    ----------
    amplicon : str
        Amplicon name, unique within a catalog.
    forward : str
        Forward primer sequence.
    reverse : str
        Reverse primer sequence, forward-strand orientation.
    max_mismatches : int, optional
        Per-primer Hamming distance allowed for this pair. Overrides the
        run-wide setting when given.
    """

    amplicon: str
    forward: str
    reverse: str
    max_mismatches: Optional[int] = None

    def __post_init__(self):
        for label in ('forward', 'reverse'):
            seq = getattr(self, label).upper()
            if not _IUPAC.match(seq):
                raise CatalogLoadError(
                    f"Amplicon '{self.amplicon}' has an invalid {label} primer: '{getattr(self, label)}'"
                )
            object.__setattr__(self, label, seq)
        if self.max_mismatches is not None and self.max_mismatches < 0:
            raise CatalogLoadError(f"Amplicon '{self.amplicon}' has a negative mismatch tolerance")

    @property
    def forward_rc(self) -> str:
        return reverse_complement(self.forward)

    @property
    def reverse_rc(self) -> str:
        return reverse_complement(self.reverse)

    def mismatches_allowed(self, default: int) -> int:
        """Mismatch tolerance for this pair, falling back to `default`."""
        return default if self.max_mismatches is None else self.max_mismatches


class PrimerCatalog(Mapping):
    """
    Read-only mapping from amplicon name to PrimerPair.

    Iteration follows load order, which is also the tie-break order used
    when ambiguous matches are kept.

    Parameters
    ----------
    pairs : iterable of PrimerPair
        Primer pairs to catalog.

    Raises
    ------
    CatalogLoadError
        If no pairs are given or one amplicon name has two different pairs.

    Examples
    --------
    >>> catalog = PrimerCatalog([PrimerPair("ampA", "ACGT", "TGCA")])
    >>> catalog["ampA"].forward
    'ACGT'
    """

    def __init__(self, pairs: Iterable[PrimerPair]):
        pairs_by_name: Dict[str, PrimerPair] = {}
        for pair in pairs:
            existing = pairs_by_name.get(pair.amplicon)
            if existing is not None and existing != pair:
                raise CatalogLoadError(f"Amplicon '{pair.amplicon}' is defined twice with different primers")
            if existing is not None:
                logger.warning(f"Amplicon '{pair.amplicon}' is listed more than once")
            pairs_by_name[pair.amplicon] = pair

        if not pairs_by_name:
            raise CatalogLoadError("Primer catalog contains no primer pairs")

        self._pairs = MappingProxyType(pairs_by_name)

    def __getitem__(self, amplicon: str) -> PrimerPair:
        return self._pairs[amplicon]

    def __iter__(self) -> Iterator[str]:
        return iter(self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def __repr__(self) -> str:
        return f"PrimerCatalog({len(self)} amplicons)"

    def __reduce__(self):
        return (PrimerCatalog, (list(self._pairs.values()),))

    @property
    def pairs(self) -> List[PrimerPair]:
        return list(self._pairs.values())

    def scheme_hash(self) -> str:
        """
        SHA-256 digest identifying this primer scheme.

        Used to check that an index was computed with the same primers as
        the current run.
        """
        encoded = json.dumps(
            [[p.amplicon, p.forward, p.reverse, p.max_mismatches] for p in self.pairs],
            separators=(',', ':'),
        ).encode()
        return hashlib.sha256(encoded).hexdigest()

    def to_frame(self) -> pd.DataFrame:
        """Catalog as a DataFrame with one row per amplicon."""
        return pd.DataFrame(
            [
                {
                    'amplicon': p.amplicon,
                    'forward': p.forward,
                    'reverse': p.reverse,
                    'max_mismatches': p.max_mismatches,
                }
                for p in self.pairs
            ]
        )


def _read_table(path: Path) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix in ('.xlsx', '.xls'):
        return pd.read_excel(path, sheet_name=0, dtype=str, header=0, engine='openpyxl')
    if suffix == '.csv':
        return pd.read_csv(path, dtype=str)
    return pd.read_csv(path, sep='\t', dtype=str, comment='#')


def load_primer_table(table_fn: Union[PathLike, str]) -> PrimerCatalog:
    """
    Load a primer catalog from a table.

    Parameters
    ----------
    table_fn : PathLike or str
        Tab-separated (default), comma-separated (.csv) or Excel (.xlsx)
        file with columns 'amplicon', 'forward', 'reverse' and optionally
        'max_mismatches'. Column names are case-insensitive.

    Returns
    -------
    PrimerCatalog

    Raises
    ------
    CatalogLoadError
        If the file is missing, unreadable or lacks required columns.
    """
    table_fn = Path(table_fn)
    if not table_fn.exists():
        raise CatalogLoadError(f"Primer table not found: {table_fn}")

    try:
        df = _read_table(table_fn)
    except (ValueError, OSError) as e:
        raise CatalogLoadError(f"Could not read primer table {table_fn}: {e}") from e

    df.columns = [str(c).strip().lower() for c in df.columns]

    required_cols = {PRIMER_TABLE_COLUMNS[k] for k in ('amplicon', 'forward', 'reverse')}
    missing = required_cols - set(df.columns)
    if missing:
        raise CatalogLoadError(f"Primer table missing columns: {sorted(missing)}")

    mm_col = PRIMER_TABLE_COLUMNS['max_mismatches']
    has_mm = mm_col in df.columns
    if has_mm:
        df[mm_col] = pd.to_numeric(df[mm_col], errors='coerce')

    pairs = []
    for _, row in df.iterrows():
        if pd.isna(row['amplicon']) or pd.isna(row['forward']) or pd.isna(row['reverse']):
            logger.warning(f"Skipping incomplete primer table row: {row.to_dict()}")
            continue
        max_mm = None
        if has_mm and pd.notna(row[mm_col]):
            max_mm = int(row[mm_col])
        pairs.append(
            PrimerPair(
                amplicon=str(row['amplicon']).strip(),
                forward=str(row['forward']).strip(),
                reverse=str(row['reverse']).strip(),
                max_mismatches=max_mm,
            )
        )

    catalog = PrimerCatalog(pairs)
    logger.info(f"Loaded {len(catalog)} primer pairs from {table_fn}")
    return catalog


def load_reference(reference_fn: Union[PathLike, str]) -> Dict[str, str]:
    """
    Load a FASTA reference into a name -> sequence dict.

    Raises
    ------
    CatalogLoadError
        If the file does not exist or holds no records.
    """
    reference_fn = Path(reference_fn)
    if not reference_fn.exists():
        raise CatalogLoadError(f"Reference FASTA not found: {reference_fn}")

    ref_dict = {record.id: str(record.seq).upper() for record in SeqIO.parse(str(reference_fn), 'fasta')}
    if not ref_dict:
        raise CatalogLoadError(f"Reference FASTA contains no records: {reference_fn}")
    return ref_dict


def load_primers_from_bed(
    bed_fn: Union[PathLike, str],
    reference_fn: Union[PathLike, str],
    left_suffix: str = DEFAULT_LEFT_SUFFIX,
    right_suffix: str = DEFAULT_RIGHT_SUFFIX,
) -> PrimerCatalog:
    """
    Build a primer catalog from BED primer coordinates and a reference.

    Each BED record names one primer, '<amplicon><left_suffix>' or
    '<amplicon><right_suffix>'. Primer sequences are sliced from the
    reference with the record's 0-based, half-open coordinates. Amplicons
    without exactly one left and one right primer are skipped.

    Parameters
    ----------
    bed_fn : PathLike or str
        BED file with at least four columns (chrom, start, end, name).
    reference_fn : PathLike or str
        FASTA reference the coordinates refer to.
    left_suffix : str, default '_LEFT'
        Suffix identifying forward primers.
    right_suffix : str, default '_RIGHT'
        Suffix identifying reverse primers.

    Returns
    -------
    PrimerCatalog
    """
    bed_fn = Path(bed_fn)
    if not bed_fn.exists():
        raise CatalogLoadError(f"Primer BED not found: {bed_fn}")

    ref_dict = load_reference(reference_fn)

    try:
        bed = pd.read_csv(
            bed_fn,
            sep='\t',
            header=None,
            comment='#',
            usecols=[0, 1, 2, 3],
            names=['chrom', 'start', 'end', 'name'],
            dtype={'chrom': str, 'name': str},
        )
    except (ValueError, OSError) as e:
        raise CatalogLoadError(f"Could not read primer BED {bed_fn}: {e}") from e

    # Structure: {amplicon: {'left': [...], 'right': [...]}}
    primers: Dict[str, Dict[str, List[str]]] = {}

    for _, rec in bed.iterrows():
        name = rec['name']
        seq = ref_dict.get(rec['chrom'])
        if seq is None:
            logger.warning(f"Primer '{name}' refers to '{rec['chrom']}', which is not in the reference")
            continue

        start, end = int(rec['start']), int(rec['end'])
        if start < 0 or end > len(seq) or start >= end:
            logger.warning(
                f"Positions {start} and {end} for '{name}' are not present in reference "
                f"'{rec['chrom']}' ({len(seq)} bp)"
            )
            continue

        if left_suffix in name:
            amplicon, side = name.partition(left_suffix)[0], 'left'
        elif right_suffix in name:
            amplicon, side = name.partition(right_suffix)[0], 'right'
        else:
            logger.warning(f"Primer '{name}' has neither suffix '{left_suffix}' nor '{right_suffix}'")
            continue

        primers.setdefault(amplicon, {'left': [], 'right': []})[side].append(seq[start:end])

    pairs = []
    for amplicon, sides in primers.items():
        if len(sides['left']) != 1 or len(sides['right']) != 1:
            logger.warning(
                f"Skipping amplicon '{amplicon}': found {len(sides['left'])} left and "
                f"{len(sides['right'])} right primers"
            )
            continue
        pairs.append(PrimerPair(amplicon, sides['left'][0], sides['right'][0]))

    catalog = PrimerCatalog(pairs)
    logger.info(f"Defined {len(catalog)} amplicons from {bed_fn}")
    return catalog
