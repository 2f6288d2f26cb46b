import gzip
from pathlib import Path

import pytest

from amplicon_tk import PrimerCatalog, PrimerPair, Read

# Two amplicons with unrelated, non-palindromic 20-mers
AMP_A_FORWARD = "ACGTTGCAAGGCTTACCGAT"
AMP_A_REVERSE = "GGATCCTTAGCAGTCAAGCT"
AMP_B_FORWARD = "CAGTCAGTTCAGGACTTGCA"
AMP_B_REVERSE = "TGACCTGAAGTCCATGCATG"
INSERT_A = "TTTTCCCCGGGGAAAA"
INSERT_B = "CCCAAATTTGGG"


def quality_for(sequence: str) -> str:
    """A quality string that differs at every position, to catch misaligned slicing."""
    return "".join(chr(33 + (i % 40)) for i in range(len(sequence)))


def make_read(forward: str, insert: str, reverse: str, identifier: str = "read", prefix: str = "", suffix: str = "") -> Read:
    sequence = prefix + forward + insert + reverse + suffix
    return Read(identifier, sequence, quality_for(sequence))


def write_fastq(path: Path, reads) -> Path:
    opener = gzip.open if path.suffix == '.gz' else open
    with opener(path, 'wt') as f:
        for read in reads:
            f.write(f"@{read.identifier} extra\n{read.sequence}\n+\n{read.quality}\n")
    return path


@pytest.fixture
def toy_catalog() -> PrimerCatalog:
    return PrimerCatalog([PrimerPair("ampA", "ACGT", "TGCA")])


@pytest.fixture
def catalog() -> PrimerCatalog:
    return PrimerCatalog(
        [
            PrimerPair("ampA", AMP_A_FORWARD, AMP_A_REVERSE),
            PrimerPair("ampB", AMP_B_FORWARD, AMP_B_REVERSE),
        ]
    )


@pytest.fixture
def read_a() -> Read:
    return make_read(AMP_A_FORWARD, INSERT_A, AMP_A_REVERSE, identifier="readA", prefix="GG", suffix="T")


@pytest.fixture
def read_b() -> Read:
    return make_read(AMP_B_FORWARD, INSERT_B, AMP_B_REVERSE, identifier="readB")


@pytest.fixture
def primer_table(tmp_path) -> Path:
    path = tmp_path / "primers.tsv"
    path.write_text(
        "amplicon\tforward\treverse\n"
        f"ampA\t{AMP_A_FORWARD}\t{AMP_A_REVERSE}\n"
        f"ampB\t{AMP_B_FORWARD}\t{AMP_B_REVERSE}\n"
    )
    return path
