"""
Sequencing read values.

Provides the immutable read records that flow through the pipeline: raw
reads produced by the input decoder and trimmed reads produced by the
trimmer.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from Bio.Seq import reverse_complement as _bio_reverse_complement

from .exceptions import MalformedReadError

if TYPE_CHECKING:
    from .matcher import Matched

logger = logging.getLogger(__name__)


def reverse_complement(seq: str) -> str:
    """Reverse complement a DNA sequence, keeping IUPAC ambiguity codes."""
    return _bio_reverse_complement(seq)


@dataclass(frozen=True)
class Read:
    """
    A single sequencing read.

    Parameters
    ----------
    identifier : str
        Read name from the FASTQ header (without the leading '@').
    sequence : str
        Base calls.
    quality : str
        Phred+33 encoded quality string, one character per base.

    Examples
    --------
    >>> read = Read("r1", "ACGTAAAAATGCA", "IIIIIIIIIIIII")
    >>> read.validate()
    >>> len(read)
    13
    """

    identifier: str
    sequence: str
    quality: str

    def __len__(self) -> int:
        return len(self.sequence)

    def validate(self) -> None:
        """
        Check the read is structurally sound.

        Raises
        ------
        MalformedReadError
            If the sequence is empty or the quality string length differs
            from the sequence length.
        """
        if not self.sequence:
            raise MalformedReadError(f"Read '{self.identifier}' has an empty sequence")
        if len(self.sequence) != len(self.quality):
            raise MalformedReadError(
                f"Read '{self.identifier}' has {len(self.sequence)} bases "
                f"but {len(self.quality)} quality scores"
            )

    def reverse_complemented(self) -> "Read":
        """Return the read as it reads on the opposite strand."""
        return Read(
            identifier=self.identifier,
            sequence=reverse_complement(self.sequence),
            quality=self.quality[::-1],
        )


@dataclass(frozen=True)
class TrimmedRead(Read):
    """
    A read with its primers (and anything outside them) removed.

    The sequence is always expressed on the amplicon's forward strand.

    Parameters
    ----------
    amplicon : str
        Name of the amplicon the read was classified to.
    span : Matched, optional
        The span the read was cut with. Trimming a trimmed read again with
        the same span returns it unchanged.
    """

    amplicon: str = ""
    span: Optional["Matched"] = None
