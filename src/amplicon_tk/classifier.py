"""
Amplicon classification.

Assigns each read to at most one amplicon. A read is accepted only when
both primers of exactly one amplicon are present; everything else is
rejected with a reason that the pipeline tallies for the run summary.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .exceptions import MalformedReadError
from .matcher import Matched, PrimerMatcher
from .primers import PrimerCatalog
from .sequencing_read import Read

logger = logging.getLogger(__name__)


class RejectReason(Enum):
    """Why a read was dropped."""

    NO_PRIMER_MATCH = 'no_primer_match'
    MALFORMED = 'malformed'
    TRIMMED_EMPTY = 'trimmed_empty'
    BELOW_MIN_FREQUENCY = 'below_min_frequency'
    TOO_LONG = 'too_long'


@dataclass(frozen=True)
class Accepted:
    """A read bounded by the primers of `amplicon`, located by `span`."""

    amplicon: str
    span: Matched
    accepted = True


@dataclass(frozen=True)
class Rejected:
    """A read that will not reach any downstream stage."""

    reason: RejectReason
    detail: str = ""
    accepted = False


Classification = Union[Accepted, Rejected]


class AmpliconClassifier:
    """
    Classify reads against a fixed primer catalog.

    Parameters
    ----------
    catalog : PrimerCatalog
        Primer pairs to classify against. Never modified.
    matcher : PrimerMatcher, optional
        Matcher holding the mismatch and search-window settings. Defaults
        to exact matching with the default search window.
    """

    def __init__(self, catalog: PrimerCatalog, matcher: Optional[PrimerMatcher] = None):
        self.catalog = catalog
        self.matcher = matcher or PrimerMatcher()

    def classify(self, read: Read) -> Classification:
        try:
            result = self.matcher.match(read, self.catalog)
        except MalformedReadError as e:
            logger.debug(str(e))
            return Rejected(RejectReason.MALFORMED, str(e))

        if not result.matched:
            detail = "ambiguous primer pairs" if result.ambiguous else ""
            return Rejected(RejectReason.NO_PRIMER_MATCH, detail)

        return Accepted(result.amplicon, result)


def classify(read: Read, catalog: PrimerCatalog, matcher: Optional[PrimerMatcher] = None) -> Classification:
    """
    Classify a single read.

    Examples
    --------
    >>> catalog = PrimerCatalog([PrimerPair("ampA", "ACGT", "TGCA")])
    >>> classify(Read("r2", "GGGGGGGGGG", "I" * 10), catalog).reason
    <RejectReason.NO_PRIMER_MATCH: 'no_primer_match'>
    """
    return AmpliconClassifier(catalog, matcher).classify(read)
