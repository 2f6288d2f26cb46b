"""
Primer trimming.

Cuts a classified read down to the bases between its primers. Reads found on
the reverse strand are reverse complemented first so that every trimmed read
of an amplicon reads on the same strand and can be compared directly.
"""

from .exceptions import TrimmedEmptyError
from .matcher import Matched, Orientation
from .sequencing_read import Read, TrimmedRead


def trim(read: Read, span: Matched) -> TrimmedRead:
    """
    Remove primers, and anything outside them, from a read.

    Parameters
    ----------
    read : Read
        The read that was matched.
    span : Matched
        Primer locations returned by the matcher for this read.

    Returns
    -------
    TrimmedRead
        Sequence and quality between the primers, forward strand. Trimming
        a TrimmedRead again with the span it was cut with returns it
        unchanged.

    Raises
    ------
    TrimmedEmptyError
        If no bases lie between the primers.

    Examples
    --------
    >>> span = Matched("ampA", (0, 4), (9, 13), Orientation.FORWARD)
    >>> trim(Read("r1", "ACGTAAAAATGCA", "ABCDEFGHIJKLM"), span).sequence
    'AAAAA'
    """
    if isinstance(read, TrimmedRead) and read.span == span:
        return read

    oriented = read if span.orientation is Orientation.FORWARD else read.reverse_complemented()
    start, stop = span.insert

    if stop > len(oriented):
        raise ValueError(
            f"Span {span.forward_span}-{span.reverse_span} does not fit read "
            f"'{read.identifier}' of length {len(oriented)}"
        )

    sequence = oriented.sequence[start:stop]
    if not sequence:
        raise TrimmedEmptyError(f"Read '{read.identifier}' has no bases between its primers")

    return TrimmedRead(
        identifier=read.identifier,
        sequence=sequence,
        quality=oriented.quality[start:stop],
        amplicon=span.amplicon,
        span=span,
    )
