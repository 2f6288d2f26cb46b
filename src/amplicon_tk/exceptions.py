"""Exceptions raised while classifying, stacking and writing amplicon reads."""


class AmpliconTkError(Exception):
    """Base class for all amplicon-tk errors."""
    pass


class MalformedReadError(AmpliconTkError, ValueError):
    """Raised when a read is structurally inconsistent (empty, or quality/sequence length mismatch)."""
    pass


class TrimmedEmptyError(AmpliconTkError, ValueError):
    """Raised when removing the primers leaves no bases behind."""
    pass


class CatalogLoadError(AmpliconTkError):
    """Raised when the primer catalog is missing or malformed."""
    pass


class ReadDecodeError(AmpliconTkError, IOError):
    """
    Raised when an input record cannot be decoded.

    Parameters
    ----------
    message : str
        Description of the problem.
    record_number : int, optional
        1-based number of the offending record in the input.
    """

    def __init__(self, message: str, record_number: int = None):
        super().__init__(message)
        self.record_number = record_number


class IndexMismatchError(AmpliconTkError):
    """Raised when an index was built with a different primer scheme."""
    pass


class WriteError(AmpliconTkError, IOError):
    """Raised when output cannot be written (disk full, permissions)."""
    pass
