"""File naming for per-amplicon outputs."""

import logging
import re
from typing import Set

logger = logging.getLogger(__name__)


def safe_file_name(name: str) -> str:
    """Make an amplicon name usable as a file name."""
    return re.sub(r'[^A-Za-z0-9_.-]', '_', name)


def unique_file_name(name: str, taken: Set[str]) -> str:
    """
    Safe file name for `name` that is not already in `taken`.

    Amplicon names that sanitize to the same string (e.g. 'amp/A' and
    'amp_A') get a numeric suffix instead of sharing a file. The returned
    name is added to `taken`.

    Examples
    --------
    >>> taken = set()
    >>> unique_file_name("amp_A", taken), unique_file_name("amp/A", taken)
    ('amp_A', 'amp_A_2')
    """
    base = safe_file_name(name)
    candidate = base
    n = 2
    while candidate in taken:
        candidate = f"{base}_{n}"
        n += 1
    if candidate != base:
        logger.warning(f"Amplicon '{name}' clashes with another file name; writing it as '{candidate}'")
    taken.add(candidate)
    return candidate
