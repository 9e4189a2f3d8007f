"""Filtering and ordering of notes for display."""

import functools
import re
from typing import Iterable, List, Pattern

from tagnotes.exceptions import InvalidPatternError
from tagnotes.models.schema import FilterSpec, Note, SortOrder


@functools.lru_cache(maxsize=128)
def compile_pattern(text: str) -> Pattern[str]:
    """Compile a filter pattern as a case-insensitive regular expression.

    A plain word is a valid pattern and behaves as a substring match.

    Raises:
        InvalidPatternError: If ``text`` is not a valid regular expression
    """
    try:
        return re.compile(text, re.IGNORECASE)
    except re.error as e:
        raise InvalidPatternError(text, reason=str(e)) from e


def apply_filter(notes: Iterable[Note], filter_spec: FilterSpec) -> List[Note]:
    """Return the notes to display for ``filter_spec``, in display order.

    Steps, in order:
    1. keep notes carrying ``filter_spec.tag`` (skipped when empty)
    2. keep notes whose text matches ``filter_spec.includes`` (skipped when empty)
    3. sort by ``last_update`` in the requested direction

    The sort is stable in both directions, so notes with equal timestamps
    keep their relative input order. The input is never modified and a new
    list is returned.

    Raises:
        InvalidPatternError: If ``filter_spec.includes`` does not compile
    """
    result = list(notes)

    if filter_spec.tag:
        result = [note for note in result if note.has_tag(filter_spec.tag)]

    if filter_spec.includes:
        pattern = compile_pattern(filter_spec.includes)
        result = [note for note in result if pattern.search(note.text)]

    # sorted() keeps equal keys in input order even with reverse=True
    return sorted(
        result,
        key=lambda note: note.last_update,
        reverse=filter_spec.sort == SortOrder.DESCENDING,
    )
