"""Session view over a note store: the current filter and the notes it selects."""

import logging
from typing import List, Optional, Union

from tagnotes.models.schema import FilterSpec, Note, SortOrder
from tagnotes.services.note_store import NoteStore
from tagnotes.services.query import apply_filter, compile_pattern

logger = logging.getLogger(__name__)


class NoteBoard:
    """What a UI talks to.

    Holds the session's filter specification next to the store it reads.
    Mutations go straight to :attr:`store`; :meth:`visible_notes` re-runs
    the query against whatever the store holds at that moment.

    The filter is only kept in memory; it is not part of the persisted
    state.
    """

    def __init__(self, store: NoteStore, filter_spec: Optional[FilterSpec] = None):
        self.store = store
        self._filter = filter_spec or FilterSpec()

    @property
    def filter(self) -> FilterSpec:
        return self._filter

    def set_sort(self, sort: Union[SortOrder, str]) -> FilterSpec:
        """Set the sort direction ("ascending" or "descending")."""
        self._filter = self._filter.model_copy(update={"sort": SortOrder(sort)})
        return self._filter

    def set_includes(self, includes: str) -> FilterSpec:
        """Set the text pattern.

        The pattern is compiled first; if it is malformed the current
        filter is left as it was.

        Raises:
            InvalidPatternError: If ``includes`` is not a valid pattern
        """
        if includes:
            compile_pattern(includes)
        self._filter = self._filter.model_copy(update={"includes": includes})
        return self._filter

    def set_tag(self, tag: str) -> FilterSpec:
        """Only show notes carrying ``tag``; an empty string shows all."""
        self._filter = self._filter.model_copy(update={"tag": tag})
        return self._filter

    def reset_filter(self) -> FilterSpec:
        """Clear the text and tag predicates, keeping the sort direction."""
        self._filter = FilterSpec(sort=self._filter.sort)
        return self._filter

    def visible_notes(self) -> List[Note]:
        """The store's notes, filtered and ordered by the current filter."""
        notes = apply_filter(self.store.notes, self._filter)
        logger.debug(
            f"{len(notes)} of {len(self.store)} notes visible "
            f"(tag={self._filter.tag!r}, includes={self._filter.includes!r}, "
            f"sort={self._filter.sort.value})"
        )
        return notes

    @property
    def tags(self) -> List[str]:
        return self.store.tags

    def rename_tag(self, old_name: str, new_name: str) -> bool:
        """Rename a tag in the store; a tag filter on ``old_name`` follows it."""
        renamed = self.store.rename_tag(old_name, new_name)
        if renamed and self._filter.tag == old_name:
            self._filter = self._filter.model_copy(update={"tag": new_name})
        return renamed

    def delete_tag(self, name: str) -> bool:
        """Delete a tag from the store; a tag filter on it is cleared."""
        deleted = self.store.delete_tag(name)
        if deleted and self._filter.tag == name:
            self._filter = self._filter.model_copy(update={"tag": ""})
        return deleted
