"""The note/tag store: the single owner of notes and the global tag set."""

import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from tagnotes.exceptions import (
    ErrorCode,
    NoteNotFoundError,
    NoteValidationError,
    TagError,
)
from tagnotes.models.schema import Note, dedupe_tags, generate_id, now_ms, validate_tag_name
from tagnotes.observability import traced
from tagnotes.storage.base import KeyValueBackend
from tagnotes.storage.state_repository import StateRepository

logger = logging.getLogger(__name__)


def _check_text(text: str) -> str:
    if not isinstance(text, str) or not text.strip():
        raise NoteValidationError(
            "Note text is required", field="text", code=ErrorCode.NOTE_TEXT_REQUIRED
        )
    return text


def _check_tags(tags: Iterable[str]) -> Tuple[str, ...]:
    """Validate tag names and drop repeats, keeping first occurrences."""
    tags = list(tags)
    for tag in tags:
        try:
            validate_tag_name(tag)
        except ValueError as e:
            raise TagError(str(e), tag_name=tag if isinstance(tag, str) else None) from e
    return dedupe_tags(tags)


class NoteStore:
    """Owns the notes collection and the global tag set.

    Every mutation builds the new collections from the current ones
    (notes are immutable, so untouched notes are shared), swaps them in,
    and only then writes the changed keys through the repository. Callers
    therefore never see a half-applied cascade.

    Invariants kept by every operation:
    - note IDs are unique
    - every tag on a note is in the global tag set
    - no note carries the same tag twice

    A call that would not change anything returns without touching
    ``last_update`` or writing to storage.
    """

    def __init__(
        self,
        repository: StateRepository,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] = generate_id,
    ):
        """Load the persisted state.

        Args:
            repository: Persistence for the ``notes`` and ``tags`` values.
            clock: Returns the current time in epoch milliseconds.
            id_factory: Returns a fresh note ID.
        """
        self.repository = repository
        self._clock = clock
        self._id_factory = id_factory

        notes, tags = repository.load_state()
        self._notes: List[Note] = notes
        self._tags: List[str] = tags

        # Older snapshots may reference tags that were never registered
        missing = self._unregistered(tag for note in notes for tag in note.tags)
        if missing:
            logger.warning(
                f"Registering {len(missing)} tag(s) used by notes but missing "
                f"from the tag set: {', '.join(missing)}"
            )
            self._tags = self._tags + missing
            self.repository.save_tags(self._tags)

        logger.info(f"NoteStore loaded {len(self._notes)} notes, {len(self._tags)} tags")

    @classmethod
    def from_backend(cls, backend: KeyValueBackend, **kwargs) -> "NoteStore":
        """Create a store persisting to ``backend``."""
        return cls(StateRepository(backend), **kwargs)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def notes(self) -> List[Note]:
        """All notes, in collection (insertion) order."""
        return list(self._notes)

    @property
    def tags(self) -> List[str]:
        """The global tag set, in insertion order."""
        return list(self._tags)

    def __len__(self) -> int:
        return len(self._notes)

    def has_tag(self, name: str) -> bool:
        return name in self._tags

    def get_note(self, note_id: str) -> Note:
        """Get a note by ID.

        Raises:
            NoteNotFoundError: If no note has this ID
        """
        return self._notes[self._index_of(note_id)]

    def tag_counts(self) -> Dict[str, int]:
        """Map every tag in the set to the number of notes carrying it."""
        counts = {tag: 0 for tag in self._tags}
        for note in self._notes:
            for tag in note.tags:
                counts[tag] += 1
        return counts

    # ------------------------------------------------------------------
    # Note mutations
    # ------------------------------------------------------------------

    @traced("add_note")
    def add_note(self, text: str, tags: Optional[Sequence[str]] = None) -> Note:
        """Create a note with a fresh ID and ``last_update = now``.

        Tag names not yet in the global set are added to it.

        Args:
            text: Note text; must contain something other than whitespace.
            tags: Tag names; repeats are dropped.

        Returns:
            The created note.

        Raises:
            NoteValidationError: If the text is empty
            TagError: If a tag name is empty
        """
        text = _check_text(text)
        note_tags = _check_tags(tags or ())

        existing_ids = {note.id for note in self._notes}
        note_id = self._id_factory()
        while note_id in existing_ids:
            note_id = self._id_factory()

        note = Note(id=note_id, text=text, tags=note_tags, last_update=self._clock())
        new_tags = self._unregistered(note.tags)

        self._commit(
            notes=self._notes + [note],
            tags=self._tags + new_tags if new_tags else None,
        )
        logger.info(f"Created note {note.id}")
        return note

    @traced("remove_note")
    def remove_note(self, note_id: str) -> None:
        """Delete a note. Its tags stay in the global set.

        Raises:
            NoteNotFoundError: If no note has this ID
        """
        index = self._index_of(note_id)
        self._commit(notes=self._notes[:index] + self._notes[index + 1:])
        logger.info(f"Deleted note {note_id}")

    def set_note_text(self, note_id: str, text: str) -> Note:
        """Replace a note's text. See :meth:`update_note`."""
        return self.update_note(note_id, text=text)

    def set_note_tags(self, note_id: str, tags: Sequence[str]) -> Note:
        """Replace a note's tag list. See :meth:`update_note`."""
        return self.update_note(note_id, tags=tags)

    @traced("update_note")
    def update_note(
        self,
        note_id: str,
        text: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> Note:
        """Replace one or more fields of a note and refresh ``last_update``.

        Fields left as None are kept. If every given field already equals
        the note's current value, nothing happens: the timestamp is not
        bumped and nothing is written. Unknown tag names are added to the
        global set.

        Returns:
            The note as it is after the call.

        Raises:
            NoteNotFoundError: If no note has this ID
            NoteValidationError: If ``text`` is given but empty
            TagError: If a tag name is empty
        """
        index = self._index_of(note_id)
        current = self._notes[index]

        changes = {}
        if text is not None and _check_text(text) != current.text:
            changes["text"] = text
        if tags is not None:
            new_note_tags = _check_tags(tags)
            if new_note_tags != current.tags:
                changes["tags"] = new_note_tags

        if not changes:
            logger.debug(f"Note {note_id} unchanged, skipping write")
            return current

        updated = current.model_copy(update={**changes, "last_update": self._clock()})
        new_tags = self._unregistered(updated.tags)

        notes = list(self._notes)
        notes[index] = updated
        self._commit(notes=notes, tags=self._tags + new_tags if new_tags else None)
        logger.info(f"Updated note {note_id} ({', '.join(changes)})")
        return updated

    # ------------------------------------------------------------------
    # Tag mutations
    # ------------------------------------------------------------------

    @traced("add_tag")
    def add_tag(self, name: str) -> bool:
        """Add a tag to the global set.

        Returns:
            True if the tag was added, False if it already existed.

        Raises:
            TagError: If the name is empty
        """
        (name,) = _check_tags([name])
        if name in self._tags:
            return False
        self._commit(tags=self._tags + [name])
        logger.info(f"Added tag '{name}'")
        return True

    @traced("delete_tag")
    def delete_tag(self, name: str) -> bool:
        """Remove a tag from the set and from every note carrying it.

        The cascade does not change ``last_update`` on the affected notes.

        Returns:
            True if the tag existed.
        """
        if name not in self._tags:
            return False

        affected = 0
        notes = []
        for note in self._notes:
            if note.has_tag(name):
                affected += 1
                note = note.model_copy(
                    update={"tags": tuple(t for t in note.tags if t != name)}
                )
            notes.append(note)

        self._commit(
            notes=notes if affected else None,
            tags=[t for t in self._tags if t != name],
        )
        logger.info(f"Deleted tag '{name}' (removed from {affected} notes)")
        return True

    @traced("rename_tag")
    def rename_tag(self, old_name: str, new_name: str) -> bool:
        """Rename a tag in the set and in every note carrying it.

        If ``new_name`` is already a tag the two merge. A note that ends up
        with the name twice keeps it at the earlier of the two positions:
        ``["a", "x", "b"]`` renamed ``a -> b`` becomes ``["b", "x"]``.
        The cascade does not change ``last_update``.

        Returns:
            True if anything changed, False if ``old_name`` is not a tag or
            equals ``new_name``.

        Raises:
            TagError: If ``new_name`` is empty
        """
        if old_name not in self._tags or old_name == new_name:
            return False
        (new_name,) = _check_tags([new_name])

        merged = new_name in self._tags
        if merged:
            tags = [t for t in self._tags if t != old_name]
        else:
            tags = [new_name if t == old_name else t for t in self._tags]

        affected = 0
        notes = []
        for note in self._notes:
            if note.has_tag(old_name):
                affected += 1
                note = note.model_copy(
                    update={
                        "tags": dedupe_tags(
                            new_name if t == old_name else t for t in note.tags
                        )
                    }
                )
            notes.append(note)

        self._commit(notes=notes if affected else None, tags=tags)
        logger.info(
            f"Renamed tag '{old_name}' to '{new_name}'"
            f"{' (merged)' if merged else ''} on {affected} notes"
        )
        return True

    @traced("prune_unused_tags")
    def prune_unused_tags(self) -> List[str]:
        """Remove tags that no note carries.

        Never run implicitly: tags otherwise live until deleted.

        Returns:
            The removed tag names.
        """
        counts = self.tag_counts()
        unused = [tag for tag, count in counts.items() if count == 0]
        if unused:
            self._commit(tags=[t for t in self._tags if counts[t] > 0])
            logger.info(f"Pruned {len(unused)} unused tags")
        return unused

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _index_of(self, note_id: str) -> int:
        for index, note in enumerate(self._notes):
            if note.id == note_id:
                return index
        raise NoteNotFoundError(note_id)

    def _unregistered(self, tags: Iterable[str]) -> List[str]:
        """Tags not in the global set, without repeats, in first-seen order."""
        known = set(self._tags)
        return [tag for tag in dedupe_tags(tags) if tag not in known]

    def _commit(
        self,
        notes: Optional[List[Note]] = None,
        tags: Optional[List[str]] = None,
    ) -> None:
        """Swap in the new collections, then persist the ones that changed."""
        if notes is not None:
            self._notes = notes
        if tags is not None:
            self._tags = tags
        if notes is not None:
            self.repository.save_notes(self._notes)
        if tags is not None:
            self.repository.save_tags(self._tags)
