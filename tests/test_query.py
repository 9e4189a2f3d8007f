# tests/test_query.py
"""Tests for the filter/sort query engine."""
import pytest

from tagnotes.exceptions import ErrorCode, InvalidPatternError
from tagnotes.models.schema import FilterSpec, Note, SortOrder
from tagnotes.services.query import apply_filter, compile_pattern


@pytest.fixture
def notes():
    return [
        Note(id="1", text="buy milk", tags=["home"], last_update=100),
        Note(id="2", text="fix bug", tags=["work"], last_update=200),
    ]


def ids(notes):
    return [note.id for note in notes]


class TestApplyFilter:
    """Tests for apply_filter."""

    def test_includes_with_descending_sort(self, notes):
        spec = FilterSpec(tag="", includes="bug", sort=SortOrder.DESCENDING)
        assert apply_filter(notes, spec) == [notes[1]]

    def test_tag_with_ascending_sort(self, notes):
        spec = FilterSpec(tag="home", includes="", sort=SortOrder.ASCENDING)
        assert apply_filter(notes, spec) == [notes[0]]

    def test_empty_filter_matches_all(self, notes):
        assert ids(apply_filter(notes, FilterSpec(sort="ascending"))) == ["1", "2"]
        assert ids(apply_filter(notes, FilterSpec(sort="descending"))) == ["2", "1"]

    def test_tag_and_includes_combined(self):
        notes = [
            Note(id="a", text="call mom", tags=["home"], last_update=1),
            Note(id="b", text="call client", tags=["work"], last_update=2),
            Note(id="c", text="email client", tags=["work"], last_update=3),
        ]
        spec = FilterSpec(tag="work", includes="call")
        assert ids(apply_filter(notes, spec)) == ["b"]

    def test_tag_match_is_exact(self):
        notes = [
            Note(id="a", text="x", tags=["Work"], last_update=1),
            Note(id="b", text="x", tags=["workshop"], last_update=2),
            Note(id="c", text="x", tags=["work"], last_update=3),
        ]
        assert ids(apply_filter(notes, FilterSpec(tag="work"))) == ["c"]

    def test_includes_is_case_insensitive(self, notes):
        assert ids(apply_filter(notes, FilterSpec(includes="MILK"))) == ["1"]

    def test_includes_is_unicode_aware(self):
        notes = [
            Note(id="a", text="Überweisung prüfen", last_update=1),
            Note(id="b", text="ΣΟΦΙΑ", last_update=2),
        ]
        assert ids(apply_filter(notes, FilterSpec(includes="überweisung"))) == ["a"]
        assert ids(apply_filter(notes, FilterSpec(includes="σοφια"))) == ["b"]

    def test_includes_as_regex(self, notes):
        spec = FilterSpec(includes=r"^fix\s+b.g$", sort="ascending")
        assert ids(apply_filter(notes, spec)) == ["2"]
        spec = FilterSpec(includes="milk|bug", sort="ascending")
        assert ids(apply_filter(notes, spec)) == ["1", "2"]

    def test_includes_searches_full_text(self):
        notes = [Note(id="a", text="first line\nsecond line has needle", last_update=1)]
        assert ids(apply_filter(notes, FilterSpec(includes="needle"))) == ["a"]

    def test_no_match(self, notes):
        assert apply_filter(notes, FilterSpec(tag="missing")) == []

    def test_invalid_pattern_raises(self, notes):
        with pytest.raises(InvalidPatternError) as exc_info:
            apply_filter(notes, FilterSpec(includes="(unclosed"))
        assert exc_info.value.code == ErrorCode.FILTER_INVALID_PATTERN
        assert exc_info.value.pattern == "(unclosed"

    def test_invalid_pattern_raises_even_when_tag_matches_nothing(self, notes):
        # The tag step runs first but the pattern is still compiled
        with pytest.raises(InvalidPatternError):
            apply_filter(notes, FilterSpec(tag="missing", includes="["))

    def test_input_is_not_mutated(self, notes):
        original = list(notes)
        result = apply_filter(notes, FilterSpec(sort="descending"))
        assert notes == original
        assert result is not notes
        result.clear()
        assert len(notes) == 2

    def test_accepts_any_iterable(self, notes):
        assert ids(apply_filter(iter(notes), FilterSpec(sort="ascending"))) == ["1", "2"]


class TestStableSort:
    """Ties keep their input order in both directions."""

    @pytest.fixture
    def tied(self):
        return [
            Note(id="late", text="x", last_update=300),
            Note(id="tie-1", text="x", last_update=200),
            Note(id="early", text="x", last_update=100),
            Note(id="tie-2", text="x", last_update=200),
            Note(id="tie-3", text="x", last_update=200),
        ]

    def test_ascending_keeps_tie_order(self, tied):
        result = apply_filter(tied, FilterSpec(sort="ascending"))
        assert ids(result) == ["early", "tie-1", "tie-2", "tie-3", "late"]

    def test_descending_keeps_tie_order(self, tied):
        result = apply_filter(tied, FilterSpec(sort="descending"))
        assert ids(result) == ["late", "tie-1", "tie-2", "tie-3", "early"]


class TestCompilePattern:
    """Tests for compile_pattern."""

    def test_plain_word(self):
        assert compile_pattern("milk").search("Buy MILK")

    def test_cached(self):
        assert compile_pattern("cache-me") is compile_pattern("cache-me")

    @pytest.mark.parametrize("pattern", ["[", "(", "*start", "a{2,1}"])
    def test_malformed(self, pattern):
        with pytest.raises(InvalidPatternError) as exc_info:
            compile_pattern(pattern)
        assert exc_info.value.reason
