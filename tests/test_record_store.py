"""Tests for the primary record store and metadata."""

from datetime import datetime, timezone

import pytest

from quoth.errors import DuplicateIdentifier, RecordNotFound
from quoth.metadata import Metadata
from quoth.record_store import RecordStore
from quoth.types import Quote


def _quote(identifier, month=1, text="text"):
    return Quote.new(
        identifier, "Walden", "Thoreau", "nature",
        date=datetime(2024, month, 15, tzinfo=timezone.utc), text=text,
    )


@pytest.fixture
def records(store):
    return RecordStore(store)


class TestRecordStore:

    def test_insert_and_get(self, records):
        records.insert(_quote(1))
        assert records.get(1) == _quote(1)
        assert records.exists(1)
        assert records.count() == 1

    def test_duplicate_insert_rejected(self, records):
        records.insert(_quote(1))
        with pytest.raises(DuplicateIdentifier):
            records.insert(_quote(1, text="other"))
        assert records.get(1).text == "text"

    def test_get_missing(self, records):
        assert records.find(5) is None
        with pytest.raises(RecordNotFound):
            records.get(5)

    def test_delete_returns_quote(self, records):
        records.insert(_quote(1))
        assert records.delete(1) == _quote(1)
        assert not records.exists(1)

    def test_delete_missing(self, records):
        with pytest.raises(RecordNotFound):
            records.delete(1)

    def test_replace(self, records):
        records.insert(_quote(1))
        records.replace(_quote(1, text="new"))
        assert records.get(1).text == "new"

    def test_replace_missing(self, records):
        with pytest.raises(RecordNotFound):
            records.replace(_quote(1))

    def test_get_many_keeps_order(self, records):
        for i in (1, 2, 3):
            records.insert(_quote(i))
        assert [q.identifier for q in records.get_many([3, 1, 2])] == [3, 1, 2]

    def test_identifiers_sorted_numerically(self, records):
        for i in (10, 9, 100, 2):
            records.insert(_quote(i))
        assert records.identifiers() == [2, 9, 10, 100]

    def test_list_in_date_range(self, records):
        for i, month in ((3, 1), (1, 2), (2, 3)):
            records.insert(_quote(i, month=month))
        found = records.list_in_date_range(
            datetime(2024, 1, 15, tzinfo=timezone.utc),
            datetime(2024, 3, 15, tzinfo=timezone.utc),
        )
        assert [q.identifier for q in found] == [1, 3]


class TestMetadata:

    def test_new_store_starts_at_zero(self, store):
        meta = Metadata(store)
        assert meta.current_quote_index == 0
        assert meta.num_quotes == 0
        assert meta.next_identifier() == 1

    def test_write_and_reread(self, store):
        meta = Metadata(store)
        meta.advance(5)
        meta.increment_quotes()
        meta.write()
        again = Metadata(store)
        assert again.current_quote_index == 5
        assert again.num_quotes == 1

    def test_advance_never_goes_back(self, store):
        meta = Metadata(store)
        meta.advance(9)
        meta.advance(3)
        assert meta.current_quote_index == 9

    def test_decrement_floors_at_zero(self, store):
        meta = Metadata(store)
        meta.decrement_quotes()
        assert meta.num_quotes == 0
