"""
Property tests: random add/delete/change sequences keep the indices in
step with the records.

Titles come from two pools: books scoped to one author, and a few titles
any author may try to claim. A claimed title stays with its author until
its last quote goes, so attempts by another author must be refused without
touching the store.
"""

from datetime import datetime, timezone

import pytest
from hypothesis import given, settings, strategies as st

from quoth.codec import merge_append
from quoth.errors import AuthorNotFound, BookNotFound, BookOwnedByOtherAuthor, TagNotFound
from quoth.index import IndexEngine
from quoth.kv_store import SqliteStore
from quoth.types import Quote, camel_case_phrase

AUTHORS = ["mark twain", "Jane Austen", "ursula le GUIN"]
SHARED_TITLES = ["collected essays", "Selected Letters"]
TAGS = ["humor", "river", "Wit", "war"]

books = st.sampled_from([0, 1] + SHARED_TITLES)

operations = st.lists(
    st.tuples(
        st.sampled_from(["add", "add", "delete", "change"]),
        st.integers(min_value=0, max_value=50),
        st.sampled_from(AUTHORS),
        books,
        st.lists(st.sampled_from(TAGS), max_size=3),
    ),
    max_size=30,
)


def _title(author, book):
    return f"{author} book {book}" if isinstance(book, int) else book


def _make(identifier, author, book, tags):
    return Quote(
        identifier=identifier,
        book=_title(author, book),
        author=author,
        tags=list(tags),
        date=datetime(2024, 1 + identifier % 12, 1, tzinfo=timezone.utc),
        text=f"quote {identifier}",
    )


def _snapshot(store):
    return {name: list(store.tree(name).iterate()) for name in store.tree_names()}


def _owner(model, book, excluding=None):
    for identifier, (author, title, _) in model.items():
        if title == book and identifier != excluding:
            return author
    return None


def _apply(engine, quote, moving):
    if moving is None:
        engine.add_quote(quote)
    else:
        engine.change_quote(moving, quote)


def _run(engine, ops, model, issued):
    """Apply ``ops``, mirroring live quotes in ``model``: id -> (author, book, tags)."""
    previous_counter = engine.metadata.current_quote_index
    for kind, pick, author, book, tags in ops:
        live = sorted(model)
        if kind == "delete" and live:
            identifier = live[pick % len(live)]
            engine.delete_quote(identifier)
            del model[identifier]
        else:
            if kind == "change" and live:
                identifier = moving = live[pick % len(live)]
            else:
                identifier = engine.next_identifier()
                assert identifier not in issued
                moving = None

            quote = _make(identifier, author, book, tags)
            c = quote.canonical()
            owner = _owner(model, c.book, excluding=moving)
            if owner is not None and owner != c.author:
                before = _snapshot(engine.store)
                with pytest.raises(BookOwnedByOtherAuthor):
                    _apply(engine, quote, moving)
                assert _snapshot(engine.store) == before
            else:
                _apply(engine, quote, moving)
                issued.add(identifier)
                model[identifier] = (c.author, c.book, set(c.tags))

        assert engine.metadata.current_quote_index >= previous_counter
        previous_counter = engine.metadata.current_quote_index
        assert engine.check_consistency() == []


def _expected(model, position):
    grouped: dict[str, set[int]] = {}
    for identifier, fields in model.items():
        keys = fields[position] if position == 2 else {fields[position]}
        for key in keys:
            grouped.setdefault(key, set()).add(identifier)
    return grouped


@settings(max_examples=80, deadline=None)
@given(operations)
def test_indices_match_records(ops):
    with SqliteStore(":memory:", merge_operator=merge_append) as store:
        engine = IndexEngine(store)
        model: dict[int, tuple] = {}
        _run(engine, ops, model, set())

        by_author = _expected(model, 0)
        by_book = _expected(model, 1)
        by_tag = _expected(model, 2)

        assert set(engine.list_authors()) == set(by_author)
        assert set(engine.list_books()) == set(by_book)
        assert set(engine.list_tags()) == set(by_tag)
        for author, ids in by_author.items():
            assert set(engine.get_author_quotes(author)) == ids
            assert set(engine.get_author_books(author)) == {
                model[i][1] for i in ids
            }
        for book, ids in by_book.items():
            assert set(engine.get_book_quotes(book)) == ids
            assert len({model[i][0] for i in ids}) == 1
            assert engine.get_book_author(book) == model[min(ids)][0]
        for tag, ids in by_tag.items():
            assert set(engine.get_tag_quotes(tag)) == ids

        for author in AUTHORS:
            if camel_case_phrase(author) not in by_author:
                with pytest.raises(AuthorNotFound):
                    engine.get_author_quotes(author)
        assert engine.metadata.num_quotes == len(model)
        assert sorted(engine.records.identifiers()) == sorted(model)


@settings(max_examples=40, deadline=None)
@given(operations, st.integers(min_value=0, max_value=50),
       st.sampled_from(AUTHORS), st.integers(min_value=0, max_value=1),
       st.lists(st.sampled_from(TAGS), max_size=3))
def test_change_is_idempotent(ops, pick, author, book_no, tags):
    with SqliteStore(":memory:", merge_operator=merge_append) as store:
        engine = IndexEngine(store)
        model: dict[int, tuple] = {}
        _run(engine, ops + [("add", 0, author, book_no, tags)], model, set())

        live = sorted(model)
        identifier = live[pick % len(live)]
        quote = _make(identifier, author, book_no, tags)
        engine.change_quote(identifier, quote)
        once = _snapshot(store)
        engine.change_quote(identifier, quote)
        assert _snapshot(store) == once

        c = quote.canonical()
        assert identifier in engine.get_author_quotes(c.author)
        assert engine.get_author_quotes(c.author) == sorted(engine.get_author_quotes(c.author))
        assert engine.get_book_quotes(c.book) == sorted(engine.get_book_quotes(c.book))
        for tag in c.tags:
            assert engine.get_tag_quotes(tag) == sorted(engine.get_tag_quotes(tag))


@settings(max_examples=40, deadline=None)
@given(operations)
def test_deleting_everything_empties_indices(ops):
    with SqliteStore(":memory:", merge_operator=merge_append) as store:
        engine = IndexEngine(store)
        model: dict[int, tuple] = {}
        _run(engine, ops, model, set())
        counter = engine.metadata.current_quote_index

        for identifier in sorted(model):
            engine.delete_quote(identifier)
            assert engine.check_consistency() == []

        assert engine.list_authors() == []
        assert engine.list_books() == []
        assert engine.list_tags() == []
        assert list(engine.iter_author_books()) == []
        assert len(store.tree("book_author")) == 0
        assert engine.metadata.current_quote_index == counter
        titles = [_title(a, n) for a in AUTHORS for n in (0, 1)] + SHARED_TITLES
        for title in titles:
            with pytest.raises(BookNotFound):
                engine.get_book_quotes(title)
        for tag in TAGS:
            with pytest.raises(TagNotFound):
                engine.get_tag_quotes(tag)
