"""
Secondary indices over the quote records.

Five trees let quotes be found without scanning every record:

- ``author_quote``: author -> quote identifiers
- ``author_book``:  author -> book titles
- ``book_quote``:   book -> quote identifiers
- ``book_author``:  book -> author
- ``tag_quote``:    tag -> quote identifiers

Lists grow by store-level merge-append, so they are kept in insertion order.
``change_quote`` re-sorts the lists it touches; nothing else sorts them, so
``get_*_quotes`` results are only guaranteed ascending right after a change
to that key.

Removing the last identifier from a list removes the key: an author, book or
tag entry is never present with an empty list. When an author loses its last
quote, every book of that author goes with it. A title belongs to one
author at a time; adding it under another author is refused.

Writes touch several keys with no transaction. An interrupted add, delete or
change can leave the indices out of step with the records until repaired;
``check_consistency`` reports such damage.
"""

import logging
from dataclasses import replace
from typing import Iterator, Optional, Sequence

from .codec import (
    decode_ids,
    decode_values,
    encode_id,
    encode_ids,
    encode_value,
    encode_values,
    merge_append,
)
from .errors import (
    AuthorNotFound,
    BookNotFound,
    BookOwnedByOtherAuthor,
    MalformedIndex,
    TagNotFound,
)
from .metadata import Metadata
from .protocol import StoreProtocol, TreeProtocol
from .record_store import RecordStore
from .types import Quote, camel_case_phrase

logger = logging.getLogger(__name__)

AUTHOR_QUOTE_TREE = "author_quote"
AUTHOR_BOOK_TREE = "author_book"
BOOK_QUOTE_TREE = "book_quote"
BOOK_AUTHOR_TREE = "book_author"
TAG_QUOTE_TREE = "tag_quote"

INDEX_TREES = (
    AUTHOR_QUOTE_TREE,
    AUTHOR_BOOK_TREE,
    BOOK_QUOTE_TREE,
    BOOK_AUTHOR_TREE,
    TAG_QUOTE_TREE,
)


def insertion_sort(values: Sequence[int]) -> list[int]:
    """Sort ascending. Linear on nearly-sorted input, which index lists are."""
    output = list(values)
    for slot in range(1, len(output)):
        value = output[slot]
        position = slot - 1
        while position >= 0 and output[position] > value:
            output[position + 1] = output[position]
            position -= 1
        output[position + 1] = value
    return output


class IndexEngine:
    """
    Keeps the record store and the five index trees in step.

    The store must be opened with ``merge_append`` as its merge operator.

    Example:
        store = SqliteStore(path, merge_operator=merge_append)
        engine = IndexEngine(store)
        engine.add_quote(Quote.new(engine.next_identifier(), "Huckleberry Finn",
                                   "Mark Twain", "humor", text="..."))
        engine.get_author_quotes("mark twain")
    """

    def __init__(self, store: StoreProtocol, *, strict_decode: bool = True):
        """
        Args:
            store: Key-value store holding records, indices and metadata
            strict_decode: Fail on corrupt identifier lists instead of
                skipping unparsable entries
        """
        if getattr(store, "merge_operator", merge_append) is None:
            raise ValueError("Index trees need a merge operator; open the store with merge_append")
        self._store = store
        self._strict = strict_decode
        self.records = RecordStore(store)
        self.metadata = Metadata(store)
        self.author_quote_tree: TreeProtocol = store.tree(AUTHOR_QUOTE_TREE)
        self.author_book_tree: TreeProtocol = store.tree(AUTHOR_BOOK_TREE)
        self.book_quote_tree: TreeProtocol = store.tree(BOOK_QUOTE_TREE)
        self.book_author_tree: TreeProtocol = store.tree(BOOK_AUTHOR_TREE)
        self.tag_quote_tree: TreeProtocol = store.tree(TAG_QUOTE_TREE)

    @property
    def store(self) -> StoreProtocol:
        return self._store

    def next_identifier(self) -> int:
        """Identifier to give the next new quote."""
        return self.metadata.next_identifier()

    def _read_ids(self, tree: TreeProtocol, key: bytes) -> Optional[list[int]]:
        raw = tree.get(key)
        if raw is None:
            return None
        return decode_ids(raw, strict=self._strict)

    def _write_ids(self, tree: TreeProtocol, key: bytes, ids: list[int]) -> None:
        tree.set(key, encode_ids(ids))

    def _set_sorted(self, tree: TreeProtocol, key: bytes) -> None:
        ids = self._read_ids(tree, key)
        if ids is not None:
            self._write_ids(tree, key, insertion_sort(ids))
            logger.debug("Re-sorted %s[%r]", tree.name, key)

    # -------------------------------------------------------------------------
    # Indexing
    # -------------------------------------------------------------------------

    def _check_book_owner(self, quote: Quote, moving: Optional[int] = None) -> None:
        """
        Refuse a title already indexed under another author.

        ``moving`` is the identifier being changed: a book whose only quote is
        that one is released by the change and may go to any author.
        """
        book_key = quote.book.encode("utf-8")
        owner = self.book_author_tree.get(book_key)
        if owner is None or owner == quote.author.encode("utf-8"):
            return
        if moving is not None and self._read_ids(self.book_quote_tree, book_key) == [moving]:
            return
        raise BookOwnedByOtherAuthor(quote.book, owner.decode("utf-8"), quote.author)

    def _add_book(self, author_key: bytes, book_key: bytes, index_key: bytes) -> None:
        self.author_book_tree.merge(author_key, book_key)
        self.book_quote_tree.set(book_key, index_key)
        self.book_author_tree.set(book_key, author_key)

    def _index(self, quote: Quote) -> None:
        """Link a stored quote into the author, book and tag trees."""
        author_key = encode_value(quote.author, "author")
        book_key = encode_value(quote.book, "book")
        index_key = encode_id(quote.identifier)

        if self.author_quote_tree.get(author_key) is not None:
            self.author_quote_tree.merge(author_key, index_key)
            raw_books = self.author_book_tree.get(author_key)
            if raw_books is None:
                raise MalformedIndex(author_key, "author has quotes but no books")
            if quote.book in decode_values(raw_books):
                self.book_quote_tree.merge(book_key, index_key)
            else:
                self._add_book(author_key, book_key, index_key)
        else:
            self.author_quote_tree.set(author_key, index_key)
            self._add_book(author_key, book_key, index_key)

        for tag in quote.tags:
            self.tag_quote_tree.merge(encode_value(tag, "tag"), index_key)
        logger.debug("Indexed quote #%d", quote.identifier)

    def _delete_book(self, book_key: bytes) -> None:
        self.book_quote_tree.delete(book_key)
        self.book_author_tree.delete(book_key)

    def _delete_author(self, author: str, author_key: bytes) -> None:
        self.author_quote_tree.delete(author_key)
        raw_books = self.author_book_tree.get(author_key)
        if raw_books is None:
            raise AuthorNotFound(author)
        for book in decode_values(raw_books):
            self._delete_book(book.encode("utf-8"))
        self.author_book_tree.delete(author_key)
        logger.info("Removed author %r and their books", author)

    def _delete_from_book(self, author_key: bytes, book: str, identifier: int) -> None:
        book_key = book.encode("utf-8")
        ids = self._read_ids(self.book_quote_tree, book_key)
        if ids is None:
            logger.warning("Book %r had no index entry, removing it from %r", book, author_key.decode("utf-8"))
            ids = []
        remaining = [i for i in ids if i != identifier]
        if remaining:
            self._write_ids(self.book_quote_tree, book_key, remaining)
            return

        self._delete_book(book_key)
        books = decode_values(self.author_book_tree.get(author_key) or b"")
        books = [b for b in books if b != book]
        if books:
            self.author_book_tree.set(author_key, encode_values(books))
        else:
            self.author_book_tree.delete(author_key)
        logger.info("Removed book %r", book)

    def _delete_from_tag(self, tag: str, identifier: int) -> None:
        tag_key = tag.encode("utf-8")
        ids = self._read_ids(self.tag_quote_tree, tag_key)
        if ids is None:
            raise TagNotFound(tag)
        remaining = [i for i in ids if i != identifier]
        if remaining:
            self._write_ids(self.tag_quote_tree, tag_key, remaining)
        else:
            self.tag_quote_tree.delete(tag_key)
            logger.info("Removed tag %r", tag)

    def _unindex(self, quote: Quote) -> None:
        """Unlink a quote from the author, book and tag trees."""
        author_key = quote.author.encode("utf-8")
        ids = self._read_ids(self.author_quote_tree, author_key)
        if ids is None:
            raise AuthorNotFound(quote.author)
        remaining = [i for i in ids if i != quote.identifier]
        if remaining:
            self._write_ids(self.author_quote_tree, author_key, remaining)
            self._delete_from_book(author_key, quote.book, quote.identifier)
        else:
            self._delete_author(quote.author, author_key)

        for tag in quote.tags:
            self._delete_from_tag(tag, quote.identifier)
        logger.debug("Unindexed quote #%d", quote.identifier)

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def add_quote(self, quote: Quote) -> int:
        """
        Store a quote and index it.

        Author and book are canonicalized first.

        Returns:
            The quote's identifier

        Raises:
            DuplicateIdentifier: The identifier is already in use
            InvalidKeyText: Empty author/book/tag, or one containing ';'
            BookOwnedByOtherAuthor: The book is indexed under another author
        """
        quote = quote.canonical()
        quote.validate()
        self._check_book_owner(quote)
        self.records.insert(quote)
        self._index(quote)
        self.metadata.advance(quote.identifier)
        self.metadata.increment_quotes()
        self.metadata.write()
        logger.info("Added quote #%d (%s, %s)", quote.identifier, quote.author, quote.book)
        return quote.identifier

    def delete_quote(self, identifier: int) -> Quote:
        """
        Delete a quote and drop it from every index.

        Returns:
            The removed quote

        Raises:
            RecordNotFound: No quote with this identifier
        """
        quote = self.records.delete(identifier)
        self._unindex(quote)
        self.metadata.decrement_quotes()
        self.metadata.write()
        logger.info("Deleted quote #%d", identifier)
        return quote

    def change_quote(self, identifier: int, new_quote: Quote) -> Quote:
        """
        Replace a quote's contents, keeping its identifier.

        The old quote is unindexed and the new one indexed as if freshly
        added, then the author, book and tag lists it lands in are re-sorted.
        The counter does not move.

        Returns:
            The quote as it was before the change

        Raises:
            RecordNotFound: No quote with this identifier
            BookOwnedByOtherAuthor: The new book is indexed under another
                author and is not released by this change
        """
        new_quote = replace(new_quote.canonical(), identifier=identifier)
        new_quote.validate()
        old_quote = self.records.get(identifier)
        self._check_book_owner(new_quote, moving=identifier)

        self._unindex(old_quote)
        self._index(new_quote)
        self._set_sorted(self.author_quote_tree, new_quote.author.encode("utf-8"))
        self._set_sorted(self.book_quote_tree, new_quote.book.encode("utf-8"))
        for tag in new_quote.tags:
            self._set_sorted(self.tag_quote_tree, tag.encode("utf-8"))
        self.records.replace(new_quote)
        logger.info("Changed quote #%d", identifier)
        return old_quote

    def clear(self) -> int:
        """Remove every record, index entry and the counter."""
        removed = self._store.clear()
        self.metadata.read()
        logger.info("Cleared store (%d keys)", removed)
        return removed

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get_author_quotes(self, author: str) -> list[int]:
        """Identifiers of an author's quotes. Raises ``AuthorNotFound``."""
        author = camel_case_phrase(author)
        ids = self._read_ids(self.author_quote_tree, author.encode("utf-8"))
        if ids is None:
            raise AuthorNotFound(author)
        return ids

    def get_book_quotes(self, book: str) -> list[int]:
        """Identifiers of a book's quotes. Raises ``BookNotFound``."""
        book = camel_case_phrase(book)
        ids = self._read_ids(self.book_quote_tree, book.encode("utf-8"))
        if ids is None:
            raise BookNotFound(book)
        return ids

    def get_tag_quotes(self, tag: str) -> list[int]:
        """Identifiers of quotes with a tag. Tags are not case-folded."""
        tag = tag.strip()
        ids = self._read_ids(self.tag_quote_tree, tag.encode("utf-8"))
        if ids is None:
            raise TagNotFound(tag)
        return ids

    def get_author_books(self, author: str) -> list[str]:
        author = camel_case_phrase(author)
        raw = self.author_book_tree.get(author.encode("utf-8"))
        if raw is None:
            raise AuthorNotFound(author)
        return decode_values(raw)

    def get_book_author(self, book: str) -> str:
        book = camel_case_phrase(book)
        raw = self.book_author_tree.get(book.encode("utf-8"))
        if raw is None:
            raise BookNotFound(book)
        return raw.decode("utf-8")

    def list_authors(self) -> list[str]:
        return [key.decode("utf-8") for key, _ in self.author_quote_tree.iterate()]

    def list_books(self) -> list[str]:
        return [key.decode("utf-8") for key, _ in self.book_quote_tree.iterate()]

    def list_tags(self) -> list[str]:
        return [key.decode("utf-8") for key, _ in self.tag_quote_tree.iterate()]

    def iter_author_quotes(self) -> Iterator[tuple[str, list[int]]]:
        for key, raw in self.author_quote_tree.iterate():
            yield key.decode("utf-8"), decode_ids(raw, strict=self._strict)

    def iter_author_books(self) -> Iterator[tuple[str, list[str]]]:
        for key, raw in self.author_book_tree.iterate():
            yield key.decode("utf-8"), decode_values(raw)

    # -------------------------------------------------------------------------
    # Consistency
    # -------------------------------------------------------------------------

    def check_consistency(self) -> list[str]:
        """
        Compare the indices against the records.

        Returns:
            Descriptions of every mismatch found; empty when consistent
        """
        problems: list[str] = []
        quotes = {q.identifier: q for q in self.records.iter_quotes()}

        def read_tree(tree: TreeProtocol) -> dict[str, list[int]]:
            entries = {}
            for key, raw in tree.iterate():
                name = key.decode("utf-8")
                try:
                    entries[name] = decode_ids(raw, strict=True)
                except MalformedIndex as e:
                    problems.append(f"{tree.name}[{name!r}]: {e.reason}")
                    entries[name] = decode_ids(raw, strict=False)
                if not entries[name]:
                    problems.append(f"{tree.name}[{name!r}]: empty entry")
            return entries

        author_quotes = read_tree(self.author_quote_tree)
        book_quotes = read_tree(self.book_quote_tree)
        tag_quotes = read_tree(self.tag_quote_tree)
        author_books = dict(self.iter_author_books())
        book_authors = {
            key.decode("utf-8"): raw.decode("utf-8")
            for key, raw in self.book_author_tree.iterate()
        }

        # Every indexed identifier has a record
        for tree_name, entries in (
            (AUTHOR_QUOTE_TREE, author_quotes),
            (BOOK_QUOTE_TREE, book_quotes),
            (TAG_QUOTE_TREE, tag_quotes),
        ):
            for name, ids in entries.items():
                for i in ids:
                    if i not in quotes:
                        problems.append(f"{tree_name}[{name!r}]: no record for #{i}")

        # Every record is indexed where its fields say
        for i, quote in quotes.items():
            if i not in author_quotes.get(quote.author, []):
                problems.append(f"#{i}: missing from {AUTHOR_QUOTE_TREE}[{quote.author!r}]")
            if i not in book_quotes.get(quote.book, []):
                problems.append(f"#{i}: missing from {BOOK_QUOTE_TREE}[{quote.book!r}]")
            for tag in quote.tags:
                if i not in tag_quotes.get(tag, []):
                    problems.append(f"#{i}: missing from {TAG_QUOTE_TREE}[{tag!r}]")
            if book_authors.get(quote.book) != quote.author:
                problems.append(f"#{i}: {BOOK_AUTHOR_TREE}[{quote.book!r}] is not {quote.author!r}")
        if self.metadata.current_quote_index < max(quotes, default=0):
            problems.append("identifier counter is behind the stored records")

        # Author and book trees agree with each other
        if set(author_books) != set(author_quotes):
            problems.append(f"{AUTHOR_BOOK_TREE} and {AUTHOR_QUOTE_TREE} have different authors")
        if set(book_authors) != set(book_quotes):
            problems.append(f"{BOOK_AUTHOR_TREE} and {BOOK_QUOTE_TREE} have different books")
        for author, books in author_books.items():
            via_books = set()
            for book in books:
                via_books.update(book_quotes.get(book, []))
            if via_books != set(author_quotes.get(author, [])):
                problems.append(f"{author!r}: book quotes do not match author quotes")

        return problems


def relocate(source: StoreProtocol, destination: StoreProtocol) -> int:
    """
    Copy every key of every tree to another store, then clear the source.

    The source is cleared only after the whole copy succeeds; a failure
    part-way leaves it untouched.

    Returns:
        Number of keys copied
    """
    copied = 0
    for name in source.tree_names():
        target = destination.tree(name)
        for key, value in source.tree(name).iterate():
            target.set(key, value)
            copied += 1
    source.clear()
    logger.info("Relocated %d keys", copied)
    return copied
