"""
Top-level handle for a quote archive.

Resolves where the archive lives, opens its store, and exposes the index
engine's operations together with composed queries (filtering, search,
random pick) and archive maintenance (relocate, clear).
"""

import logging
import os
import random
import re
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from .codec import merge_append
from .config import (
    DB_FILENAME,
    StoreConfig,
    get_config_dir,
    get_default_store_path,
    load_or_create_config,
    save_config,
)
from .errors import QuothError, log_exception
from .index import IndexEngine, relocate
from .kv_store import SqliteStore
from .logging_config import configure_ops_log, enable_debug_mode, remove_ops_log
from .protocol import StoreProtocol
from .stats import MAX_DATE, MIN_DATE, Stats, author_counts, counts_per_month
from .types import Quote

logger = logging.getLogger(__name__)


def open_store(store_path: Path) -> SqliteStore:
    """Open (or create) the archive database in a directory."""
    return SqliteStore(Path(store_path) / DB_FILENAME, merge_operator=merge_append)


def compile_search_pattern(pattern: str) -> re.Pattern:
    """Words in ``pattern`` must appear in order, anywhere, across lines, any case."""
    words = pattern.split()
    if not words:
        raise ValueError("Search pattern is empty")
    return re.compile(".+".join(words), re.IGNORECASE | re.MULTILINE | re.DOTALL)


class Quoth:
    """
    Personal quote archive.

    Example:
        q = Quoth()
        quote = q.add("Huckleberry Finn", "Mark Twain", "humor", text="...")
        q.filter_quotes(author="mark twain", tag="humor")
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[StoreConfig] = None,
        store: Optional[StoreProtocol] = None,
    ) -> None:
        """
        Open an existing archive, or create one on first use.

        Args:
            store_path: Archive directory. Overrides the configured location
                for this handle without changing the config.
            config: Pre-loaded StoreConfig (skips config file discovery).
            store: Injected key-value store (skips opening the SQLite file).
                Must use ``merge_append`` as its merge operator.
        """
        if os.environ.get("QUOTH_VERBOSE") == "1":
            enable_debug_mode()

        self._config = config if config is not None else load_or_create_config(get_config_dir())
        if store_path is not None:
            self._store_path = Path(store_path).expanduser().resolve()
        else:
            self._store_path = get_default_store_path(self._config)

        self._store = store if store is not None else open_store(self._store_path)
        self._ops_log_handler = configure_ops_log(self._store_path)
        try:
            self._engine = IndexEngine(self._store, strict_decode=self._config.strict_decode)
        except Exception:
            remove_ops_log(self._ops_log_handler)
            if store is None:
                self._store.close()
            raise
        logger.debug("Opened archive at %s", self._store_path)

    @property
    def store_path(self) -> Path:
        return self._store_path

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def engine(self) -> IndexEngine:
        return self._engine

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def add(
        self,
        title: str,
        author: str,
        tags: str | Iterable[str] = (),
        *,
        text: str,
        date: Optional[datetime] = None,
    ) -> Quote:
        """
        Record a new quote under the next identifier.

        Args:
            title: Book title (canonicalized)
            author: Author name (canonicalized)
            tags: Comma-separated string or sequence of tags
            text: Quote text, may span lines
            date: When recorded (default: now)

        Returns:
            The stored quote
        """
        quote = Quote.new(self._engine.next_identifier(), title, author, tags, date, text)
        self._engine.add_quote(quote)
        return quote

    def add_quote(self, quote: Quote) -> int:
        """Store a fully-formed quote, e.g. from an import. Returns its identifier."""
        return self._engine.add_quote(quote)

    def delete(self, identifier: int) -> Quote:
        """Delete a quote. Returns the removed quote."""
        return self._engine.delete_quote(identifier)

    def change(
        self,
        identifier: int,
        *,
        title: Optional[str] = None,
        author: Optional[str] = None,
        tags: Optional[str | Iterable[str]] = None,
        text: Optional[str] = None,
        date: Optional[datetime] = None,
    ) -> Quote:
        """
        Edit a quote, keeping fields that are not given.

        Returns:
            The quote as stored after the change
        """
        old = self._engine.records.get(identifier)
        new = Quote.new(
            identifier,
            title if title is not None else old.book,
            author if author is not None else old.author,
            tags if tags is not None else old.tags,
            date if date is not None else old.date,
            text if text is not None else old.text,
        )
        self._engine.change_quote(identifier, new)
        return new

    def change_quote(self, identifier: int, quote: Quote) -> Quote:
        """Replace a quote wholesale. Returns the old quote."""
        return self._engine.change_quote(identifier, quote)

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, identifier: int) -> Quote:
        return self._engine.records.get(identifier)

    def get_many(self, identifiers: Iterable[int]) -> list[Quote]:
        return self._engine.records.get_many(identifiers)

    def quotes_by_author(self, author: str) -> list[Quote]:
        return self.get_many(self._engine.get_author_quotes(author))

    def quotes_by_book(self, book: str) -> list[Quote]:
        return self.get_many(self._engine.get_book_quotes(book))

    def quotes_by_tag(self, tag: str) -> list[Quote]:
        return self.get_many(self._engine.get_tag_quotes(tag))

    def list_quotes(
        self,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> list[Quote]:
        """Every quote in ``[from_date, to_date)``, by identifier."""
        return self._engine.records.list_in_date_range(from_date or MIN_DATE, to_date or MAX_DATE)

    def filter_quotes(
        self,
        *,
        author: Optional[str] = None,
        book: Optional[str] = None,
        tag: Optional[str] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> list[Quote]:
        """
        Quotes matching every given filter, by identifier.

        Author or book (not both) selects through its index; a tag narrows
        that selection, or selects through the tag index on its own. The date
        range ``[from_date, to_date)`` applies last.

        Raises:
            ValueError: Both author and book given
            AuthorNotFound / BookNotFound / TagNotFound: Unknown index key
        """
        if author is not None and book is not None:
            raise ValueError("Filter by author or by book, not both")

        start, end = from_date or MIN_DATE, to_date or MAX_DATE
        if author is not None:
            quotes = self.quotes_by_author(author)
        elif book is not None:
            quotes = self.quotes_by_book(book)
        elif tag is not None:
            quotes = self.quotes_by_tag(tag)
        else:
            return self.list_quotes(start, end)

        if tag is not None:
            quotes = [q for q in quotes if q.has_tag(tag.strip())]
        quotes = [q for q in quotes if q.in_date_range(start, end)]
        return sorted(quotes, key=lambda q: q.identifier)

    def search(self, pattern: str, **filters) -> list[Quote]:
        """Filtered quotes whose text, author, book or tags match ``pattern``."""
        regex = compile_search_pattern(pattern)
        return [q for q in self.filter_quotes(**filters) if regex.search(q.to_text())]

    def random_quote(self, **filters) -> Quote:
        """One quote picked at random from the filtered set."""
        quotes = self.filter_quotes(**filters)
        if not quotes:
            raise QuothError("No quotes match the filters")
        return random.choice(quotes)

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def counts_per_month(self, from_date: Optional[datetime] = None, to_date: Optional[datetime] = None):
        return counts_per_month(self._engine.records, from_date, to_date)

    def author_counts(self) -> dict[str, tuple[int, int]]:
        return author_counts(self._engine)

    def stats(self, from_date: Optional[datetime] = None, to_date: Optional[datetime] = None) -> Stats:
        return Stats.from_engine(self._engine, from_date, to_date)

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def check(self) -> list[str]:
        """Index consistency problems; empty when healthy."""
        return self._engine.check_consistency()

    def clear(self) -> int:
        """Delete every quote and index entry. Returns keys removed."""
        return self._engine.clear()

    def relocate(self, new_dir: str | Path) -> int:
        """
        Move the archive to another directory.

        Copies everything, clears the old store only once the copy is
        complete, then switches this handle and the config to the new
        location.

        Returns:
            Number of keys copied

        Raises:
            ValueError: ``new_dir`` is the current location, or already
                holds an archive
        """
        new_dir = Path(new_dir).expanduser().resolve()
        if new_dir == self._store_path.resolve():
            raise ValueError(f"Archive is already at {new_dir}")

        destination = open_store(new_dir)
        if destination.tree_names():
            destination.close()
            raise ValueError(f"{new_dir} already holds a quote archive")

        try:
            copied = relocate(self._store, destination)
        except Exception as e:
            log_path = log_exception(e, "relocate", self._store_path)
            logger.error("Relocation to %s failed, details in %s", new_dir, log_path)
            destination.clear()
            destination.close()
            raise

        self._store.close()
        remove_ops_log(self._ops_log_handler)
        self._store = destination
        self._store_path = new_dir
        self._ops_log_handler = configure_ops_log(new_dir)
        self._engine = IndexEngine(destination, strict_decode=self._config.strict_decode)

        self._config.store_path = new_dir
        save_config(self._config)
        logger.info("Archive relocated to %s", new_dir)
        return copied

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the store and detach the operations log."""
        if self._store is not None:
            self._store.close()
            self._store = None
        if self._ops_log_handler is not None:
            remove_ops_log(self._ops_log_handler)
            self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
