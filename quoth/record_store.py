"""
Primary quote records, keyed by identifier.

One entry per quote in the ``quotes`` tree: the decimal identifier maps to
the quote serialized as JSON. The index engine is the only writer; readers
use ``get``/``get_many`` after an index lookup, or ``iter_quotes`` for
full scans.
"""

from datetime import datetime
from typing import Iterable, Iterator, Optional

from .codec import decode_id, encode_id
from .errors import DuplicateIdentifier, RecordNotFound
from .protocol import StoreProtocol
from .types import Quote

QUOTES_TREE = "quotes"


class RecordStore:
    """Maps quote identifiers to stored ``Quote`` records."""

    def __init__(self, store: StoreProtocol):
        self._tree = store.tree(QUOTES_TREE)

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def insert(self, quote: Quote) -> None:
        """
        Store a new quote.

        Raises:
            DuplicateIdentifier: A quote already uses this identifier
        """
        key = encode_id(quote.identifier)
        if key in self._tree:
            raise DuplicateIdentifier(quote.identifier)
        self._tree.set(key, quote.to_bytes())

    def replace(self, quote: Quote) -> None:
        """Overwrite the stored quote with the same identifier."""
        key = encode_id(quote.identifier)
        if key not in self._tree:
            raise RecordNotFound(quote.identifier)
        self._tree.set(key, quote.to_bytes())

    def delete(self, identifier: int) -> Quote:
        """
        Remove a quote.

        Returns:
            The removed quote

        Raises:
            RecordNotFound: No quote with this identifier
        """
        raw = self._tree.delete(encode_id(identifier))
        if raw is None:
            raise RecordNotFound(identifier)
        return Quote.from_bytes(raw)

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def find(self, identifier: int) -> Optional[Quote]:
        """Get a quote, or None if absent."""
        raw = self._tree.get(encode_id(identifier))
        return None if raw is None else Quote.from_bytes(raw)

    def get(self, identifier: int) -> Quote:
        """Get a quote, raising ``RecordNotFound`` if absent."""
        quote = self.find(identifier)
        if quote is None:
            raise RecordNotFound(identifier)
        return quote

    def get_many(self, identifiers: Iterable[int]) -> list[Quote]:
        """
        Batch fetch in the order given.

        Raises:
            RecordNotFound: For the first identifier with no record
        """
        return [self.get(i) for i in identifiers]

    def exists(self, identifier: int) -> bool:
        return encode_id(identifier) in self._tree

    def identifiers(self) -> list[int]:
        """All stored identifiers, ascending."""
        return sorted(decode_id(key) for key in self._tree.keys())

    def iter_quotes(self) -> Iterator[Quote]:
        """Every stored quote, in store order."""
        for _, raw in self._tree.iterate():
            yield Quote.from_bytes(raw)

    def list_in_date_range(self, from_date: datetime, to_date: datetime) -> list[Quote]:
        """Quotes recorded in ``[from_date, to_date)``, sorted by identifier."""
        quotes = [q for q in self.iter_quotes() if q.in_date_range(from_date, to_date)]
        return sorted(quotes, key=lambda q: q.identifier)

    def count(self) -> int:
        return len(self._tree)
