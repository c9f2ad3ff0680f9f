"""
Archive metadata stored alongside the data.

Holds the identifier counter and the number of live quotes in the
``metadata`` tree. The counter only moves forward: the next identifier is
always past every identifier ever stored, including deleted ones.
"""

from .codec import decode_id, encode_id
from .protocol import StoreProtocol

METADATA_TREE = "metadata"

_QUOTE_INDEX_KEY = b"current_quote_index"
_NUM_QUOTES_KEY = b"num_quotes"


class Metadata:
    """Identifier counter and quote count for one store."""

    def __init__(self, store: StoreProtocol):
        self._tree = store.tree(METADATA_TREE)
        self.current_quote_index = 0
        self.num_quotes = 0
        self.read()

    def read(self) -> None:
        """Load values from the store (zeros for a new store)."""
        raw_index = self._tree.get(_QUOTE_INDEX_KEY)
        raw_count = self._tree.get(_NUM_QUOTES_KEY)
        self.current_quote_index = decode_id(raw_index) if raw_index is not None else 0
        self.num_quotes = decode_id(raw_count) if raw_count is not None else 0

    def write(self) -> None:
        self._tree.set(_QUOTE_INDEX_KEY, encode_id(self.current_quote_index))
        self._tree.set(_NUM_QUOTES_KEY, encode_id(self.num_quotes))

    def next_identifier(self) -> int:
        return self.current_quote_index + 1

    def advance(self, identifier: int) -> None:
        """Move the counter up to ``identifier`` if it is behind."""
        self.current_quote_index = max(self.current_quote_index, identifier)

    def increment_quotes(self) -> None:
        self.num_quotes += 1

    def decrement_quotes(self) -> None:
        self.num_quotes = max(0, self.num_quotes - 1)
