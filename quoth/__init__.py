"""
Quoth: a personal archive of quotes.

Each quote is attributed to an author and a book, tagged, and dated.
Quotes can be retrieved by author, book, tag or date range through
secondary indices kept in step with the records.

Quick Start:
    from quoth import Quoth

    q = Quoth()  # uses ~/.quoth unless configured otherwise
    q.add("Huckleberry Finn", "Mark Twain", "humor", text="...")
    q.filter_quotes(author="mark twain")

Environment Variables:
    QUOTH_CONFIG_DIR  - Directory holding quoth.toml (default ~/.quoth)
    QUOTH_STORE_PATH  - Override the archive location
    QUOTH_VERBOSE     - Set to 1 for debug logging on stderr
"""

from .api import Quoth
from .errors import (
    AuthorNotFound,
    BookNotFound,
    BookOwnedByOtherAuthor,
    DuplicateIdentifier,
    InvalidKeyText,
    MalformedIndex,
    QuothError,
    RecordNotFound,
    TagNotFound,
)
from .index import IndexEngine
from .kv_store import SqliteStore
from .stats import Stats
from .types import Quote, camel_case_phrase

__version__ = "0.1.0"
__all__ = [
    "Quoth",
    "Quote",
    "IndexEngine",
    "SqliteStore",
    "Stats",
    "camel_case_phrase",
    "QuothError",
    "RecordNotFound",
    "AuthorNotFound",
    "BookNotFound",
    "BookOwnedByOtherAuthor",
    "TagNotFound",
    "MalformedIndex",
    "DuplicateIdentifier",
    "InvalidKeyText",
]
