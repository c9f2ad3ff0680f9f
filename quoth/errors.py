"""
Error types and error logging for quoth.

Operations raise typed errors that carry the offending value, so callers can
inspect what went wrong. Storage errors (``sqlite3.Error``, ``OSError``) are
not wrapped and pass through unchanged.
"""

import logging
import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class QuothError(Exception):
    """Base class for errors raised by quoth operations."""


class RecordNotFound(QuothError, KeyError):
    """No quote is stored under the identifier."""

    def __init__(self, identifier: int):
        self.identifier = identifier
        super().__init__(f"No quote with identifier {identifier}")

    def __str__(self) -> str:
        return self.args[0]


class AuthorNotFound(QuothError, KeyError):
    """The author has no index entry."""

    def __init__(self, author: str):
        self.author = author
        super().__init__(f"Unknown author: {author!r}")

    def __str__(self) -> str:
        return self.args[0]


class BookNotFound(QuothError, KeyError):
    """The book has no index entry."""

    def __init__(self, book: str):
        self.book = book
        super().__init__(f"Unknown book: {book!r}")

    def __str__(self) -> str:
        return self.args[0]


class TagNotFound(QuothError, KeyError):
    """The tag has no index entry."""

    def __init__(self, tag: str):
        self.tag = tag
        super().__init__(f"Unknown tag: {tag!r}")

    def __str__(self) -> str:
        return self.args[0]


class MalformedIndex(QuothError):
    """A stored index value could not be decoded."""

    def __init__(self, value: bytes, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Malformed index value {value!r}: {reason}")


class DuplicateIdentifier(QuothError):
    """A quote is already stored under the identifier."""

    def __init__(self, identifier: int):
        self.identifier = identifier
        super().__init__(f"A quote with identifier {identifier} already exists")


class BookOwnedByOtherAuthor(QuothError, ValueError):
    """The title is already indexed under a different author."""

    def __init__(self, book: str, owner: str, author: str):
        self.book = book
        self.owner = owner
        self.author = author
        super().__init__(f"Book {book!r} belongs to {owner!r}, not {author!r}")


class InvalidKeyText(QuothError, ValueError):
    """Author, book or tag text cannot be used as an index key."""

    def __init__(self, field: str, value: str, reason: str):
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field} {value!r}: {reason}")




# ---------------------------------------------------------------------------
# Error log
# ---------------------------------------------------------------------------

ERROR_LOG_FILENAME = "quoth-errors.log"


def error_log_path(store_path: Optional[Path] = None) -> Path:
    """The archive's error log: the given store, else QUOTH_STORE_PATH, else ~/.quoth."""
    if store_path is None:
        env_store = os.environ.get("QUOTH_STORE_PATH")
        store_path = Path(env_store) if env_store else Path.home() / ".quoth"
    return Path(store_path) / ERROR_LOG_FILENAME


def format_error_entry(exc: BaseException, context: str = "") -> str:
    """One error log entry: a rule, a timestamped header line, the traceback."""
    header = f"[{datetime.now(timezone.utc).isoformat()}]"
    if context:
        header += f" {context}"
    header += f" {type(exc).__name__}"
    body = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return f"\n{'=' * 60}\n{header}\n{body}"


def log_exception(exc: BaseException, context: str = "", store_path: Optional[Path] = None) -> Path:
    """
    Append an exception and its traceback to the error log.

    The file is created owner-only. A log that cannot be written is reported
    on the ``quoth`` logger instead, and the caller's exception is left to
    propagate.

    Args:
        exc: The exception that occurred
        context: Operation name, shown in the entry header
        store_path: Archive directory holding the log

    Returns:
        Path to the error log file
    """
    log_path = error_log_path(store_path)
    entry = format_error_entry(exc, context)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(entry)
    except OSError as write_error:
        logger.warning("Could not write error log %s: %s", log_path, write_error)
    return log_path
