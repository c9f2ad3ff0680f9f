"""
Data types for the quote archive.
"""

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from .codec import encode_value


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalize to an aware UTC datetime. Naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_utc_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware UTC datetime.

    Accepts ISO 8601 with or without offset, and a trailing 'Z'.
    """
    return ensure_utc(datetime.fromisoformat(ts.replace("Z", "+00:00")))


# ---------------------------------------------------------------------------
# Key text
# ---------------------------------------------------------------------------

def camel_case_word(word: str) -> str:
    """Upper-case the first character of a word and lower-case the rest."""
    return word[:1].upper() + word[1:].lower()


def camel_case_phrase(text: str) -> str:
    """Canonical author/book form: "caMel case  Word" -> "Camel Case Word".

    Whitespace runs collapse to single spaces. Applying it twice is a no-op,
    but distinct casings map to the same key.
    """
    return " ".join(camel_case_word(word) for word in text.split())


def split_tags(text: str) -> list[str]:
    """Split a comma-separated tag string, trimming and dropping empties and repeats."""
    return unique_tags(text.split(","))


def unique_tags(tags: Iterable[str]) -> list[str]:
    """Trimmed, non-empty tags in first-seen order."""
    return list(dict.fromkeys(t.strip() for t in tags if t.strip()))


def validate_key_text(field_name: str, value: str) -> None:
    """Reject text that cannot serve as an index key or list entry.

    Raises:
        InvalidKeyText: Empty, or contains the index delimiter
    """
    encode_value(value, field_name)


# ---------------------------------------------------------------------------
# Quote
# ---------------------------------------------------------------------------

@dataclass
class Quote:
    """
    A single attributed, tagged, dated text entry.

    The identifier is assigned once from the archive's counter and never
    changes. Author and book are stored in canonical form.
    """
    identifier: int
    book: str
    author: str
    tags: list[str] = field(default_factory=list)
    date: datetime = field(default_factory=utc_now)
    text: str = ""

    @classmethod
    def new(
        cls,
        identifier: int,
        title: str,
        author: str,
        tags: str | Iterable[str] = (),
        date: Optional[datetime] = None,
        text: str = "",
    ) -> "Quote":
        """Build a quote from user-entered fields, canonicalizing as it goes.

        ``tags`` may be a comma-separated string or a sequence.
        """
        tag_list = split_tags(tags) if isinstance(tags, str) else unique_tags(tags)
        return cls(
            identifier=identifier,
            book=camel_case_phrase(title),
            author=camel_case_phrase(author),
            tags=tag_list,
            date=ensure_utc(date) if date is not None else utc_now(),
            text=text,
        )

    def canonical(self) -> "Quote":
        """Copy with canonical author/book, unique tags and a UTC date."""
        return replace(
            self,
            book=camel_case_phrase(self.book),
            author=camel_case_phrase(self.author),
            tags=unique_tags(self.tags),
            date=ensure_utc(self.date),
        )

    def validate(self) -> None:
        """Check every index key this quote produces."""
        if self.identifier < 0:
            raise ValueError(f"Identifier must be non-negative: {self.identifier}")
        validate_key_text("author", self.author)
        validate_key_text("book", self.book)
        for tag in self.tags:
            validate_key_text("tag", tag)

    def in_date_range(self, from_date: datetime, to_date: datetime) -> bool:
        """True if recorded in ``[from_date, to_date)``."""
        return ensure_utc(from_date) <= self.date < ensure_utc(to_date)

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    def to_text(self) -> str:
        """Plain-text form: text, author, book and tags, one per line."""
        return f"{self.text}\n{self.author}\n{self.book}\n{','.join(self.tags)}"

    def __str__(self) -> str:
        preview = self.text if len(self.text) <= 50 else self.text[:47] + "..."
        return f"#{self.identifier} {preview!r} ({self.author}, {self.book})"

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "book": self.book,
            "author": self.author,
            "tags": list(self.tags),
            "date": self.date.isoformat(),
            "text": self.text,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Quote":
        return cls(
            identifier=int(data["identifier"]),
            book=data["book"],
            author=data["author"],
            tags=list(data.get("tags", [])),
            date=parse_utc_timestamp(data["date"]),
            text=data.get("text", ""),
        )

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), ensure_ascii=False).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Quote":
        return cls.from_dict(json.loads(raw.decode("utf-8")))
