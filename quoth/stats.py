"""
Aggregate counts over the archive.

- ``counts_per_month``: quotes and books per calendar month in a date range
- ``author_counts``: books and quotes per author, from the author indices
- ``Stats``: both, laid out as gap-free month series and an author table

A book is counted once, in the month of its latest quote inside the range.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

from .index import IndexEngine
from .record_store import RecordStore

MIN_DATE = datetime.min.replace(tzinfo=timezone.utc)
MAX_DATE = datetime.max.replace(tzinfo=timezone.utc)


def month_start(dt: datetime | date) -> date:
    """First day of the month containing ``dt``."""
    return date(dt.year, dt.month, 1)


def format_month(month: date) -> str:
    """Short label, e.g. ``date(2024, 3, 1)`` -> ``"3-24"``."""
    return f"{month.month}-{month.year % 100:02d}"


def months_between(first: date, last: date) -> list[date]:
    """Month starts from ``first``'s month through ``last``'s month, inclusive."""
    months = []
    year, month = first.year, first.month
    while (year, month) <= (last.year, last.month):
        months.append(date(year, month, 1))
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return months


def monthly_series(counts: dict[date, int], months: list[date]) -> list[tuple[date, int]]:
    """Counts for each month in ``months``, zero where missing."""
    return [(m, counts.get(m, 0)) for m in months]


def counts_per_month(
    records: RecordStore,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
) -> tuple[dict[date, int], dict[date, int]]:
    """
    Count quotes and books per month for quotes dated in ``[from_date, to_date)``.

    Args:
        records: Record store to scan
        from_date: Inclusive lower bound (default: no bound)
        to_date: Exclusive upper bound (default: no bound)

    Returns:
        (quote counts, book counts), each keyed by month start. Months with
        no quotes are absent.
    """
    from_date = from_date or MIN_DATE
    to_date = to_date or MAX_DATE
    quote_counts: Counter[date] = Counter()
    book_latest: dict[str, datetime] = {}
    for quote in records.iter_quotes():
        if not quote.in_date_range(from_date, to_date):
            continue
        quote_counts[month_start(quote.date)] += 1
        latest = book_latest.get(quote.book)
        if latest is None or quote.date > latest:
            book_latest[quote.book] = quote.date
    book_counts = Counter(month_start(d) for d in book_latest.values())
    return dict(quote_counts), dict(book_counts)


def author_counts(engine: IndexEngine) -> dict[str, tuple[int, int]]:
    """
    Books and quotes per author, read from the author indices.

    Returns:
        author -> (book count, quote count). An author missing from one
        index counts zero on that side.
    """
    books = {author: len(titles) for author, titles in engine.iter_author_books()}
    quotes = {author: len(ids) for author, ids in engine.iter_author_quotes()}
    return {
        author: (books.get(author, 0), quotes.get(author, 0))
        for author in sorted(books.keys() | quotes.keys())
    }


@dataclass
class Stats:
    """Snapshot of archive statistics, ready for display."""
    quote_counts: list[tuple[str, int]] = field(default_factory=list)
    book_counts: list[tuple[str, int]] = field(default_factory=list)
    max_quotes: int = 0
    max_books: int = 0
    author_table: list[tuple[str, int, int]] = field(default_factory=list)
    num_quotes: int = 0

    @classmethod
    def from_engine(
        cls,
        engine: IndexEngine,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> "Stats":
        """Build month series spanning the first to last quoted month, and the author table."""
        quote_counts, book_counts = counts_per_month(engine.records, from_date, to_date)
        table = [(a, b, q) for a, (b, q) in author_counts(engine).items()]
        if not quote_counts:
            return cls(author_table=table, num_quotes=engine.metadata.num_quotes)

        months = months_between(min(quote_counts), max(quote_counts))
        return cls(
            quote_counts=[(format_month(m), n) for m, n in monthly_series(quote_counts, months)],
            book_counts=[(format_month(m), n) for m, n in monthly_series(book_counts, months)],
            max_quotes=max(quote_counts.values()),
            max_books=max(book_counts.values()),
            author_table=table,
            num_quotes=engine.metadata.num_quotes,
        )
