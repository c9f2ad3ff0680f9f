"""
Protocol definitions for the key-value storage backend.

The index engine and record store only need an ordered byte-key/byte-value
store split into named trees, with atomic single-key operations and a merge
hook. ``SqliteStore`` is the local implementation; tests wrap or replace it.
"""

from typing import Iterator, Optional, Protocol, runtime_checkable


@runtime_checkable
class TreeProtocol(Protocol):
    """One named keyspace inside a store."""

    name: str

    def get(self, key: bytes) -> Optional[bytes]: ...

    def set(self, key: bytes, value: bytes) -> None: ...

    def delete(self, key: bytes) -> Optional[bytes]: ...

    def merge(self, key: bytes, value: bytes) -> None: ...

    def iterate(self) -> Iterator[tuple[bytes, bytes]]: ...

    def clear(self) -> int: ...

    def __contains__(self, key: object) -> bool: ...

    def __len__(self) -> int: ...


@runtime_checkable
class StoreProtocol(Protocol):
    """A set of named trees sharing one merge operator."""

    def tree(self, name: str) -> TreeProtocol: ...

    def tree_names(self) -> list[str]: ...

    def clear(self) -> int: ...

    def close(self) -> None: ...
