from __future__ import annotations

from typing import Iterator, Sequence, TypeVar

T = TypeVar("T")


def iter_chunks(keys: Sequence[T], max_chunk_size: int) -> Iterator[Sequence[T]]:
    """
    Consecutive slices of `keys`, each at most `max_chunk_size` long.
    Only the last one may be shorter. Empty input yields nothing.
    """
    if max_chunk_size <= 0:
        raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")
    for start in range(0, len(keys), max_chunk_size):
        yield keys[start:start + max_chunk_size]
