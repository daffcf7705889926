from __future__ import annotations

import random
from typing import List, NamedTuple, Sequence

from .statuses import Status, assign_status


# Один upsert на запись (serial)
UPSERT_ONE_SQL = """
INSERT INTO ip_statuses (ip, status)
VALUES ($1, $2)
ON CONFLICT ON CONSTRAINT ip_statuses_pkey DO UPDATE SET status = EXCLUDED.status;
"""

# Один bulk upsert на чанк
BULK_UPSERT_SQL = """
INSERT INTO ip_statuses (ip, status)
SELECT *
FROM unnest(
  $1::text[],
  $2::text[]
)
ON CONFLICT ON CONSTRAINT ip_statuses_pkey DO UPDATE SET status = EXCLUDED.status;
"""


class Record(NamedTuple):
    key: str
    status: Status


class ChunkWriteError(RuntimeError):
    """A chunk (or a single serial record) failed to commit; nothing of it was applied."""

    def __init__(self, chunk_index: int, size: int, cause: BaseException):
        super().__init__(f"chunk {chunk_index} ({size} rows) failed: {type(cause).__name__}: {cause}")
        self.chunk_index = chunk_index
        self.size = size


def build_chunk(keys: Sequence[str], rng: random.Random) -> List[Record]:
    return [Record(key, assign_status(key, rng)) for key in keys]


async def upsert_record(conn, record: Record, index: int = 0) -> None:
    """Single-row upsert, outside an explicit transaction."""
    try:
        await conn.execute(UPSERT_ONE_SQL, record.key, record.status.value)
    except Exception as e:
        raise ChunkWriteError(index, 1, e) from e


async def upsert_chunk(pool, chunk: Sequence[Record], index: int = 0) -> int:
    """
    Writes the whole chunk with one statement in its own transaction.
    Any failure (begin, execute, commit) rolls the chunk back and is
    raised as ChunkWriteError. Returns the number of rows written.
    """
    ips: List[str] = []
    statuses: List[str] = []
    for key, status in chunk:
        ips.append(key)
        statuses.append(status.value)

    try:
        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(BULK_UPSERT_SQL, ips, statuses)
    except Exception as e:
        raise ChunkWriteError(index, len(ips), e) from e
    return len(ips)
