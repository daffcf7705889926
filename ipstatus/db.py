import asyncpg

from .config import Settings


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS ip_statuses (
    ip     text NOT NULL,
    status text NOT NULL,
    CONSTRAINT ip_statuses_pkey PRIMARY KEY (ip)
);
"""

COUNT_SQL = "SELECT count(*) FROM ip_statuses;"

COUNT_DISTINCT_SQL = "SELECT count(DISTINCT ip) FROM ip_statuses;"


class StorageUnavailable(RuntimeError):
    """Storage could not be reached at startup."""


async def create_pool(cfg: Settings) -> asyncpg.Pool:
    try:
        return await asyncpg.create_pool(
            dsn=cfg.db_dsn,
            min_size=cfg.pool_min_size,
            max_size=cfg.pool_max_size,
            command_timeout=cfg.command_timeout_s,
        )
    except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        raise StorageUnavailable(f"could not connect to db: {e}") from e


async def ensure_schema(pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute(SCHEMA_SQL)


async def count_records(pool) -> int:
    async with pool.acquire() as conn:
        return int(await conn.fetchval(COUNT_SQL))


async def count_distinct_keys(pool) -> int:
    async with pool.acquire() as conn:
        return int(await conn.fetchval(COUNT_DISTINCT_SQL))
