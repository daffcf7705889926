import argparse
import asyncio
import logging
import sys
from typing import List, Optional

import uvloop

from .config import Settings
from .db import StorageUnavailable, count_distinct_keys, count_records, create_pool, ensure_schema
from .keyspace import enumerate_keys
from .orchestrator import Orchestrator, RunState
from .strategies import STRATEGY_HELP, Strategy, build_plan

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NO_STORAGE = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    choices = "\n".join(f"({s.value}) {STRATEGY_HELP[s]}" for s in Strategy)
    parser = argparse.ArgumentParser(
        prog="ipstatus",
        description="Write ip statuses to postgres with different write strategies.",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        "-i", "--impl",
        type=int,
        required=True,
        choices=[s.value for s in Strategy],
        help="id of implementation to test:\n" + choices,
    )
    return parser.parse_args(argv)


async def verify(pool, log: logging.Logger) -> bool:
    rows = await count_records(pool)
    distinct = await count_distinct_keys(pool)
    if rows != distinct:
        log.error("ip_statuses has %d rows but %d distinct ips", rows, distinct)
        return False
    log.info("ip_statuses holds %d rows, one per ip", rows)
    return True


async def wait_for_operator(log: logging.Logger) -> None:
    log.info("press enter to exit")
    await asyncio.get_running_loop().run_in_executor(None, sys.stdin.readline)


async def amain(strategy: Strategy, cfg: Settings, log: logging.Logger, pool=None) -> int:
    own_pool = pool is None
    if own_pool:
        try:
            pool = await create_pool(cfg)
        except StorageUnavailable:
            log.exception("storage unavailable, nothing was written")
            return EXIT_NO_STORAGE

    try:
        if cfg.create_schema:
            await ensure_schema(pool)

        keys = enumerate_keys(cfg.base_network, cfg.key_count)
        plan = build_plan(strategy, keys, cfg)
        if plan.strategy is Strategy.CONCURRENT_SHUFFLED_BATCH:
            log.info("shuffled ips for workers 2..%d", plan.worker_count)

        result = await Orchestrator(pool, plan, cfg, log).run()

        for p in result.failed:
            log.error("worker %d failed: %s", p.worker_id, p.reason)
        log.info("run %s: %d rows written by %d worker(s)", result.state.value, result.rows, plan.worker_count)

        ok = result.state is RunState.COMPLETED
        if cfg.verify:
            ok = await verify(pool, log) and ok

        if cfg.wait_for_input:
            await wait_for_operator(log)
        return EXIT_OK if ok else EXIT_FAILED
    finally:
        if own_pool:
            await pool.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    log = logging.getLogger("ipstatus")

    cfg = Settings()
    return uvloop.run(amain(Strategy(args.impl), cfg, log))


if __name__ == "__main__":
    sys.exit(main())
