from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Sequence

from .config import Settings
from .keyspace import shuffle_keys


class Strategy(IntEnum):
    SERIAL = 1
    BATCH = 2
    CONCURRENT_BATCH = 3
    CONCURRENT_SHUFFLED_BATCH = 4


STRATEGY_HELP = {
    Strategy.SERIAL: "serial recording",
    Strategy.BATCH: "batch recording",
    Strategy.CONCURRENT_BATCH: "concurrent batch recording",
    Strategy.CONCURRENT_SHUFFLED_BATCH: "concurrent batch recording with shuffled inputs",
}


@dataclass
class WorkerAssignment:
    worker_id: int
    keys: Sequence[str]
    # None => one upsert per record, no chunking
    chunk_size: int | None
    rng: random.Random = field(repr=False, default_factory=random.Random)

    @property
    def batched(self) -> bool:
        return self.chunk_size is not None


@dataclass
class ExecutionPlan:
    strategy: Strategy
    workers: List[WorkerAssignment]

    @property
    def worker_count(self) -> int:
        return len(self.workers)


def _worker_rng(seed: int | None, worker_id: int) -> random.Random:
    return random.Random(None if seed is None else seed * 1000 + worker_id)


def build_plan(strategy: Strategy, keys: Sequence[str], cfg: Settings) -> ExecutionPlan:
    """
    Concurrent strategies give every worker the whole key space rather than
    a slice of it, so workers race on the same ips.
    """
    strategy = Strategy(strategy)

    if strategy is Strategy.SERIAL:
        return ExecutionPlan(strategy, [WorkerAssignment(1, keys, None, _worker_rng(cfg.seed, 1))])

    if strategy is Strategy.BATCH:
        return ExecutionPlan(strategy, [WorkerAssignment(1, keys, cfg.chunk_size, _worker_rng(cfg.seed, 1))])

    workers: List[WorkerAssignment] = []
    for worker_id in range(1, cfg.concurrent_workers + 1):
        rng = _worker_rng(cfg.seed, worker_id)
        worker_keys = keys
        if strategy is Strategy.CONCURRENT_SHUFFLED_BATCH and worker_id > 1:
            worker_keys = shuffle_keys(keys, rng)
        workers.append(WorkerAssignment(worker_id, worker_keys, cfg.chunk_size, rng))
    return ExecutionPlan(strategy, workers)
