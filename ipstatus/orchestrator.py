from __future__ import annotations

import asyncio
import logging
import time
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .config import Settings
from .partition import iter_chunks
from .statuses import assign_status
from .strategies import ExecutionPlan, WorkerAssignment
from .writer import Record, build_chunk, upsert_chunk, upsert_record


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PassMetrics:
    __slots__ = ("t0", "rows", "chunks", "total")

    def __init__(self, total: int):
        self.t0 = time.perf_counter()
        self.rows = 0
        self.chunks = 0
        self.total = total

    @property
    def elapsed_s(self) -> float:
        return time.perf_counter() - self.t0


@dataclass
class PassResult:
    worker_id: int
    rows: int
    chunks: int
    elapsed_s: float
    error: Optional[BaseException] = field(default=None, repr=False)
    reason: str = ""
    trace: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunResult:
    state: RunState
    passes: List[PassResult]

    @property
    def failed(self) -> List[PassResult]:
        return [p for p in self.passes if not p.ok]

    @property
    def rows(self) -> int:
        return sum(p.rows for p in self.passes)


async def _serial(pool, assignment: WorkerAssignment, metrics: PassMetrics) -> None:
    async with pool.acquire() as conn:
        for index, key in enumerate(assignment.keys):
            # record lives only until its upsert returns
            await upsert_record(conn, Record(key, assign_status(key, assignment.rng)), index)
            metrics.rows += 1


async def _batched(pool, assignment: WorkerAssignment, metrics: PassMetrics) -> None:
    for index, keys in enumerate(iter_chunks(assignment.keys, assignment.chunk_size)):
        metrics.rows += await upsert_chunk(pool, build_chunk(keys, assignment.rng), index)
        metrics.chunks += 1


async def run_pass(
    pool,
    assignment: WorkerAssignment,
    worker_count: int,
    log: logging.Logger,
    metrics: Optional[PassMetrics] = None,
) -> PassResult:
    """
    One worker's full traversal of its key space. The first failed write
    ends the pass; the error is logged and returned, never raised.
    """
    wid = assignment.worker_id
    metrics = metrics or PassMetrics(len(assignment.keys))
    mode = "batch" if assignment.batched else "serial"
    log.info("running %s implementation [%d of %d] for %d ips", mode, wid, worker_count, len(assignment.keys))

    try:
        if assignment.batched:
            await _batched(pool, assignment, metrics)
        else:
            await _serial(pool, assignment, metrics)
    except Exception as e:
        log.exception("[%d] db error after %d rows", wid, metrics.rows)
        # ограничиваем размер, как и для failed jobs
        return PassResult(
            wid, metrics.rows, metrics.chunks, metrics.elapsed_s,
            error=e,
            reason=f"{type(e).__name__}: {e}"[:500],
            trace=traceback.format_exc()[:8000],
        )

    elapsed = metrics.elapsed_s
    log.info("[%d] done in %.2fs (%d rows, %d chunks)", wid, elapsed, metrics.rows, metrics.chunks)
    return PassResult(wid, metrics.rows, metrics.chunks, elapsed)


class Orchestrator:
    """
    Launches one task per planned worker and waits for all of them.

    A failing worker moves the run to FAILED as soon as it returns, but its
    siblings are left running; run() returns only when every task is done.
    """

    def __init__(self, pool, plan: ExecutionPlan, cfg: Settings, log: Optional[logging.Logger] = None):
        self.pool = pool
        self.plan = plan
        self.cfg = cfg
        self.log = log or logging.getLogger("ipstatus")
        self.state = RunState.IDLE
        self.metrics: Dict[int, PassMetrics] = {}

    async def _worker(self, assignment: WorkerAssignment) -> PassResult:
        result = await run_pass(
            self.pool, assignment, self.plan.worker_count, self.log, self.metrics[assignment.worker_id]
        )
        if not result.ok:
            self.state = RunState.FAILED
        return result

    async def _metrics_task(self) -> None:
        while True:
            await asyncio.sleep(self.cfg.metrics_every_s)
            for wid, m in self.metrics.items():
                elapsed = m.elapsed_s
                rps = m.rows / elapsed if elapsed > 0 else 0.0
                self.log.info(
                    "worker=%s rows=%s/%s (rps=%.1f) chunks=%s",
                    wid, m.rows, m.total, rps, m.chunks,
                )

    async def run(self) -> RunResult:
        if self.state is not RunState.IDLE:
            raise RuntimeError(f"orchestrator already {self.state.value}")
        self.state = RunState.RUNNING

        self.metrics = {a.worker_id: PassMetrics(len(a.keys)) for a in self.plan.workers}
        workers = [
            asyncio.create_task(self._worker(a), name=f"worker-{a.worker_id}")
            for a in self.plan.workers
        ]
        m = asyncio.create_task(self._metrics_task()) if self.cfg.metrics_every_s > 0 else None

        try:
            results = await asyncio.gather(*workers)
        finally:
            if m is not None:
                m.cancel()
                try:
                    await m
                except asyncio.CancelledError:
                    pass

        if self.state is RunState.RUNNING:
            self.state = RunState.COMPLETED
        return RunResult(self.state, list(results))
