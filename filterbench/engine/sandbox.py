"""In-process reference engine.

Implements the control facade with a worker coroutine that consumes
protocol commands from a queue and applies them on a background
thread. Histogram updates can be buffered into shards that a
background reclaim cycle flushes (or evicts when too many are
resident); ``when_idle`` covers both the command and the reclaim.

This engine exists so the harness can run and be tested without the
real engine. It makes no claim about how the real engine stores data.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from ..config import ClearStrategy, EngineOptions, HistogramMode
from ..datasets import Dataset, to_columnar
from ..errors import HandleClosed, UnknownCommand, UnknownDimension
from ..protocol import (
    BuildIndex,
    Command,
    DimId,
    FilterClear,
    FilterSet,
    SequenceGuard,
    validate_command,
)
from .barrier import IdleBarrier
from .base import IndexStatus, ShardMetrics, ShardSample

logger = logging.getLogger(__name__)


@dataclass
class _Ingest:
    dataset: Dataset


@dataclass
class _Shard:
    """Pending histogram delta for a block of rows."""

    rows: np.ndarray
    sign: int
    dim: int


@dataclass
class _EngineState:
    names: list[str] = field(default_factory=list)
    ids: dict[str, int] = field(default_factory=dict)
    columns: list[np.ndarray] = field(default_factory=list)
    bin_columns: list[np.ndarray] = field(default_factory=list)
    histograms: list[np.ndarray] = field(default_factory=list)
    indexes: dict[int, np.ndarray] = field(default_factory=dict)
    filters: list[tuple[float, float] | None] = field(default_factory=list)
    fail_masks: list[np.ndarray | None] = field(default_factory=list)
    # Number of active filters each row fails; a row is active at zero
    miss: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int32))
    row_count: int = 0
    active_count: int = 0


def _quantize(column: np.ndarray, bins: int) -> np.ndarray:
    if column.size == 0:
        return np.zeros(0, dtype=np.int64)
    lo = float(column.min())
    hi = float(column.max())
    span = hi - lo if hi > lo else 1.0
    scaled = np.floor((column - lo) / span * bins).astype(np.int64)
    return np.clip(scaled, 0, bins - 1)


class SandboxDimension:
    """Dimension handle issuing FILTER_SET / FILTER_CLEAR commands."""

    def __init__(self, handle: SandboxHandle, name: str) -> None:
        self._handle = handle
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def filter(self, value_range: tuple[float, float]) -> None:
        lo, hi = value_range
        self._handle.send(
            FilterSet(dim_id=self._name, lo=lo, hi=hi, seq=self._handle.next_seq())
        )

    def clear(self) -> None:
        self._handle.send(FilterClear(dim_id=self._name, seq=self._handle.next_seq()))

    def __repr__(self) -> str:
        return f"SandboxDimension({self._name!r})"


class SandboxHandle:
    """A live sandbox engine instance.

    Must be created while an event loop is running; the worker task is
    bound to that loop.
    """

    def __init__(
        self,
        dataset: Dataset,
        options: EngineOptions | None = None,
        *,
        work_delay: float = 0.0,
    ) -> None:
        self._options = options or EngineOptions()
        self._work_delay = work_delay
        self._state = _EngineState()
        self._lock = threading.Lock()
        self._shards: deque[_Shard] = deque()
        self._profile: list[ShardSample] = []
        self._guard = SequenceGuard()
        self._issued_seq = -1
        self._barrier = IdleBarrier()
        self._queue: asyncio.Queue[tuple[Any, asyncio.Future[Any] | None]] = asyncio.Queue()
        self._reclaims: set[asyncio.Task[None]] = set()
        # Acknowledgement of the message the worker is applying right now
        self._in_flight: asyncio.Future[Any] | None = None
        self._disposed = False

        loop = asyncio.get_running_loop()
        self._ready: asyncio.Future[Any] = loop.create_future()
        self._worker = loop.create_task(self._run())
        self._enqueue(_Ingest(dataset), self._ready)

    # ------------------------------------------------------------------
    # Facade
    # ------------------------------------------------------------------

    @property
    def options(self) -> EngineOptions:
        return self._options

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def dimension(self, name: str) -> SandboxDimension:
        self._check_open()
        await self._ready
        self._check_open()
        if name not in self._state.ids:
            raise UnknownDimension(f"Unknown dimension: {name}", dim=name)
        return SandboxDimension(self, name)

    async def build_index(self, name: str) -> IndexStatus:
        self._check_open()
        ack = asyncio.get_running_loop().create_future()
        self._enqueue(BuildIndex(dim_id=name), ack)
        return await ack

    def send(self, command: Command) -> None:
        self._check_open()
        validate_command(command)
        seq = getattr(command, "seq", None)
        if seq is not None:
            self._issued_seq = max(self._issued_seq, seq)
        self._enqueue(command, None)

    def next_seq(self) -> int:
        return self._issued_seq + 1

    async def when_idle(self, timeout: float | None = None) -> None:
        self._check_open()
        await self._barrier.wait(timeout)

    def active_count(self) -> int:
        self._check_open()
        return self._state.active_count

    @property
    def row_count(self) -> int:
        return self._state.row_count

    def histogram(self, name: str) -> np.ndarray:
        self._check_open()
        with self._lock:
            return self._state.histograms[self._state.ids[name]].copy()

    def consume_shard_profile(self) -> list[ShardSample]:
        self._check_open()
        with self._lock:
            samples, self._profile = self._profile, []
        return samples

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._worker.cancel()
        if self._in_flight is not None and not self._in_flight.done():
            self._in_flight.set_exception(HandleClosed("Engine disposed before acknowledgement"))
        self._in_flight = None
        for task in self._reclaims:
            task.cancel()
        while not self._queue.empty():
            _, ack = self._queue.get_nowait()
            if ack is not None and not ack.done():
                ack.set_exception(HandleClosed("Engine disposed before acknowledgement"))
        if not self._ready.done():
            self._ready.set_exception(HandleClosed("Engine disposed during ingest"))
        # Nobody may await the ingest future after dispose; mark it retrieved.
        if self._ready.done() and not self._ready.cancelled():
            self._ready.exception()
        self._barrier.release_all()
        with self._lock:
            self._shards.clear()
            self._state = _EngineState()
        logger.debug("Sandbox engine disposed")

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _check_open(self) -> None:
        if self._disposed:
            raise HandleClosed("Engine handle has been disposed")

    def _enqueue(self, message: Any, ack: asyncio.Future[Any] | None) -> None:
        self._barrier.begin()
        self._queue.put_nowait((message, ack))

    async def _run(self) -> None:
        while True:
            message, ack = await self._queue.get()
            self._in_flight = ack
            try:
                result = await asyncio.to_thread(self._apply, message)
            except Exception as e:
                self._in_flight = None
                logger.warning("Engine rejected %r: %s", message, e)
                if ack is not None and not ack.done():
                    ack.set_exception(e)
                # Fire-and-forget commands and ingest report through when_idle
                if ack is None or ack is self._ready:
                    self._barrier.end(error=e)
                else:
                    self._barrier.end()
                continue
            self._in_flight = None
            if ack is not None and not ack.done():
                ack.set_result(result)
            if self._shards:
                self._schedule_reclaim()
            self._barrier.end()

    def _schedule_reclaim(self) -> None:
        self._barrier.begin()
        task = asyncio.get_running_loop().create_task(self._reclaim())
        self._reclaims.add(task)
        task.add_done_callback(self._reclaims.discard)

    async def _reclaim(self) -> None:
        error: BaseException | None = None
        try:
            await asyncio.to_thread(self._flush_shards)
        except Exception as e:
            logger.warning("Shard reclaim failed: %s", e)
            error = e
        finally:
            if not self._disposed:
                self._barrier.end(error=error)

    def _apply(self, message: Any) -> Any:
        if self._work_delay:
            time.sleep(self._work_delay)
        with self._lock:
            if isinstance(message, _Ingest):
                return self._ingest(message.dataset)
            if isinstance(message, BuildIndex):
                return self._build_index(message)
            self._guard.check(message)
            if isinstance(message, FilterSet):
                return self._filter(message)
            if isinstance(message, FilterClear):
                return self._clear(message)
        raise UnknownCommand(f"Unknown command: {message!r}")

    def _resolve(self, dim_id: DimId) -> int:
        state = self._state
        if isinstance(dim_id, str):
            if dim_id not in state.ids:
                raise UnknownDimension(f"Unknown dimension: {dim_id}", dim=dim_id)
            return state.ids[dim_id]
        if isinstance(dim_id, int) and 0 <= dim_id < len(state.names):
            return dim_id
        raise UnknownDimension(f"Unknown dimension: {dim_id}", dim=dim_id)

    def _ingest(self, dataset: Dataset) -> int:
        data = to_columnar(dataset)
        bins = self._options.bins
        state = _EngineState(row_count=data.length)
        for index, (name, column) in enumerate(data.columns.items()):
            values = np.asarray(column, dtype=np.float64)
            bin_column = _quantize(values, bins)
            state.names.append(name)
            state.ids[name] = index
            state.columns.append(values)
            state.bin_columns.append(bin_column)
            state.histograms.append(np.bincount(bin_column, minlength=bins).astype(np.int64))
            state.filters.append(None)
            state.fail_masks.append(None)
        state.miss = np.zeros(data.length, dtype=np.int32)
        state.active_count = data.length
        self._state = state
        logger.debug("Ingested %d rows x %d dimensions", data.length, len(state.names))
        return data.length

    def _build_index(self, message: BuildIndex) -> IndexStatus:
        start = time.perf_counter()
        dim = self._resolve(message.dim_id)
        order = np.argsort(self._state.columns[dim], kind="stable")
        self._state.indexes[dim] = order
        ms = (time.perf_counter() - start) * 1000
        return IndexStatus(dim=self._state.names[dim], ms=ms, bytes=int(order.nbytes))

    def _fail_mask(self, dim: int, lo: float, hi: float) -> np.ndarray:
        column = self._state.columns[dim]
        order = self._state.indexes.get(dim)
        if order is None:
            return (column < lo) | (column >= hi)
        sorted_values = column[order]
        start = np.searchsorted(sorted_values, lo, side="left")
        stop = np.searchsorted(sorted_values, hi, side="left")
        mask = np.ones(column.size, dtype=bool)
        mask[order[start:stop]] = False
        return mask

    def _filter(self, message: FilterSet) -> int:
        dim = self._resolve(message.dim_id)
        state = self._state
        new_fail = self._fail_mask(dim, message.lo, message.hi)
        old_fail = state.fail_masks[dim]
        was_active = state.miss == 0
        state.miss += new_fail
        if old_fail is not None:
            state.miss -= old_fail
        state.filters[dim] = (message.lo, message.hi)
        state.fail_masks[dim] = new_fail
        self._commit(dim, was_active)
        return state.active_count

    def _clear(self, message: FilterClear) -> int:
        dim = self._resolve(message.dim_id)
        state = self._state
        if state.fail_masks[dim] is None:
            return state.active_count
        was_active = state.miss == 0
        if self._options.clear_strategy is ClearStrategy.DELTA:
            state.miss -= state.fail_masks[dim]
            state.filters[dim] = None
            state.fail_masks[dim] = None
        else:
            state.filters[dim] = None
            state.fail_masks[dim] = None
            miss = np.zeros(state.row_count, dtype=np.int32)
            for other, bounds in enumerate(state.filters):
                if bounds is None:
                    continue
                mask = self._fail_mask(other, *bounds)
                state.fail_masks[other] = mask
                miss += mask
            state.miss = miss
        self._commit(dim, was_active)
        return state.active_count

    def _commit(self, dim: int, was_active: np.ndarray) -> None:
        state = self._state
        now_active = state.miss == 0
        added = np.flatnonzero(now_active & ~was_active)
        removed = np.flatnonzero(was_active & ~now_active)
        state.active_count = int(np.count_nonzero(now_active))
        for rows, sign in ((added, 1), (removed, -1)):
            if rows.size == 0:
                continue
            if self._should_buffer(rows.size):
                step = self._options.shard_flush_rows
                for start in range(0, rows.size, step):
                    self._shards.append(_Shard(rows=rows[start:start + step], sign=sign, dim=dim))
            else:
                self._apply_histogram_delta(rows, sign)

    def _should_buffer(self, changed_rows: int) -> bool:
        mode = self._options.histogram_mode
        if mode is HistogramMode.DIRECT:
            return False
        if mode is HistogramMode.BUFFERED:
            return True
        work = changed_rows * max(1, len(self._state.names))
        return changed_rows >= self._options.shard_flush_rows or work >= 1_048_576

    def _apply_histogram_delta(self, rows: np.ndarray, sign: int) -> int:
        bins = self._options.bins
        touched = 0
        for dim, bin_column in enumerate(self._state.bin_columns):
            counts = np.bincount(bin_column[rows], minlength=bins)
            self._state.histograms[dim] += sign * counts
            touched += int(np.count_nonzero(counts))
        return touched

    def _flush_shards(self) -> None:
        with self._lock:
            per_dim: dict[tuple[int, int], ShardSample] = {}
            while self._shards:
                evicting = len(self._shards) > self._options.max_resident_shards
                shard = self._shards.popleft()
                start = time.perf_counter()
                touched = self._apply_histogram_delta(shard.rows, shard.sign)
                sample = per_dim.setdefault(
                    (shard.dim, shard.sign),
                    ShardSample(dim=shard.dim, delta=shard.sign, rows=0),
                )
                sample.rows += int(shard.rows.size)
                sample.copy_ms += (time.perf_counter() - start) * 1000
                metrics = sample.metrics or ShardMetrics()
                if evicting:
                    metrics.evictions += 1
                else:
                    metrics.flushes += 1
                metrics.bins += touched
                metrics.rows += int(shard.rows.size)
                sample.metrics = metrics
            if self._options.profile_shards:
                self._profile.extend(per_dim.values())


def create(
    dataset: Dataset,
    options: EngineOptions | None = None,
    *,
    work_delay: float = 0.0,
) -> SandboxHandle:
    """Create a sandbox engine and start ingesting ``dataset``.

    Ingest completes asynchronously; await ``when_idle`` before timing
    anything that depends on it.
    """
    return SandboxHandle(dataset, options, work_delay=work_delay)
