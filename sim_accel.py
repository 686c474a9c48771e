"""
Shared acceleration helpers for Monte Carlo combat runs.
"""

from __future__ import annotations

import concurrent.futures
import contextlib
import os
from dataclasses import dataclass
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from numba import njit

PARALLEL_MIN_SIMULATIONS = 20_000
PARALLEL_CHUNKS_PER_WORKER = 4
PARALLEL_MIN_CHUNK_SIZE = 1_000


def resolve_worker_count(max_workers: Optional[int]) -> int:
    if max_workers is not None:
        try:
            return max(1, int(max_workers))
        except (TypeError, ValueError):
            pass
    return max(1, os.cpu_count() or 1)


def spawn_chunk_seeds(seed: Optional[int], count: int) -> List[int]:
    """Independent per-chunk seeds derived from one run seed.

    With `seed=None` fresh OS entropy is used, so unseeded runs still get
    distinct streams per chunk.
    """
    if count <= 0:
        return []
    children = np.random.SeedSequence(seed).spawn(count)
    return [int(child.generate_state(1, dtype=np.uint32)[0]) for child in children]


@dataclass(frozen=True)
class TrialChunk:
    """A contiguous slice of trials and the seed its RNG starts from."""
    index: int
    start: int
    size: int
    seed: int


def plan_trial_chunks(
    trials: int,
    workers: int,
    seed: Optional[int] = None,
    chunks_per_worker: int = PARALLEL_CHUNKS_PER_WORKER,
    min_chunk_size: int = PARALLEL_MIN_CHUNK_SIZE,
) -> List[TrialChunk]:
    """Split `trials` into roughly `workers * chunks_per_worker` chunks.

    Chunks are never smaller than `min_chunk_size` unless the whole run is.
    """
    if trials <= 0:
        return []
    chunk_size = max(trials // max(1, workers * chunks_per_worker), 1)
    if trials >= min_chunk_size:
        chunk_size = max(chunk_size, min_chunk_size)
    starts = range(0, trials, chunk_size)
    seeds = spawn_chunk_seeds(seed, len(starts))
    return [
        TrialChunk(index=index, start=start, size=min(chunk_size, trials - start), seed=chunk_seed)
        for index, (start, chunk_seed) in enumerate(zip(starts, seeds))
    ]


@dataclass
class SimulationPool:
    """A process pool kept alive across scenarios."""
    max_workers: Optional[int] = None
    executor: Optional[concurrent.futures.ProcessPoolExecutor] = None
    workers: int = 0

    def start(self) -> "SimulationPool":
        if self.executor is None:
            self.workers = resolve_worker_count(self.max_workers)
            self.executor = concurrent.futures.ProcessPoolExecutor(max_workers=self.workers)
        return self

    def close(self) -> None:
        if self.executor is not None:
            self.executor.shutdown(wait=True)
            self.executor = None
            self.workers = 0

    def __enter__(self) -> "SimulationPool":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


@contextlib.contextmanager
def _executor_for(
    pool: Optional[SimulationPool],
    max_workers: Optional[int],
) -> Iterator[Optional[concurrent.futures.ProcessPoolExecutor]]:
    """A shared pool's executor, a temporary one, or None for in-process runs."""
    if pool is not None:
        pool.start()
        yield pool.executor if pool.workers > 1 else None
        return
    workers = resolve_worker_count(max_workers)
    if workers < 2:
        yield None
        return
    with concurrent.futures.ProcessPoolExecutor(max_workers=workers) as executor:
        yield executor


def run_chunks(
    func: Callable[..., Any],
    common_args: Tuple[Any, ...],
    chunks: Sequence[TrialChunk],
    pool: Optional[SimulationPool] = None,
    max_workers: Optional[int] = None,
    show_progress: bool = False,
    progress_label: str = "Trials",
) -> List[Any]:
    """Call `func(*common_args, chunk.size, chunk.seed)` for every chunk.

    Results keep chunk order whatever the completion order.
    """
    if not chunks:
        return []

    with _executor_for(pool, max_workers) as executor:
        if executor is None:
            return [func(*common_args, chunk.size, chunk.seed) for chunk in chunks]

        futures = {
            executor.submit(func, *common_args, chunk.size, chunk.seed): chunk.index
            for chunk in chunks
        }
        results: List[Any] = [None] * len(chunks)
        for completed, future in enumerate(concurrent.futures.as_completed(futures), start=1):
            results[futures[future]] = future.result()
            if show_progress:
                percent = int(completed * 100 / len(chunks))
                print(f"\r{progress_label} {percent:>3d}% ({completed}/{len(chunks)})", end="")
        if show_progress:
            print()
    return results


@njit(cache=True)
def _reduce_trials_numba(first_hp, second_hp, turns):
    wins = 0
    sum_first = 0.0
    sumsq_first = 0.0
    sum_second = 0.0
    sumsq_second = 0.0
    sum_turns = 0
    for i in range(first_hp.shape[0]):
        a = first_hp[i]
        b = second_hp[i]
        if a > 0:
            wins += 1
        sum_first += a
        sumsq_first += a * a
        sum_second += b
        sumsq_second += b * b
        sum_turns += turns[i]
    return wins, sum_first, sumsq_first, sum_second, sumsq_second, sum_turns


def reduce_trial_arrays(
    first_hp: Sequence[int],
    second_hp: Sequence[int],
    turns: Sequence[int],
) -> Tuple[int, float, float, float, float, int]:
    """(wins, sum, sum of squares for each side, total turns) of a chunk."""
    first_arr = np.asarray(first_hp, dtype=np.float64)
    second_arr = np.asarray(second_hp, dtype=np.float64)
    turns_arr = np.asarray(turns, dtype=np.int64)
    if first_arr.shape[0] == 0:
        return 0, 0.0, 0.0, 0.0, 0.0, 0
    wins, sum_first, sumsq_first, sum_second, sumsq_second, sum_turns = _reduce_trials_numba(
        first_arr, second_arr, turns_arr
    )
    return (
        int(wins),
        float(sum_first),
        float(sumsq_first),
        float(sum_second),
        float(sumsq_second),
        int(sum_turns),
    )
