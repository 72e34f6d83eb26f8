"""
Block-parallel evaluation over genes for rnadiff.

Per-gene work (dispersion maximisation, GLM fits) depends only on read-only
inputs, so genes are split into contiguous blocks that run independently.
Results are concatenated in gene order, never completion order.
"""

import os
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from .errors import AnalysisCancelled


def resolve_n_jobs(n_jobs):
    """Number of worker threads; ``None`` or 1 is serial, -1 is all cores."""
    if n_jobs is None:
        return 1
    n_jobs = int(n_jobs)
    if n_jobs < 0:
        return max(1, (os.cpu_count() or 1) + 1 + n_jobs)
    return max(1, n_jobs)


def gene_blocks(n, block_size):
    """Contiguous index blocks covering 0..n-1."""
    block_size = max(1, int(block_size))
    return [np.arange(start, min(start + block_size, n))
            for start in range(0, n, block_size)]


def check_cancel(cancel):
    """Raise AnalysisCancelled if the cancel event is set."""
    if cancel is not None and cancel.is_set():
        raise AnalysisCancelled("analysis cancelled")


def map_gene_blocks(func, n, n_jobs=1, block_size=256, cancel=None):
    """Apply ``func`` to blocks of gene indices and merge results in order.

    Parameters
    ----------
    func : callable
        ``func(idx)`` receives an integer index array and returns a tuple of
        arrays whose first axis has ``len(idx)`` entries.
    n : int
        Number of genes.
    n_jobs : int
        Worker threads. Numba kernels release the GIL, so threads scale.
    block_size : int
        Genes per block.
    cancel : threading.Event, optional
        Checked before each block; when set, pending blocks are abandoned
        and AnalysisCancelled is raised.

    Returns
    -------
    tuple of ndarray, each concatenated over blocks in gene order.
    """
    blocks = gene_blocks(n, block_size)
    if not blocks:
        return ()
    n_jobs = resolve_n_jobs(n_jobs)

    def run(idx):
        check_cancel(cancel)
        return func(idx)

    if n_jobs == 1 or len(blocks) == 1:
        parts = [run(idx) for idx in blocks]
    else:
        with ThreadPoolExecutor(max_workers=min(n_jobs, len(blocks))) as executor:
            futures = [executor.submit(run, idx) for idx in blocks]
            try:
                parts = [f.result() for f in futures]
            except AnalysisCancelled:
                for f in futures:
                    f.cancel()
                raise

    return tuple(np.concatenate([p[i] for p in parts]) for i in range(len(parts[0])))


def map_ordered(func, items, n_jobs=1, cancel=None):
    """Apply ``func`` to each item, threaded, returning results in input order."""
    items = list(items)
    n_jobs = resolve_n_jobs(n_jobs)

    def run(item):
        check_cancel(cancel)
        return func(item)

    if n_jobs == 1 or len(items) <= 1:
        return [run(item) for item in items]
    with ThreadPoolExecutor(max_workers=min(n_jobs, len(items))) as executor:
        return list(executor.map(run, items))
