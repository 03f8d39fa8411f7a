"""
Parallel backend management for Infinity Flow.

Fans independent (file x algorithm) tasks out over joblib workers. Every
call is a barrier: it returns only once all tasks have returned or one has
raised.
"""

from __future__ import annotations
import logging
from contextlib import contextmanager
from typing import Callable, Iterable, Any, Iterator, Optional
from joblib import Parallel, delayed

logger = logging.getLogger(__name__)


class ParallelBackend:
    """
    Manages parallel execution with configurable backends.

    Supports:
    - "loky": process-based workers, the default for CPU-bound model fitting
    - "threading": thread-based workers sharing memory

    With ``n_jobs=1`` tasks run sequentially in the calling process.
    """

    def __init__(
        self,
        backend: str = "loky",
        n_jobs: int = 1,
        verbose: int = 0
    ):
        """
        Initialize parallel backend.

        Args:
            backend: "threading" or "loky"
            n_jobs: Number of parallel workers
            verbose: joblib verbosity level (0=silent, 10=debug)
        """
        self.backend = backend.lower()
        self.n_jobs = max(1, int(n_jobs))
        self.verbose = verbose

        if self.backend not in ["threading", "loky"]:
            logger.warning(f"Unknown backend '{backend}', falling back to 'loky'")
            self.backend = "loky"

    @contextmanager
    def parallel_context(self, n_tasks: Optional[int] = None) -> Iterator[Parallel]:
        """
        Context manager yielding a configured Parallel object.

        Args:
            n_tasks: Known task count; never start more workers than tasks

        Example:
            >>> backend = ParallelBackend("loky", n_jobs=4)
            >>> with backend.parallel_context() as parallel:
            ...     results = parallel(delayed(func)(x) for x in data)
        """
        n_jobs = self.n_jobs if n_tasks is None else max(1, min(self.n_jobs, n_tasks))
        if n_jobs == 1:
            parallel = Parallel(n_jobs=1, verbose=self.verbose)
        elif self.backend == "loky":
            parallel = Parallel(
                n_jobs=n_jobs,
                backend="loky",
                verbose=self.verbose,
                pre_dispatch="2*n_jobs",
                max_nbytes="100M",
            )
        else:
            parallel = Parallel(n_jobs=n_jobs, backend="threading", verbose=self.verbose)
        yield parallel

    def starmap(
        self,
        func: Callable,
        iterable: Iterable[tuple],
        desc: Optional[str] = None
    ) -> list[Any]:
        """
        Map function over iterable of argument tuples (like itertools.starmap).

        Results are returned in input order regardless of completion order.

        Example:
            >>> backend = ParallelBackend("loky", n_jobs=4)
            >>> results = backend.starmap(fit_one, [(task, ctx) for task in tasks])
        """
        tasks = list(iterable)
        if desc:
            logger.info(f"{desc}: {len(tasks)} tasks (backend={self.backend}, n_jobs={self.n_jobs})")
        if not tasks:
            return []

        with self.parallel_context(len(tasks)) as parallel:
            return parallel(delayed(func)(*args) for args in tasks)
