"""Parallel processing utilities for curveclust.

Per-group smoothing, per-pair distances and per-k selection are independent,
so each stage can fan out over a thread pool. Results always come back in
input order, and every failure is kept next to its index.
"""

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class ProcessingResult(Generic[R]):
    """Result of processing a single item."""

    index: int
    result: R | None
    error: Exception | None
    success: bool


class ParallelProcessor(Generic[T, R]):
    """Process items in parallel with concurrency control.

    Uses ThreadPoolExecutor. With max_concurrency=1 items run inline.
    """

    def __init__(
        self,
        process_fn: Callable[[T], R],
        max_concurrency: int = 4,
        on_error: Callable[[int, Exception], None] | None = None,
    ) -> None:
        """Initialize parallel processor.

        Args:
            process_fn: Function to process each item.
            max_concurrency: Maximum number of concurrent operations.
            on_error: Called with (index, error) for each failed item.
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.process_fn = process_fn
        self.max_concurrency = max_concurrency
        self.on_error = on_error

    def process(self, items: list[T]) -> list[ProcessingResult[R]]:
        """Process all items in parallel.

        Args:
            items: List of items to process.

        Returns:
            List of processing results in original order.
        """

        def process_with_index(index: int, item: T) -> ProcessingResult[R]:
            try:
                result = self.process_fn(item)
                processing_result: ProcessingResult[R] = ProcessingResult(
                    index=index,
                    result=result,
                    error=None,
                    success=True,
                )
            except Exception as e:
                logger.debug(f"Error processing item {index}: {e}")
                processing_result = ProcessingResult(
                    index=index,
                    result=None,
                    error=e,
                    success=False,
                )
            return processing_result

        if not items:
            return []

        if self.max_concurrency == 1:
            results = []
            for i, item in enumerate(items):
                results.append(process_with_index(i, item))
                self._notify(results[-1])
            return results

        with ThreadPoolExecutor(max_workers=self.max_concurrency) as executor:
            futures = [
                executor.submit(process_with_index, i, item)
                for i, item in enumerate(items)
            ]

            results = []
            for future in futures:
                results.append(future.result())
                self._notify(results[-1])

        return results

    def _notify(self, result: ProcessingResult[R]) -> None:
        # Runs on the calling thread, in input order
        if not result.success and self.on_error and result.error is not None:
            self.on_error(result.index, result.error)


def parallel_map(
    items: list[T],
    process_fn: Callable[[T], R],
    max_concurrency: int = 4,
) -> list[R]:
    """Map ``process_fn`` over items in parallel, re-raising the first failure.

    Convenience wrapper for stages where any failure aborts the stage.

    Args:
        items: Items to process.
        process_fn: Function applied to each item.
        max_concurrency: Maximum concurrent operations.

    Returns:
        Results in input order.
    """
    processor: ParallelProcessor[T, R] = ParallelProcessor(
        process_fn=process_fn,
        max_concurrency=max_concurrency,
    )
    results = processor.process(items)
    for r in results:
        if not r.success:
            assert r.error is not None
            raise r.error
    return [r.result for r in results]  # type: ignore[misc]
