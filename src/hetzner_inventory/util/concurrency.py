from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Mapping, Optional, TypeVar

R = TypeVar("R")


def parallel_call_all(
    calls: Mapping[str, Callable[[], R]],
    max_workers: Optional[int] = None,
) -> Dict[str, R]:
    """
    Run every named call in a thread pool and return results keyed by name.

    All calls run to completion before anything is returned or raised. If any
    call failed, the first error in completion order is raised and the rest are
    discarded; no partial result is returned.
    """
    if not calls:
        return {}
    workers = max_workers or len(calls)
    results: Dict[str, R] = {}
    errors: List[BaseException] = []
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures: Dict[Future[R], str] = {executor.submit(fn): name for name, fn in calls.items()}
        for fut in as_completed(futures):
            try:
                results[futures[fut]] = fut.result()
            except BaseException as e:  # collect and keep waiting
                errors.append(e)
    if errors:
        raise errors[0]
    return results
