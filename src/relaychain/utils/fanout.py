# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import concurrent.futures
from typing import Callable, List, Sequence, TypeVar, Union

T = TypeVar("T")
R = TypeVar("R")


def run_per_node(
    items: Sequence[T],
    fn: Callable[[int, T], R],
    *,
    max_workers: int = 1,
) -> List[Union[R, BaseException]]:
    """
    Apply fn(index, item) to every item and gather the outcomes in input order.

    Exceptions are returned in place of results instead of being raised, and a
    failing item never cancels the others. With max_workers > 1 the items run
    on a thread pool (the work is blocking SSH I/O).
    """
    outcomes: List[Union[R, BaseException, None]] = [None] * len(items)

    if max_workers <= 1 or len(items) <= 1:
        for i, item in enumerate(items):
            try:
                outcomes[i] = fn(i, item)
            except Exception as exc:
                outcomes[i] = exc
        return outcomes  # type: ignore[return-value]

    with concurrent.futures.ThreadPoolExecutor(
        max_workers=min(max_workers, len(items)),
        thread_name_prefix="relaychain-node",
    ) as pool:
        futures = {pool.submit(fn, i, item): i for i, item in enumerate(items)}
        for fut in concurrent.futures.as_completed(futures):
            i = futures[fut]
            try:
                outcomes[i] = fut.result()
            except Exception as exc:
                outcomes[i] = exc
    return outcomes  # type: ignore[return-value]
