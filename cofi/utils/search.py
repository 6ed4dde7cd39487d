import heapq
import math

import numpy as np


def find_top_n(values, n):
    """Indices of the `n` largest finite values, sorted by descending value.

    A bounded min-heap of size `n` is kept while scanning the array once.
    Ties are broken by ascending index; negative infinity and NaN are skipped.

    Args:
        values: One-dimensional array of scores.
        n (int): Number of indices to return.

    Returns:
        np.ndarray: Integer array of length `n`, right-padded with -1.
    """
    heap = []
    for index, value in enumerate(values):
        value = float(value)
        if math.isnan(value) or value == -math.inf:
            continue
        # The heap root is the weakest candidate: lowest value, then highest index
        entry = (value, -index)
        if len(heap) < n:
            heapq.heappush(heap, entry)
        elif entry > heap[0]:
            heapq.heapreplace(heap, entry)

    top = np.full(n, -1, dtype=np.int64)
    for position, (_, neg_index) in enumerate(sorted(heap, reverse=True)):
        top[position] = -neg_index
    return top
