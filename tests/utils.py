import functools
import math
import time

import numpy as np

from cofi.dataset import DataModel
from cofi.process import Parallelizer
from cofi.recommender.knn.similarity import SimilarityMetric


def time_single_test(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            end = time.perf_counter()
            duration = end - start
            print(f"[{func.__name__}] executed in {duration:.4f} seconds")
    return wrapper


def build_datamodel(ratings, **kwargs):
    return DataModel.from_ratings(ratings, **kwargs)


def generate_ratings(num_users, num_items, density=0.3, seed=0, min_rating=1, max_rating=5):
    random_state = np.random.RandomState(seed)
    ratings = []
    for u in range(num_users):
        for i in range(num_items):
            if random_state.random_sample() < density:
                ratings.append((f"u{u:03d}", f"i{i:03d}", float(random_state.randint(min_rating, max_rating + 1))))
    return ratings


def serial():
    return Parallelizer(num_workers=1)


def threaded(num_workers=4, chunk_size=3):
    return Parallelizer(num_workers=num_workers, chunk_size=chunk_size)


class FixedSimilarity(SimilarityMetric):
    """Similarities read from a table keyed by the pair of entity codes."""

    name = "fixed"

    def __init__(self, table):
        super().__init__()
        self._table = {frozenset(pair): value for pair, value in table.items()}

    def similarity(self, entity, other):
        return self._table.get(frozenset((entity.code, other.code)), -math.inf)
