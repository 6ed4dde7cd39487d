"""
Module description:
Non-negative matrix factorization trained with multiplicative updates.
"""

import logging as pylog
import time
from typing import Optional

import numpy as np
from pydantic import PositiveInt

from cofi.process.parallelizer import Partible
from cofi.recommender.base_recommender import Recommender

EPSILON = 1e-10


class NMF(Recommender):
    r"""
    Non-Negative Matrix Factorization

    For further details, please refer to the `paper <https://papers.nips.cc/paper/1861-algorithms-for-non-negative-matrix-factorization>`_

    Each iteration sweeps the users, updating their factors against the
    current item factors, then sweeps the items against the updated user
    factors. Factors start uniformly in (0, 1] and stay strictly positive.

    Args:
        factors: Number of latent factors
        iterations: Number of iterations
        seed: Seed of the factors initialization; wall-clock time when omitted

    .. code:: python

      model = NMF(datamodel, factors=10, iterations=50, seed=42).fit()
    """

    factors: PositiveInt = 10
    iterations: PositiveInt = 50
    seed: Optional[int] = None

    def __init__(self, datamodel, factors=10, iterations=50, seed=None, parallelizer=None):
        super().__init__(datamodel, parallelizer, factors=factors, iterations=iterations, seed=seed)

        if self.seed is None:
            self.seed = int(time.time() * 1000) % (2 ** 32)

        self._init_factors()

    def _init_factors(self):
        random_state = np.random.RandomState(self.seed)
        self._user_factors = 1 - random_state.random_sample((self._num_users, self.factors))
        self._item_factors = 1 - random_state.random_sample((self._num_items, self.factors))

    @property
    def user_factors(self):
        return self._user_factors

    @property
    def item_factors(self):
        return self._item_factors

    def initialize(self):
        self._init_factors()
        for it in range(self.iterations):
            self.train_step(it)

    def train_step(self, it=0):
        start = time.perf_counter()
        self._parallelizer.exec(self._datamodel.users, UpdateUsersFactors(self))
        self._parallelizer.exec(self._datamodel.items, UpdateItemsFactors(self))
        if not self.logger.isEnabledFor(pylog.DEBUG):
            return
        self.logger.debug(
            "Completed iteration",
            extra={"context": {
                "iteration": it + 1,
                "iterations": self.iterations,
                "error": self.reconstruction_error(),
                "duration_sec": time.perf_counter() - start
            }}
        )

    def predict(self, user_index, item_index):
        return float(np.dot(self._user_factors[user_index], self._item_factors[item_index]))

    def reconstruction_error(self):
        """Mean squared error over the rated training cells."""
        ratings = self._datamodel.ratings_matrix().tocoo()
        if not ratings.nnz:
            return 0.0
        est = np.sum(self._user_factors[ratings.row] * self._item_factors[ratings.col], axis=1)
        err = ratings.data - est
        return float(np.mean(err * err))


class UpdateUsersFactors(Partible):

    def __init__(self, model):
        self._w = model.user_factors
        self._h = model.item_factors

    def run(self, user):
        if not user.number_of_ratings():
            return
        w_u = self._w[user.index]
        h_i = self._h[user.items]

        predictions = h_i @ w_u
        sum_ratings = h_i.T @ user.ratings
        sum_predictions = h_i.T @ predictions

        self._w[user.index] = w_u * sum_ratings / (sum_predictions + EPSILON)


class UpdateItemsFactors(Partible):

    def __init__(self, model):
        self._w = model.user_factors
        self._h = model.item_factors

    def run(self, item):
        if not item.number_of_ratings():
            return
        h_i = self._h[item.index]
        w_u = self._w[item.users]

        predictions = w_u @ h_i
        sum_ratings = w_u.T @ item.ratings
        sum_predictions = w_u.T @ predictions

        self._h[item.index] = h_i * sum_ratings / (sum_predictions + EPSILON)
