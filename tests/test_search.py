import math

import numpy as np
import pytest

from cofi.utils.search import find_top_n
from tests.params import params_top_n as p
from tests.utils import *


class TestFindTopN:

    @pytest.mark.parametrize('params', p)
    @time_single_test
    def test_matches_full_sort(self, params):
        random_state = np.random.RandomState(params['seed'])
        # Few distinct values so that ties are frequent
        values = random_state.randint(0, 5, size=params['size']).astype(np.float64)
        values[random_state.random_sample(params['size']) < 0.2] = -np.inf

        expected = sorted((i for i, v in enumerate(values) if v != -np.inf), key=lambda i: (-values[i], i))
        expected = expected[:params['n']]
        expected += [-1] * (params['n'] - len(expected))

        assert list(find_top_n(values, params['n'])) == expected

    def test_skips_nan_and_negative_infinity(self):
        values = np.array([math.nan, 0.5, -math.inf, -2.0, math.nan])

        assert list(find_top_n(values, 4)) == [1, 3, -1, -1]

    def test_ties_by_ascending_index(self):
        values = np.array([0.3, 0.7, 0.7, 0.1, 0.7])

        assert list(find_top_n(values, 2)) == [1, 2]
        assert list(find_top_n(values, 4)) == [1, 2, 4, 0]

    def test_positive_infinity_ranks_first(self):
        values = np.array([1.0, math.inf, 2.0])

        assert list(find_top_n(values, 1)) == [1]

    def test_dtype(self):
        top = find_top_n(np.array([0.1, 0.2]), 3)

        assert top.dtype == np.int64
        assert len(top) == 3
