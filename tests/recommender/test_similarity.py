import math
import threading

import numpy as np
import pytest

from cofi.recommender.knn.similarity import (AdjustedCosine, CorrelationConstrained, Cosine, Pearson,
                                             SUPPORTED_SIMILARITIES, get_metric)
from cofi.utils.enums import EntityKind
from cofi.utils.exceptions import ConfigError
from tests.params import (all_metrics, params_item_similarity, params_user_similarity, ratings_s1,
                          ratings_s2, ratings_small)
from tests.utils import *


class PairCountingCosine(Cosine):

    def __init__(self):
        super().__init__()
        self.pairs = {}
        self._lock = threading.Lock()

    def similarity(self, entity, other):
        with self._lock:
            key = frozenset((entity.index, other.index))
            self.pairs[key] = self.pairs.get(key, 0) + 1
        return super().similarity(entity, other)


def sweep(metric, datamodel, kind, parallelizer=None):
    metric.set_datamodel(datamodel, kind)
    (parallelizer or serial()).exec(metric.entities, metric)
    return metric


def similarity_of(metric, datamodel, kind, a, b):
    index = datamodel.item_index if kind == EntityKind.ITEM else datamodel.user_index
    return metric.similarity_matrix[index(a), index(b)]


class TestSimilarity:

    def test_pearson_trivial_users(self):
        dm = build_datamodel(ratings_s1)
        metric = sweep(Pearson(), dm, EntityKind.USER)

        assert similarity_of(metric, dm, EntityKind.USER, "u1", "u2") == 1.0
        assert similarity_of(metric, dm, EntityKind.USER, "u2", "u1") == 1.0

    def test_pearson_trivial_items(self):
        # Every item's ratings are constant, so the centred deviations vanish
        dm = build_datamodel(ratings_s1)
        metric = sweep(Pearson(), dm, EntityKind.ITEM)

        assert similarity_of(metric, dm, EntityKind.ITEM, "i1", "i2") == -math.inf

    @pytest.mark.parametrize('metric, params', all_metrics)
    @pytest.mark.parametrize('kind', list(EntityKind))
    def test_no_co_rating(self, metric, params, kind):
        dm = build_datamodel(ratings_s2)
        m = sweep(get_metric(metric, **params), dm, kind)

        assert np.all(m.similarity_matrix == -np.inf)

    @pytest.mark.parametrize('params', params_item_similarity)
    def test_item_similarity(self, params):
        dm = build_datamodel(ratings_small)
        metric = sweep(get_metric(params['metric'], **params['params']), dm, EntityKind.ITEM)

        assert similarity_of(metric, dm, EntityKind.ITEM, params['a'], params['b']) == \
            pytest.approx(params['expected'])

    @pytest.mark.parametrize('params', params_user_similarity)
    def test_user_similarity(self, params):
        dm = build_datamodel(ratings_small)
        metric = sweep(get_metric(params['metric'], **params['params']), dm, EntityKind.USER)

        assert similarity_of(metric, dm, EntityKind.USER, params['a'], params['b']) == \
            pytest.approx(params['expected'])

    @pytest.mark.parametrize('metric, params', all_metrics)
    @pytest.mark.parametrize('kind', list(EntityKind))
    @time_single_test
    def test_symmetry_and_diagonal(self, metric, params, kind):
        dm = build_datamodel(generate_ratings(20, 15, density=0.4, seed=4))
        m = sweep(get_metric(metric, **params), dm, kind, threaded())
        table = m.similarity_matrix

        n = dm.number_of_items() if kind == EntityKind.ITEM else dm.number_of_users()
        assert table.shape == (n, n)
        assert np.all(np.diag(table) == -np.inf)
        np.testing.assert_allclose(table, table.T, rtol=1e-12)
        assert not np.any(np.isnan(table))

    @pytest.mark.parametrize('metric, params', all_metrics)
    def test_thread_invariance(self, metric, params):
        dm = build_datamodel(generate_ratings(25, 18, density=0.35, seed=8))
        first = sweep(get_metric(metric, **params), dm, EntityKind.ITEM, serial())
        second = sweep(get_metric(metric, **params), dm, EntityKind.ITEM, threaded(num_workers=5, chunk_size=2))

        np.testing.assert_array_equal(first.similarity_matrix, second.similarity_matrix)

    def test_similarity_matrix_read_only(self):
        dm = build_datamodel(ratings_small)
        metric = sweep(Pearson(), dm, EntityKind.ITEM)

        with pytest.raises(ValueError):
            metric.similarity_matrix[0, 1] = 0.0

    def test_adjusted_cosine_uses_counterpart(self):
        dm = build_datamodel(ratings_small)
        metric = sweep(AdjustedCosine(), dm, EntityKind.USER)

        # Centred on item means: u1 on i1, i2 is (1, 1); u2 is (-1, -1)
        assert similarity_of(metric, dm, EntityKind.USER, "u1", "u2") == pytest.approx(-1.0)

    def test_correlation_constrained_median(self):
        metric = get_metric("correlation_constrained", median=2.5)

        assert isinstance(metric, CorrelationConstrained)
        assert metric.median == 2.5

    def test_get_metric_instance(self):
        metric = Pearson()

        copied = get_metric(metric)
        assert copied is not metric
        assert isinstance(copied, Pearson)
        assert set(SUPPORTED_SIMILARITIES) == {m for m, _ in all_metrics}

    @pytest.mark.parametrize('metric, params', [
        ("euclidean", {}),
        ("correlation_constrained", {}),
        ("jaccard", {'median': 3}),
    ])
    def test_invalid_metric(self, metric, params):
        with pytest.raises(ConfigError):
            get_metric(metric, **params)

    def test_unbound_metric(self):
        with pytest.raises(ConfigError):
            Pearson().entities

    @pytest.mark.parametrize('value', [0.1, 0.7, 1 / 3, 4.3])
    def test_pearson_constant_inexact_ratings(self, value):
        # The float mean of repeated inexact values is off by rounding
        ratings = [(f"u{u}", item, value) for u in range(3) for item in ("i1", "i2")]
        dm = build_datamodel(ratings)
        items = sweep(Pearson(), dm, EntityKind.ITEM)
        users = sweep(Pearson(), dm, EntityKind.USER)

        assert similarity_of(items, dm, EntityKind.ITEM, "i1", "i2") == -math.inf
        assert np.all(users.similarity_matrix == -np.inf)

    def test_pearson_small_variance_is_kept(self):
        ratings = [("u1", "i1", 0.1), ("u2", "i1", 0.2), ("u1", "i2", 0.1), ("u2", "i2", 0.2)]
        dm = build_datamodel(ratings)
        metric = sweep(Pearson(), dm, EntityKind.ITEM)

        assert similarity_of(metric, dm, EntityKind.ITEM, "i1", "i2") == pytest.approx(1.0)

    @pytest.mark.parametrize('kind', list(EntityKind))
    def test_each_pair_computed_once(self, kind):
        dm = build_datamodel(generate_ratings(15, 12, density=0.5, seed=10))
        metric = sweep(PairCountingCosine(), dm, kind, threaded())
        n = len(metric.entities)

        assert len(metric.pairs) == n * (n - 1) // 2
        assert set(metric.pairs.values()) == {1}
        np.testing.assert_array_equal(metric.similarity_matrix, metric.similarity_matrix.T)
