"""
Module description:
All-pairs similarity between items (or between users), computed by a
parallel sweep over the entities. Each `run(a)` fills row `a` of a dense
N x N table right of the diagonal, and `after_run` mirrors the upper
triangle into the lower one. The diagonal holds negative infinity.
"""

import copy
import math
from abc import abstractmethod

import numpy as np

from cofi.process.parallelizer import Partible
from cofi.utils.enums import EntityKind
from cofi.utils.exceptions import ConfigError

# Squared deviations below this share of the squared ratings are rounding noise
ZERO_VARIANCE_TOLERANCE = 1e-20


class SimilarityMetric(Partible):
    """
    Base class of the similarity metrics.

    Subclasses implement `similarity(entity, other)`, which must return
    negative infinity when the two entities have no co-ratings or the
    similarity is undefined, and a higher value for more similar entities.
    """

    name = None

    def __init__(self):
        self._datamodel = None
        self._kind = None
        self._similarities = None

    def set_datamodel(self, datamodel, kind=EntityKind.ITEM):
        self._datamodel = datamodel
        self._kind = EntityKind(kind)
        self._similarities = None

    @property
    def kind(self):
        return self._kind

    @property
    def entities(self):
        if self._datamodel is None:
            raise ConfigError(f"{self.__class__.__name__} is not bound to a DataModel")
        return self._datamodel.items if self._kind == EntityKind.ITEM else self._datamodel.users

    def counterpart(self, index):
        """Entity on the other side of a rating: the rating user for items, the rated item for users."""
        return self._datamodel.user(index) if self._kind == EntityKind.ITEM else self._datamodel.item(index)

    def before_run(self):
        num_entities = len(self.entities)
        self._similarities = np.full((num_entities, num_entities), -np.inf, dtype=np.float64)

    def run(self, entity):
        row = self._similarities[entity.index]
        for other in self.entities[entity.index + 1:]:
            row[other.index] = self.similarity(entity, other)

    def after_run(self):
        # Only the upper triangle is computed; mirror it into the lower one
        lower = np.tril_indices(len(self._similarities), -1)
        self._similarities[lower] = self._similarities.T[lower]

    def get_similarities(self, index):
        return self._similarities[index]

    @property
    def similarity_matrix(self):
        view = self._similarities.view()
        view.flags.writeable = False
        return view

    @staticmethod
    def co_ratings(entity, other):
        """Common counterpart indices and the two aligned rating vectors.

        Both adjacencies are sorted, so the intersection is a linear merge.
        """
        common, pos, other_pos = np.intersect1d(entity.neighbors, other.neighbors,
                                                assume_unique=True, return_indices=True)
        return common, entity.ratings[pos], other.ratings[other_pos]

    @abstractmethod
    def similarity(self, entity, other):
        raise NotImplementedError()


def _correlation(deviations, other_deviations, ratings, other_ratings):
    den = np.sum(deviations * deviations)
    other_den = np.sum(other_deviations * other_deviations)
    if den <= ZERO_VARIANCE_TOLERANCE * np.sum(ratings * ratings) or \
            other_den <= ZERO_VARIANCE_TOLERANCE * np.sum(other_ratings * other_ratings):
        return -math.inf
    return float(np.sum(deviations * other_deviations) / math.sqrt(den * other_den))


class Pearson(SimilarityMetric):
    """Pearson correlation centred on each entity's own mean."""

    name = "pearson"

    def similarity(self, entity, other):
        common, ratings, other_ratings = self.co_ratings(entity, other)
        if not common.size:
            return -math.inf
        return _correlation(ratings - entity.mean, other_ratings - other.mean, ratings, other_ratings)


class CorrelationConstrained(SimilarityMetric):
    """
    Pearson correlation centred on the median of the rating scale.

    Args:
        median: Median of the rating scale, e.g. 3 for ratings in [1, 5].
    """

    name = "correlation_constrained"

    def __init__(self, median):
        super().__init__()
        self.median = float(median)

    def similarity(self, entity, other):
        common, ratings, other_ratings = self.co_ratings(entity, other)
        if not common.size:
            return -math.inf
        return _correlation(ratings - self.median, other_ratings - self.median, ratings, other_ratings)


class Cosine(SimilarityMetric):
    name = "cosine"

    def similarity(self, entity, other):
        common, ratings, other_ratings = self.co_ratings(entity, other)
        if not common.size:
            return -math.inf
        return _correlation(ratings, other_ratings, ratings, other_ratings)


class AdjustedCosine(SimilarityMetric):
    """Cosine after removing the mean of the counterpart that gave each rating."""

    name = "adjusted_cosine"

    def similarity(self, entity, other):
        common, ratings, other_ratings = self.co_ratings(entity, other)
        if not common.size:
            return -math.inf
        means = np.array([self.counterpart(index).mean for index in common])
        return _correlation(ratings - means, other_ratings - means, ratings, other_ratings)


class MSD(SimilarityMetric):
    """Mean squared difference of the co-ratings, turned into 1 / (1 + msd)."""

    name = "msd"

    def similarity(self, entity, other):
        common, ratings, other_ratings = self.co_ratings(entity, other)
        if not common.size:
            return -math.inf
        diff = ratings - other_ratings
        return float(1.0 / (1.0 + np.mean(diff * diff)))


class Jaccard(SimilarityMetric):
    name = "jaccard"

    def similarity(self, entity, other):
        common, _, _ = self.co_ratings(entity, other)
        if not common.size:
            return -math.inf
        union = entity.number_of_ratings() + other.number_of_ratings() - common.size
        return float(common.size / union)


SUPPORTED_SIMILARITIES = {
    metric.name: metric for metric in (Pearson, CorrelationConstrained, Cosine, AdjustedCosine, MSD, Jaccard)
}


def get_metric(metric, **kwargs):
    """Resolve a metric name, or copy a metric instance.

    Instances are copied so that each recommender binds its own table.

    Args:
        metric: A SimilarityMetric instance or one of SUPPORTED_SIMILARITIES.
        **kwargs: Constructor arguments of the named metric (e.g. `median`).

    Returns:
        SimilarityMetric: A new, unbound metric.
    """
    if isinstance(metric, SimilarityMetric):
        metric = copy.copy(metric)
        metric.set_datamodel(None)
        return metric
    if metric not in SUPPORTED_SIMILARITIES:
        raise ConfigError(
            f"Similarity: similarity '{metric}' not recognized.\n"
            f"Allowed values: {sorted(SUPPORTED_SIMILARITIES)}"
        )
    try:
        return SUPPORTED_SIMILARITIES[metric](**kwargs)
    except TypeError as err:
        raise ConfigError(f"Similarity '{metric}' cannot be built with {kwargs}") from err
