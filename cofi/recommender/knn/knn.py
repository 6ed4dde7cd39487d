import math
from typing import Optional, Union

import numpy as np
from pydantic import PositiveInt

from cofi.process.parallelizer import Partible
from cofi.recommender.base_recommender import Recommender
from cofi.recommender.knn.similarity import SimilarityMetric, get_metric
from cofi.utils.enums import Aggregation, EntityKind
from cofi.utils.search import find_top_n


class KNN(Recommender):
    """
    Neighborhood recommender over one kind of entity.

    `fit` runs two sweeps: the similarity metric over all entities, then the
    selection of the `neighbors` most similar entities of each one. The
    neighbor table is right-padded with -1.
    """

    neighbors: PositiveInt = 40
    metric: Union[str, SimilarityMetric] = "pearson"
    aggregation: Aggregation = Aggregation.WEIGHTED_MEAN
    metric_params: Optional[dict] = None

    _kind: EntityKind

    def __init__(self, datamodel, neighbors, metric, aggregation, parallelizer=None, metric_params=None):
        super().__init__(datamodel, parallelizer, neighbors=neighbors, metric=metric,
                         aggregation=aggregation, metric_params=metric_params)

        self._metric = get_metric(self.metric, **(self.metric_params or {}))
        self._metric.set_datamodel(datamodel, self._kind)
        self._num_entities = len(self._metric.entities)
        self._neighbors = np.full((self._num_entities, self.neighbors), -1, dtype=np.int64)

    @property
    def similarity(self):
        return self._metric

    def entity(self, index):
        return self._datamodel.item(index) if self._kind == EntityKind.ITEM else self._datamodel.user(index)

    def initialize(self):
        entities = self._metric.entities
        self._parallelizer.exec(entities, self._metric)
        self._parallelizer.exec(entities, NeighborsSelection(self))

    def get_neighbors(self, index):
        return self._neighbors[index]

    def get_similarities(self, index):
        return self._metric.get_similarities(index)

    def _neighbor_ratings(self, target, counterpart):
        """Neighbors of `target` rated by `counterpart`, with those ratings."""
        rated, ratings = [], []
        for neighbor in self._neighbors[target.index]:
            # Rows are right-padded with -1
            if neighbor == -1:
                break
            pos = counterpart.find(neighbor)
            if pos != -1:
                rated.append(neighbor)
                ratings.append(counterpart.rating_at(pos))
        return np.array(rated, dtype=np.int64), np.array(ratings, dtype=np.float64)

    def aggregate(self, target, counterpart):
        rated, ratings = self._neighbor_ratings(target, counterpart)
        if not rated.size:
            return math.nan

        match self.aggregation:
            case Aggregation.MEAN:
                return float(np.mean(ratings))

            case Aggregation.WEIGHTED_MEAN:
                similarities = self._metric.get_similarities(target.index)[rated]
                den = np.sum(similarities)
                return math.nan if den == 0 else float(np.sum(similarities * ratings) / den)

            case Aggregation.DEVIATION_FROM_MEAN:
                means = np.array([self.entity(n).mean for n in rated])
                return float(target.mean + np.mean(ratings - means))

            case Aggregation.WEIGHTED_DEVIATION_FROM_MEAN:
                similarities = self._metric.get_similarities(target.index)[rated]
                means = np.array([self.entity(n).mean for n in rated])
                den = np.sum(np.abs(similarities))
                return math.nan if den == 0 else float(target.mean + np.sum(similarities * (ratings - means)) / den)

            case _:
                raise ValueError(f"Unknown aggregation '{self.aggregation}'")


class NeighborsSelection(Partible):
    """Picks the top-k neighbors of each entity from its similarity row."""

    def __init__(self, knn):
        self._knn = knn

    def run(self, entity):
        similarities = self._knn.get_similarities(entity.index)
        self._knn._neighbors[entity.index] = find_top_n(similarities, self._knn.neighbors)


class ItemKNN(KNN):
    r"""
    Item-to-item collaborative filtering

    For further details, please refer to the `paper <http://ieeexplore.ieee.org/document/1167344/>`_

    Args:
        neighbors: Number of item neighbors
        metric: Similarity metric, as an instance or a registered name
        aggregation: How neighbor ratings are merged into a prediction
        metric_params: Arguments of a named metric (e.g. `median`)

    .. code:: python

      model = ItemKNN(datamodel, 40, "cosine", Aggregation.WEIGHTED_MEAN).fit()
      model.predict(user_index, item_index)
    """

    _kind = EntityKind.ITEM

    def __init__(self, datamodel, neighbors=40, metric="pearson", aggregation=Aggregation.WEIGHTED_MEAN,
                 parallelizer=None, metric_params=None):
        super().__init__(datamodel, neighbors, metric, aggregation, parallelizer, metric_params)

    def predict(self, user_index, item_index):
        return self.aggregate(self._datamodel.item(item_index), self._datamodel.user(user_index))


class UserKNN(KNN):
    r"""
    User-to-user collaborative filtering

    For further details, please refer to the `paper <https://dl.acm.org/doi/10.1145/192844.192905>`_

    Args:
        neighbors: Number of user neighbors
        metric: Similarity metric, as an instance or a registered name
        aggregation: How neighbor ratings are merged into a prediction
        metric_params: Arguments of a named metric (e.g. `median`)
    """

    _kind = EntityKind.USER

    def __init__(self, datamodel, neighbors=40, metric="pearson", aggregation=Aggregation.WEIGHTED_MEAN,
                 parallelizer=None, metric_params=None):
        super().__init__(datamodel, neighbors, metric, aggregation, parallelizer, metric_params)

    def predict(self, user_index, item_index):
        return self.aggregate(self._datamodel.user(user_index), self._datamodel.item(item_index))
