import logging as pylog
import math
import time
from abc import ABC, abstractmethod

import numpy as np

from cofi.process.parallelizer import Parallelizer
from cofi.utils import logging
from cofi.utils.config import build_recommender_config, validate_config
from cofi.utils.exceptions import ConfigError


class Recommender(ABC):
    """
    Common contract of every engine: `fit`, `predict` and `recommend`.

    Hyperparameters are declared as annotated class attributes with their
    defaults, and validated on construction:

    .. code:: python

      class MyRecommender(Recommender):
          factors: PositiveInt = 10
    """

    def __init__(self, datamodel, parallelizer=None, **params):
        self._datamodel = datamodel
        self._num_users = datamodel.number_of_users()
        self._num_items = datamodel.number_of_items()
        self._parallelizer = parallelizer if parallelizer is not None else Parallelizer()
        self.logger = logging.get_logger(self.__class__.__name__, pylog.DEBUG)
        self.params_list = []

        self.init_params(params)

    @property
    def name(self):
        return self.__class__.__name__

    @property
    def name_param(self):
        """The name of the model with all it's parameters."""
        name = self.name
        for ann in self.params_list:
            value = getattr(self, ann, None)
            if isinstance(value, float):
                name += f"_{ann}={value:.4f}"
            elif hasattr(value, "value"):
                name += f"_{ann}={value.value}"
            elif hasattr(value, "name"):
                name += f"_{ann}={value.name}"
            else:
                name += f"_{ann}={value}"
        return name

    @property
    def datamodel(self):
        return self._datamodel

    def init_params(self, params):
        self.logger.info("Loading parameters")

        config = validate_config(build_recommender_config(self.__class__), **params)
        for ann, value in config.get_validated_params().items():
            setattr(self, ann, value)
            self.logger.info(f"Parameter {ann} set to {value}")
            self.params_list.append(ann)

    def fit(self):
        """Train the model. Calling it again retrains from scratch."""
        self.logger.info(
            "Fitting model",
            extra={"context": {"model": self.name_param, "workers": self._parallelizer.num_workers}}
        )
        start = time.perf_counter()
        self.initialize()
        end = time.perf_counter()
        self.logger.info(
            "Model fitted",
            extra={"context": {"model": self.name_param, "duration_sec": end - start}}
        )
        return self

    @abstractmethod
    def initialize(self):
        raise NotImplementedError()

    @abstractmethod
    def predict(self, user_index, item_index):
        """Predicted rating of a user to an item, or NaN when it is undefined."""
        raise NotImplementedError()

    def recommend(self, user_index, candidates, n):
        """Rank candidate items for a user.

        Args:
            user_index (int): Index of the user.
            candidates: Item indices to rank; repeated indices are ranked once.
            n (int): Length of the list.

        Returns:
            list: At most `n` item indices, by descending prediction and then
            ascending index. Items whose prediction is NaN are left out.

        Raises:
            ConfigError: If `n` is negative.
        """
        if n < 0:
            raise ConfigError(f"Length of the recommendation list must be non-negative, got {n}")

        scored = []
        for item_index in dict.fromkeys(int(c) for c in candidates):
            prediction = self.predict(user_index, item_index)
            if not math.isnan(prediction):
                scored.append((-prediction, item_index))
        scored.sort()
        return [item_index for _, item_index in scored[:n]]

    def predict_test(self, test_user_index):
        """Predictions for every held-out item of a test user, in adjacency order."""
        test_user = self._datamodel.test_user(test_user_index)
        return np.array([self.predict(test_user.index, int(item_index))
                         for item_index in test_user.test_items], dtype=np.float64)
