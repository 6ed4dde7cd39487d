"""
Module description:
Sparse, dual-indexed store of users, items and ratings.
"""

import logging as pylog
import math
import threading
from functools import cached_property

import numpy as np
from tqdm import tqdm

from cofi.dataset.sparse_builder import SparseBuilder
from cofi.utils import logging
from cofi.utils.config import DataModelConfig, SplittingConfig, validate_config
from cofi.utils.exceptions import BadInput, Duplicate


class Entity:
    """
    A user or an item: a code, a dense index and a sorted adjacency of
    (other index, rating) pairs.
    """

    def __init__(self, code, index, neighbors=None, ratings=None):
        self.code = code
        self.index = index
        self._neighbors = np.asarray(neighbors if neighbors is not None else [], dtype=np.int64)
        self._ratings = np.asarray(ratings if ratings is not None else [], dtype=np.float64)
        self._attributes = {}
        self._lock = threading.Lock()
        self._update_statistics()

    def __repr__(self):
        return f"{self.__class__.__name__}(code={self.code!r}, index={self.index}, ratings={len(self._ratings)})"

    @property
    def neighbors(self):
        """Sorted indices of the entities on the other side of the ratings."""
        return self._neighbors

    @property
    def ratings(self):
        return self._ratings

    @property
    def mean(self):
        return self._mean

    @property
    def std(self):
        return self._std

    def number_of_ratings(self):
        return len(self._ratings)

    def rating_at(self, k):
        return float(self._ratings[k])

    def find(self, other_index):
        """Position of `other_index` in the adjacency, or -1 if absent."""
        pos = int(np.searchsorted(self._neighbors, other_index))
        if pos < len(self._neighbors) and self._neighbors[pos] == other_index:
            return pos
        return -1

    def _insert(self, other_index, rating):
        pos = int(np.searchsorted(self._neighbors, other_index))
        self._neighbors = np.insert(self._neighbors, pos, other_index)
        self._ratings = np.insert(self._ratings, pos, rating)
        self._update_statistics()

    def _update_statistics(self):
        if len(self._ratings):
            self._mean = float(np.mean(self._ratings))
            self._std = float(np.std(self._ratings))
        else:
            self._mean = math.nan
            self._std = math.nan

    def put(self, key, value):
        """Store `value` under `key` and return the previous value, if any."""
        with self._lock:
            previous = self._attributes.get(key)
            self._attributes[key] = value
            return previous

    def get(self, key, default=None):
        with self._lock:
            return self._attributes.get(key, default)


class User(Entity):

    @property
    def items(self):
        return self._neighbors

    def item_at(self, k):
        return int(self._neighbors[k])

    def find_item(self, item_index):
        """Position of `item_index` in the adjacency, or -1 if not rated."""
        return self.find(item_index)


class Item(Entity):

    @property
    def users(self):
        return self._neighbors

    def user_at(self, k):
        return int(self._neighbors[k])

    def find_user(self, user_index):
        """Position of `user_index` in the adjacency, or -1 if not rated."""
        return self.find(user_index)


class TestUser(User):
    """A user that also holds held-out ratings."""

    __test__ = False

    def __init__(self, code, index, test_index, neighbors=None, ratings=None,
                 test_neighbors=None, test_ratings=None):
        super().__init__(code, index, neighbors, ratings)
        self.test_index = test_index
        self._test_neighbors = np.asarray(test_neighbors if test_neighbors is not None else [], dtype=np.int64)
        self._test_ratings = np.asarray(test_ratings if test_ratings is not None else [], dtype=np.float64)

    @property
    def test_items(self):
        return self._test_neighbors

    @property
    def test_ratings(self):
        return self._test_ratings

    def number_of_test_ratings(self):
        return len(self._test_ratings)

    def test_item_at(self, k):
        return int(self._test_neighbors[k])

    def test_rating_at(self, k):
        return float(self._test_ratings[k])

    def find_test_item(self, item_index):
        pos = int(np.searchsorted(self._test_neighbors, item_index))
        if pos < len(self._test_neighbors) and self._test_neighbors[pos] == item_index:
            return pos
        return -1


class TestItem(Item):
    """An item that also holds held-out ratings."""

    __test__ = False

    def __init__(self, code, index, test_index, neighbors=None, ratings=None,
                 test_neighbors=None, test_ratings=None):
        super().__init__(code, index, neighbors, ratings)
        self.test_index = test_index
        self._test_neighbors = np.asarray(test_neighbors if test_neighbors is not None else [], dtype=np.int64)
        self._test_ratings = np.asarray(test_ratings if test_ratings is not None else [], dtype=np.float64)

    @property
    def test_users(self):
        return self._test_neighbors

    @property
    def test_ratings(self):
        return self._test_ratings

    def number_of_test_ratings(self):
        return len(self._test_ratings)

    def test_user_at(self, k):
        return int(self._test_neighbors[k])

    def test_rating_at(self, k):
        return float(self._test_ratings[k])

    def find_test_user(self, user_index):
        pos = int(np.searchsorted(self._test_neighbors, user_index))
        if pos < len(self._test_neighbors) and self._test_neighbors[pos] == user_index:
            return pos
        return -1


class DataModel:
    """
    Users, items and ratings of a collaborative filtering dataset.

    Codes are sorted and indexed once at build time; afterwards the model is
    frozen and indices never change. Both views of every rating are kept:
    each user holds its rated items sorted by item index and each item holds
    its raters sorted by user index.

    Ratings are given as (user_code, item_code, rating) triples:

    .. code:: python

      datamodel = DataModel.from_ratings(
          [("u1", "i1", 5.0), ("u1", "i2", 3.0), ("u2", "i1", 4.0)],
          test_ratio=0.2, seed=42, min_rating=1, max_rating=5
      )
    """

    def __init__(self, ratings, test_ratings=None, min_rating=None, max_rating=None):
        """
        Constructor of DataModel
        :param ratings: iterable of (user_code, item_code, rating) training triples
        :param test_ratings: optional iterable of held-out triples
        :param min_rating: lowest value of the rating scale, if known
        :param max_rating: highest value of the rating scale, if known
        """
        self.logger = logging.get_logger(self.__class__.__name__, pylog.DEBUG)
        domain = validate_config(DataModelConfig, min_rating=min_rating, max_rating=max_rating)
        self._declared_min = domain.min_rating
        self._declared_max = domain.max_rating
        self._frozen = False

        train = self._validate_triples(ratings, "training")
        test = self._validate_triples(test_ratings or [], "test")
        self._check_duplicates(train + test)

        self._build(train, test)
        self._frozen = True

        sparsity = 1 - (self.number_of_ratings() / max(1, self.number_of_users() * self.number_of_items()))
        self.logger.info(
            "Statistics",
            extra={"context": {
                "users": self.number_of_users(),
                "items": self.number_of_items(),
                "ratings": self.number_of_ratings(),
                "test_users": self.number_of_test_users(),
                "test_items": self.number_of_test_items(),
                "test_ratings": len(test),
                "sparsity": sparsity
            }}
        )

    @classmethod
    def from_ratings(cls, ratings, test_ratings=None, test_ratio=None, seed=42,
                     min_rating=None, max_rating=None):
        """Build a DataModel, optionally holding out part of the ratings.

        Args:
            ratings: Iterable of (user_code, item_code, rating) triples.
            test_ratings: Held-out triples. Mutually exclusive with `test_ratio`.
            test_ratio (float): Fraction of `ratings` to hold out at random.
            seed (int): Seed of the random split.
            min_rating (float): Lowest value of the rating scale.
            max_rating (float): Highest value of the rating scale.

        Returns:
            DataModel: The frozen model.
        """
        ratings = list(ratings)
        if test_ratio is not None:
            if test_ratings is not None:
                raise BadInput("Provide either `test_ratings` or `test_ratio`, not both.")
            ratings, test_ratings = cls._split(ratings, validate_config(SplittingConfig, test_ratio=test_ratio, seed=seed))
        return cls(ratings, test_ratings, min_rating=min_rating, max_rating=max_rating)

    @classmethod
    def from_dataframe(cls, data, test_data=None, **kwargs):
        """Build a DataModel from dataframes with `userId`, `itemId` and `rating` columns."""
        def to_triples(df):
            missing = {"userId", "itemId", "rating"} - set(df.columns)
            if missing:
                raise BadInput(f"Missing columns: {sorted(missing)}")
            return list(zip(df["userId"].astype(str), df["itemId"].astype(str), df["rating"]))

        test = to_triples(test_data) if test_data is not None else None
        return cls.from_ratings(to_triples(data), test_ratings=test, **kwargs)

    @staticmethod
    def _split(ratings, config):
        random_state = np.random.RandomState(config.seed)
        num_test = int(round(len(ratings) * config.test_ratio))
        permutation = random_state.permutation(len(ratings))
        test_positions = set(permutation[:num_test].tolist())
        train = [r for p, r in enumerate(ratings) if p not in test_positions]
        test = [r for p, r in enumerate(ratings) if p in test_positions]
        return train, test

    def _validate_triples(self, ratings, pool):
        triples = []
        for triple in ratings:
            try:
                user_code, item_code, rating = triple
            except (TypeError, ValueError) as err:
                raise BadInput(f"Malformed {pool} rating {triple!r}") from err
            try:
                rating = float(rating)
            except (TypeError, ValueError) as err:
                raise BadInput(f"Rating of user `{user_code}` to item `{item_code}` is not a number") from err
            if not math.isfinite(rating):
                raise BadInput(f"Rating of user `{user_code}` to item `{item_code}` is not finite")
            self._check_domain(user_code, item_code, rating)
            triples.append((str(user_code), str(item_code), rating))
        return triples

    def _check_domain(self, user_code, item_code, rating):
        if (self._declared_min is not None and rating < self._declared_min) or \
                (self._declared_max is not None and rating > self._declared_max):
            raise BadInput(f"Rating {rating} of user `{user_code}` to item `{item_code}` "
                           f"is outside [{self._declared_min}, {self._declared_max}]")

    @staticmethod
    def _check_duplicates(triples):
        seen = set()
        for user_code, item_code, _ in triples:
            if (user_code, item_code) in seen:
                raise Duplicate(user_code, item_code)
            seen.add((user_code, item_code))

    def _build(self, train, test):
        all_triples = train + test
        self._user_codes = np.array(sorted({u for u, _, _ in all_triples}), dtype=str)
        self._item_codes = np.array(sorted({i for _, i, _ in all_triples}), dtype=str)

        train_rows, train_cols, train_values = self._encode(train)
        test_rows, test_cols, test_values = self._encode(test)

        self._test_user_indices = np.unique(test_rows)
        self._test_item_indices = np.unique(test_cols)

        self._users = self._build_entities(
            self._user_codes, train_rows, train_cols, train_values,
            test_rows, test_cols, test_values, self._test_user_indices, User, TestUser, "users"
        )
        self._items = self._build_entities(
            self._item_codes, train_cols, train_rows, train_values,
            test_cols, test_rows, test_values, self._test_item_indices, Item, TestItem, "items"
        )

    def _encode(self, triples):
        if not triples:
            return np.empty(0, dtype=np.int64), np.empty(0, dtype=np.int64), np.empty(0, dtype=np.float64)
        users, items, values = zip(*triples)
        rows = np.searchsorted(self._user_codes, np.array(users, dtype=str)).astype(np.int64)
        cols = np.searchsorted(self._item_codes, np.array(items, dtype=str)).astype(np.int64)
        return rows, cols, np.array(values, dtype=np.float64)

    @staticmethod
    def _group(rows, cols, values, size):
        """Split (row, col, value) triples into per-row adjacencies sorted by col."""
        order = np.lexsort((cols, rows))
        rows, cols, values = rows[order], cols[order], values[order]
        bounds = np.searchsorted(rows, np.arange(size + 1))
        return [(cols[bounds[r]:bounds[r + 1]], values[bounds[r]:bounds[r + 1]]) for r in range(size)]

    def _build_entities(self, codes, rows, cols, values, test_rows, test_cols, test_values,
                        test_indices, entity_cls, test_entity_cls, desc):
        adjacency = self._group(rows, cols, values, len(codes))
        test_adjacency = self._group(test_rows, test_cols, test_values, len(codes))
        test_positions = {int(index): position for position, index in enumerate(test_indices)}

        entities = []
        for index, code in enumerate(tqdm(codes, desc=f"Building {desc}", leave=False)):
            neighbors, ratings = adjacency[index]
            if index in test_positions:
                test_neighbors, test_ratings = test_adjacency[index]
                entity = test_entity_cls(str(code), index, test_positions[index], neighbors, ratings,
                                         test_neighbors, test_ratings)
            else:
                entity = entity_cls(str(code), index, neighbors, ratings)
            entities.append(entity)
        return entities

    def add_rating(self, user_code, item_code, rating):
        """Insert a training rating into the frozen model.

        Only known codes are accepted, so that indices stay dense and stable.

        Raises:
            BadInput: If a code is unknown or the rating is not a finite number in the domain.
            Duplicate: If the pair is already rated.
        """
        (user_code, item_code, rating), = self._validate_triples([(user_code, item_code, rating)], "training")
        user = self.user_by_code(user_code)
        item = self.item_by_code(item_code)
        if user is None or item is None:
            raise BadInput(f"Unknown code in rating ({user_code!r}, {item_code!r}) after freeze")
        if user.find_item(item.index) != -1 or \
                (isinstance(user, TestUser) and user.find_test_item(item.index) != -1):
            raise Duplicate(user_code, item_code)

        user._insert(item.index, rating)
        item._insert(user.index, rating)
        self.__dict__.pop("_sparse_ratings", None)

    # Train pool

    def number_of_users(self):
        return len(self._users)

    def number_of_items(self):
        return len(self._items)

    @property
    def users(self):
        return self._users

    @property
    def items(self):
        return self._items

    def user(self, index):
        return self._users[index]

    def item(self, index):
        return self._items[index]

    def user_index(self, code):
        """Index of `code` by binary search over the sorted codes, or -1."""
        pos = int(np.searchsorted(self._user_codes, str(code)))
        if pos < len(self._user_codes) and self._user_codes[pos] == str(code):
            return pos
        return -1

    def item_index(self, code):
        """Index of `code` by binary search over the sorted codes, or -1."""
        pos = int(np.searchsorted(self._item_codes, str(code)))
        if pos < len(self._item_codes) and self._item_codes[pos] == str(code):
            return pos
        return -1

    def user_by_code(self, code):
        index = self.user_index(code)
        return self._users[index] if index != -1 else None

    def item_by_code(self, code):
        index = self.item_index(code)
        return self._items[index] if index != -1 else None

    # Test pool

    def number_of_test_users(self):
        return len(self._test_user_indices)

    def number_of_test_items(self):
        return len(self._test_item_indices)

    @property
    def test_users(self):
        return [self._users[i] for i in self._test_user_indices]

    @property
    def test_items(self):
        return [self._items[i] for i in self._test_item_indices]

    def test_user(self, test_index):
        return self._users[self._test_user_indices[test_index]]

    def test_item(self, test_index):
        return self._items[self._test_item_indices[test_index]]

    def test_user_by_code(self, code):
        user = self.user_by_code(code)
        return user if isinstance(user, TestUser) else None

    def test_item_by_code(self, code):
        item = self.item_by_code(code)
        return item if isinstance(item, TestItem) else None

    # Statistics

    def number_of_ratings(self):
        return sum(user.number_of_ratings() for user in self._users)

    def number_of_test_ratings(self):
        return sum(user.number_of_test_ratings() for user in self.test_users)

    def rating_average(self):
        total = self.number_of_ratings()
        if not total:
            return math.nan
        return sum(float(np.sum(user.ratings)) for user in self._users) / total

    @property
    def min_rating(self):
        if self._declared_min is not None:
            return self._declared_min
        observed = [float(np.min(user.ratings)) for user in self._users if user.number_of_ratings()]
        return min(observed) if observed else math.nan

    @property
    def max_rating(self):
        if self._declared_max is not None:
            return self._declared_max
        observed = [float(np.max(user.ratings)) for user in self._users if user.number_of_ratings()]
        return max(observed) if observed else math.nan

    @property
    def frozen(self):
        return self._frozen

    # Sparse views

    @cached_property
    def _sparse_ratings(self):
        return SparseBuilder.build_sparse_ratings(self._users, self.number_of_items())

    def ratings_matrix(self):
        """Training ratings as a users x items csr_matrix."""
        return self._sparse_ratings

    def test_ratings_matrix(self):
        """Held-out ratings as a users x items csr_matrix."""
        return SparseBuilder.build_sparse_test_ratings(self.test_users, self.number_of_users(),
                                                       self.number_of_items())
