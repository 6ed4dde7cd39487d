import numpy as np
from scipy import sparse as sp


class SparseBuilder:

    @staticmethod
    def build_sparse_ratings(users, n_items, dtype='float64') -> sp.csr_matrix:
        rows = np.concatenate([np.full(u.number_of_ratings(), u.index, dtype=np.int64) for u in users]) \
            if users else np.empty(0, dtype=np.int64)
        cols = np.concatenate([u.items for u in users]) if users else np.empty(0, dtype=np.int64)
        ratings = np.concatenate([u.ratings for u in users]) if users else np.empty(0)

        return SparseBuilder.create_sparse_matrix(
            rows, cols, ratings, len(users), n_items, dtype
        )

    @staticmethod
    def build_sparse_test_ratings(test_users, n_users, n_items, dtype='float64') -> sp.csr_matrix:
        rows = [np.full(u.number_of_test_ratings(), u.index, dtype=np.int64) for u in test_users]
        cols = [u.test_items for u in test_users]
        ratings = [u.test_ratings for u in test_users]
        if not test_users:
            rows, cols, ratings = [np.empty(0, dtype=np.int64)], [np.empty(0, dtype=np.int64)], [np.empty(0)]

        return SparseBuilder.create_sparse_matrix(
            np.concatenate(rows), np.concatenate(cols), np.concatenate(ratings), n_users, n_items, dtype
        )

    @staticmethod
    def create_sparse_matrix(rows, cols, data, n_users, n_items, dtype) -> sp.csr_matrix:
        sparse_data = sp.csr_matrix((data, (rows, cols)), dtype=dtype, shape=(n_users, n_items))
        return sparse_data
