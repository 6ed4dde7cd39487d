from .non_negative_matrix_factorization import NMF
