"""
Collaborative filtering toolkit: a sparse rating store, a parallel
entity-sweep primitive and neighborhood and matrix factorization recommenders.
"""

__version__ = '0.1.0'
