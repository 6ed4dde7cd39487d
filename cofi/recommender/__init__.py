"""
Module description:

"""

from .base_recommender import Recommender
from .knn import ItemKNN, UserKNN
from .latent_factor_models import NMF
