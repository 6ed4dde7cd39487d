from .knn import ItemKNN, UserKNN
from .similarity import SimilarityMetric, Pearson, CorrelationConstrained, Cosine, AdjustedCosine, MSD, Jaccard
