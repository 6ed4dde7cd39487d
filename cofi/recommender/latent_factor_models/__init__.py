from .NonNegMF import NMF
