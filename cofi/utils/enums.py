from enum import Enum


class Aggregation(Enum):
    MEAN = 'mean'
    WEIGHTED_MEAN = 'weighted_mean'
    DEVIATION_FROM_MEAN = 'deviation_from_mean'
    WEIGHTED_DEVIATION_FROM_MEAN = 'weighted_deviation_from_mean'


class EntityKind(Enum):
    USER = 'user'
    ITEM = 'item'
