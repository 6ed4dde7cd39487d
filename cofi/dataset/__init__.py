"""
Module description:

"""

from cofi.dataset.data_model import DataModel, User, Item, TestUser, TestItem
