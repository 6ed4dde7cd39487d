"""
Module description:
Error kinds raised by the toolkit.
"""


class CofiError(Exception):
    """Base exception for the toolkit."""

    pass


class BadInput(CofiError, ValueError):
    """Malformed or contradictory construction data."""

    pass


class Duplicate(BadInput):
    """Two ratings share the same (user_code, item_code) pair."""

    def __init__(self, user_code, item_code):
        self.user_code = user_code
        self.item_code = item_code
        super().__init__(f"Duplicate rating for user `{user_code}` and item `{item_code}`")


class ConfigError(CofiError, ValueError):
    """Invalid hyperparameters or runtime settings."""

    pass


class WorkerFailure(CofiError, RuntimeError):
    """An exception escaped a sweep worker.

    Attributes:
        entity_index (int): Index of the entity whose `run` failed first.
    """

    def __init__(self, entity_index, worker_name, cause):
        self.entity_index = entity_index
        self.worker_name = worker_name
        super().__init__(f"{worker_name} failed on entity {entity_index}: {cause!r}")
