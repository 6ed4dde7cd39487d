import inspect
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model, model_validator

from cofi.utils.exceptions import ConfigError


class BaseConfig(BaseModel):
    """Base configuration with utility to get the validated params dict."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    def get_validated_params(self, *args) -> dict:
        """Return all the validated fields.

        Returns:
            dict: The validated params dict.
        """
        return dict(self)


def validate_config(config_cls, **kwargs):
    """Instantiate a configuration model, turning validation failures into ConfigError.

    Args:
        config_cls: The pydantic model to instantiate.
        **kwargs: Raw values to validate.

    Returns:
        BaseConfig: The validated configuration.

    Raises:
        ConfigError: If any of the values is rejected.
    """
    try:
        return config_cls(**kwargs)
    except ValidationError as err:
        raise ConfigError(f"Invalid {config_cls.__name__}: {err}") from err


# DataModel configuration

class DataModelConfig(BaseConfig):
    """Rating domain configuration.

    Attributes:
        min_rating (Optional[float]): Lowest value of the rating scale.
        max_rating (Optional[float]): Highest value of the rating scale.
    """

    min_rating: Optional[float] = None
    max_rating: Optional[float] = None

    @model_validator(mode="after")
    def validate_bounds(self) -> "DataModelConfig":
        """Ensure the declared scale is not empty.

        Returns:
            DataModelConfig: The configuration object itself.
        """
        if self.min_rating is not None and self.max_rating is not None \
                and self.min_rating >= self.max_rating:
            raise ValueError(f"`min_rating` ({self.min_rating}) must be lower "
                             f"than `max_rating` ({self.max_rating}).")

        return self


class SplittingConfig(BaseConfig):
    """Held-out split configuration.

    Attributes:
        test_ratio (float): Fraction of ratings held out for testing; strictly between 0 and 1.
        seed (int): Random seed; default is 42.
    """

    test_ratio: float = Field(gt=0, lt=1)
    seed: int = 42


# Parallelizer configuration

class ParallelizerConfig(BaseConfig):
    """Sweep configuration.

    Attributes:
        num_workers (Optional[int]): Size of the thread pool; default is the number of CPUs.
        chunk_size (Optional[int]): Entities per task; default splits the range evenly across workers.
        verbose (bool): Whether to display a progress bar for each sweep; default is False.
    """

    num_workers: Optional[int] = Field(default=None, ge=1)
    chunk_size: Optional[int] = Field(default=None, ge=1)
    verbose: bool = False


# Recommender configuration

def build_recommender_config(cls: type) -> type:
    """Create a dynamic Pydantic configuration for a recommender class.

    Args:
        cls (type): Class of the recommender.

    Returns:
        type: The created Pydantic model.
    """

    fields = _build_fields_from_annotations(cls)

    dynamic_config = create_model(
        f"{cls.__name__}Config",
        __base__=BaseConfig,
        **fields
    )

    return dynamic_config


def _build_fields_from_annotations(cls: type) -> dict:
    """Build Pydantic field definitions from the hyperparameter annotations.

    Annotations are collected along the MRO so that subclasses inherit
    the hyperparameters of their parents.

    Args:
        cls (type): The class from which keeping the annotations.

    Returns:
        dict: The extracted fields' dict.
    """
    fields = {}

    for klass in reversed(cls.__mro__):
        for name, hint in inspect.get_annotations(klass).items():
            if name.startswith('_'):
                continue
            fields[name] = (hint, getattr(cls, name))

    return fields
