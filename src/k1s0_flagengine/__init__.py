"""k1s0 flagengine library."""

from .bucketing import (
    choose_variation,
    get_bucket_ranges,
    get_equal_weights,
    get_query_string_override,
    in_namespace,
)
from .condition import eval_condition
from .config import EngineSettings, LogSettings, load_settings
from .engine import FeatureFlagEngine
from .exceptions import FeatureFlagError, FeatureFlagErrorCodes
from .hashing import fnv1a32, hash_string
from .logger import configure_logging, configure_logging_from_settings
from .models import (
    Context,
    Experiment,
    ExperimentResult,
    Feature,
    FeatureMap,
    FeatureResult,
    FeatureRule,
    FeatureSource,
    Namespace,
    parse_features,
)
from .values import UNDEFINED, get_type, is_truthy

__all__ = [
    "Context",
    "EngineSettings",
    "Experiment",
    "ExperimentResult",
    "Feature",
    "FeatureFlagEngine",
    "FeatureFlagError",
    "FeatureFlagErrorCodes",
    "FeatureMap",
    "FeatureResult",
    "FeatureRule",
    "FeatureSource",
    "LogSettings",
    "Namespace",
    "UNDEFINED",
    "choose_variation",
    "configure_logging",
    "configure_logging_from_settings",
    "eval_condition",
    "fnv1a32",
    "get_bucket_ranges",
    "get_equal_weights",
    "get_query_string_override",
    "get_type",
    "hash_string",
    "in_namespace",
    "is_truthy",
    "load_settings",
    "parse_features",
]
