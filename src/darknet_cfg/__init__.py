"""darknet_cfg: typed reader and writer for Darknet/YOLO .cfg files."""

from darknet_cfg.config.model import DarknetConfig
from darknet_cfg.config.net import NetConfig
from darknet_cfg.errors import ConfigError, ConfigSyntaxError, SchemaError, ValidationError
from darknet_cfg.graph.resolver import ResolvedNetwork, resolve
from darknet_cfg.graph.weights import WeightPlan, plan_weights
from darknet_cfg.options import ParseOptions
from darknet_cfg.parser import parse, parse_file, parse_records, serialize
from darknet_cfg.types import Absolute, Flat, Hwc, Relative

__version__ = "0.1.0"

__all__ = [
    "DarknetConfig",
    "NetConfig",
    "ParseOptions",
    "parse",
    "parse_file",
    "parse_records",
    "serialize",
    "resolve",
    "ResolvedNetwork",
    "plan_weights",
    "WeightPlan",
    "Absolute",
    "Relative",
    "Flat",
    "Hwc",
    "ConfigError",
    "ConfigSyntaxError",
    "SchemaError",
    "ValidationError",
]
