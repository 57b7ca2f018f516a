"""Typed records for cfg sections."""

from darknet_cfg.config.decoder import RawRecord, decode_records, normalize_records
from darknet_cfg.config.layers import (
    BatchNormConfig,
    CommonLayerOptions,
    ConnectedConfig,
    ConvolutionalConfig,
    LayerConfig,
    MaxPoolConfig,
    RawConvolutionalConfig,
    RawMaxPoolConfig,
    RouteConfig,
    ShortcutConfig,
    UpSampleConfig,
    YoloConfig,
    layer_common,
    layer_kind,
    normalize_convolutional,
    normalize_maxpool,
)
from darknet_cfg.config.model import DarknetConfig, assemble, to_records
from darknet_cfg.config.net import (
    Adam,
    ConstantPolicy,
    ExpPolicy,
    NetConfig,
    Policy,
    PolyPolicy,
    RandomPolicy,
    RawNetConfig,
    SgdrCustomPolicy,
    SgdrPolicy,
    SigmoidPolicy,
    StepPolicy,
    StepsPolicy,
    normalize_net,
)
from darknet_cfg.config.registry import SECTIONS, get_section

__all__ = [
    # Model
    "DarknetConfig",
    "assemble",
    "to_records",
    # Net
    "Adam",
    "NetConfig",
    "RawNetConfig",
    "normalize_net",
    "Policy",
    "RandomPolicy",
    "PolyPolicy",
    "ConstantPolicy",
    "StepPolicy",
    "ExpPolicy",
    "SigmoidPolicy",
    "StepsPolicy",
    "SgdrPolicy",
    "SgdrCustomPolicy",
    # Layers
    "LayerConfig",
    "CommonLayerOptions",
    "ConnectedConfig",
    "ConvolutionalConfig",
    "RawConvolutionalConfig",
    "RouteConfig",
    "ShortcutConfig",
    "MaxPoolConfig",
    "RawMaxPoolConfig",
    "UpSampleConfig",
    "YoloConfig",
    "BatchNormConfig",
    "layer_common",
    "layer_kind",
    "normalize_convolutional",
    "normalize_maxpool",
    # Decoding
    "RawRecord",
    "decode_records",
    "normalize_records",
    "SECTIONS",
    "get_section",
]
