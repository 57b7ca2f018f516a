"""Value types shared by the cfg records: enumerations, layer indices, shapes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from darknet_cfg.errors import ValidationError


class SectionKind(Enum):
    """Section names recognized in a cfg file."""

    NET = "net"
    CONNECTED = "connected"
    CONVOLUTIONAL = "convolutional"
    ROUTE = "route"
    SHORTCUT = "shortcut"
    MAXPOOL = "maxpool"
    UPSAMPLE = "upsample"
    YOLO = "yolo"
    BATCHNORM = "batchnorm"


class Activation(Enum):
    MISH = "mish"
    HARD_MISH = "hard_mish"
    SWISH = "swish"
    NORMALIZE_CHANNELS = "normalize_channels"
    NORMALIZE_CHANNELS_SOFTMAX = "normalize_channels_softmax"
    NORMALIZE_CHANNELS_SOFTMAX_MAXVAL = "normalize_channels_softmax_maxval"
    LOGISTIC = "logistic"
    LOGGY = "loggy"
    RELU = "relu"
    ELU = "elu"
    SELU = "selu"
    GELU = "gelu"
    RELIE = "relie"
    RAMP = "ramp"
    LINEAR = "linear"
    TANH = "tanh"
    PLSE = "plse"
    LEAKY = "leaky"
    STAIR = "stair"
    HARDTAN = "hardtan"
    LHTAN = "lhtan"


class IouLoss(Enum):
    MSE = "mse"
    IOU = "iou"
    GIOU = "giou"
    DIOU = "diou"
    CIOU = "ciou"


class IouThreshold(Enum):
    IOU = "iou"
    GIOU = "giou"
    DIOU = "diou"
    CIOU = "ciou"


class YoloPoint(Enum):
    CENTER = "center"
    LEFT_TOP = "left_top"
    RIGHT_BOTTOM = "right_bottom"


class NmsKind(Enum):
    DEFAULT = "default"
    GREEDY = "greedynms"
    DIOU = "diounms"


class PolicyKind(Enum):
    """Learning rate policy tag of the ``[net]`` section."""

    RANDOM = "random"
    POLY = "poly"
    CONSTANT = "constant"
    STEP = "step"
    EXP = "exp"
    SIGMOID = "sigmoid"
    STEPS = "steps"
    SGDR = "sgdr"


class MixUp(Enum):
    """Mixing augmentation selector, written as an integer."""

    MIXUP = 1
    CUTMIX = 2
    MOSAIC = 3
    RANDOM = 4


class WeightsType(Enum):
    """How a shortcut layer weights its inputs."""

    NONE = "none"
    PER_FEATURE = "per_feature"
    PER_CHANNEL = "per_channel"


class WeightsNormalization(Enum):
    NONE = "none"
    RELU = "relu"
    SOFTMAX = "softmax"


class Deform(Enum):
    """Kernel deformation mode, derived from four exclusive flags."""

    NONE = "none"
    SWAY = "sway"
    ROTATE = "rotate"
    STRETCH = "stretch"
    STRETCH_SWAY = "stretch_sway"


@dataclass(frozen=True)
class Relative:
    """Reference to the layer ``offset`` positions before the current one."""

    offset: int

    def __post_init__(self) -> None:
        if self.offset < 1:
            raise ValidationError(f"relative layer offset must be positive, got {self.offset}")

    def __int__(self) -> int:
        return -self.offset

    def resolve(self, position: int) -> int:
        return position - self.offset


@dataclass(frozen=True)
class Absolute:
    """Reference to layer ``index`` counted from the first layer after [net]."""

    index: int

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValidationError(f"absolute layer index must be non-negative, got {self.index}")

    def __int__(self) -> int:
        return self.index

    def resolve(self, position: int) -> int:
        return self.index


LayerIndex = Relative | Absolute


def layer_index(value: int) -> LayerIndex:
    """Build a layer index from its signed integer spelling.

    Negative values are relative (``-1`` is the previous layer), non-negative
    values are absolute. ``int(layer_index(v)) == v`` for every ``v``.
    """
    if value < 0:
        return Relative(-value)
    return Absolute(value)


@dataclass(frozen=True)
class Hwc:
    """Spatial tensor shape: height, width, channels."""

    height: int
    width: int
    channels: int

    @property
    def size(self) -> int:
        return self.height * self.width * self.channels

    def __str__(self) -> str:
        return f"{self.height}x{self.width}x{self.channels}"


@dataclass(frozen=True)
class Flat:
    """Flat vector shape."""

    size: int

    def __str__(self) -> str:
        return f"{self.size}"


Shape = Hwc | Flat
