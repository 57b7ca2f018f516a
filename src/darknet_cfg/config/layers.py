"""Layer section records.

Most layer kinds are read straight into their canonical record: the only
work is applying defaults and checking invariants in ``__post_init__``.
Convolutional and maxpool sections have a real gap between what the text
says and what the layer means (inherited strides, derived padding, exclusive
deform flags), so they get a separate ``Raw*`` record and a pair of
normalize/denormalize functions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path

from darknet_cfg.codec.fields import (
    ANCHORS,
    BOOL,
    FLOAT,
    LAYER_INDEX,
    LAYER_INDEX_LIST,
    PATH,
    UINT,
    UINT_LIST,
    WEIGHTS_TYPE,
    enum_codec,
)
from darknet_cfg.codec.records import nested, option
from darknet_cfg.errors import ValidationError
from darknet_cfg.types import (
    Activation,
    Deform,
    IouLoss,
    IouThreshold,
    LayerIndex,
    NmsKind,
    SectionKind,
    WeightsNormalization,
    WeightsType,
    YoloPoint,
)

logger = logging.getLogger(__name__)

ACTIVATION = enum_codec(Activation)


def _require_positive(record: object, *names: str) -> None:
    for name in names:
        value = getattr(record, name)
        if value < 1:
            raise ValidationError(f"{name} must be positive, got {value}", key=name)


def _freeze(record: object, *names: str) -> None:
    """Store list-valued fields as tuples so records stay hashable."""
    for name in names:
        value = getattr(record, name)
        if value is not None:
            object.__setattr__(record, name, tuple(value))


def _require_stride(raw: RawConvolutionalConfig | RawMaxPoolConfig) -> None:
    """Check ``stride`` when a field falls back to it."""
    fallback = (getattr(raw, name, 0) is None for name in ("stride_x", "stride_y", "size"))
    if raw.stride < 1 and any(fallback):
        raise ValidationError(f"stride must be positive, got {raw.stride}", key="stride")


@dataclass(frozen=True)
class CommonLayerOptions:
    """Options understood by every layer kind.

    Attributes:
        clip: Clamp value for the layer output, if any.
        learning_scale_scale: Per-layer multiplier of the global learning
            rate, spelled ``learning_rate`` in layer sections.
    """

    clip: float | None = option(FLOAT, default=None)
    only_forward: bool = option(BOOL, key="onlyforward", default=False)
    dont_update: bool = option(BOOL, default=False)
    burnin_update: bool = option(BOOL, default=False)
    stop_backward: bool = option(BOOL, key="stopbackward", default=False)
    train_only_bn: bool = option(BOOL, default=False)
    dont_load: bool = option(BOOL, key="dontload", default=False)
    dont_load_scales: bool = option(BOOL, key="dontloadscales", default=False)
    learning_scale_scale: float = option(FLOAT, key="learning_rate", default=1.0)


@dataclass(frozen=True)
class ConnectedConfig:
    """Fully connected layer."""

    output: int = option(UINT, default=1)
    activation: Activation = option(ACTIVATION, default=Activation.LOGISTIC)
    batch_normalize: bool = option(BOOL, default=False)
    common: CommonLayerOptions = nested(CommonLayerOptions)

    def __post_init__(self) -> None:
        _require_positive(self, "output")


@dataclass(frozen=True)
class ConvolutionalConfig:
    """Canonical convolution layer.

    Strides are per axis, ``padding`` is the final per-side padding, and the
    deform flags are folded into ``deform``.
    """

    filters: int
    size: int
    activation: Activation
    groups: int = 1
    batch_normalize: bool = False
    stride_x: int = 1
    stride_y: int = 1
    dilation: int = 1
    antialiasing: bool = False
    padding: int = 0
    assisted_excitation: bool = False
    share_index: LayerIndex | None = None
    cbn: bool = False
    binary: bool = False
    xnor: bool = False
    use_bin_output: bool = False
    deform: Deform = Deform.NONE
    flipped: bool = False
    dot: bool = False
    angle: float = 15.0
    grad_centr: bool = False
    reverse: bool = False
    coordconv: bool = False
    common: CommonLayerOptions = CommonLayerOptions()

    def __post_init__(self) -> None:
        _require_positive(self, "filters", "size", "groups", "stride_x", "stride_y", "dilation")
        if self.padding < 0:
            raise ValidationError(
                f"padding must be non-negative, got {self.padding}", key="padding"
            )
        if self.size == 1 and self.dilation != 1:
            raise ValidationError(
                f"dilation must be 1 if size is 1, got dilation={self.dilation}", key="dilation"
            )
        if self.size == 1 and self.deform is not Deform.NONE:
            raise ValidationError(
                "sway, rotate, stretch, stretch_sway should be used with size >= 3", key="size"
            )
        if self.xnor and self.groups != 1:
            raise ValidationError(
                f"groups must be 1 if xnor is enabled, got groups={self.groups}", key="groups"
            )


@dataclass(frozen=True)
class RawConvolutionalConfig:
    """``[convolutional]`` section as written."""

    filters: int = option(UINT)
    size: int = option(UINT)
    activation: Activation = option(ACTIVATION)
    groups: int = option(UINT, default=1)
    stride: int = option(UINT, default=1)
    stride_x: int | None = option(UINT, default=None)
    stride_y: int | None = option(UINT, default=None)
    dilation: int = option(UINT, default=1)
    antialiasing: bool = option(BOOL, default=False)
    pad: bool = option(BOOL, default=False)
    padding: int | None = option(UINT, default=None)
    assisted_excitation: bool = option(BOOL, default=False)
    share_index: LayerIndex | None = option(LAYER_INDEX, default=None)
    batch_normalize: bool = option(BOOL, default=False)
    cbn: bool = option(BOOL, default=False)
    binary: bool = option(BOOL, default=False)
    xnor: bool = option(BOOL, default=False)
    use_bin_output: bool = option(BOOL, key="bin_output", default=False)
    sway: bool = option(BOOL, default=False)
    rotate: bool = option(BOOL, default=False)
    stretch: bool = option(BOOL, default=False)
    stretch_sway: bool = option(BOOL, default=False)
    flipped: bool = option(BOOL, default=False)
    dot: bool = option(BOOL, default=False)
    angle: float = option(FLOAT, default=15.0)
    grad_centr: bool = option(BOOL, default=False)
    reverse: bool = option(BOOL, default=False)
    coordconv: bool = option(BOOL, default=False)
    common: CommonLayerOptions = nested(CommonLayerOptions)


# Fields copied unchanged between the two forms
_CONV_SHARED = tuple(
    f.name
    for f in fields(ConvolutionalConfig)
    if f.name in {g.name for g in fields(RawConvolutionalConfig)}
    and f.name not in {"stride_x", "stride_y", "padding"}
)

_DEFORM_FLAGS = {
    Deform.SWAY: "sway",
    Deform.ROTATE: "rotate",
    Deform.STRETCH: "stretch",
    Deform.STRETCH_SWAY: "stretch_sway",
}


def normalize_convolutional(raw: RawConvolutionalConfig) -> ConvolutionalConfig:
    """Derive the canonical convolution layer.

    - ``stride_x`` / ``stride_y`` fall back to ``stride``.
    - ``pad=1`` sets ``padding = size // 2``, overriding an explicit
      ``padding``; otherwise ``padding`` defaults to 0.
    - At most one deform flag may be set.
    """
    _require_stride(raw)
    if raw.pad:
        if raw.padding is not None:
            logger.warning("padding option is ignored and is set to size / 2 due to pad == 1")
        padding = raw.size // 2
    else:
        padding = 0 if raw.padding is None else raw.padding

    chosen = [mode for mode, flag in _DEFORM_FLAGS.items() if getattr(raw, flag)]
    if len(chosen) > 1:
        raise ValidationError(
            "at most one of sway, rotate, stretch, stretch_sway can be set",
            key=_DEFORM_FLAGS[chosen[1]],
        )

    shared = {name: getattr(raw, name) for name in _CONV_SHARED}
    return ConvolutionalConfig(
        **shared,
        stride_x=raw.stride if raw.stride_x is None else raw.stride_x,
        stride_y=raw.stride if raw.stride_y is None else raw.stride_y,
        padding=padding,
        deform=chosen[0] if chosen else Deform.NONE,
    )


def denormalize_convolutional(conv: ConvolutionalConfig) -> RawConvolutionalConfig:
    """Spell a canonical convolution with explicit strides and padding."""
    shared = {name: getattr(conv, name) for name in _CONV_SHARED}
    flags = {flag: conv.deform is mode for mode, flag in _DEFORM_FLAGS.items()}
    return RawConvolutionalConfig(
        **shared,
        **flags,
        stride_x=conv.stride_x,
        stride_y=conv.stride_y,
        pad=False,
        padding=conv.padding,
    )


@dataclass(frozen=True)
class RouteConfig:
    """Concatenates the outputs of earlier layers along channels."""

    layers: tuple[LayerIndex, ...] = option(LAYER_INDEX_LIST)
    groups: int = option(UINT, default=1)
    group_id: int = option(UINT, default=0)
    common: CommonLayerOptions = nested(CommonLayerOptions)

    def __post_init__(self) -> None:
        _freeze(self, "layers")
        if not self.layers:
            raise ValidationError("route layer needs at least one source in 'layers'", key="layers")
        _require_positive(self, "groups")
        if self.group_id >= self.groups:
            raise ValidationError(
                f"group_id must be less than groups, got {self.group_id} >= {self.groups}",
                key="group_id",
            )


@dataclass(frozen=True)
class ShortcutConfig:
    """Adds earlier layer outputs to the previous layer's output."""

    from_layers: tuple[LayerIndex, ...] = option(LAYER_INDEX_LIST, key="from")
    activation: Activation = option(ACTIVATION)
    weights_type: WeightsType = option(WEIGHTS_TYPE, default=WeightsType.NONE)
    weights_normalization: WeightsNormalization = option(
        enum_codec(WeightsNormalization), default=WeightsNormalization.NONE
    )
    common: CommonLayerOptions = nested(CommonLayerOptions)

    def __post_init__(self) -> None:
        _freeze(self, "from_layers")
        if not self.from_layers:
            raise ValidationError("shortcut layer needs at least one source in 'from'", key="from")


@dataclass(frozen=True)
class MaxPoolConfig:
    """Canonical max pooling layer.

    ``padding`` is the total padding added to each spatial axis, unlike
    convolution where it is per side.
    """

    stride_x: int = 1
    stride_y: int = 1
    size: int = 1
    padding: int = 0
    maxpool_depth: bool = False
    out_channels: int = 1
    antialiasing: bool = False
    common: CommonLayerOptions = CommonLayerOptions()

    def __post_init__(self) -> None:
        _require_positive(self, "size", "stride_x", "stride_y")
        if self.padding < 0:
            raise ValidationError(
                f"padding must be non-negative, got {self.padding}", key="padding"
            )
        if self.maxpool_depth:
            _require_positive(self, "out_channels")


@dataclass(frozen=True)
class RawMaxPoolConfig:
    """``[maxpool]`` section as written."""

    stride: int = option(UINT, default=1)
    stride_x: int | None = option(UINT, default=None)
    stride_y: int | None = option(UINT, default=None)
    size: int | None = option(UINT, default=None)
    padding: int | None = option(UINT, default=None)
    maxpool_depth: bool = option(BOOL, default=False)
    out_channels: int = option(UINT, default=1)
    antialiasing: bool = option(BOOL, default=False)
    common: CommonLayerOptions = nested(CommonLayerOptions)


def normalize_maxpool(raw: RawMaxPoolConfig) -> MaxPoolConfig:
    """Derive the canonical max pooling layer.

    Strides fall back to ``stride``, ``size`` to ``stride``, and ``padding``
    to ``size - 1``.
    """
    _require_stride(raw)
    size = raw.stride if raw.size is None else raw.size
    return MaxPoolConfig(
        stride_x=raw.stride if raw.stride_x is None else raw.stride_x,
        stride_y=raw.stride if raw.stride_y is None else raw.stride_y,
        size=size,
        padding=size - 1 if raw.padding is None else raw.padding,
        maxpool_depth=raw.maxpool_depth,
        out_channels=raw.out_channels,
        antialiasing=raw.antialiasing,
        common=raw.common,
    )


def denormalize_maxpool(maxpool: MaxPoolConfig) -> RawMaxPoolConfig:
    return RawMaxPoolConfig(
        stride_x=maxpool.stride_x,
        stride_y=maxpool.stride_y,
        size=maxpool.size,
        padding=maxpool.padding,
        maxpool_depth=maxpool.maxpool_depth,
        out_channels=maxpool.out_channels,
        antialiasing=maxpool.antialiasing,
        common=maxpool.common,
    )


@dataclass(frozen=True)
class UpSampleConfig:
    """Nearest-neighbour upsampling, or downsampling when ``reverse`` is set."""

    stride: int = option(UINT, default=2)
    reverse: bool = option(BOOL, default=False)
    common: CommonLayerOptions = nested(CommonLayerOptions)

    def __post_init__(self) -> None:
        _require_positive(self, "stride")


@dataclass(frozen=True)
class YoloConfig:
    """YOLO detection head.

    Attributes:
        classes: Number of object classes.
        num: Total number of anchors declared for the network.
        mask: Indices of the anchors this head predicts.
        anchors: ``(w, h)`` anchor boxes, shared by all heads.
    """

    mask: tuple[int, ...] = option(UINT_LIST)
    classes: int = option(UINT, default=20, warn_if_missing=True)
    num: int = option(UINT, default=1)
    max_boxes: int = option(UINT, key="max", default=200)
    max_delta: float | None = option(FLOAT, default=None)
    counters_per_class: tuple[int, ...] | None = option(UINT_LIST, default=None)
    label_smooth_eps: float = option(FLOAT, default=0.0)
    scale_x_y: float = option(FLOAT, default=1.0)
    objectness_smooth: bool = option(BOOL, default=False)
    iou_normalizer: float = option(FLOAT, default=0.75)
    obj_normalizer: float = option(FLOAT, default=1.0)
    cls_normalizer: float = option(FLOAT, default=1.0)
    delta_normalizer: float = option(FLOAT, default=1.0)
    iou_loss: IouLoss = option(enum_codec(IouLoss), default=IouLoss.MSE)
    iou_thresh_kind: IouThreshold = option(enum_codec(IouThreshold), default=IouThreshold.IOU)
    beta_nms: float = option(FLOAT, default=0.6)
    nms_kind: NmsKind = option(enum_codec(NmsKind), default=NmsKind.DEFAULT)
    yolo_point: YoloPoint = option(enum_codec(YoloPoint), default=YoloPoint.CENTER)
    jitter: float = option(FLOAT, default=0.2)
    resize: float = option(FLOAT, default=1.0)
    focal_loss: bool = option(BOOL, default=False)
    ignore_thresh: float = option(FLOAT, default=0.5)
    truth_thresh: float = option(FLOAT, default=1.0)
    iou_thresh: float = option(FLOAT, default=1.0)
    random: float = option(FLOAT, default=0.0)
    track_history_size: int = option(UINT, default=5)
    sim_thresh: float = option(FLOAT, default=0.8)
    dets_for_track: int = option(UINT, default=1)
    dets_for_show: int = option(UINT, default=1)
    track_ciou_norm: float = option(FLOAT, default=0.01)
    embedding_layer: LayerIndex | None = option(LAYER_INDEX, default=None)
    map: Path | None = option(PATH, default=None)
    anchors: tuple[tuple[int, int], ...] | None = option(ANCHORS, default=None)
    common: CommonLayerOptions = nested(CommonLayerOptions)

    def __post_init__(self) -> None:
        _freeze(self, "mask", "counters_per_class")
        if self.anchors is not None:
            object.__setattr__(self, "anchors", tuple(tuple(pair) for pair in self.anchors))
        bad = [m for m in self.mask if m >= self.num]
        if bad:
            raise ValidationError(
                f"mask entries must be less than num={self.num}, got {bad}", key="mask"
            )


@dataclass(frozen=True)
class BatchNormConfig:
    """Standalone batch normalization layer."""

    common: CommonLayerOptions = nested(CommonLayerOptions)


LayerConfig = (
    ConnectedConfig
    | ConvolutionalConfig
    | RouteConfig
    | ShortcutConfig
    | MaxPoolConfig
    | UpSampleConfig
    | YoloConfig
    | BatchNormConfig
)


def layer_kind(layer: LayerConfig) -> SectionKind:
    """Section kind a layer record is written as."""
    match layer:
        case ConnectedConfig():
            return SectionKind.CONNECTED
        case ConvolutionalConfig():
            return SectionKind.CONVOLUTIONAL
        case RouteConfig():
            return SectionKind.ROUTE
        case ShortcutConfig():
            return SectionKind.SHORTCUT
        case MaxPoolConfig():
            return SectionKind.MAXPOOL
        case UpSampleConfig():
            return SectionKind.UPSAMPLE
        case YoloConfig():
            return SectionKind.YOLO
        case BatchNormConfig():
            return SectionKind.BATCHNORM
        case _:
            raise TypeError(f"not a layer config: {type(layer).__name__}")


def layer_common(layer: LayerConfig) -> CommonLayerOptions:
    """Options shared by every layer kind."""
    match layer:
        case (
            ConnectedConfig()
            | ConvolutionalConfig()
            | RouteConfig()
            | ShortcutConfig()
            | MaxPoolConfig()
            | UpSampleConfig()
            | YoloConfig()
            | BatchNormConfig()
        ):
            return layer.common
        case _:
            raise TypeError(f"not a layer config: {type(layer).__name__}")
