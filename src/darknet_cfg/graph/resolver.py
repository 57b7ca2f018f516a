"""Layer reference resolution and output shape propagation.

Declaration order is topological order: a layer may only reference layers
declared before it. A single forward scan therefore resolves every reference
and computes every output shape.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from darknet_cfg.config.layers import (
    BatchNormConfig,
    ConnectedConfig,
    ConvolutionalConfig,
    LayerConfig,
    MaxPoolConfig,
    RouteConfig,
    ShortcutConfig,
    UpSampleConfig,
    YoloConfig,
    layer_kind,
)
from darknet_cfg.config.model import DarknetConfig
from darknet_cfg.errors import ConfigError, ValidationError
from darknet_cfg.types import Flat, Hwc, LayerIndex, SectionKind, Shape

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedLayer:
    """A layer with its references and shapes worked out.

    Attributes:
        index: Position of the layer.
        layer: The layer record.
        inputs: Absolute positions of the layers whose outputs feed this
            one. Empty for a sequential layer fed by the network input.
        input_shapes: Shapes of the inputs, in the order of ``inputs``
            (the network input shape when ``inputs`` is empty).
        output_shape: Shape this layer produces.
        references: Absolute positions of every layer index the record
            names (route ``layers``, shortcut ``from``, ``share_index``,
            ``embedding_layer``), in field order.
    """

    index: int
    layer: LayerConfig
    inputs: tuple[int, ...]
    input_shapes: tuple[Shape, ...]
    output_shape: Shape
    references: tuple[int, ...] = ()

    @property
    def kind(self) -> SectionKind:
        return layer_kind(self.layer)

    @property
    def input_shape(self) -> Shape:
        """Primary input shape (the first source)."""
        return self.input_shapes[0]


@dataclass(frozen=True)
class ResolvedNetwork:
    """A config with every layer resolved."""

    config: DarknetConfig
    layers: tuple[ResolvedLayer, ...]

    @property
    def input_shape(self) -> Shape:
        return self.config.net.input_size

    @property
    def output_shapes(self) -> tuple[Shape, ...]:
        return tuple(layer.output_shape for layer in self.layers)

    def index_map(self) -> dict[int, tuple[int, ...]]:
        """Map of layer position to the absolute positions it references."""
        return {layer.index: layer.references for layer in self.layers}


def resolve_index(index: LayerIndex, position: int) -> int:
    """Resolve a layer reference made by the layer at ``position``.

    Raises:
        ValidationError: If the target is not strictly before ``position``.
    """
    target = index.resolve(position)
    if not 0 <= target < position:
        raise ValidationError(
            f"layer reference {int(index)} resolves to layer {target}, "
            f"expected a layer in [0, {position})"
        )
    return target


def _hwc(shape: Shape, what: str) -> Hwc:
    if not isinstance(shape, Hwc):
        raise ValidationError(f"{what} requires an HxWxC input, got flat shape {shape}")
    return shape


def convolutional_output_shape(conv: ConvolutionalConfig, input_shape: Shape) -> Hwc:
    """Output of a convolution; ``padding`` is added on both sides."""
    shape = _hwc(input_shape, "convolutional layer")
    if min(shape.height, shape.width) + 2 * conv.padding < conv.size:
        raise ValidationError(
            f"kernel size {conv.size} exceeds padded input {shape} (padding {conv.padding})"
        )
    out_h = (shape.height + 2 * conv.padding - conv.size) // conv.stride_y + 1
    out_w = (shape.width + 2 * conv.padding - conv.size) // conv.stride_x + 1
    return Hwc(out_h, out_w, conv.filters)


def maxpool_output_shape(maxpool: MaxPoolConfig, input_shape: Shape) -> Hwc:
    """Output of max pooling; ``padding`` is the total added per axis.

    With ``maxpool_depth`` the pooling runs across channels instead: spatial
    size is kept and channels become ``out_channels``.
    """
    shape = _hwc(input_shape, "maxpool layer")
    if maxpool.maxpool_depth:
        return Hwc(shape.height, shape.width, maxpool.out_channels)
    if min(shape.height, shape.width) + maxpool.padding < maxpool.size:
        raise ValidationError(
            f"pool size {maxpool.size} exceeds padded input {shape} (padding {maxpool.padding})"
        )
    out_h = (shape.height + maxpool.padding - maxpool.size) // maxpool.stride_y + 1
    out_w = (shape.width + maxpool.padding - maxpool.size) // maxpool.stride_x + 1
    return Hwc(out_h, out_w, shape.channels)


def upsample_output_shape(upsample: UpSampleConfig, input_shape: Shape) -> Hwc:
    shape = _hwc(input_shape, "upsample layer")
    if upsample.reverse:
        out_h, out_w = shape.height // upsample.stride, shape.width // upsample.stride
        if min(out_h, out_w) < 1:
            raise ValidationError(f"reverse upsample by {upsample.stride} empties input {shape}")
    else:
        out_h, out_w = shape.height * upsample.stride, shape.width * upsample.stride
    return Hwc(out_h, out_w, shape.channels)


def connected_output_shape(connected: ConnectedConfig, input_shape: Shape) -> Flat:
    return Flat(connected.output)


def yolo_output_shape(yolo: YoloConfig, input_shape: Shape) -> Hwc:
    """A YOLO head passes its input through; channels must match its anchors."""
    shape = _hwc(input_shape, "yolo layer")
    expected = len(yolo.mask) * (yolo.classes + 5)
    if shape.channels != expected:
        raise ValidationError(
            f"yolo layer with {len(yolo.mask)} masks and {yolo.classes} classes expects "
            f"{expected} input channels, got {shape.channels}"
        )
    return shape


def route_output_shape(route: RouteConfig, shapes: Sequence[Shape]) -> Shape:
    """Channel concatenation of the sources, split into ``groups``."""
    if all(isinstance(s, Flat) for s in shapes):
        total = sum(s.size for s in shapes)
        if total % route.groups != 0:
            raise ValidationError(f"route size {total} is not divisible by groups={route.groups}")
        return Flat(total // route.groups)

    hwc = [_hwc(s, "route layer mixing flat and HxWxC sources") for s in shapes]
    first = hwc[0]
    for shape in hwc[1:]:
        if (shape.height, shape.width) != (first.height, first.width):
            raise ValidationError(
                f"route sources must share height and width, got {first} and {shape}"
            )
    channels = sum(s.channels for s in hwc)
    if channels % route.groups != 0:
        raise ValidationError(
            f"route channels {channels} are not divisible by groups={route.groups}"
        )
    return Hwc(first.height, first.width, channels // route.groups)


def shortcut_output_shape(previous: Shape, sources: Sequence[Shape]) -> Shape:
    """Elementwise combination; the previous layer's shape is kept."""
    for shape in sources:
        match (previous, shape):
            case (Hwc(), Hwc()) if (shape.height, shape.width) == (
                previous.height,
                previous.width,
            ):
                continue
            case (Flat(), Flat()) if shape.size == previous.size:
                continue
        raise ValidationError(
            f"shortcut source {shape} is not compatible with previous layer output {previous}"
        )
    return previous


def _resolve_layer(
    index: int,
    layer: LayerConfig,
    layers: Sequence[LayerConfig],
    input_size: Shape,
    outputs: Sequence[Shape],
) -> ResolvedLayer:
    if index == 0:
        seq_inputs: tuple[int, ...] = ()
        seq_shape = input_size
    else:
        seq_inputs = (index - 1,)
        seq_shape = outputs[index - 1]

    def sequential(output_shape: Shape, references: tuple[int, ...] = ()) -> ResolvedLayer:
        return ResolvedLayer(index, layer, seq_inputs, (seq_shape,), output_shape, references)

    match layer:
        case ConvolutionalConfig():
            references = ()
            if layer.share_index is not None:
                shared = resolve_index(layer.share_index, index)
                if not isinstance(layers[shared], ConvolutionalConfig):
                    raise ValidationError(
                        f"share_index must reference a convolutional layer, layer {shared} "
                        f"is {layer_kind(layers[shared]).value}"
                    )
                references = (shared,)
            return sequential(convolutional_output_shape(layer, seq_shape), references)
        case ConnectedConfig():
            return sequential(connected_output_shape(layer, seq_shape))
        case MaxPoolConfig():
            return sequential(maxpool_output_shape(layer, seq_shape))
        case UpSampleConfig():
            return sequential(upsample_output_shape(layer, seq_shape))
        case BatchNormConfig():
            return sequential(seq_shape)
        case YoloConfig():
            references = ()
            if layer.embedding_layer is not None:
                references = (resolve_index(layer.embedding_layer, index),)
            return sequential(yolo_output_shape(layer, seq_shape), references)
        case RouteConfig():
            sources = tuple(resolve_index(ref, index) for ref in layer.layers)
            shapes = tuple(outputs[source] for source in sources)
            return ResolvedLayer(
                index, layer, sources, shapes, route_output_shape(layer, shapes), sources
            )
        case ShortcutConfig():
            if index == 0:
                raise ValidationError("shortcut layer needs a previous layer")
            sources = tuple(resolve_index(ref, index) for ref in layer.from_layers)
            inputs = (index - 1, *sources)
            shapes = tuple(outputs[i] for i in inputs)
            output_shape = shortcut_output_shape(shapes[0], shapes[1:])
            return ResolvedLayer(index, layer, inputs, shapes, output_shape, sources)
        case _:
            raise TypeError(f"not a layer config: {type(layer).__name__}")


def resolve(config: DarknetConfig) -> ResolvedNetwork:
    """Resolve every layer reference and propagate shapes from the input.

    Args:
        config: Parsed network description.

    Returns:
        Resolved network with one :class:`ResolvedLayer` per layer.

    Raises:
        ValidationError: On a forward, self or out-of-range reference, or
            incompatible shapes. The error's ``section`` is the layer
            position plus one (``[net]`` is section 0).
    """
    outputs: list[Shape] = []
    resolved: list[ResolvedLayer] = []
    for index, layer in enumerate(config.layers):
        try:
            item = _resolve_layer(index, layer, config.layers, config.net.input_size, outputs)
        except ConfigError as err:
            raise err.at(section=index + 1, kind=layer_kind(layer).value)
        outputs.append(item.output_shape)
        resolved.append(item)

    logger.debug(f"Resolved {len(resolved)} layers from input {config.net.input_size}")
    return ResolvedNetwork(config=config, layers=tuple(resolved))
