"""Weight layout planning.

Works out, for every layer, which named scalar buffers a darknet
``.weights`` file holds for it and in what order. Nothing here reads the
file; a loader walks :meth:`WeightPlan.slices` over the flat float stream.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

from darknet_cfg.config.layers import (
    BatchNormConfig,
    ConnectedConfig,
    ConvolutionalConfig,
    LayerConfig,
    ShortcutConfig,
    layer_common,
    layer_kind,
)
from darknet_cfg.errors import ConfigError, ValidationError
from darknet_cfg.graph.resolver import ResolvedNetwork
from darknet_cfg.types import Flat, Hwc, SectionKind, Shape, WeightsType

logger = logging.getLogger(__name__)

BATCH_NORM_BUFFERS = ("bn_scale", "bn_bias", "bn_mean", "bn_variance")


@dataclass(frozen=True)
class BufferSpec:
    """A named run of scalars in the weight stream."""

    name: str
    size: int


@dataclass(frozen=True)
class LayerWeights:
    """Buffers requested by one layer, in stream order.

    Attributes:
        index: Layer position.
        kind: Layer kind.
        buffers: Requested buffers.
        load: False when the layer is marked ``dontload``; its buffers are
            then not read from the stream.
    """

    index: int
    kind: SectionKind
    buffers: tuple[BufferSpec, ...] = ()
    load: bool = True

    @property
    def size(self) -> int:
        return sum(buffer.size for buffer in self.buffers)


def _channels(shape: Shape) -> int:
    match shape:
        case Hwc():
            return shape.channels
        case Flat():
            return shape.size


def _batch_norm(channels: int) -> tuple[BufferSpec, ...]:
    return tuple(BufferSpec(name, channels) for name in BATCH_NORM_BUFFERS)


def convolutional_num_weights(conv: ConvolutionalConfig, input_channels: int) -> int:
    """Kernel weight count: ``(in_c / groups) * filters * size^2``."""
    if input_channels % conv.groups != 0:
        raise ValidationError(
            f"input channels {input_channels} are not a multiple of groups={conv.groups}"
        )
    return input_channels // conv.groups * conv.filters * conv.size**2


def shortcut_num_weights(shortcut: ShortcutConfig, output_channels: int) -> int:
    sources = len(shortcut.from_layers) + 1
    match shortcut.weights_type:
        case WeightsType.NONE:
            return 0
        case WeightsType.PER_FEATURE:
            return sources
        case WeightsType.PER_CHANNEL:
            return sources * output_channels


def layer_weights(
    layer: LayerConfig, input_shape: Shape, output_shape: Shape
) -> tuple[BufferSpec, ...]:
    """Buffers a layer reads from the weight stream, in order.

    Args:
        layer: Layer record.
        input_shape: Shape the layer consumes (its primary input).
        output_shape: Shape the layer produces.

    Returns:
        Ordered buffer specs; empty for layers without parameters.

    Raises:
        ValidationError: If the input channels do not divide into the
            convolution groups.
    """
    match layer:
        case ConvolutionalConfig():
            if layer.share_index is not None:
                return ()
            weights = convolutional_num_weights(layer, _channels(input_shape))
            buffers = [BufferSpec("biases", layer.filters)]
            if layer.batch_normalize:
                buffers.extend(_batch_norm(layer.filters))
            buffers.append(BufferSpec("weights", weights))
            return tuple(buffers)
        case ConnectedConfig():
            buffers = [
                BufferSpec("biases", layer.output),
                BufferSpec("weights", input_shape.size * layer.output),
            ]
            if layer.batch_normalize:
                buffers.extend(_batch_norm(layer.output))
            return tuple(buffers)
        case ShortcutConfig():
            count = shortcut_num_weights(layer, _channels(output_shape))
            return (BufferSpec("weights", count),) if count else ()
        case BatchNormConfig():
            return _batch_norm(_channels(output_shape))
        case _:
            return ()


@dataclass(frozen=True)
class WeightPlan:
    """Per-layer buffer requests for a whole network."""

    layers: tuple[LayerWeights, ...]

    @property
    def total(self) -> int:
        """Number of scalars read from the stream."""
        return sum(layer.size for layer in self.layers if layer.load)

    def slices(self) -> Iterator[tuple[int, str, int, int]]:
        """Yield ``(layer index, buffer name, start, stop)`` over the flat stream.

        Layers marked ``dontload`` are skipped and consume no offsets.
        """
        offset = 0
        for layer in self.layers:
            if not layer.load:
                continue
            for buffer in layer.buffers:
                yield layer.index, buffer.name, offset, offset + buffer.size
                offset += buffer.size


def plan_weights(network: ResolvedNetwork) -> WeightPlan:
    """Compute the weight layout of a resolved network."""
    planned = []
    for resolved in network.layers:
        try:
            buffers = layer_weights(resolved.layer, resolved.input_shape, resolved.output_shape)
        except ConfigError as err:
            raise err.at(section=resolved.index + 1, kind=layer_kind(resolved.layer).value)
        load = not layer_common(resolved.layer).dont_load
        planned.append(LayerWeights(resolved.index, resolved.kind, buffers, load))

    plan = WeightPlan(tuple(planned))
    logger.debug(f"Planned {plan.total} weights over {len(planned)} layers")
    return plan
