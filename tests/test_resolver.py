"""Tests for reference resolution and shape propagation."""

from pathlib import Path

import pytest

from darknet_cfg import DarknetConfig, parse, parse_file, resolve
from darknet_cfg.config import (
    BatchNormConfig,
    ConnectedConfig,
    ConvolutionalConfig,
    MaxPoolConfig,
    NetConfig,
    RouteConfig,
    ShortcutConfig,
    UpSampleConfig,
    YoloConfig,
)
from darknet_cfg.errors import ValidationError
from darknet_cfg.graph import resolve_index
from darknet_cfg.types import Absolute, Activation, Flat, Hwc, Relative, SectionKind

CONFIGS_DIR = Path(__file__).parent.parent / "configs"


def network(*layers, input_size=Hwc(416, 416, 3)) -> DarknetConfig:
    return DarknetConfig(net=NetConfig(input_size=input_size), layers=layers)


def conv3(filters: int, **kwargs) -> ConvolutionalConfig:
    return ConvolutionalConfig(
        filters=filters, size=3, activation=Activation.LEAKY, padding=1, **kwargs
    )


class TestResolveIndex:
    """Tests for layer index resolution."""

    def test_relative(self) -> None:
        """Test a relative reference."""
        assert resolve_index(Relative(1), 5) == 4
        assert resolve_index(Relative(5), 5) == 0

    def test_absolute(self) -> None:
        """Test an absolute reference."""
        assert resolve_index(Absolute(2), 5) == 2

    def test_before_first_layer(self) -> None:
        """Test a reference before the first layer."""
        with pytest.raises(ValidationError, match="resolves to layer -1"):
            resolve_index(Relative(6), 5)

    def test_self_reference(self) -> None:
        """Test that a layer cannot reference itself."""
        with pytest.raises(ValidationError):
            resolve_index(Absolute(5), 5)

    def test_forward_reference(self) -> None:
        """Test that forward references are rejected."""
        with pytest.raises(ValidationError):
            resolve_index(Absolute(7), 5)


class TestSequentialShapes:
    """Tests for layers fed by the previous layer."""

    def test_convolution_same_padding(self) -> None:
        """Test convolution with same padding."""
        resolved = resolve(network(conv3(32)))
        layer = resolved.layers[0]
        assert layer.inputs == ()
        assert layer.input_shape == Hwc(416, 416, 3)
        assert layer.output_shape == Hwc(416, 416, 32)

    def test_convolution_stride(self) -> None:
        """Test a strided convolution."""
        resolved = resolve(network(conv3(64, stride_x=2, stride_y=2)))
        assert resolved.layers[0].output_shape == Hwc(208, 208, 64)

    def test_convolution_valid(self) -> None:
        """Test convolution without padding."""
        layer = ConvolutionalConfig(filters=8, size=3, activation=Activation.RELU)
        resolved = resolve(network(layer, input_size=Hwc(10, 12, 1)))
        assert resolved.layers[0].output_shape == Hwc(8, 10, 8)

    def test_kernel_larger_than_input(self) -> None:
        """Test a kernel larger than the input."""
        layer = ConvolutionalConfig(filters=8, size=5, activation=Activation.RELU)
        with pytest.raises(ValidationError, match="exceeds padded input") as excinfo:
            resolve(network(layer, input_size=Hwc(3, 3, 1)))
        assert excinfo.value.section == 1

    def test_convolution_on_flat_input(self) -> None:
        """Test that convolution needs an image input."""
        with pytest.raises(ValidationError, match="HxWxC"):
            resolve(network(conv3(8), input_size=Flat(100)))

    def test_maxpool_default_padding(self) -> None:
        """Test max pooling with the default padding."""
        pool = MaxPoolConfig(stride_x=2, stride_y=2, size=2, padding=1)
        resolved = resolve(network(conv3(32), pool))
        assert resolved.layers[1].output_shape == Hwc(208, 208, 32)

    def test_maxpool_stride_one(self) -> None:
        """Test max pooling with stride one."""
        pool = MaxPoolConfig(size=2, padding=1)
        resolved = resolve(network(pool, input_size=Hwc(13, 13, 512)))
        assert resolved.layers[0].output_shape == Hwc(13, 13, 512)

    def test_maxpool_depth(self) -> None:
        """Test channel pooling."""
        pool = MaxPoolConfig(maxpool_depth=True, out_channels=4)
        resolved = resolve(network(pool, input_size=Hwc(26, 26, 64)))
        assert resolved.layers[0].output_shape == Hwc(26, 26, 4)

    def test_upsample(self) -> None:
        """Test upsampling."""
        resolved = resolve(network(UpSampleConfig(), input_size=Hwc(13, 13, 128)))
        assert resolved.layers[0].output_shape == Hwc(26, 26, 128)

    def test_upsample_reverse(self) -> None:
        """Test reverse upsampling."""
        layer = UpSampleConfig(stride=2, reverse=True)
        resolved = resolve(network(layer, input_size=Hwc(26, 26, 8)))
        assert resolved.layers[0].output_shape == Hwc(13, 13, 8)

    def test_connected(self) -> None:
        """Test that connected layers flatten."""
        resolved = resolve(network(ConnectedConfig(output=10), BatchNormConfig()))
        assert resolved.layers[0].output_shape == Flat(10)
        assert resolved.layers[1].output_shape == Flat(10)

    def test_batchnorm_identity(self) -> None:
        """Test that batchnorm keeps the shape."""
        resolved = resolve(network(conv3(16), BatchNormConfig()))
        assert resolved.layers[1].output_shape == Hwc(416, 416, 16)
        assert resolved.layers[1].inputs == (0,)


class TestYolo:
    """Tests for detection head channel checks."""

    def test_channels_match(self) -> None:
        """Test matching input channels."""
        head = YoloConfig(mask=(0, 1, 2), classes=80, num=6)
        resolved = resolve(network(head, input_size=Hwc(13, 13, 255)))
        assert resolved.layers[0].output_shape == Hwc(13, 13, 255)

    def test_channels_mismatch(self) -> None:
        """Test mismatched input channels."""
        head = YoloConfig(mask=(0, 1, 2), classes=20, num=6)
        with pytest.raises(ValidationError, match="expects 75 input channels, got 255"):
            resolve(network(head, input_size=Hwc(13, 13, 255)))

    def test_embedding_layer(self) -> None:
        """Test embedding_layer resolution."""
        head = YoloConfig(mask=(0,), classes=1, num=1, embedding_layer=Relative(2))
        resolved = resolve(
            network(conv3(8), conv3(6), head, input_size=Hwc(13, 13, 3))
        )
        assert resolved.layers[2].references == (0,)


class TestRoute:
    """Tests for route aggregation."""

    def test_concatenation(self) -> None:
        """Test channel concatenation."""
        resolved = resolve(
            network(
                conv3(16),
                conv3(32),
                RouteConfig(layers=(Relative(1), Absolute(0))),
            )
        )
        route = resolved.layers[2]
        assert route.inputs == (1, 0)
        assert route.input_shapes == (Hwc(416, 416, 32), Hwc(416, 416, 16))
        assert route.output_shape == Hwc(416, 416, 48)

    def test_groups(self) -> None:
        """Test grouped routes."""
        route = RouteConfig(layers=(Relative(1),), groups=2, group_id=1)
        resolved = resolve(network(conv3(64), route))
        assert resolved.layers[1].output_shape == Hwc(416, 416, 32)

    def test_groups_not_dividing(self) -> None:
        """Test groups that do not divide the channels."""
        route = RouteConfig(layers=(Relative(1),), groups=2)
        with pytest.raises(ValidationError, match="not divisible"):
            resolve(network(conv3(15), route))

    def test_spatial_mismatch(self) -> None:
        """Test sources of different sizes."""
        with pytest.raises(ValidationError, match="share height and width"):
            resolve(
                network(
                    conv3(16),
                    conv3(16, stride_x=2, stride_y=2),
                    RouteConfig(layers=(Relative(1), Relative(2))),
                )
            )

    def test_flat_sources(self) -> None:
        """Test flat sources."""
        resolved = resolve(
            network(
                ConnectedConfig(output=10),
                ConnectedConfig(output=6),
                RouteConfig(layers=(Relative(1), Relative(2))),
            )
        )
        assert resolved.layers[2].output_shape == Flat(16)

    def test_mixed_sources(self) -> None:
        """Test mixed flat and image sources."""
        with pytest.raises(ValidationError, match="mixing flat"):
            resolve(
                network(
                    conv3(16),
                    ConnectedConfig(output=10),
                    RouteConfig(layers=(Relative(1), Relative(2))),
                )
            )

    def test_forward_reference(self) -> None:
        """Test a forward route source."""
        with pytest.raises(ValidationError) as excinfo:
            resolve(network(conv3(16), RouteConfig(layers=(Absolute(3),))))
        assert excinfo.value.section == 2
        assert excinfo.value.kind == "route"


class TestShortcut:
    """Tests for shortcut aggregation."""

    def test_residual(self) -> None:
        """Test a residual connection."""
        shortcut = ShortcutConfig(from_layers=(Relative(3),), activation=Activation.LINEAR)
        resolved = resolve(network(conv3(32), conv3(16), conv3(32), shortcut))
        layer = resolved.layers[3]
        assert layer.inputs == (2, 0)
        assert layer.references == (0,)
        assert layer.output_shape == Hwc(416, 416, 32)

    def test_channels_may_differ(self) -> None:
        """Test sources with different channels."""
        shortcut = ShortcutConfig(from_layers=(Absolute(0),), activation=Activation.LINEAR)
        resolved = resolve(network(conv3(8), conv3(32), shortcut))
        assert resolved.layers[2].output_shape == Hwc(416, 416, 32)

    def test_spatial_mismatch(self) -> None:
        """Test sources of different sizes."""
        shortcut = ShortcutConfig(from_layers=(Absolute(0),), activation=Activation.LINEAR)
        with pytest.raises(ValidationError, match="not compatible"):
            resolve(network(conv3(8), conv3(8, stride_x=2, stride_y=2), shortcut))

    def test_first_layer(self) -> None:
        """Test a shortcut as the first layer."""
        shortcut = ShortcutConfig(from_layers=(Absolute(0),), activation=Activation.LINEAR)
        with pytest.raises(ValidationError):
            resolve(network(shortcut))


class TestShareIndex:
    """Tests for convolution weight sharing references."""

    def test_reference(self) -> None:
        """Test share_index resolution."""
        resolved = resolve(network(conv3(8), conv3(8, share_index=Relative(1))))
        assert resolved.index_map() == {0: (), 1: (0,)}

    def test_must_reference_convolution(self) -> None:
        """Test that share_index must name a convolution."""
        with pytest.raises(ValidationError, match="must reference a convolutional layer"):
            resolve(network(UpSampleConfig(), conv3(8, share_index=Absolute(0))))


class TestYoloV3Tiny:
    """Tests for resolving yolov3-tiny.cfg."""

    def test_output_shapes(self) -> None:
        """Test the shapes that define the two detection scales."""
        resolved = resolve(parse_file(CONFIGS_DIR / "yolov3-tiny.cfg"))
        shapes = resolved.output_shapes
        assert resolved.input_shape == Hwc(416, 416, 3)
        assert shapes[0] == Hwc(416, 416, 16)
        assert shapes[1] == Hwc(208, 208, 16)
        assert shapes[8] == Hwc(26, 26, 256)
        assert shapes[11] == Hwc(13, 13, 512)
        assert shapes[15] == Hwc(13, 13, 255)
        assert shapes[17] == Hwc(13, 13, 256)
        assert shapes[19] == Hwc(26, 26, 128)
        assert shapes[20] == Hwc(26, 26, 384)
        assert shapes[23] == Hwc(26, 26, 255)

    def test_index_map(self) -> None:
        """Test the index map of yolov3-tiny."""
        resolved = resolve(parse_file(CONFIGS_DIR / "yolov3-tiny.cfg"))
        index_map = resolved.index_map()
        assert index_map[17] == (13,)
        assert index_map[20] == (19, 8)
        assert resolved.layers[20].kind is SectionKind.ROUTE

    def test_from_text(self) -> None:
        """Test resolving yolov3-tiny parsed from text."""
        text = "[net]\ninputs=20\n\n[connected]\noutput=5\nactivation=relu\n"
        resolved = resolve(parse(text))
        assert resolved.layers[0].input_shape == Flat(20)
        assert resolved.layers[0].output_shape == Flat(5)
