"""Tests for parsing whole cfg files and writing them back."""

import logging
from pathlib import Path

import pytest

from darknet_cfg import (
    DarknetConfig,
    ParseOptions,
    parse,
    parse_file,
    parse_records,
    serialize,
)
from darknet_cfg.config import (
    Adam,
    BatchNormConfig,
    CommonLayerOptions,
    ConnectedConfig,
    ConstantPolicy,
    ConvolutionalConfig,
    ExpPolicy,
    MaxPoolConfig,
    NetConfig,
    PolyPolicy,
    RandomPolicy,
    RouteConfig,
    SgdrCustomPolicy,
    SgdrPolicy,
    ShortcutConfig,
    SigmoidPolicy,
    StepPolicy,
    StepsPolicy,
    UpSampleConfig,
    YoloConfig,
    assemble,
    to_records,
)
from darknet_cfg.errors import ConfigSyntaxError, SchemaError, ValidationError
from darknet_cfg.types import (
    Absolute,
    Activation,
    Deform,
    Flat,
    Hwc,
    Relative,
    SectionKind,
    WeightsType,
)

CONFIGS_DIR = Path(__file__).parent.parent / "configs"

MINIMAL = """
[net]
width=32
height=32
channels=3

[convolutional]
filters=8
size=3
pad=1
activation=leaky
"""


class TestParseYoloV3Tiny:
    """Tests for parsing yolov3-tiny.cfg."""

    def test_layers(self) -> None:
        """Test layer count and kinds."""
        config = parse_file(CONFIGS_DIR / "yolov3-tiny.cfg")
        assert len(config) == 24
        assert isinstance(config.layers[0], ConvolutionalConfig)
        assert isinstance(config.layers[1], MaxPoolConfig)
        assert isinstance(config.layers[16], YoloConfig)
        assert isinstance(config.layers[19], UpSampleConfig)
        assert config.layers[20].layers == (Relative(1), Absolute(8))

    def test_net(self) -> None:
        """Test [net] values, including derived ones."""
        net = parse_file(CONFIGS_DIR / "yolov3-tiny.cfg").net
        assert net.input_size == Hwc(416, 416, 3)
        assert net.batch == 64
        assert net.hue == 0.1
        assert net.sequential_subdivisions == 2
        assert net.sgdr_cycle == 500200
        assert net.policy == StepsPolicy((400000, 450000), (0.1, 0.1))

    def test_yolo_head(self) -> None:
        """Test the first detection head."""
        head = parse_file(CONFIGS_DIR / "yolov3-tiny.cfg").layers[16]
        assert head.mask == (3, 4, 5)
        assert head.num == 6
        assert head.classes == 80
        assert len(head.anchors) == 6
        assert head.ignore_thresh == 0.7

    def test_round_trip(self) -> None:
        """Test that serialized text parses back to an equal config."""
        config = parse_file(CONFIGS_DIR / "yolov3-tiny.cfg")
        assert parse(serialize(config)) == config

    def test_serialize_is_stable(self) -> None:
        """Test that serializing twice gives the same text."""
        config = parse_file(CONFIGS_DIR / "yolov3-tiny.cfg")
        text = serialize(config)
        assert serialize(parse(text)) == text


class TestRoundTrip:
    """Tests for serializing canonically built configs."""

    def test_built_config(self) -> None:
        """Test that a config built in code survives text."""
        config = DarknetConfig(
            net=NetConfig(input_size=Hwc(64, 64, 3), batch=4),
            layers=(
                ConvolutionalConfig(filters=16, size=3, activation=Activation.MISH, padding=1),
                ConvolutionalConfig(
                    filters=16,
                    size=3,
                    activation=Activation.MISH,
                    padding=1,
                    stride_x=2,
                    share_index=Relative(1),
                ),
                ShortcutConfig(
                    from_layers=(Absolute(0),),
                    activation=Activation.LINEAR,
                    weights_type=WeightsType.PER_CHANNEL,
                ),
                MaxPoolConfig(stride_x=2, stride_y=2, size=2, padding=1),
                RouteConfig(layers=(Relative(1), Relative(3))),
            ),
        )
        assert parse(serialize(config)) == config

    def test_flat_input_layers(self) -> None:
        """Test a flat input network with connected and batchnorm layers."""
        config = DarknetConfig(
            net=NetConfig(
                input_size=Flat(64),
                adam=Adam(b1=0.85, b2=0.99, eps=1e-08),
                policy=SgdrCustomPolicy(steps=(100, 200), scales=(0.5, 0.1), seq_scales=(1.0, 0.5)),
            ),
            layers=(
                ConnectedConfig(
                    output=32,
                    activation=Activation.RELU,
                    batch_normalize=True,
                    common=CommonLayerOptions(clip=2.5, dont_load=True),
                ),
                BatchNormConfig(),
                ConnectedConfig(output=16),
                RouteConfig(layers=(Relative(1), Absolute(1))),
            ),
        )
        text = serialize(config)
        assert "inputs=64" in text
        assert "dontload=1" in text
        assert parse(text) == config

    def test_image_input_layers(self) -> None:
        """Test a deformable convolution, a fully specified head and reverse upsampling."""
        config = DarknetConfig(
            net=NetConfig(input_size=Hwc(32, 32, 3), policy=SigmoidPolicy(gamma=0.5, step=300)),
            layers=(
                ConvolutionalConfig(
                    filters=255,
                    size=3,
                    activation=Activation.LINEAR,
                    padding=2,
                    dilation=2,
                    deform=Deform.SWAY,
                ),
                YoloConfig(
                    mask=(0, 1, 2),
                    num=6,
                    classes=80,
                    anchors=((10, 14), (23, 27), (37, 58), (81, 82), (135, 169), (344, 319)),
                    map=Path("data/map.txt"),
                    embedding_layer=Relative(1),
                    counters_per_class=(),
                    max_delta=5.0,
                    common=CommonLayerOptions(clip=1.0),
                ),
                UpSampleConfig(stride=2, reverse=True),
            ),
        )
        text = serialize(config)
        assert "sway=1" in text
        assert "counters_per_class=\n" in text
        assert parse(text) == config

    @pytest.mark.parametrize(
        "policy",
        [
            RandomPolicy(),
            PolyPolicy(),
            ConstantPolicy(),
            StepPolicy(step=500, scale=0.5),
            ExpPolicy(gamma=0.99),
            SigmoidPolicy(gamma=2.0, step=100),
            StepsPolicy(steps=(400, 450), scales=(0.1, 0.1)),
            SgdrPolicy(),
            SgdrCustomPolicy(steps=(10, 20)),
        ],
        ids=lambda policy: type(policy).__name__,
    )
    def test_policy(self, policy) -> None:
        """Test that every learning rate policy survives text."""
        config = parse(MINIMAL)
        config = DarknetConfig(
            net=NetConfig(input_size=config.net.input_size, max_batches=1000, policy=policy),
            layers=config.layers,
        )
        restored = parse(serialize(config))
        assert restored == config
        assert type(restored.net.policy) is type(policy)

    def test_records(self) -> None:
        """Test the record level round trip."""
        config = parse(MINIMAL)
        records = to_records(config)
        assert [name for name, _ in records] == ["net", "convolutional"]
        conv = records[1][1]
        assert conv["pad"] == "0"
        assert conv["padding"] == "1"
        assert conv["stride_x"] == "1"
        assert "share_index" not in conv
        assert parse_records(records) == config

    def test_mixed_case_key_preserved(self) -> None:
        """Test that mixed case keys are written as read."""
        assert "workspace_size_limit_MB=1024" in serialize(parse(MINIMAL))


class TestSchemaErrors:
    """Tests for record stream structure errors."""

    def test_empty(self) -> None:
        """Test that an empty file is rejected."""
        with pytest.raises(SchemaError, match="no sections"):
            parse("")

    def test_net_not_first(self) -> None:
        """Test that net must be the first section."""
        with pytest.raises(SchemaError, match="first section must be"):
            parse("[maxpool]\nsize=2\n[net]\ninputs=4\n")

    def test_second_net(self) -> None:
        """Test that net may appear only once."""
        with pytest.raises(SchemaError, match="only once") as excinfo:
            parse(MINIMAL + "\n[net]\ninputs=4\n")
        assert excinfo.value.section == 2

    def test_unknown_section(self) -> None:
        """Test that an unknown section name is rejected."""
        with pytest.raises(SchemaError, match="Unknown section type: dropout"):
            parse(MINIMAL + "\n[dropout]\nprobability=.5\n")

    def test_assemble_checks_order(self) -> None:
        """Test the ordering checks of assemble."""
        conv = parse(MINIMAL).layers[0]
        with pytest.raises(SchemaError):
            assemble([conv])
        with pytest.raises(SchemaError):
            assemble([])

    def test_net_as_layer(self) -> None:
        """Test that a net record is not a layer."""
        net = parse(MINIMAL).net
        with pytest.raises(SchemaError, match="only once"):
            DarknetConfig(net=net, layers=(net,))


class TestErrorLocation:
    """Tests for error context."""

    def test_syntax_error_location(self) -> None:
        """Test that syntax errors name the section and key."""
        with pytest.raises(ConfigSyntaxError) as excinfo:
            parse(MINIMAL + "\n[maxpool]\nsize=two\n")
        err = excinfo.value
        assert err.section == 2
        assert err.kind == "maxpool"
        assert err.key == "size"
        assert err.value == "two"
        assert str(err).startswith("section 2 [maxpool], key 'size', value 'two'")

    def test_validation_error_location(self) -> None:
        """Test that validation errors name the section."""
        with pytest.raises(ValidationError) as excinfo:
            parse(MINIMAL + "\n[convolutional]\nfilters=4\nsize=1\ndilation=2\nactivation=relu\n")
        assert excinfo.value.section == 2
        assert excinfo.value.kind == "convolutional"


class TestParseOptions:
    """Tests for unknown key handling and graph checking during parse."""

    def test_unknown_key_warns(self, caplog) -> None:
        """Test the default unknown key policy."""
        with caplog.at_level(logging.WARNING):
            parse(MINIMAL + "bogus=1\n")
        assert "unknown keys ['bogus']" in caplog.text

    def test_unknown_key_ignored(self, caplog) -> None:
        """Test that ignored keys log nothing."""
        with caplog.at_level(logging.WARNING):
            parse(MINIMAL + "bogus=1\n", ParseOptions(unknown_keys="ignore"))
        assert "bogus" not in caplog.text

    def test_unknown_key_error(self) -> None:
        """Test that unknown keys can be errors."""
        with pytest.raises(SchemaError) as excinfo:
            parse(MINIMAL + "bogus=1\n", ParseOptions(unknown_keys="error"))
        assert excinfo.value.key == "bogus"
        assert excinfo.value.section == 1

    def test_check_graph(self) -> None:
        """Test resolving the graph while parsing."""
        text = MINIMAL + "\n[route]\nlayers=2\n"
        assert len(parse(text)) == 2
        with pytest.raises(ValidationError, match="layer reference 2"):
            parse(text, ParseOptions(check_graph=True))

    def test_kinds(self) -> None:
        """Test the section kinds written for a checked network."""
        config = parse_file(CONFIGS_DIR / "yolov3-tiny.cfg", ParseOptions(check_graph=True))
        kinds = [name for name, _ in to_records(config)]
        assert kinds[0] == SectionKind.NET.value
        assert kinds.count("yolo") == 2
