"""Top-level network description and its assembly from normalized sections."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from darknet_cfg.codec.records import encode_fields
from darknet_cfg.config.layers import LayerConfig, layer_kind
from darknet_cfg.config.net import NetConfig
from darknet_cfg.config.registry import get_section
from darknet_cfg.errors import SchemaError
from darknet_cfg.types import SectionKind


@dataclass(frozen=True)
class DarknetConfig:
    """A parsed cfg file.

    Immutable once built; layer positions are indices into ``layers``
    (``[net]`` excluded).

    Attributes:
        net: Network-wide hyperparameters.
        layers: Layer records in declaration order.
    """

    net: NetConfig
    layers: tuple[LayerConfig, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "layers", tuple(self.layers))
        if not isinstance(self.net, NetConfig):
            raise SchemaError("the first section must be [net]", section=0)
        for position, layer in enumerate(self.layers):
            if isinstance(layer, NetConfig):
                raise SchemaError(
                    "the [net] section must appear only once, as the first section",
                    section=position + 1,
                    kind=SectionKind.NET.value,
                )
            layer_kind(layer)

    def __len__(self) -> int:
        return len(self.layers)


def assemble(records: Sequence[Any]) -> DarknetConfig:
    """Combine normalized records into a :class:`DarknetConfig`.

    Args:
        records: Canonical records in section order, ``NetConfig`` first.

    Raises:
        SchemaError: If there are no records, the first is not the net
            record, or a later one is.
    """
    if not records:
        raise SchemaError("no sections found")
    net, *layers = records
    return DarknetConfig(net=net, layers=tuple(layers))


def to_records(config: DarknetConfig) -> list[tuple[str, dict[str, str]]]:
    """Spell a config as ordered ``(section name, {key: text})`` records."""
    net_schema = get_section(SectionKind.NET.value)
    records = [(SectionKind.NET.value, encode_fields(net_schema.denormalize(config.net)))]
    for layer in config.layers:
        schema = get_section(layer_kind(layer).value)
        records.append((schema.kind.value, encode_fields(schema.denormalize(layer))))
    return records
