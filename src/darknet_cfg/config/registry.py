"""Section type registry for cfg decoding."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from darknet_cfg.config.layers import (
    BatchNormConfig,
    ConnectedConfig,
    RawConvolutionalConfig,
    RawMaxPoolConfig,
    RouteConfig,
    ShortcutConfig,
    UpSampleConfig,
    YoloConfig,
    denormalize_convolutional,
    denormalize_maxpool,
    normalize_convolutional,
    normalize_maxpool,
)
from darknet_cfg.config.net import RawNetConfig, denormalize_net, normalize_net
from darknet_cfg.errors import SchemaError
from darknet_cfg.types import SectionKind


def _unchanged(record: Any) -> Any:
    return record


@dataclass(frozen=True)
class SectionSchema:
    """How one section kind is read and written.

    Attributes:
        kind: Section kind.
        raw_cls: Record type the section's fields decode into.
        normalize: Raw record to canonical record.
        denormalize: Canonical record back to raw record.
    """

    kind: SectionKind
    raw_cls: type
    normalize: Callable[[Any], Any] = _unchanged
    denormalize: Callable[[Any], Any] = _unchanged


# Map section names to schemas
SECTIONS: dict[str, SectionSchema] = {
    schema.kind.value: schema
    for schema in (
        SectionSchema(SectionKind.NET, RawNetConfig, normalize_net, denormalize_net),
        SectionSchema(SectionKind.CONNECTED, ConnectedConfig),
        SectionSchema(
            SectionKind.CONVOLUTIONAL,
            RawConvolutionalConfig,
            normalize_convolutional,
            denormalize_convolutional,
        ),
        SectionSchema(SectionKind.ROUTE, RouteConfig),
        SectionSchema(SectionKind.SHORTCUT, ShortcutConfig),
        SectionSchema(
            SectionKind.MAXPOOL, RawMaxPoolConfig, normalize_maxpool, denormalize_maxpool
        ),
        SectionSchema(SectionKind.UPSAMPLE, UpSampleConfig),
        SectionSchema(SectionKind.YOLO, YoloConfig),
        SectionSchema(SectionKind.BATCHNORM, BatchNormConfig),
    )
}


def get_section(name: str) -> SectionSchema:
    """Get section schema by name.

    Args:
        name: Section name as written between brackets.

    Returns:
        Section schema.

    Raises:
        SchemaError: If the section name is not recognized.
    """
    if name not in SECTIONS:
        raise SchemaError(f"Unknown section type: {name}. Available: {list(SECTIONS.keys())}")
    return SECTIONS[name]
