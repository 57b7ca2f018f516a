"""Dataclass-driven record encoding.

Record types are plain dataclasses whose fields are declared with
:func:`option` (a scalar or list bound to one cfg key through a codec) or
:func:`nested` (a sub-record whose keys live in the same section). The
generic :func:`decode_fields` / :func:`encode_fields` then handle every
record type without per-field code.

Example:
    @dataclass(frozen=True)
    class UpSampleConfig:
        stride: int = option(POSITIVE, default=2)
        reverse: bool = option(BOOL, default=False)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import MISSING, Field, field, fields
from typing import Any, TypeVar

from darknet_cfg.codec.fields import Codec
from darknet_cfg.errors import ConfigError, ValidationError

logger = logging.getLogger(__name__)

R = TypeVar("R")


def option(
    codec: Codec,
    *,
    key: str | None = None,
    default: Any = MISSING,
    warn_if_missing: bool = False,
) -> Any:
    """Declare a record field bound to a cfg key.

    Args:
        codec: Codec converting the field's text.
        key: Key spelling in the cfg file. Defaults to the attribute name.
        default: Value used when the key is absent. Omit for required keys.
        warn_if_missing: Log a warning when the default is applied.
    """
    metadata = {"codec": codec, "key": key, "warn_if_missing": warn_if_missing}
    return field(default=default, metadata=metadata)


def nested(record_cls: type) -> Any:
    """Declare a sub-record sharing its parent's section."""
    return field(default_factory=record_cls, metadata={"nested": record_cls})


def _key(f: Field) -> str:
    return f.metadata.get("key") or f.name


def known_keys(record_cls: type) -> set[str]:
    """All cfg keys a record type understands, nested records included."""
    keys: set[str] = set()
    for f in fields(record_cls):
        if "nested" in f.metadata:
            keys |= known_keys(f.metadata["nested"])
        elif "codec" in f.metadata:
            keys.add(_key(f))
    return keys


def decode_fields(record_cls: type[R], values: Mapping[str, str]) -> R:
    """Build a record from a section's key to text mapping.

    Keys not known to ``record_cls`` are ignored here; the caller decides
    what to do with them (see :func:`known_keys`).

    Raises:
        ConfigSyntaxError: If a value cannot be decoded.
        ValidationError: If a required key is absent.
    """
    kwargs: dict[str, Any] = {}
    for f in fields(record_cls):
        if "nested" in f.metadata:
            kwargs[f.name] = decode_fields(f.metadata["nested"], values)
            continue
        if "codec" not in f.metadata:
            continue

        key = _key(f)
        if key not in values:
            if f.default is MISSING:
                raise ValidationError(f"missing required field '{key}'", key=key)
            if f.metadata["warn_if_missing"]:
                logger.warning(f"'{key}' is not specified, using default {f.default}")
            continue

        text = values[key]
        try:
            kwargs[f.name] = f.metadata["codec"].decode(text)
        except ConfigError as err:
            raise err.at(key=key, value=text)

    return record_cls(**kwargs)


def encode_fields(record: Any) -> dict[str, str]:
    """Encode a record back into a key to text mapping.

    Fields are emitted in declaration order; optional fields holding None
    are left out.
    """
    out: dict[str, str] = {}
    for f in fields(record):
        value = getattr(record, f.name)
        if "nested" in f.metadata:
            out.update(encode_fields(value))
            continue
        if "codec" not in f.metadata or value is None:
            continue
        out[_key(f)] = f.metadata["codec"].encode(value)
    return out
