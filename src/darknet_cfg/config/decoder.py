"""Record decoding: ordered sections to typed raw records, then to canonical ones."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from darknet_cfg.codec.records import decode_fields, known_keys
from darknet_cfg.config.registry import get_section
from darknet_cfg.errors import ConfigError, SchemaError
from darknet_cfg.options import ParseOptions
from darknet_cfg.types import SectionKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawRecord:
    """One decoded section.

    Attributes:
        section: Position of the section in the file (``[net]`` is 0).
        kind: Section kind.
        raw: Raw record of the kind's schema.
    """

    section: int
    kind: SectionKind
    raw: Any


def _check_unknown_keys(
    values: Mapping[str, str], raw_cls: type, options: ParseOptions, section: int, name: str
) -> None:
    unknown = sorted(set(values) - known_keys(raw_cls))
    if not unknown or options.unknown_keys == "ignore":
        return
    if options.unknown_keys == "error":
        raise SchemaError(
            f"unknown keys {unknown}", section=section, kind=name, key=unknown[0]
        )
    logger.warning(f"section {section} [{name}]: ignoring unknown keys {unknown}")


def decode_records(
    records: Sequence[tuple[str, Mapping[str, str]]],
    options: ParseOptions | None = None,
) -> list[RawRecord]:
    """Decode ordered ``(name, fields)`` sections into raw records.

    Args:
        records: Sections as produced by the lexer, text values only.
        options: Parser options; defaults are used when None.

    Returns:
        Raw records in section order.

    Raises:
        SchemaError: No sections, unknown section name, first section not
            ``net``, or a later ``net`` section.
        ConfigSyntaxError: A value cannot be decoded.
        ValidationError: A required key is absent or a record invariant fails.
    """
    options = options or ParseOptions()
    if not records:
        raise SchemaError("no sections found")

    decoded = []
    for section, (name, values) in enumerate(records):
        try:
            schema = get_section(name)
            if section == 0 and schema.kind is not SectionKind.NET:
                raise SchemaError("the first section must be [net]")
            if section > 0 and schema.kind is SectionKind.NET:
                raise SchemaError("the [net] section must appear only once, as the first section")
            _check_unknown_keys(values, schema.raw_cls, options, section, name)
            raw = decode_fields(schema.raw_cls, values)
        except ConfigError as err:
            raise err.at(section=section, kind=name)
        decoded.append(RawRecord(section, schema.kind, raw))

    logger.debug(f"Decoded {len(decoded)} sections")
    return decoded


def normalize_record(record: RawRecord) -> Any:
    """Turn one raw record into its canonical form."""
    schema = get_section(record.kind.value)
    try:
        return schema.normalize(record.raw)
    except ConfigError as err:
        raise err.at(section=record.section, kind=record.kind.value)


def normalize_records(records: Sequence[RawRecord]) -> list[Any]:
    """Normalize every record; the first failure aborts the whole list."""
    return [normalize_record(record) for record in records]
