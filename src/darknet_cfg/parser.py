"""Text-level entry points: cfg text to DarknetConfig and back."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path

from darknet_cfg.codec.lexer import read_records, write_records
from darknet_cfg.config.decoder import decode_records, normalize_records
from darknet_cfg.config.model import DarknetConfig, assemble, to_records
from darknet_cfg.graph.resolver import resolve
from darknet_cfg.options import ParseOptions

logger = logging.getLogger(__name__)


def parse_records(
    records: Sequence[tuple[str, Mapping[str, str]]],
    options: ParseOptions | None = None,
) -> DarknetConfig:
    """Build a config from ordered ``(section name, {key: text})`` records.

    Runs decode, normalize and assemble; with ``options.check_graph`` the
    result is also resolved so reference and shape errors surface here.

    Raises:
        ConfigError: The first failure of any stage.
    """
    options = options or ParseOptions()
    config = assemble(normalize_records(decode_records(records, options)))
    if options.check_graph:
        resolve(config)
    logger.debug(f"Parsed network with {len(config)} layers")
    return config


def parse(text: str, options: ParseOptions | None = None) -> DarknetConfig:
    """Parse cfg text.

    Args:
        text: Contents of a darknet ``.cfg`` file.
        options: Parser options; defaults are used when None.

    Returns:
        Immutable network description.

    Raises:
        ConfigSyntaxError: Malformed line or undecodable value.
        SchemaError: Unknown or misplaced section.
        ValidationError: Violated invariant or missing required key.
    """
    return parse_records(read_records(text), options)


def parse_file(path: str | Path, options: ParseOptions | None = None) -> DarknetConfig:
    """Parse a cfg file from disk."""
    with open(path) as f:
        return parse(f.read(), options)


def serialize(config: DarknetConfig) -> str:
    """Write a config back to cfg text that parses to an equal config."""
    return write_records(to_records(config))
