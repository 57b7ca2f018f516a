"""Line-level reader and writer for cfg text.

Splits text into ordered ``(section name, {key: value})`` records and joins
them back. No value is interpreted here: every value stays a string.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from darknet_cfg.errors import ConfigSyntaxError

logger = logging.getLogger(__name__)

Record = tuple[str, dict[str, str]]

_COMMENT_PREFIXES = ("#", ";")


def read_records(text: str) -> list[Record]:
    """Split cfg text into sections.

    Blank lines and lines starting with ``#`` or ``;`` are skipped.
    Surrounding whitespace of names, keys and values is stripped. A repeated
    key inside one section keeps its last value.

    Raises:
        ConfigSyntaxError: For a malformed header, a line without ``=``, or
            a key before the first section header.
    """
    records: list[Record] = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith(_COMMENT_PREFIXES):
            continue

        if line.startswith("["):
            if not line.endswith("]"):
                raise ConfigSyntaxError(f"line {line_no}: unterminated section header", value=line)
            name = line[1:-1].strip()
            if not name:
                raise ConfigSyntaxError(f"line {line_no}: empty section name", value=line)
            records.append((name, {}))
            continue

        if "=" not in line:
            raise ConfigSyntaxError(f"line {line_no}: expected 'key=value'", value=line)
        if not records:
            raise ConfigSyntaxError(f"line {line_no}: key outside of any section", value=line)

        key, value = line.split("=", 1)
        key = key.strip()
        name, values = records[-1]
        if key in values:
            logger.warning(f"line {line_no}: duplicate key '{key}' in [{name}], keeping last value")
        values[key] = value.strip()

    logger.debug(f"Read {len(records)} sections")
    return records


def write_records(records: Iterable[tuple[str, Mapping[str, str]]]) -> str:
    """Join sections into cfg text, one blank line between sections."""
    blocks = []
    for name, values in records:
        lines = [f"[{name}]"]
        lines.extend(f"{key}={value}" for key, value in values.items())
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks) + "\n"
