"""Parser configuration."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import yaml

UnknownKeyPolicy = Literal["ignore", "warn", "error"]

_UNKNOWN_KEY_POLICIES = ("ignore", "warn", "error")


@dataclass(frozen=True)
class ParseOptions:
    """Options controlling how strictly cfg text is accepted.

    Attributes:
        unknown_keys: What to do with keys a section does not define.
            "ignore" drops them, "warn" drops them with a logged warning,
            "error" raises SchemaError.
        check_graph: Also resolve layer references and shapes while parsing,
            so forward references and shape mismatches fail at parse time.
    """

    unknown_keys: UnknownKeyPolicy = "warn"
    check_graph: bool = False

    def __post_init__(self) -> None:
        if self.unknown_keys not in _UNKNOWN_KEY_POLICIES:
            raise ValueError(
                f"Unknown unknown_keys policy: {self.unknown_keys}. "
                f"Choose from: {list(_UNKNOWN_KEY_POLICIES)}"
            )

    @classmethod
    def from_yaml(cls, path: str | Path) -> ParseOptions:
        """Load options from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)
