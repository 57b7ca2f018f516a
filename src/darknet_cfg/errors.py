"""Exception hierarchy for cfg parsing."""

from __future__ import annotations


class ConfigError(ValueError):
    """Base class for every cfg parsing failure.

    Carries the location of the fault so the message can point back at the
    source text. Location attributes are filled in as the error propagates
    outwards through the pipeline (see :meth:`at`).

    Attributes:
        message: Bare description of what went wrong.
        section: 0-based position of the offending section (``[net]`` is 0).
        kind: Section name, e.g. ``"convolutional"``.
        key: Field key inside the section.
        value: Offending raw text.
    """

    def __init__(
        self,
        message: str,
        *,
        section: int | None = None,
        kind: str | None = None,
        key: str | None = None,
        value: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.section = section
        self.kind = kind
        self.key = key
        self.value = value

    def at(
        self,
        *,
        section: int | None = None,
        kind: str | None = None,
        key: str | None = None,
        value: str | None = None,
    ) -> ConfigError:
        """Attach location info that is not already set and return self."""
        if self.section is None:
            self.section = section
        if self.kind is None:
            self.kind = kind
        if self.key is None:
            self.key = key
        if self.value is None:
            self.value = value
        return self

    def __str__(self) -> str:
        parts = []
        if self.section is not None:
            where = f"section {self.section}"
            if self.kind is not None:
                where += f" [{self.kind}]"
            parts.append(where)
        elif self.kind is not None:
            parts.append(f"[{self.kind}]")
        if self.key is not None:
            parts.append(f"key '{self.key}'")
        if self.value is not None:
            parts.append(f"value {self.value!r}")
        if not parts:
            return self.message
        return f"{', '.join(parts)}: {self.message}"


class ConfigSyntaxError(ConfigError):
    """A token cannot be decoded into its target type."""


class SchemaError(ConfigError):
    """The record stream does not have the shape of a cfg file."""


class ValidationError(ConfigError):
    """A decoded value violates a field, layer or network invariant."""
