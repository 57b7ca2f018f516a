"""Field codecs for the cfg grammar.

Every value in a cfg section is text. A codec turns the text of one field
into a Python value and back again, such that
``codec.decode(codec.encode(value)) == value`` for every valid value.

Decoding failures raise :class:`ConfigSyntaxError` with the offending token
as ``value``; the record layer adds the section and key.
"""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Generic, TypeVar

from darknet_cfg.errors import ConfigSyntaxError, ValidationError
from darknet_cfg.types import LayerIndex, WeightsType, layer_index

T = TypeVar("T")
E = TypeVar("E", bound=Enum)

# Plain decimal spellings only: no "_" separators, no leading "+", no nan/inf
_INT_TOKEN = re.compile(r"-?[0-9]+")
_FLOAT_TOKEN = re.compile(r"-?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][-+]?[0-9]+)?")


class Codec(ABC, Generic[T]):
    """Bidirectional text conversion for one field type."""

    @abstractmethod
    def decode(self, text: str) -> T:
        """Convert field text to a value."""
        pass

    @abstractmethod
    def encode(self, value: T) -> str:
        """Convert a value to field text."""
        pass


class BoolCodec(Codec[bool]):
    """Booleans spelled ``0`` / ``1``."""

    def decode(self, text: str) -> bool:
        token = text.strip()
        if token == "0":
            return False
        if token == "1":
            return True
        raise ConfigSyntaxError("expected 0 or 1", value=token)

    def encode(self, value: bool) -> str:
        return "1" if value else "0"


class IntCodec(Codec[int]):
    """Integers, optionally bounded below.

    Args:
        minimum: Smallest accepted value, or None for signed integers.
    """

    def __init__(self, minimum: int | None = None):
        self.minimum = minimum

    def decode(self, text: str) -> int:
        token = text.strip()
        if not _INT_TOKEN.fullmatch(token):
            raise ConfigSyntaxError("expected an integer", value=token)
        value = int(token)
        if self.minimum is not None and value < self.minimum:
            raise ConfigSyntaxError(f"expected an integer >= {self.minimum}", value=token)
        return value

    def encode(self, value: int) -> str:
        return str(value)


class FloatCodec(Codec[float]):
    """Finite real numbers."""

    def decode(self, text: str) -> float:
        token = text.strip()
        if not _FLOAT_TOKEN.fullmatch(token):
            raise ConfigSyntaxError("expected a number", value=token)
        value = float(token)
        if not math.isfinite(value):
            raise ConfigSyntaxError("expected a finite number", value=token)
        return value

    def encode(self, value: float) -> str:
        return repr(float(value))


class PathCodec(Codec[Path]):
    """File reference kept as a path; the file itself is never opened."""

    def decode(self, text: str) -> Path:
        token = text.strip()
        if not token:
            raise ConfigSyntaxError("expected a path", value=text)
        return Path(token)

    def encode(self, value: Path) -> str:
        return str(value)


class ListCodec(Codec[tuple]):
    """Comma separated list of ``element`` values.

    All whitespace is removed before splitting, so ``"1, 2,3"`` and
    ``"1,2,3"`` decode alike. Empty text decodes to an empty tuple.
    """

    def __init__(self, element: Codec):
        self.element = element

    def decode(self, text: str) -> tuple:
        compact = "".join(text.split())
        if not compact:
            return ()
        return tuple(self.element.decode(token) for token in compact.split(","))

    def encode(self, value: tuple) -> str:
        return ",".join(self.element.encode(item) for item in value)


class LayerIndexCodec(Codec[LayerIndex]):
    """Signed layer reference: negative is relative, otherwise absolute."""

    _int = IntCodec()

    def decode(self, text: str) -> LayerIndex:
        return layer_index(self._int.decode(text))

    def encode(self, value: LayerIndex) -> str:
        return str(int(value))


class AnchorsCodec(Codec[tuple]):
    """Flat ``w,h,w,h,...`` list decoded into ``(w, h)`` pairs."""

    _values = ListCodec(IntCodec(minimum=0))

    def decode(self, text: str) -> tuple[tuple[int, int], ...]:
        values = self._values.decode(text)
        if len(values) % 2 != 0:
            raise ConfigSyntaxError(
                f"expected an even number of anchor values, got {len(values)}", value=text.strip()
            )
        return tuple(zip(values[0::2], values[1::2]))

    def encode(self, value: tuple[tuple[int, int], ...]) -> str:
        return self._values.encode(tuple(v for pair in value for v in pair))


class EnumCodec(Codec[E]):
    """Enum members spelled by their value, plus optional legacy aliases.

    Args:
        enum_cls: Enum whose member values are the accepted spellings.
        aliases: Extra spellings mapped to members. They decode but are
            never produced by :meth:`encode`.
    """

    def __init__(self, enum_cls: type[E], aliases: dict[str, E] | None = None):
        self.enum_cls = enum_cls
        self._lookup: dict[str, E] = {str(member.value): member for member in enum_cls}
        self._lookup.update(aliases or {})

    def decode(self, text: str) -> E:
        token = text.strip()
        try:
            return self._lookup[token]
        except KeyError:
            allowed = ", ".join(self._lookup)
            raise ConfigSyntaxError(
                f"unknown {self.enum_cls.__name__}, expected one of: {allowed}", value=token
            ) from None

    def encode(self, value: E) -> str:
        if not isinstance(value, self.enum_cls):
            raise ValidationError(f"expected {self.enum_cls.__name__}, got {value!r}")
        return str(value.value)


BOOL = BoolCodec()
INT = IntCodec()
UINT = IntCodec(minimum=0)
POSITIVE = IntCodec(minimum=1)
FLOAT = FloatCodec()
PATH = PathCodec()
INT_LIST = ListCodec(INT)
UINT_LIST = ListCodec(UINT)
FLOAT_LIST = ListCodec(FLOAT)
LAYER_INDEX = LayerIndexCodec()
LAYER_INDEX_LIST = ListCodec(LAYER_INDEX)
ANCHORS = AnchorsCodec()

# "per_layer" is the spelling used by older cfg files
WEIGHTS_TYPE = EnumCodec(WeightsType, aliases={"per_layer": WeightsType.PER_FEATURE})

_enum_codecs: dict[type[Enum], EnumCodec[Any]] = {WeightsType: WEIGHTS_TYPE}


def enum_codec(enum_cls: type[E]) -> EnumCodec[E]:
    """Get the shared codec for an enum type."""
    if enum_cls not in _enum_codecs:
        _enum_codecs[enum_cls] = EnumCodec(enum_cls)
    return _enum_codecs[enum_cls]
