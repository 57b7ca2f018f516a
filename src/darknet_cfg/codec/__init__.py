"""Text encodings of the cfg format."""

from darknet_cfg.codec.fields import (
    ANCHORS,
    BOOL,
    FLOAT,
    FLOAT_LIST,
    INT,
    INT_LIST,
    LAYER_INDEX,
    LAYER_INDEX_LIST,
    PATH,
    POSITIVE,
    UINT,
    UINT_LIST,
    WEIGHTS_TYPE,
    Codec,
    EnumCodec,
    ListCodec,
    enum_codec,
)
from darknet_cfg.codec.lexer import Record, read_records, write_records
from darknet_cfg.codec.records import decode_fields, encode_fields, known_keys, nested, option

__all__ = [
    # Field codecs
    "Codec",
    "EnumCodec",
    "ListCodec",
    "enum_codec",
    "ANCHORS",
    "BOOL",
    "FLOAT",
    "FLOAT_LIST",
    "INT",
    "INT_LIST",
    "LAYER_INDEX",
    "LAYER_INDEX_LIST",
    "PATH",
    "POSITIVE",
    "UINT",
    "UINT_LIST",
    "WEIGHTS_TYPE",
    # Records
    "decode_fields",
    "encode_fields",
    "known_keys",
    "nested",
    "option",
    # Lexer
    "Record",
    "read_records",
    "write_records",
]
