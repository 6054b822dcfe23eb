"""
Typed access to record fields.

CBash addresses a field with up to seven identifiers: the field itself, then
an index and a field inside up to three levels of nested lists. The
identifiers are specific to each record type and game. :func:`get_value` and
:func:`set_value` ask CBash for the field's :class:`FieldType` and convert
between the raw buffers and Python values.
"""
import ctypes
import dataclasses
from ctypes import c_char_p, c_uint32, c_void_p
from typing import Any

from rbash.enums import FieldAttribute, FieldType
from rbash.handle import from_c, to_c
from rbash.io import BinaryReader, BinaryWriter

MAX_FIELD_ID = 0xFFFFFFFF


@dataclasses.dataclass(frozen=True)
class FieldPath:
    field_id: int = 0
    list_index: int = 0
    list_field_id: int = 0
    list_x2_index: int = 0
    list_x2_field_id: int = 0
    list_x3_index: int = 0
    list_x3_field_id: int = 0

    @classmethod
    def of(cls, *ids) -> "FieldPath":
        """
        Build a path from up to seven identifiers, missing trailing ones are
        0. A single FieldPath argument is returned unchanged.
        """
        if len(ids) == 1 and isinstance(ids[0], FieldPath):
            return ids[0]

        if len(ids) > 7:
            raise ValueError(
                f"A field path has at most 7 identifiers, got {len(ids)}"
            )

        for id_ in ids:
            if not isinstance(id_, int) or not 0 <= id_ <= MAX_FIELD_ID:
                raise ValueError(f"Invalid field identifier: {id_!r}")

        return cls(*ids)

    def args(self) -> tuple[int, ...]:
        return dataclasses.astuple(self)


# FieldType -> (size in bytes, BinaryReader/BinaryWriter method name)
_SCALARS = {}


def _scalar(size: int, method: str, *types: FieldType):
    for type_ in types:
        _SCALARS[type_] = (size, method)


_scalar(1, "bool_", FieldType.Bool)
_scalar(
    1,
    "int8",
    FieldType.SInt8,
    FieldType.SInt8Flag,
    FieldType.SInt8Type,
    FieldType.SInt8FlagType,
)
_scalar(
    1,
    "uint8",
    FieldType.UInt8,
    FieldType.UInt8Flag,
    FieldType.UInt8Type,
    FieldType.UInt8FlagType,
)
_scalar(
    2,
    "int16",
    FieldType.SInt16,
    FieldType.SInt16Flag,
    FieldType.SInt16Type,
    FieldType.SInt16FlagType,
)
_scalar(
    2,
    "uint16",
    FieldType.UInt16,
    FieldType.UInt16Flag,
    FieldType.UInt16Type,
    FieldType.UInt16FlagType,
)
_scalar(
    4,
    "int32",
    FieldType.SInt32,
    FieldType.SInt32Flag,
    FieldType.SInt32Type,
    FieldType.SInt32FlagType,
    FieldType.UnknownOrSInt32,
)
_scalar(
    4,
    "uint32",
    FieldType.UInt32,
    FieldType.UInt32Flag,
    FieldType.UInt32Type,
    FieldType.UInt32FlagType,
    FieldType.UnknownOrUInt32Flag,
    FieldType.FormID,
    FieldType.MGEFCode,
    FieldType.ActorValue,
    FieldType.FormIDOrUInt32,
    FieldType.UnknownOrFormIDOrUInt32,
    FieldType.FormIDOrMGEFCodeOrActorValueOrUInt32,
    FieldType.ResolvedMGEFCode,
    FieldType.StaticMGEFCode,
    FieldType.ResolvedActorValue,
    FieldType.StaticActorValue,
)
_scalar(4, "float_", FieldType.Float32, FieldType.Radian)

_STRINGS = {FieldType.String, FieldType.IString}

# CBash stores a pointer to its own array in the value slot.
_ARRAYS = {
    FieldType.SInt8Array: (1, "int8"),
    FieldType.UInt8Array: (1, "uint8"),
    FieldType.SInt16Array: (2, "int16"),
    FieldType.UInt16Array: (2, "uint16"),
    FieldType.SInt32Array: (4, "int32"),
    FieldType.UInt32Array: (4, "uint32"),
    FieldType.FormIDArray: (4, "uint32"),
    FieldType.Float32Array: (4, "float_"),
    FieldType.RadianArray: (4, "float_"),
}

# CBash copies each element into a caller-provided uint32 array.
_FILLED_ARRAYS = {
    FieldType.FormIDOrUInt32Array,
    FieldType.MGEFCodeOrUInt32Array,
}

_STRING_ARRAYS = {FieldType.StringArray, FieldType.IStringArray}


def field_type(record, path: FieldPath) -> FieldType:
    raw = record.field_attribute(FieldAttribute.Type, *path.args())
    try:
        return FieldType(raw)
    except ValueError:
        return FieldType.Undefined


def get_value(record, path: FieldPath | tuple[int, ...]) -> Any:
    """
    Read a field and convert it according to its type.

    :param record: The :class:`Record` to read from.
    :param path: A FieldPath or a tuple of field identifiers.
    :returns: ``None`` if the field is missing, otherwise an int, float,
              bool, str or a list of those.
    :raises TypeError: For fields (lists, subrecords) that can't be
                       represented as a single value.
    """
    if not isinstance(path, FieldPath):
        path = FieldPath.of(*path)
    ids = path.args()
    type_ = field_type(record, path)

    if type_ in (FieldType.Missing, FieldType.Unknown):
        return None

    if type_ in _SCALARS:
        size, method = _SCALARS[type_]
        data = record.get_field(size, *ids)
        if data is None:
            return None
        return getattr(BinaryReader(data), method)()

    if type_ in (FieldType.Char, FieldType.Char4, FieldType.MGEFCodeOrChar4):
        size = 1 if type_ is FieldType.Char else 4
        data = record.get_field(size, *ids)
        if data is None:
            return None
        return data.decode("ascii", errors="replace")

    if type_ in _STRINGS:
        ptr = record.get_field_pointer(*ids)
        if not ptr:
            return None
        return from_c(ctypes.string_at(ptr))

    count = record.field_attribute(FieldAttribute.Size, *ids)

    if type_ in _ARRAYS:
        if count <= 0:
            return []
        size, method = _ARRAYS[type_]
        holder = (c_void_p * 1)()
        record.get_field_into(holder, *ids)
        if not holder[0]:
            return []
        io = BinaryReader(ctypes.string_at(holder[0], size * count))
        return io.array(getattr(io, method), count)

    if type_ in _FILLED_ARRAYS:
        if count <= 0:
            return []
        values = (c_uint32 * count)()
        record.get_field_into(values, *ids)
        return list(values)

    if type_ in _STRING_ARRAYS:
        if count <= 0:
            return []
        pointers = (c_void_p * count)()
        record.get_field_into(pointers, *ids)
        return [
            from_c(ctypes.string_at(ptr)) if ptr else None
            for ptr in pointers
        ]

    raise TypeError(f"Fields of type {type_.name} can't be read as a value")


def set_value(record, path: FieldPath | tuple[int, ...], value: Any):
    """
    Write a field, encoding `value` according to the field's type. Setting
    ``None`` deletes the field.
    """
    if not isinstance(path, FieldPath):
        path = FieldPath.of(*path)
    ids = path.args()

    if value is None:
        record.delete_field(*ids)
        return

    type_ = field_type(record, path)

    if type_ in _SCALARS:
        _, method = _SCALARS[type_]
        writer = BinaryWriter()
        getattr(writer, method)(value)
        record.set_field(writer.getvalue(), *ids)
    elif type_ in (FieldType.Char, FieldType.Char4, FieldType.MGEFCodeOrChar4):
        size = 1 if type_ is FieldType.Char else 4
        try:
            encoded = value.encode("ascii")
        except UnicodeEncodeError:
            raise ValueError(
                f"{type_.name} fields hold ASCII characters only"
            ) from None
        if len(encoded) != size:
            raise ValueError(
                f"{type_.name} fields hold exactly {size} characters"
            )
        record.set_field(encoded, *ids)
    elif type_ in _STRINGS:
        record.set_field(to_c(value) + b"\x00", *ids)
    elif type_ in _ARRAYS or type_ in _FILLED_ARRAYS:
        method = _ARRAYS[type_][1] if type_ in _ARRAYS else "uint32"
        writer = BinaryWriter()
        for item in value:
            getattr(writer, method)(item)
        record.set_field(writer.getvalue(), *ids, array_size=len(value))
    elif type_ in _STRING_ARRAYS:
        strings = (c_char_p * len(value))(*(to_c(v) for v in value))
        record.set_field(strings, *ids, array_size=len(value))
    else:
        raise TypeError(
            f"Fields of type {type_.name} can't be written as a value"
        )


def get_raw(record, path: FieldPath | tuple[int, ...]) -> bytes | None:
    """
    The undecoded bytes of a scalar or string field, ``None`` for missing
    fields and for types whose size isn't known up front.
    """
    if not isinstance(path, FieldPath):
        path = FieldPath.of(*path)
    ids = path.args()
    type_ = field_type(record, path)

    if type_ in _SCALARS:
        return record.get_field(_SCALARS[type_][0], *ids)
    if type_ is FieldType.Char:
        return record.get_field(1, *ids)
    if type_ in (FieldType.Char4, FieldType.MGEFCodeOrChar4):
        return record.get_field(4, *ids)
    if type_ in _STRINGS:
        ptr = record.get_field_pointer(*ids)
        return ctypes.string_at(ptr) if ptr else None
    return None
