import os
from ctypes import c_uint32

from rbash.cbash import CBashError, check_negative, get_library

ENCODING = "utf-8"


def to_c(text: str | bytes | os.PathLike | None) -> bytes | None:
    """
    Convert a Python string or path into the bytes passed as a ``char *``.

    :raises ValueError: If `text` can't be encoded as utf-8, such as a
                        string holding a lone surrogate.
    """
    if text is None:
        return None
    if isinstance(text, bytes):
        return text
    if isinstance(text, os.PathLike):
        return os.fsencode(text)
    try:
        return text.encode(ENCODING)
    except UnicodeEncodeError as e:
        raise ValueError(f"Can't pass {text!r} to CBash: {e.reason}") from None


def from_c(raw: bytes | None) -> str | None:
    """
    Decode a ``char *`` returned by CBash.

    Plugins written by older tools are frequently cp1252 rather than utf-8.
    """
    if raw is None:
        return None
    try:
        return raw.decode(ENCODING)
    except UnicodeDecodeError:
        return raw.decode("cp1252")


def native_array(ctype, count: int, fill, message: str) -> list:
    """
    Allocate an array of `count` elements, let CBash fill it and return its
    contents.

    :param ctype: Element type, such as `c_void_p` or `c_uint32`.
    :param count: Size reported by the matching ``cb_GetNum*`` function.
    :param fill: Called with the array, returns the native result code.
    :param message: Error message if the result code is negative.
    """
    if count <= 0:
        return []

    array = (ctype * count)()
    retrieved = check_negative(fill(array), message)
    # Some calls return the number of entries written, others 0 for success.
    if 0 < retrieved < count:
        count = retrieved
    return list(array[:count])


def update_references(
    lib, mod_ptr, record_ptr, mapping: dict[int, int]
) -> list[int]:
    """
    Replace every FormID in `mapping`'s keys by its value, either in a whole
    plugin or in a single record.

    :returns: The number of references changed for each pair, in the order
              of `mapping`.
    """
    if not mapping:
        return []

    size = len(mapping)
    old = (c_uint32 * size)(*mapping.keys())
    new = (c_uint32 * size)(*mapping.values())
    changes = (c_uint32 * size)()

    check_negative(
        lib.cb_UpdateReferences(mod_ptr, record_ptr, old, new, changes, size),
        "Failed to update references.",
    )
    return list(changes)


class Handle:
    """
    Base class for the objects wrapping an opaque CBash pointer.

    Two handles are equal when they wrap the same pointer, no matter how they
    were obtained.
    """

    def __init__(self, ptr: int, lib=None):
        self._ptr = ptr
        self._lib = lib if lib is not None else get_library()

    @property
    def handle(self) -> int:
        """
        The raw native pointer.
        """
        if self._ptr is None:
            raise CBashError(f"{self.__class__.__name__} has been closed.")
        return self._ptr

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return self._ptr == other._ptr

    def __hash__(self):
        return hash((self.__class__.__name__, self._ptr))

    def __repr__(self):
        if self._ptr is None:
            return f"<{self.__class__.__name__}(closed)>"
        return f"<{self.__class__.__name__}(0x{self._ptr:X})>"
