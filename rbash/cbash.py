"""
Loading and configuration of the native CBash library.

Every ``cb_*`` function exported by CBash is declared here with its ctypes
prototype. The handle classes in :mod:`rbash.collection`,
:mod:`rbash.modfile` and :mod:`rbash.record` call straight into the library
returned by :func:`get_library`.
"""
import ctypes
import ctypes.util
import logging
import os
import sys
from ctypes import (
    CFUNCTYPE,
    POINTER,
    c_bool,
    c_char_p,
    c_int32,
    c_uint32,
    c_void_p,
)
from pathlib import Path

logger = logging.getLogger(__name__)

#: Environment variable consulted by :func:`find_library`.
LIBRARY_ENV = "RBASH_CBASH_PATH"
REQUIRED_VERSION = (0, 7, 0)

MessageCallback = CFUNCTYPE(c_int32, c_char_p)
RaiseCallback = CFUNCTYPE(None, c_char_p)
ProgressCallback = CFUNCTYPE(c_bool, c_uint32, c_uint32, c_char_p)

_FIELD_IDS = [c_uint32] * 7

#: name -> (restype, argtypes), in the order of CBash.h.
PROTOTYPES = {
    "cb_GetVersionMajor": (c_uint32, []),
    "cb_GetVersionMinor": (c_uint32, []),
    "cb_GetVersionRevision": (c_uint32, []),
    "cb_RedirectMessages": (None, [MessageCallback]),
    "cb_AllowRaising": (None, [RaiseCallback]),
    "cb_CreateCollection": (c_void_p, [c_char_p, c_int32]),
    "cb_DeleteCollection": (c_int32, [c_void_p]),
    "cb_LoadCollection": (c_int32, [c_void_p, ProgressCallback]),
    "cb_UnloadCollection": (c_int32, [c_void_p]),
    "cb_GetCollectionType": (c_int32, [c_void_p]),
    "cb_UnloadAllCollections": (c_int32, []),
    "cb_DeleteAllCollections": (c_int32, []),
    "cb_AddMod": (c_void_p, [c_void_p, c_char_p, c_uint32]),
    "cb_LoadMod": (c_int32, [c_void_p]),
    "cb_UnloadMod": (c_int32, [c_void_p]),
    "cb_CleanModMasters": (c_int32, [c_void_p]),
    "cb_SaveMod": (c_int32, [c_void_p, c_uint32, c_char_p]),
    "cb_GetAllNumMods": (c_int32, [c_void_p]),
    "cb_GetAllModIDs": (c_int32, [c_void_p, POINTER(c_void_p)]),
    "cb_GetLoadOrderNumMods": (c_int32, [c_void_p]),
    "cb_GetLoadOrderModIDs": (c_int32, [c_void_p, POINTER(c_void_p)]),
    "cb_GetFileNameByID": (c_char_p, [c_void_p]),
    "cb_GetFileNameByLoadOrder": (c_char_p, [c_void_p, c_uint32]),
    "cb_GetModNameByID": (c_char_p, [c_void_p]),
    "cb_GetModNameByLoadOrder": (c_char_p, [c_void_p, c_uint32]),
    "cb_GetModIDByName": (c_void_p, [c_void_p, c_char_p]),
    "cb_GetModIDByLoadOrder": (c_void_p, [c_void_p, c_uint32]),
    "cb_GetModLoadOrderByName": (c_int32, [c_void_p, c_char_p]),
    "cb_GetModLoadOrderByID": (c_int32, [c_void_p]),
    "cb_GetModIDByRecordID": (c_void_p, [c_void_p]),
    "cb_GetCollectionIDByRecordID": (c_void_p, [c_void_p]),
    "cb_GetCollectionIDByModID": (c_void_p, [c_void_p]),
    "cb_IsModEmpty": (c_uint32, [c_void_p]),
    "cb_GetModNumTypes": (c_int32, [c_void_p]),
    "cb_GetModTypes": (c_int32, [c_void_p, POINTER(c_uint32)]),
    "cb_GetModNumEmptyGRUPs": (c_int32, [c_void_p]),
    "cb_GetModNumOrphans": (c_int32, [c_void_p]),
    "cb_GetModOrphansFormIDs": (c_int32, [c_void_p, POINTER(c_uint32)]),
    "cb_GetLongIDName": (c_char_p, [c_void_p, c_uint32, c_bool]),
    "cb_MakeShortFormID": (c_uint32, [c_void_p, c_uint32, c_bool]),
    "cb_CreateRecord": (
        c_void_p,
        [c_void_p, c_uint32, c_uint32, c_char_p, c_void_p, c_uint32],
    ),
    "cb_CopyRecord": (
        c_void_p,
        [c_void_p, c_void_p, c_void_p, c_uint32, c_char_p, c_uint32],
    ),
    "cb_UnloadRecord": (c_int32, [c_void_p]),
    "cb_ResetRecord": (c_int32, [c_void_p]),
    "cb_DeleteRecord": (c_int32, [c_void_p]),
    "cb_GetRecordID": (c_void_p, [c_void_p, c_uint32, c_char_p]),
    "cb_GetNumRecords": (c_int32, [c_void_p, c_uint32]),
    "cb_GetRecordIDs": (c_int32, [c_void_p, c_uint32, POINTER(c_void_p)]),
    "cb_IsRecordWinning": (c_int32, [c_void_p, c_bool]),
    "cb_GetNumRecordConflicts": (c_int32, [c_void_p, c_bool]),
    "cb_GetRecordConflicts": (
        c_int32,
        [c_void_p, POINTER(c_void_p), c_bool],
    ),
    "cb_GetRecordHistory": (c_int32, [c_void_p, POINTER(c_void_p)]),
    "cb_GetNumIdenticalToMasterRecords": (c_int32, [c_void_p]),
    "cb_GetIdenticalToMasterRecords": (c_int32, [c_void_p, POINTER(c_void_p)]),
    "cb_IsRecordFormIDsInvalid": (c_int32, [c_void_p]),
    "cb_UpdateReferences": (
        c_int32,
        [
            c_void_p,
            c_void_p,
            POINTER(c_uint32),
            POINTER(c_uint32),
            POINTER(c_uint32),
            c_uint32,
        ],
    ),
    "cb_GetRecordUpdatedReferences": (c_int32, [c_void_p, c_void_p]),
    "cb_SetIDFields": (c_int32, [c_void_p, c_uint32, c_char_p]),
    "cb_SetField": (None, [c_void_p, *_FIELD_IDS, c_void_p, c_uint32]),
    "cb_DeleteField": (None, [c_void_p, *_FIELD_IDS]),
    "cb_GetFieldAttribute": (c_uint32, [c_void_p, *_FIELD_IDS, c_uint32]),
    "cb_GetField": (c_void_p, [c_void_p, *_FIELD_IDS, c_void_p]),
}


class CBashError(Exception):
    """
    Raised when a CBash function reports a failure.
    """


class CBashNotFound(CBashError):
    """
    Raised when the CBash shared library couldn't be located or opened.
    """


def check_null(ptr, message: str) -> int:
    if not ptr:
        raise CBashError(message)
    return ptr


def check_negative(result: int, message: str) -> int:
    if result < 0:
        raise CBashError(message)
    return result


def encode_type(rec_type: str | bytes) -> int:
    """
    Convert a four-character record type such as ``"CELL"`` into the integer
    CBash expects.

    CBash takes record types as multi-character constants written in reverse
    (``'LLEC'``), which is the little-endian integer of the ASCII bytes.
    """
    if isinstance(rec_type, str):
        try:
            rec_type = rec_type.encode("ascii")
        except UnicodeEncodeError:
            raise ValueError(f"Invalid record type: {rec_type!r}") from None

    if len(rec_type) != 4:
        raise ValueError(f"Invalid record type: {rec_type!r}")

    return int.from_bytes(rec_type, byteorder="little")


def decode_type(value: int) -> str:
    """
    Inverse of :func:`encode_type`.
    """
    return value.to_bytes(4, byteorder="little").decode("ascii")


def _default_names() -> tuple[str, ...]:
    if sys.platform == "win32":
        return ("CBash.dll",)
    elif sys.platform == "darwin":
        return ("libCBash.dylib",)
    return ("libCBash.so",)


def find_library(path: str | os.PathLike | None = None) -> str:
    """
    Locate the CBash shared library.

    The explicit `path` wins, then the ``RBASH_CBASH_PATH`` environment
    variable, then the platform's library search path and finally a copy
    sitting next to this package.

    :param path: An explicit path to the library.
    :raises CBashNotFound: If nothing could be found.
    """
    if path is None:
        path = os.environ.get(LIBRARY_ENV) or None

    if path is not None:
        path = Path(path)
        if not path.is_file():
            raise CBashNotFound(f"{path} does not exist")
        return str(path)

    found = ctypes.util.find_library("CBash")
    if found:
        return found

    here = Path(__file__).parent
    for name in _default_names():
        candidate = here / name
        if candidate.is_file():
            return str(candidate)

    raise CBashNotFound(
        f"Could not find CBash, set {LIBRARY_ENV} to its location"
    )


def _on_message(message: bytes | None) -> int:
    if not message:
        return 0
    text = message.decode("cp1252", errors="replace").rstrip()
    if text:
        logger.info("%s", text)
    return len(message)


def _on_raise(function_name: bytes | None) -> None:
    # Raising from inside a ctypes callback doesn't propagate, the failing
    # call reports its own error code once control returns to us.
    logger.error(
        "CBash encountered an error in %s",
        (function_name or b"<unknown>").decode("ascii", errors="replace"),
    )


# Must stay referenced for as long as the library may call them.
_message_callback = MessageCallback(_on_message)
_raise_callback = RaiseCallback(_on_raise)

_library = None


def load(path: str | os.PathLike | None = None) -> ctypes.CDLL:
    """
    Open CBash, declare its prototypes and hook up its logging.

    :param path: An explicit path to the library, see :func:`find_library`.
    :raises CBashNotFound: If the library couldn't be found or opened.
    :raises CBashError: If the library is older than ``REQUIRED_VERSION``.
    """
    location = find_library(path)
    try:
        lib = ctypes.CDLL(location)
    except OSError as e:
        raise CBashNotFound(f"Could not open {location}: {e}") from e

    for name, (restype, argtypes) in PROTOTYPES.items():
        try:
            function = getattr(lib, name)
        except AttributeError:
            raise CBashError(f"{location} does not export {name}") from None
        function.restype = restype
        function.argtypes = argtypes

    found = (
        lib.cb_GetVersionMajor(),
        lib.cb_GetVersionMinor(),
        lib.cb_GetVersionRevision(),
    )
    if found < REQUIRED_VERSION:
        raise CBashError(
            "rbash requires CBash v{}.{}.{} or higher, found v{}.{}.{}".format(
                *REQUIRED_VERSION, *found
            )
        )

    lib.cb_RedirectMessages(_message_callback)
    lib.cb_AllowRaising(_raise_callback)

    logger.debug("Loaded CBash v%d.%d.%d from %s", *found, location)
    return lib


def get_library():
    """
    Returns the process-wide CBash library, loading it on first use.
    """
    global _library
    if _library is None:
        _library = load()
    return _library


def set_library(lib) -> None:
    """
    Install an already configured library object.

    Passing ``None`` forgets the current library so the next call to
    :func:`get_library` loads it again.
    """
    global _library
    _library = lib


def version() -> str:
    """
    The version of the loaded CBash library as ``"major.minor.revision"``.
    """
    lib = get_library()
    return "{}.{}.{}".format(
        lib.cb_GetVersionMajor(),
        lib.cb_GetVersionMinor(),
        lib.cb_GetVersionRevision(),
    )
