import logging
import os
import weakref
from ctypes import c_void_p
from typing import Callable

from rbash.cbash import (
    CBashError,
    ProgressCallback,
    check_negative,
    check_null,
    get_library,
)
from rbash.enums import CollectionType, ModFlags, coerce_flags
from rbash.handle import Handle, from_c, native_array, to_c
from rbash.modfile import ModFile

logger = logging.getLogger(__name__)

#: Plugins are addressed by a single byte of the FormID.
MAX_LOAD_ORDER = 255

# Collections created (and so owned) by this process, keyed by pointer so
# borrowed handles for the same collection can find them.
_owned_collections: "weakref.WeakValueDictionary[int, Collection]" = (
    weakref.WeakValueDictionary()
)


def _check_index(index: int) -> int:
    if not 0 <= index <= MAX_LOAD_ORDER:
        raise IndexError(f"Load order index {index} is out of range")
    return index


class Collection(Handle):
    """
    A set of plugins for a single game, managed by CBash.

    A collection created through the constructor owns its native counterpart
    and deletes it when closed, either explicitly with :meth:`close`, by
    leaving a ``with`` block or when garbage collected. Collections returned
    by :attr:`ModFile.collection` and :attr:`Record.collection` are borrowed
    and never delete anything.

    :param path: Directory containing the plugins to add.
    :param kind: The game the plugins belong to.
    """

    def __init__(self, path: str | os.PathLike, kind: CollectionType | int):
        try:
            kind = CollectionType(kind)
        except ValueError:
            raise ValueError("Incorrect CollectionType value.") from None

        if kind is CollectionType.Unknown:
            raise ValueError("Cannot create a collection of an unknown game.")

        lib = get_library()
        ptr = check_null(
            lib.cb_CreateCollection(to_c(path), kind),
            "Failed to create collection.",
        )
        super().__init__(ptr, lib)
        self._owned = True
        _owned_collections[ptr] = self
        logger.debug("Created %s collection at %s", kind.name, path)

    @classmethod
    def borrow(cls, ptr: int, lib=None) -> "Collection":
        """
        Wrap an existing native collection without taking ownership of it.
        """
        collection = cls.__new__(cls)
        Handle.__init__(collection, ptr, lib)
        collection._owned = False
        return collection

    @classmethod
    def forget(cls, ptr: int):
        """
        Mark the owned collection at `ptr` as closed after CBash deleted it on
        its own.
        """
        collection = _owned_collections.pop(ptr, None)
        if collection is not None:
            collection._ptr = None

    @property
    def owned(self) -> bool:
        return self._owned

    @property
    def closed(self) -> bool:
        return self._ptr is None

    def close(self):
        """
        Delete the native collection, invalidating every handle obtained
        from it. Borrowed collections are left alone.
        """
        if not self._owned or self._ptr is None:
            return

        ptr = self._ptr
        self._ptr = None
        _owned_collections.pop(ptr, None)
        check_negative(
            self._lib.cb_DeleteCollection(ptr),
            "Failed to delete collection.",
        )
        logger.debug("Deleted collection 0x%X", ptr)

    def __enter__(self) -> "Collection":
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def __del__(self):
        if getattr(self, "_owned", False) and self._ptr is not None:
            self.close()

    @property
    def kind(self) -> CollectionType:
        raw = check_negative(
            self._lib.cb_GetCollectionType(self.handle),
            "Failed to get collection type.",
        )
        try:
            return CollectionType(raw)
        except ValueError:
            raise CBashError("Failed to parse CollectionType.") from None

    def add_mod(self, name: str, flags: ModFlags | int) -> ModFile:
        """
        Add a plugin to the collection. Nothing is read until :meth:`load`.

        :param name: Filename of the plugin, relative to the collection path.
        :param flags: How the plugin should be loaded.
        """
        flags = coerce_flags(ModFlags, flags)
        ptr = check_null(
            self._lib.cb_AddMod(self.handle, to_c(name), flags),
            "Failed to add mod.",
        )
        return ModFile(ptr, self._lib)

    def mod_num(self) -> int:
        return check_negative(
            self._lib.cb_GetAllNumMods(self.handle),
            "Failed to get mod number in collection.",
        )

    def mods(self) -> list[ModFile]:
        """
        Every plugin in the collection, whether in the load order or not.
        """
        handle = self.handle
        return [
            ModFile(ptr, self._lib)
            for ptr in native_array(
                c_void_p,
                self.mod_num(),
                lambda array: self._lib.cb_GetAllModIDs(handle, array),
                "Failed to get mods in collection.",
            )
        ]

    def load_order_num(self) -> int:
        return check_negative(
            self._lib.cb_GetLoadOrderNumMods(self.handle),
            "Failed to get load order number.",
        )

    def load_order_mods(self) -> list[ModFile]:
        """
        The plugins added with :attr:`ModFlags.IN_LOAD_ORDER`, in load order.
        """
        handle = self.handle
        return [
            ModFile(ptr, self._lib)
            for ptr in native_array(
                c_void_p,
                self.load_order_num(),
                lambda array: self._lib.cb_GetLoadOrderModIDs(handle, array),
                "Failed to get load order mods.",
            )
        ]

    def file_name(self, index: int) -> str:
        raw = self._lib.cb_GetFileNameByLoadOrder(
            self.handle, _check_index(index)
        )
        if raw is None:
            raise CBashError(f"No file name at load order index {index}.")
        return from_c(raw)

    def mod_name(self, index: int) -> str:
        """
        Like :meth:`file_name`, minus any ``.ghost`` extension.
        """
        raw = self._lib.cb_GetModNameByLoadOrder(
            self.handle, _check_index(index)
        )
        if raw is None:
            raise CBashError(f"No mod name at load order index {index}.")
        return from_c(raw)

    def mod_by_name(self, name: str) -> ModFile:
        ptr = check_null(
            self._lib.cb_GetModIDByName(self.handle, to_c(name)),
            "Failed to get mod by name.",
        )
        return ModFile(ptr, self._lib)

    def mod_by_index(self, index: int) -> ModFile:
        ptr = check_null(
            self._lib.cb_GetModIDByLoadOrder(self.handle, _check_index(index)),
            "Failed to get mod by index.",
        )
        return ModFile(ptr, self._lib)

    def index_by_name(self, name: str) -> int:
        return check_negative(
            self._lib.cb_GetModLoadOrderByName(self.handle, to_c(name)),
            "Failed to get index by name.",
        )

    def has_updated_references(self, record=None) -> bool:
        """
        Check whether `record` had its references changed by
        ``update_references``.

        Called without a record, CBash discards the change tracking of the
        whole collection instead.
        """
        result = check_negative(
            self._lib.cb_GetRecordUpdatedReferences(
                self.handle, record.handle if record is not None else None
            ),
            "Failed to check updated references.",
        )
        return result != 0

    def load(self, progress: Callable[[int, int, str], object] | None = None):
        """
        Read the records of every plugin in the collection.

        :param progress: Optional callable receiving the load order position
                         of the plugin being loaded, the last position and
                         the plugin's filename.
        """
        # A NULL function pointer tells CBash not to report progress.
        callback = ProgressCallback()
        errors: list[BaseException] = []

        if progress is not None:

            def on_progress(index, total, name):
                # Exceptions can't cross the native frames, keep the first
                # one and re-raise it once CBash returns.
                if errors:
                    return False
                try:
                    progress(index, total, from_c(name))
                except Exception as e:
                    errors.append(e)
                    return False
                return True

            callback = ProgressCallback(on_progress)

        logger.debug("Loading collection 0x%X", self.handle)
        result = self._lib.cb_LoadCollection(self.handle, callback)
        if errors:
            raise errors[0]
        check_negative(result, "Failed to load collection.")

    def unload(self):
        check_negative(
            self._lib.cb_UnloadCollection(self.handle),
            "Failed to unload collection.",
        )

    @staticmethod
    def unload_all():
        """
        Unload every collection created so far, without deleting them.
        """
        check_negative(
            get_library().cb_UnloadAllCollections(),
            "Failed to unload all collections.",
        )

    @staticmethod
    def delete_all():
        """
        Delete every collection created so far. Every owned
        :class:`Collection` is closed as a result.
        """
        check_negative(
            get_library().cb_DeleteAllCollections(),
            "Failed to delete all collections.",
        )
        for ptr in list(_owned_collections.keys()):
            Collection.forget(ptr)
