import logging
import os
from ctypes import c_uint32, c_void_p

from rbash.cbash import (
    CBashError,
    check_negative,
    check_null,
    decode_type,
    encode_type,
)
from rbash.enums import RecordFlags, SaveFlags, coerce_flags
from rbash.handle import (
    Handle,
    from_c,
    native_array,
    to_c,
    update_references,
)
from rbash.record import Record

logger = logging.getLogger(__name__)


class ModFile(Handle):
    """
    A single plugin inside a :class:`Collection`.

    ModFiles are never freed on their own, they live as long as the
    collection they were added to.
    """

    @property
    def name(self) -> str:
        """
        The plugin's name, without any ``.ghost`` extension.
        """
        return from_c(
            check_null(
                self._lib.cb_GetModNameByID(self.handle),
                "Failed to get mod name.",
            )
        )

    @property
    def file_name(self) -> str:
        return from_c(
            check_null(
                self._lib.cb_GetFileNameByID(self.handle),
                "Failed to get mod file name.",
            )
        )

    @property
    def index(self) -> int:
        """
        Position of the plugin in the load order.
        """
        return check_negative(
            self._lib.cb_GetModLoadOrderByID(self.handle),
            "Failed to get mod index.",
        )

    @property
    def collection(self):
        from rbash.collection import Collection

        ptr = check_null(
            self._lib.cb_GetCollectionIDByModID(self.handle),
            "Failed to get mod's collection.",
        )
        return Collection.borrow(ptr, self._lib)

    @property
    def is_empty(self) -> bool:
        return self._lib.cb_IsModEmpty(self.handle) != 0

    def record_type_num(self) -> int:
        """
        Number of distinct record types in the plugin. Only available if the
        plugin was added with :attr:`ModFlags.TRACK_NEW_TYPES`.
        """
        return check_negative(
            self._lib.cb_GetModNumTypes(self.handle),
            "Failed to get number of record types.",
        )

    def record_types(self) -> list[str]:
        handle = self.handle
        return [
            decode_type(value)
            for value in native_array(
                c_uint32,
                self.record_type_num(),
                lambda array: self._lib.cb_GetModTypes(handle, array),
                "Failed to get record types in mod.",
            )
        ]

    def orphan_record_num(self) -> int:
        return check_negative(
            self._lib.cb_GetModNumOrphans(self.handle),
            "Failed to get number of orphan records.",
        )

    def orphan_records(self) -> list[int]:
        """
        FormIDs of the records whose parent is missing from the plugin.
        """
        handle = self.handle
        return native_array(
            c_uint32,
            self.orphan_record_num(),
            lambda array: self._lib.cb_GetModOrphansFormIDs(handle, array),
            "Failed to get orphan records.",
        )

    def itm_num(self) -> int:
        return check_negative(
            self._lib.cb_GetNumIdenticalToMasterRecords(self.handle),
            "Failed to get number of ITM records.",
        )

    def itms(self) -> list[Record]:
        """
        Records that are unedited copies of a master's record.
        """
        handle = self.handle
        return [
            Record(ptr, self._lib)
            for ptr in native_array(
                c_void_p,
                self.itm_num(),
                lambda array: self._lib.cb_GetIdenticalToMasterRecords(
                    handle, array
                ),
                "Failed to get ITM records.",
            )
        ]

    def record_by_formid(self, id_: int | str | None) -> Record:
        """
        Look up a record by FormID (an ``int``) or EditorID (a ``str``).

        Passing ``None`` returns the plugin's TES4 header record.
        """
        if id_ is None:
            ptr = self._lib.cb_GetRecordID(self.handle, 0, None)
        elif isinstance(id_, str):
            ptr = self._lib.cb_GetRecordID(self.handle, 0, to_c(id_))
        elif isinstance(id_, int) and not isinstance(id_, bool):
            ptr = self._lib.cb_GetRecordID(self.handle, id_, None)
        else:
            raise TypeError(
                f"Expected a FormID or an EditorID, got {type(id_).__name__}"
            )

        return Record(
            check_null(ptr, "Failed to get record by formid."), self._lib
        )

    def clean_masters(self):
        """
        Drop masters that none of the plugin's records reference.
        """
        check_negative(
            self._lib.cb_CleanModMasters(self.handle),
            "Failed to clean masters.",
        )

    def update_references(self, formid_map: dict[int, int]) -> list[int]:
        """
        Replace references to the keys of `formid_map` by their values in
        every record of the plugin.

        :returns: How many references were changed for each pair.
        """
        return update_references(self._lib, self.handle, None, formid_map)

    def empty_groups_num(self) -> int:
        return check_negative(
            self._lib.cb_GetModNumEmptyGRUPs(self.handle),
            "Failed to get empty record groups number.",
        )

    def short_formid(self, object_id: int, is_mgef: bool = False) -> int:
        """
        Combine the plugin's load order index with the last three bytes of
        `object_id`.
        """
        result = self._lib.cb_MakeShortFormID(self.handle, object_id, is_mgef)
        if result == 0:
            raise CBashError("Failed to make short formID.")
        return result

    def create_record(
        self,
        rec_type: str | bytes,
        rec_formid: int = 0,
        rec_edid: str | None = None,
        parent: Record | None = None,
        flags: RecordFlags | int = 0,
    ) -> Record:
        """
        Create a new record in this plugin.

        :param rec_type: Four-character record type, such as ``"GMST"``.
        :param rec_formid: FormID to give the record, 0 lets CBash pick one.
        :param rec_edid: Optional EditorID.
        :param parent: Parent record for hierarchical types (cells, topics).
        :param flags: Creation flags.
        """
        flags = coerce_flags(RecordFlags, flags)
        ptr = check_null(
            self._lib.cb_CreateRecord(
                self.handle,
                encode_type(rec_type),
                rec_formid,
                to_c(rec_edid),
                parent.handle if parent is not None else None,
                flags,
            ),
            "Failed to create record.",
        )
        return Record(ptr, self._lib)

    def record_num(self, rec_type: str | bytes) -> int:
        return check_negative(
            self._lib.cb_GetNumRecords(self.handle, encode_type(rec_type)),
            f"Failed to get number of records of type {rec_type!r}.",
        )

    def records(self, rec_type: str | bytes) -> list[Record]:
        handle = self.handle
        code = encode_type(rec_type)
        return [
            Record(ptr, self._lib)
            for ptr in native_array(
                c_void_p,
                self.record_num(rec_type),
                lambda array: self._lib.cb_GetRecordIDs(handle, code, array),
                f"Failed to get records of type {rec_type!r}.",
            )
        ]

    def save(self, name: str | os.PathLike, flags: SaveFlags | int = 0):
        """
        Write the plugin to `name`.

        With :attr:`SaveFlags.CLOSE_COLLECTION` CBash deletes the parent
        collection afterwards and the owning :class:`Collection` is closed.
        """
        from rbash.collection import Collection

        flags = coerce_flags(SaveFlags, flags)
        collection = None
        if flags & SaveFlags.CLOSE_COLLECTION:
            collection = self._lib.cb_GetCollectionIDByModID(self.handle)

        check_negative(
            self._lib.cb_SaveMod(self.handle, flags, to_c(name)),
            "Failed to save mod.",
        )
        logger.debug("Saved mod 0x%X to %s", self.handle, name)

        if collection:
            Collection.forget(collection)

    def load(self):
        check_negative(
            self._lib.cb_LoadMod(self.handle),
            "Failed to load mod.",
        )

    def unload(self):
        check_negative(
            self._lib.cb_UnloadMod(self.handle),
            "Failed to unload mod.",
        )
