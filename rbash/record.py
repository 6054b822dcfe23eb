import ctypes
import logging
from ctypes import c_void_p

from rbash.cbash import CBashError, check_negative, check_null, decode_type
from rbash.enums import (
    FieldAttribute,
    RecordFlags,
    RecordHeaderFlag,
    coerce_flags,
)
from rbash.fields import FieldPath
from rbash.handle import Handle, from_c, native_array, to_c, update_references
from rbash.io import BinaryReader

logger = logging.getLogger(__name__)


def _ids(path) -> tuple[int, ...]:
    return FieldPath.of(*path).args()


class Record(Handle):
    """
    A single record of a :class:`ModFile`.

    Fields are addressed by a path of up to seven identifiers, see
    :class:`rbash.fields.FieldPath`. The helpers in :mod:`rbash.fields` turn
    the raw bytes returned here into Python values.
    """

    def long_name(self, formid: int, is_mgef: bool = False) -> str:
        """
        Resolve the plugin a FormID referenced by this record comes from.
        """
        return from_c(
            check_null(
                self._lib.cb_GetLongIDName(self.handle, formid, is_mgef),
                "Failed to get long id name.",
            )
        )

    @property
    def mod(self):
        from rbash.modfile import ModFile

        ptr = check_null(
            self._lib.cb_GetModIDByRecordID(self.handle),
            "Failed to get record's mod.",
        )
        return ModFile(ptr, self._lib)

    @property
    def collection(self):
        from rbash.collection import Collection

        ptr = check_null(
            self._lib.cb_GetCollectionIDByRecordID(self.handle),
            "Failed to get record's collection.",
        )
        return Collection.borrow(ptr, self._lib)

    def is_winning(self, extended_conflicts: bool = False) -> bool:
        """
        True if no plugin later in the load order overrides this record.
        """
        result = check_negative(
            self._lib.cb_IsRecordWinning(self.handle, extended_conflicts),
            "Failed to check if record is winning.",
        )
        return result != 0

    @property
    def is_invalid(self) -> bool:
        """
        True if the record references FormIDs whose plugin is not a master.
        """
        result = check_negative(
            self._lib.cb_IsRecordFormIDsInvalid(self.handle),
            "Failed to check if record is invalid.",
        )
        return result != 0

    def conflict_num(self, extended_conflicts: bool = False) -> int:
        return check_negative(
            self._lib.cb_GetNumRecordConflicts(
                self.handle, extended_conflicts
            ),
            "Failed to get number of conflicts.",
        )

    def conflicts(self, extended_conflicts: bool = False) -> list["Record"]:
        """
        Every version of this record across the collection, winning
        version first.
        """
        handle = self.handle
        return [
            Record(ptr, self._lib)
            for ptr in native_array(
                c_void_p,
                self.conflict_num(extended_conflicts),
                lambda array: self._lib.cb_GetRecordConflicts(
                    handle, array, extended_conflicts
                ),
                "Failed to get conflicts.",
            )
        ]

    def history(self) -> list["Record"]:
        """
        The versions of this record from the plugins before this one in the
        load order, earliest first.
        """
        handle = self.handle
        return [
            Record(ptr, self._lib)
            for ptr in native_array(
                c_void_p,
                self.conflict_num(False),
                lambda array: self._lib.cb_GetRecordHistory(handle, array),
                "Failed to get record history.",
            )
            if ptr
        ]

    def copy_into(
        self,
        dest,
        formid: int = 0,
        edid: str | None = None,
        parent: "Record | None" = None,
        flags: RecordFlags | int = 0,
    ) -> "Record":
        """
        Copy this record into another plugin.

        :param dest: The destination :class:`ModFile`.
        :param formid: FormID of the copy, 0 to keep the current one.
        :param edid: Optional EditorID of the copy.
        :param parent: Parent record in the destination, for hierarchical
                       types.
        :param flags: :class:`RecordFlags`, such as ``SET_AS_OVERRIDE``.
        """
        flags = coerce_flags(RecordFlags, flags)
        ptr = check_null(
            self._lib.cb_CopyRecord(
                self.handle,
                dest.handle,
                parent.handle if parent is not None else None,
                formid,
                to_c(edid),
                flags,
            ),
            "Failed to copy record.",
        )
        return Record(ptr, self._lib)

    def update_references(self, formid_map: dict[int, int]) -> list[int]:
        return update_references(self._lib, None, self.handle, formid_map)

    def reset(self) -> bool:
        """
        Revert every change made to the record since it was loaded.

        :returns: ``False`` if there was nothing to revert.
        """
        return self._lib.cb_ResetRecord(self.handle) == 1

    def set_id(self, formid: int, edid: str | None = None) -> bool:
        """
        Change the FormID and EditorID of the record.

        :returns: ``False`` if nothing changed.
        """
        return self._lib.cb_SetIDFields(self.handle, formid, to_c(edid)) == 1

    def field_attribute(self, attribute: FieldAttribute | int, *path) -> int:
        return self._lib.cb_GetFieldAttribute(
            self.handle, *_ids(path), attribute
        )

    def get_field_pointer(self, *path) -> int | None:
        """
        The raw pointer CBash returns for a field, ``None`` if the field is
        missing.
        """
        return self._lib.cb_GetField(self.handle, *_ids(path), None) or None

    def get_field(self, byte_len: int, *path) -> bytes | None:
        """
        Copy `byte_len` bytes of a field's value.

        :returns: ``None`` if the field is missing.
        """
        ptr = self.get_field_pointer(*path)
        if ptr is None:
            return None
        return ctypes.string_at(ptr, byte_len)

    def get_field_into(self, buffer, *path) -> int | None:
        """
        Let CBash fill `buffer`, used for array fields.
        """
        return self._lib.cb_GetField(self.handle, *_ids(path), buffer)

    def get_field_array(self, byte_len: int, length: int, *path) -> list[bytes]:
        """
        Fetch an array field as `length` chunks of `byte_len` bytes each.

        CBash stores the address of its own array in the value slot, the
        elements are copied from there.
        """
        if length <= 0:
            return []
        holder = (c_void_p * 1)()
        self.get_field_into(holder, *path)
        if not holder[0]:
            return []
        data = ctypes.string_at(holder[0], byte_len * length)
        return [
            data[i : i + byte_len] for i in range(0, byte_len * length, byte_len)
        ]

    def set_field(self, value, *path, array_size: int = 0):
        """
        Replace a field's value. CBash copies `value`, it doesn't need to
        outlive the call.

        :param value: The encoded value, or ``None``.
        :param array_size: Number of elements when `value` is an array, or
                           the new length when resizing a list.
        """
        self._lib.cb_SetField(self.handle, *_ids(path), value, array_size)

    def delete_field(self, *path):
        self._lib.cb_DeleteField(self.handle, *_ids(path))

    def unload(self):
        if self._lib.cb_UnloadRecord(self.handle) == 0:
            raise CBashError("Failed to unload record.")

    def delete(self):
        """
        Remove the record from its plugin. The handle must not be used
        afterwards.
        """
        if self._lib.cb_DeleteRecord(self.handle) == 0:
            raise CBashError("Failed to delete record.")
        logger.debug("Deleted record 0x%X", self._ptr)
        self._ptr = None

    def _uint32(self, field_id: int) -> int | None:
        data = self.get_field(4, field_id)
        if data is None:
            return None
        return BinaryReader(data).uint32()

    @property
    def type(self) -> str:
        """
        The four-character record type, such as ``"NPC_"``.
        """
        return decode_type(self.field_attribute(FieldAttribute.Type, 0))

    @property
    def flags(self) -> RecordHeaderFlag:
        return RecordHeaderFlag(self._uint32(1) or 0)

    @property
    def form_id(self) -> int | None:
        return self._uint32(2)

    @property
    def flags2(self) -> int | None:
        return self._uint32(3)

    @property
    def editor_id(self) -> str | None:
        ptr = self.get_field_pointer(4)
        if ptr is None:
            return None
        return from_c(ctypes.string_at(ptr))
