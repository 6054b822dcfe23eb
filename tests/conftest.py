"""
Test configuration for rbash.

The handle classes are exercised against ``FakeCBash``, an in-process
stand-in for the shared library. It follows CBash's calling conventions
(sentinel return values, caller-allocated arrays, pointers into
library-owned buffers) closely enough that no native binary is needed.
"""

import ctypes
import itertools
import struct

import pytest

from rbash import cbash
from rbash.enums import FieldType, ModFlags, SaveFlags

# FieldType -> struct format of a single element
SCALAR_FORMATS = {
    FieldType.Bool: "<?",
    FieldType.SInt8: "<b",
    FieldType.UInt8: "<B",
    FieldType.SInt16: "<h",
    FieldType.UInt16: "<H",
    FieldType.SInt32: "<i",
    FieldType.UInt32: "<I",
    FieldType.UInt32Flag: "<I",
    FieldType.FormID: "<I",
    FieldType.Float32: "<f",
    FieldType.Radian: "<f",
}
ARRAY_FORMATS = {
    FieldType.UInt8Array: "B",
    FieldType.SInt16Array: "h",
    FieldType.UInt32Array: "I",
    FieldType.FormIDArray: "I",
    FieldType.Float32Array: "f",
}
FILLED_ARRAYS = {FieldType.FormIDOrUInt32Array}
STRINGS = {FieldType.String, FieldType.IString}
STRING_ARRAYS = {FieldType.StringArray}
FORMID_TYPES = {FieldType.FormID, FieldType.FormIDArray}


def ids(*path):
    return tuple(path) + (0,) * (7 - len(path))


class FakeCollection:
    def __init__(self, ptr, path, kind):
        self.ptr = ptr
        self.path = path
        self.kind = kind
        self.mods = []
        self.loaded = False
        self.updated = set()


class FakeMod:
    def __init__(self, ptr, collection, name, flags):
        self.ptr = ptr
        self.collection = collection
        self.name = name
        self.flags = flags
        self.records = []
        self.orphans = []
        self.itms = []
        self.loaded = False
        self.saved_as = None
        self.header = None

    @property
    def in_load_order(self):
        return bool(self.flags & ModFlags.IN_LOAD_ORDER)

    @property
    def index(self):
        return [m for m in self.collection.mods if m.in_load_order].index(self)


class FakeRecord:
    def __init__(self, ptr, mod, rec_type, formid, edid, fields=None):
        self.ptr = ptr
        self.mod = mod
        self.type = rec_type
        self.fields = {
            ids(1): (FieldType.UInt32Flag, 0),
            ids(2): (FieldType.FormID, formid),
            ids(3): (FieldType.UInt32Flag, 0),
        }
        if edid is not None:
            self.fields[ids(4)] = (FieldType.String, edid)
        for path, value in (fields or {}).items():
            self.fields[ids(*path)] = value
        self.original = dict(self.fields)
        self.unloaded = False

    @property
    def formid(self):
        return self.fields[ids(2)][1]

    @property
    def edid(self):
        field = self.fields.get(ids(4))
        return field[1] if field else None


class FakeCBash:
    """
    A pure-Python implementation of the ``cb_*`` functions.

    Handles are plain integers. Values handed back by ``cb_GetField`` live
    in ctypes buffers kept alive by the fake, like CBash's own storage.

    Any function can be made to return a fixed value with :meth:`fail`.
    """

    def __init__(self):
        self.failures = {}
        self.objects = {}
        self.collections = []
        self.deleted = []
        self.messages = None
        self.raising = None
        self._buffers = []
        self._ptrs = itertools.count(0x10000, 0x10)

    def __getattribute__(self, name):
        failures = object.__getattribute__(self, "failures")
        if name in failures:
            value = failures[name]
            return lambda *args: value
        return object.__getattribute__(self, name)

    def fail(self, name, value):
        self.failures[name] = value

    def _new(self, factory, *args):
        ptr = next(self._ptrs)
        obj = factory(ptr, *args)
        self.objects[ptr] = obj
        return obj

    def _keep(self, buffer):
        self._buffers.append(buffer)
        return ctypes.addressof(buffer)

    def _load_order(self, collection):
        return [m for m in collection.mods if m.in_load_order]

    def _versions(self, record):
        """
        Every version of `record`'s FormID, in load order.
        """
        return [
            r
            for mod in self._load_order(record.mod.collection)
            for r in mod.records
            if r.formid == record.formid
        ]

    # Seeding helpers, not part of the C API.

    def add_record(self, mod_ptr, rec_type, formid, edid=None, fields=None):
        mod = self.objects[mod_ptr]
        record = self._new(FakeRecord, mod, rec_type, formid, edid, fields)
        mod.records.append(record)
        return record

    # Library

    def cb_GetVersionMajor(self):
        return 0

    def cb_GetVersionMinor(self):
        return 7

    def cb_GetVersionRevision(self):
        return 1

    def cb_RedirectMessages(self, callback):
        self.messages = callback

    def cb_AllowRaising(self, callback):
        self.raising = callback

    # Collections

    def cb_CreateCollection(self, path, kind):
        collection = self._new(FakeCollection, path, kind)
        self.collections.append(collection)
        return collection.ptr

    def cb_DeleteCollection(self, ptr):
        collection = self.objects.pop(ptr)
        self.collections.remove(collection)
        self.deleted.append(ptr)
        return 0

    def cb_LoadCollection(self, ptr, progress):
        collection = self.objects[ptr]
        mods = self._load_order(collection)
        for index, mod in enumerate(mods):
            if progress:
                if not progress(index, len(mods) - 1, mod.name):
                    return -1
            mod.loaded = True
        collection.loaded = True
        return 0

    def cb_UnloadCollection(self, ptr):
        self.objects[ptr].loaded = False
        return 0

    def cb_GetCollectionType(self, ptr):
        return self.objects[ptr].kind

    def cb_UnloadAllCollections(self):
        for collection in self.collections:
            collection.loaded = False
        return 0

    def cb_DeleteAllCollections(self):
        for collection in list(self.collections):
            self.cb_DeleteCollection(collection.ptr)
        return 0

    # Mods

    def cb_AddMod(self, ptr, name, flags):
        collection = self.objects[ptr]
        if any(m.name == name for m in collection.mods):
            return None
        mod = self._new(FakeMod, collection, name, flags)
        collection.mods.append(mod)
        return mod.ptr

    def cb_LoadMod(self, ptr):
        self.objects[ptr].loaded = True
        return 0

    def cb_UnloadMod(self, ptr):
        self.objects[ptr].loaded = False
        return 0

    def cb_CleanModMasters(self, ptr):
        return 0

    def cb_SaveMod(self, ptr, flags, name):
        mod = self.objects[ptr]
        mod.saved_as = name
        if flags & SaveFlags.CLOSE_COLLECTION:
            self.cb_DeleteCollection(mod.collection.ptr)
        return 0

    def cb_GetAllNumMods(self, ptr):
        return len(self.objects[ptr].mods)

    def cb_GetAllModIDs(self, ptr, array):
        for i, mod in enumerate(self.objects[ptr].mods):
            array[i] = mod.ptr
        return 0

    def cb_GetLoadOrderNumMods(self, ptr):
        return len(self._load_order(self.objects[ptr]))

    def cb_GetLoadOrderModIDs(self, ptr, array):
        for i, mod in enumerate(self._load_order(self.objects[ptr])):
            array[i] = mod.ptr
        return 0

    def cb_GetFileNameByID(self, ptr):
        return self.objects[ptr].name

    def cb_GetFileNameByLoadOrder(self, ptr, index):
        mods = self._load_order(self.objects[ptr])
        return mods[index].name if index < len(mods) else None

    def cb_GetModNameByID(self, ptr):
        return self.objects[ptr].name.removesuffix(b".ghost")

    def cb_GetModNameByLoadOrder(self, ptr, index):
        name = self.cb_GetFileNameByLoadOrder(ptr, index)
        return name.removesuffix(b".ghost") if name else None

    def cb_GetModIDByName(self, ptr, name):
        for mod in self.objects[ptr].mods:
            if mod.name.removesuffix(b".ghost") == name:
                return mod.ptr
        return None

    def cb_GetModIDByLoadOrder(self, ptr, index):
        mods = self._load_order(self.objects[ptr])
        return mods[index].ptr if index < len(mods) else None

    def cb_GetModLoadOrderByName(self, ptr, name):
        mod = self.cb_GetModIDByName(ptr, name)
        if mod is None or not self.objects[mod].in_load_order:
            return -1
        return self.objects[mod].index

    def cb_GetModLoadOrderByID(self, ptr):
        mod = self.objects[ptr]
        return mod.index if mod.in_load_order else -1

    def cb_GetModIDByRecordID(self, ptr):
        return self.objects[ptr].mod.ptr

    def cb_GetCollectionIDByRecordID(self, ptr):
        return self.objects[ptr].mod.collection.ptr

    def cb_GetCollectionIDByModID(self, ptr):
        return self.objects[ptr].collection.ptr

    def cb_IsModEmpty(self, ptr):
        return 0 if self.objects[ptr].records else 1

    def cb_GetModNumTypes(self, ptr):
        mod = self.objects[ptr]
        if not mod.flags & ModFlags.TRACK_NEW_TYPES:
            return -1
        return len({r.type for r in mod.records})

    def cb_GetModTypes(self, ptr, array):
        types = sorted({r.type for r in self.objects[ptr].records})
        for i, rec_type in enumerate(types):
            array[i] = rec_type
        return len(types)

    def cb_GetModNumEmptyGRUPs(self, ptr):
        return 0

    def cb_GetModNumOrphans(self, ptr):
        return len(self.objects[ptr].orphans)

    def cb_GetModOrphansFormIDs(self, ptr, array):
        for i, formid in enumerate(self.objects[ptr].orphans):
            array[i] = formid
        return 0

    def cb_GetLongIDName(self, ptr, formid, is_mgef):
        record = self.objects[ptr]
        mods = self._load_order(record.mod.collection)
        index = formid >> 24
        return mods[index].name if index < len(mods) else None

    def cb_MakeShortFormID(self, ptr, object_id, is_mgef):
        mod = self.objects[ptr]
        if not mod.in_load_order:
            return 0
        return (mod.index << 24) | (object_id & 0xFFFFFF)

    # Records

    def cb_CreateRecord(self, ptr, rec_type, formid, edid, parent, flags):
        mod = self.objects[ptr]
        edid = edid.decode() if edid is not None else None
        if formid == 0:
            formid = (mod.index << 24) | (0x800 + len(mod.records))
        record = self._new(FakeRecord, mod, rec_type, formid, edid)
        mod.records.append(record)
        return record.ptr

    def cb_CopyRecord(self, ptr, dest, parent, formid, edid, flags):
        source = self.objects[ptr]
        mod = self.objects[dest]
        edid = edid.decode() if edid is not None else None
        record = self._new(
            FakeRecord,
            mod,
            source.type,
            formid or source.formid,
            edid if edid is not None else source.edid,
        )
        record.fields.update(
            (k, v) for k, v in source.fields.items() if k not in (ids(2), ids(4))
        )
        mod.records.append(record)
        return record.ptr

    def cb_UnloadRecord(self, ptr):
        self.objects[ptr].unloaded = True
        return 1

    def cb_ResetRecord(self, ptr):
        record = self.objects[ptr]
        if record.fields == record.original:
            return 0
        record.fields = dict(record.original)
        return 1

    def cb_DeleteRecord(self, ptr):
        record = self.objects.pop(ptr)
        record.mod.records.remove(record)
        return 1

    def cb_GetRecordID(self, ptr, formid, edid):
        mod = self.objects[ptr]
        if formid == 0 and edid is None:
            if mod.header is None:
                mod.header = self._new(
                    FakeRecord, mod, cbash.encode_type("TES4"), 0, None
                )
            return mod.header.ptr
        for record in mod.records:
            if edid is not None and record.edid == edid.decode():
                return record.ptr
            if edid is None and record.formid == formid:
                return record.ptr
        return None

    def cb_GetNumRecords(self, ptr, rec_type):
        return sum(1 for r in self.objects[ptr].records if r.type == rec_type)

    def cb_GetRecordIDs(self, ptr, rec_type, array):
        records = [r for r in self.objects[ptr].records if r.type == rec_type]
        for i, record in enumerate(records):
            array[i] = record.ptr
        return len(records)

    def cb_IsRecordWinning(self, ptr, extended):
        record = self.objects[ptr]
        return 1 if self._versions(record)[-1] is record else 0

    def cb_GetNumRecordConflicts(self, ptr, extended):
        return len(self._versions(self.objects[ptr]))

    def cb_GetRecordConflicts(self, ptr, array, extended):
        versions = list(reversed(self._versions(self.objects[ptr])))
        for i, record in enumerate(versions):
            array[i] = record.ptr
        return len(versions)

    def cb_GetRecordHistory(self, ptr, array):
        record = self.objects[ptr]
        versions = self._versions(record)
        earlier = versions[: versions.index(record)]
        for i, version in enumerate(earlier):
            array[i] = version.ptr
        return len(earlier)

    def cb_GetNumIdenticalToMasterRecords(self, ptr):
        return len(self.objects[ptr].itms)

    def cb_GetIdenticalToMasterRecords(self, ptr, array):
        for i, record in enumerate(self.objects[ptr].itms):
            array[i] = record.ptr
        return 0

    def cb_IsRecordFormIDsInvalid(self, ptr):
        record = self.objects[ptr]
        masters = len(self._load_order(record.mod.collection))
        return 1 if (record.formid >> 24) >= masters else 0

    def cb_UpdateReferences(self, mod, record, old, new, changes, size):
        if record is not None:
            records = [self.objects[record]]
        else:
            records = self.objects[mod].records

        total = 0
        for i in range(size):
            count = 0
            for r in records:
                for path, (type_, value) in list(r.fields.items()):
                    if path == ids(2) or type_ not in FORMID_TYPES:
                        continue
                    if type_ is FieldType.FormID and value == old[i]:
                        r.fields[path] = (type_, new[i])
                        count += 1
                    elif type_ is FieldType.FormIDArray and old[i] in value:
                        count += value.count(old[i])
                        r.fields[path] = (
                            type_,
                            [new[i] if v == old[i] else v for v in value],
                        )
                if count:
                    r.mod.collection.updated.add(r)
            changes[i] = count
            total += count
        return total

    def cb_GetRecordUpdatedReferences(self, ptr, record):
        collection = self.objects[ptr]
        if record is None:
            collection.updated.clear()
            return 0
        return 1 if self.objects[record] in collection.updated else 0

    def cb_SetIDFields(self, ptr, formid, edid):
        record = self.objects[ptr]
        edid = edid.decode() if edid is not None else None
        if record.formid == formid and record.edid == edid:
            return -1
        record.fields[ids(2)] = (FieldType.FormID, formid)
        if edid is None:
            record.fields.pop(ids(4), None)
        else:
            record.fields[ids(4)] = (FieldType.String, edid)
        return 1

    # Fields

    def cb_GetFieldAttribute(self, ptr, *args):
        *path, attribute = args
        record = self.objects[ptr]
        path = tuple(path)
        if path == ids() and attribute == 0:
            return record.type

        field = record.fields.get(path)
        if field is None:
            return FieldType.Missing if attribute == 0 else 0
        type_, value = field
        if attribute == 0:
            return type_
        return len(value) if isinstance(value, list) else 0

    def cb_GetField(self, ptr, *args):
        *path, out = args
        field = self.objects[ptr].fields.get(tuple(path))
        if field is None:
            return None
        type_, value = field

        if type_ in SCALAR_FORMATS:
            data = struct.pack(SCALAR_FORMATS[type_], value)
            return self._keep(ctypes.create_string_buffer(data, len(data)))
        if type_ in STRINGS:
            return self._keep(ctypes.create_string_buffer(value.encode()))
        if type_ in ARRAY_FORMATS:
            data = struct.pack(f"<{len(value)}{ARRAY_FORMATS[type_]}", *value)
            out[0] = self._keep(ctypes.create_string_buffer(data, len(data)))
            return None
        if type_ in FILLED_ARRAYS:
            for i, v in enumerate(value):
                out[i] = v
            return None
        if type_ in STRING_ARRAYS:
            for i, v in enumerate(value):
                out[i] = self._keep(ctypes.create_string_buffer(v.encode()))
            return None
        raise AssertionError(f"FakeCBash can't read {type_!r}")

    def cb_SetField(self, ptr, *args):
        *path, value, size = args
        record = self.objects[ptr]
        path = tuple(path)
        type_, _ = record.fields[path]

        if type_ in SCALAR_FORMATS:
            (decoded,) = struct.unpack(SCALAR_FORMATS[type_], value)
        elif type_ in STRINGS:
            decoded = value.rstrip(b"\x00").decode()
        elif type_ in ARRAY_FORMATS:
            decoded = list(
                struct.unpack(f"<{size}{ARRAY_FORMATS[type_]}", value)
            )
        elif type_ in FILLED_ARRAYS:
            decoded = list(struct.unpack(f"<{size}I", value))
        elif type_ in STRING_ARRAYS:
            decoded = [value[i].decode() for i in range(size)]
        else:
            raise AssertionError(f"FakeCBash can't write {type_!r}")
        record.fields[path] = (type_, decoded)

    def cb_DeleteField(self, ptr, *path):
        self.objects[ptr].fields.pop(tuple(path), None)


class NativeLibrary:
    """
    Stands in for the ``ctypes.CDLL`` of CBash.

    The functions named in `native` are turned into real ctypes function
    pointers built from :data:`rbash.cbash.PROTOTYPES`, so calls to them go
    through ``argtypes`` conversion exactly like calls into the shared
    library. Everything else is forwarded to the fake as is.
    """

    NATIVE = frozenset(
        {
            "cb_GetVersionMajor",
            "cb_GetVersionMinor",
            "cb_GetVersionRevision",
            "cb_RedirectMessages",
            "cb_AllowRaising",
            "cb_CreateCollection",
            "cb_DeleteCollection",
            "cb_LoadCollection",
            "cb_AddMod",
        }
    )

    def __init__(self, fake, missing=()):
        self.fake = fake
        self.missing = set(missing)
        self.functions = {}

    def __getattr__(self, name):
        if not name.startswith("cb_") or name in self.missing:
            raise AttributeError(name)

        if name not in self.functions:
            target = getattr(self.fake, name)
            if name in self.NATIVE:
                restype, argtypes = cbash.PROTOTYPES[name]
                function = ctypes.CFUNCTYPE(restype, *argtypes)(target)
            else:

                def function(*args):
                    return target(*args)

            self.functions[name] = function
        return self.functions[name]


@pytest.fixture
def fake():
    lib = FakeCBash()
    cbash.set_library(lib)
    yield lib
    cbash.set_library(None)


@pytest.fixture
def open_native(monkeypatch, fake):
    """
    Opens a :class:`NativeLibrary` over `fake` through :func:`cbash.load`.
    """

    def open_(missing=()):
        lib = NativeLibrary(fake, missing)
        monkeypatch.setattr(
            cbash, "find_library", lambda path=None: "libCBash.so"
        )
        monkeypatch.setattr(cbash.ctypes, "CDLL", lambda location: lib)
        return cbash.load()

    return open_


@pytest.fixture
def native(open_native):
    lib = open_native()
    cbash.set_library(lib)
    return lib


@pytest.fixture
def collection(fake):
    """
    An Oblivion collection with a master and a plugin overriding it, loaded.
    """
    from rbash.collection import Collection
    from rbash.enums import CollectionType

    col = Collection("Data", CollectionType.Oblivion)
    master = col.add_mod("Oblivion.esm", ModFlags.NORMAL | ModFlags.TRACK_NEW_TYPES)
    plugin = col.add_mod("Patch.esp", ModFlags.NORMAL | ModFlags.TRACK_NEW_TYPES)

    gmst = cbash.encode_type("GMST")
    fake.add_record(master.handle, gmst, 0x00000100, "sTitle")
    fake.add_record(
        master.handle,
        cbash.encode_type("NPC_"),
        0x00000200,
        "Guard",
        fields={(10,): (FieldType.FormID, 0x00000100)},
    )
    fake.add_record(plugin.handle, gmst, 0x00000100, "sTitle")

    col.load()
    yield col
    col.close()
