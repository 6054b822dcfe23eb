import enum


class CollectionType(enum.IntEnum):
    """
    The games CBash can create collections for. The game type decides which
    plugin format is assumed when reading and writing.
    """

    Oblivion = 0
    Fallout3 = 1
    FalloutNewVegas = 2
    Skyrim = 3
    Unknown = 4


class ModFlags(enum.IntFlag):
    """
    Flags that control how a plugin is loaded by :meth:`Collection.add_mod`.

    MIN_LOAD and FULL_LOAD are exclusive, FULL_LOAD wins if both are set and
    the plugin isn't loaded at all if neither is.
    """

    MIN_LOAD = 0x00000001
    FULL_LOAD = 0x00000002
    SKIP_NEW_RECORDS = 0x00000004
    IN_LOAD_ORDER = 0x00000008
    SAVEABLE = 0x00000010
    ADD_MASTERS = 0x00000020
    LOAD_MASTERS = 0x00000040
    EXTENDED_CONFLICTS = 0x00000080
    TRACK_NEW_TYPES = 0x00000100
    INDEX_LANDS = 0x00000200
    FIXUP_PLACEABLES = 0x00000400
    CREATE_NEW = 0x00000800
    IGNORE_INACTIVE_MASTERS = 0x00001000
    SKIP_ALL_RECORDS = 0x00002000

    # The only combinations Bash itself ever exercised.
    NORMAL = FULL_LOAD | IN_LOAD_ORDER | SAVEABLE | ADD_MASTERS | LOAD_MASTERS
    DUMMY = ADD_MASTERS
    MERGED = FULL_LOAD | SKIP_NEW_RECORDS | IGNORE_INACTIVE_MASTERS
    SCANNED = FULL_LOAD | SKIP_NEW_RECORDS | EXTENDED_CONFLICTS


class SaveFlags(enum.IntFlag):
    CLEAN_MASTERS = 0x00000001
    # Deletes the parent collection once the plugin has been written.
    CLOSE_COLLECTION = 0x00000002


class RecordFlags(enum.IntFlag):
    """
    Flags used when creating or copying a record.
    """

    SET_AS_OVERRIDE = 0x00000001
    COPY_WINNING_PARENT = 0x00000002


class RecordHeaderFlag(enum.IntFlag):
    """
    Common flags stored in the header of every record (field 1).
    """

    Master = 0x01
    Deleted = 0x20
    BorderRegion = 0x40
    TurnOffFire = 0x80
    CastsShadows = 0x200
    Persistent = 0x400
    InitiallyDisabled = 0x800
    Ignored = 0x1000
    VisibleWhenDistant = 0x8000
    Dangerous = 0x20000
    Compressed = 0x40000
    CantWait = 0x80000


class FieldAttribute(enum.IntEnum):
    Type = 0
    # Element count for arrays and lists, byte length for raw data.
    Size = 1


class FieldType(enum.IntEnum):
    """
    Type of a field's value as reported by ``cb_GetFieldAttribute``.

    The order must match ``cb_field_type_t`` exactly.
    """

    Unknown = 0
    Missing = enum.auto()
    Junk = enum.auto()
    Bool = enum.auto()
    SInt8 = enum.auto()
    UInt8 = enum.auto()
    SInt16 = enum.auto()
    UInt16 = enum.auto()
    SInt32 = enum.auto()
    UInt32 = enum.auto()
    Float32 = enum.auto()
    Radian = enum.auto()
    FormID = enum.auto()
    MGEFCode = enum.auto()
    ActorValue = enum.auto()
    FormIDOrUInt32 = enum.auto()
    FormIDOrFloat32 = enum.auto()
    UInt8OrUInt32 = enum.auto()
    FormIDOrString = enum.auto()
    UnknownOrFormIDOrUInt32 = enum.auto()
    UnknownOrSInt32 = enum.auto()
    UnknownOrUInt32Flag = enum.auto()
    MGEFCodeOrChar4 = enum.auto()
    FormIDOrMGEFCodeOrActorValueOrUInt32 = enum.auto()
    ResolvedMGEFCode = enum.auto()
    StaticMGEFCode = enum.auto()
    ResolvedActorValue = enum.auto()
    StaticActorValue = enum.auto()
    Char = enum.auto()
    Char4 = enum.auto()
    String = enum.auto()
    IString = enum.auto()
    StringOrFloat32OrSInt32 = enum.auto()
    List = enum.auto()
    ParentRecord = enum.auto()
    SubRecord = enum.auto()
    SInt8Flag = enum.auto()
    SInt8Type = enum.auto()
    SInt8FlagType = enum.auto()
    SInt8Array = enum.auto()
    UInt8Flag = enum.auto()
    UInt8Type = enum.auto()
    UInt8FlagType = enum.auto()
    UInt8Array = enum.auto()
    SInt16Flag = enum.auto()
    SInt16Type = enum.auto()
    SInt16FlagType = enum.auto()
    SInt16Array = enum.auto()
    UInt16Flag = enum.auto()
    UInt16Type = enum.auto()
    UInt16FlagType = enum.auto()
    UInt16Array = enum.auto()
    SInt32Flag = enum.auto()
    SInt32Type = enum.auto()
    SInt32FlagType = enum.auto()
    SInt32Array = enum.auto()
    UInt32Flag = enum.auto()
    UInt32Type = enum.auto()
    UInt32FlagType = enum.auto()
    UInt32Array = enum.auto()
    Float32Array = enum.auto()
    RadianArray = enum.auto()
    FormIDArray = enum.auto()
    FormIDOrUInt32Array = enum.auto()
    MGEFCodeOrUInt32Array = enum.auto()
    StringArray = enum.auto()
    IStringArray = enum.auto()
    SubRecordArray = enum.auto()
    Undefined = enum.auto()


def coerce_flags(flag_type: type[enum.IntFlag], value) -> enum.IntFlag:
    """
    Convert `value` into `flag_type`, rejecting bits the type doesn't define.

    :param flag_type: One of the IntFlag classes in this module.
    :param value: An int or an existing flag.
    """
    value = int(value)
    known = 0
    for member in flag_type:
        known |= member.value

    if value < 0 or value & ~known:
        raise ValueError(f"Incorrect {flag_type.__name__} value.")

    return flag_type(value)
