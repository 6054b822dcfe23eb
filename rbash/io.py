from io import BytesIO
from struct import pack, unpack


class BinaryReader:
    """
    Little-endian reader over the raw bytes of a CBash field value.
    """

    def __init__(self, data: bytes, *, offset: int = 0):
        self.stream = BytesIO(data)
        self.stream.seek(offset)

    def read(self, size: int) -> bytes:
        result = self.stream.read(size)
        if len(result) != size:
            raise EOFError(
                f"Needed {size} bytes at offset {self.pos}, got {len(result)}"
            )
        return result

    @property
    def pos(self) -> int:
        return self.stream.tell()

    def seek(self, offset: int):
        self.stream.seek(offset, 0)

    def remaining(self) -> int:
        return len(self.stream.getbuffer()) - self.pos

    def uint8(self) -> int:
        return int.from_bytes(self.read(1), byteorder="little", signed=False)

    def uint16(self) -> int:
        return int.from_bytes(self.read(2), byteorder="little", signed=False)

    def uint32(self) -> int:
        return int.from_bytes(self.read(4), byteorder="little", signed=False)

    def uint64(self) -> int:
        return int.from_bytes(self.read(8), byteorder="little", signed=False)

    def int8(self) -> int:
        return int.from_bytes(self.read(1), byteorder="little", signed=True)

    def int16(self) -> int:
        return int.from_bytes(self.read(2), byteorder="little", signed=True)

    def int32(self) -> int:
        return int.from_bytes(self.read(4), byteorder="little", signed=True)

    def int64(self) -> int:
        return int.from_bytes(self.read(8), byteorder="little", signed=True)

    def float_(self) -> float:
        return unpack("<f", self.read(4))[0]

    def double(self) -> float:
        return unpack("<d", self.read(8))[0]

    def bool_(self) -> bool:
        return self.uint8() != 0

    def cstring(self, encoding: str = "cp1252") -> str:
        """
        Read bytes until a null byte (or the end of the data) and decode them.

        CBash hands back plugin strings in the game's legacy codepage, so
        cp1252 is the default rather than utf-8.
        """
        b = bytearray()
        while self.remaining():
            c = self.uint8()
            if c == 0:
                break
            b.append(c)
        return b.decode(encoding)

    def array(self, reader, count: int) -> list:
        """
        Call `reader` `count` times and return the results.

        :param reader: One of the bound reading methods, such as `self.uint32`.
        :param count: Number of elements to read.
        """
        return [reader() for _ in range(count)]


class BinaryWriter:
    """
    Counterpart to :class:`BinaryReader`, used to build the buffers passed to
    ``cb_SetField``.

    Every method returns the writer so calls can be chained.
    """

    def __init__(self):
        self.stream = BytesIO()

    @property
    def pos(self) -> int:
        return self.stream.tell()

    def getvalue(self) -> bytes:
        return self.stream.getvalue()

    def write(self, data: bytes) -> "BinaryWriter":
        self.stream.write(data)
        return self

    def uint8(self, value: int) -> "BinaryWriter":
        return self.write(value.to_bytes(1, "little", signed=False))

    def uint16(self, value: int) -> "BinaryWriter":
        return self.write(value.to_bytes(2, "little", signed=False))

    def uint32(self, value: int) -> "BinaryWriter":
        return self.write(value.to_bytes(4, "little", signed=False))

    def uint64(self, value: int) -> "BinaryWriter":
        return self.write(value.to_bytes(8, "little", signed=False))

    def int8(self, value: int) -> "BinaryWriter":
        return self.write(value.to_bytes(1, "little", signed=True))

    def int16(self, value: int) -> "BinaryWriter":
        return self.write(value.to_bytes(2, "little", signed=True))

    def int32(self, value: int) -> "BinaryWriter":
        return self.write(value.to_bytes(4, "little", signed=True))

    def int64(self, value: int) -> "BinaryWriter":
        return self.write(value.to_bytes(8, "little", signed=True))

    def float_(self, value: float) -> "BinaryWriter":
        return self.write(pack("<f", value))

    def double(self, value: float) -> "BinaryWriter":
        return self.write(pack("<d", value))

    def bool_(self, value: bool) -> "BinaryWriter":
        return self.uint8(1 if value else 0)
