"""JVM class file reading and position patching.

Only what position remapping and entry point discovery need is decoded: the
constant pool, member names and descriptors, the ``SourceFile`` attribute and
every ``LineNumberTable``. All other bytes are carried over unchanged.
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Iterator
from dataclasses import dataclass

from .state import ClassFileError

logger = logging.getLogger(__name__)

MAGIC = 0xCAFEBABE

CONSTANT_UTF8 = 1
CONSTANT_CLASS = 7

# Payload size of every fixed-size constant pool entry, by tag
_CONSTANT_SIZES = {
    3: 4,  # Integer
    4: 4,  # Float
    5: 8,  # Long
    6: 8,  # Double
    7: 2,  # Class
    8: 2,  # String
    9: 4,  # Fieldref
    10: 4,  # Methodref
    11: 4,  # InterfaceMethodref
    12: 4,  # NameAndType
    15: 3,  # MethodHandle
    16: 2,  # MethodType
    17: 4,  # Dynamic
    18: 4,  # InvokeDynamic
    19: 2,  # Module
    20: 2,  # Package
}
# Long and Double take two constant pool slots
_WIDE_CONSTANTS = frozenset({5, 6})

ACC_PUBLIC = 0x0001
ACC_STATIC = 0x0008

MAIN_DESCRIPTOR = "([Ljava/lang/String;)V"

MAX_U2 = 0xFFFF


def decode_modified_utf8(data: bytes) -> str:
    """Decode the JVM's modified UTF-8 (``C0 80`` for NUL, surrogate pairs for astral chars)."""
    text = data.replace(b"\xc0\x80", b"\x00").decode("utf-8", errors="surrogatepass")
    return text.encode("utf-16", errors="surrogatepass").decode("utf-16")


def encode_modified_utf8(text: str) -> bytes:
    out = bytearray()
    for char in text:
        code_point = ord(char)
        if code_point == 0:
            out += b"\xc0\x80"
        elif code_point > 0xFFFF:
            units = char.encode("utf-16-be")
            for i in (0, 2):
                surrogate = chr(int.from_bytes(units[i : i + 2], "big"))
                out += surrogate.encode("utf-8", errors="surrogatepass")
        else:
            out += char.encode("utf-8")
    return bytes(out)


class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def _unpack(self, fmt: str, size: int) -> int:
        if self.pos + size > len(self.data):
            raise ClassFileError(f"Unexpected end of class file at offset {self.pos}")
        (value,) = struct.unpack_from(fmt, self.data, self.pos)
        self.pos += size
        return value

    def u1(self) -> int:
        return self._unpack(">B", 1)

    def u2(self) -> int:
        return self._unpack(">H", 2)

    def u4(self) -> int:
        return self._unpack(">I", 4)

    def read(self, size: int) -> bytes:
        if self.pos + size > len(self.data):
            raise ClassFileError(f"Unexpected end of class file at offset {self.pos}")
        chunk = self.data[self.pos : self.pos + size]
        self.pos += size
        return chunk

    def skip(self, size: int) -> None:
        self.read(size)


@dataclass(frozen=True)
class MemberInfo:
    """A field or method."""

    access_flags: int
    name: str
    descriptor: str

    @property
    def is_main(self) -> bool:
        return (
            self.name == "main"
            and self.descriptor == MAIN_DESCRIPTOR
            and self.access_flags & ACC_PUBLIC != 0
            and self.access_flags & ACC_STATIC != 0
        )


class ClassFile:
    """A parsed class file that can be re-emitted with corrected positions."""

    def __init__(
        self,
        data: bytes,
        utf8: dict[int, str],
        constant_pool_count: int,
        constant_pool_end: int,
        this_class: str,
        methods: list[MemberInfo],
        source_file_offset: int | None,
        line_offsets: list[int],
    ):
        self._data = data
        self._utf8 = utf8
        self._cp_count = constant_pool_count
        self._cp_end = constant_pool_end
        self.this_class = this_class
        self.methods = methods
        self._source_file_offset = source_file_offset
        self._line_offsets = line_offsets

    @property
    def name(self) -> str:
        """Binary class name with dots, e.g. ``foo.Bar$``."""
        return self.this_class.replace("/", ".")

    @property
    def source_file(self) -> str | None:
        if self._source_file_offset is None:
            return None
        (index,) = struct.unpack_from(">H", self._data, self._source_file_offset)
        return self._utf8.get(index)

    @property
    def line_numbers(self) -> list[int]:
        """Every line number of every ``LineNumberTable``, in file order."""
        return [struct.unpack_from(">H", self._data, off)[0] for off in self._line_offsets]

    @property
    def has_main_method(self) -> bool:
        return any(m.is_main for m in self.methods)

    @classmethod
    def parse(cls, data: bytes) -> ClassFile:
        """Parse class file bytes.

        Raises:
            ClassFileError: If the data is not a well-formed class file
        """
        try:
            return cls._parse(bytes(data))
        except UnicodeDecodeError as e:
            raise ClassFileError(f"Invalid constant pool string: {e}") from e

    @classmethod
    def _parse(cls, data: bytes) -> ClassFile:
        reader = _Reader(data)
        if reader.u4() != MAGIC:
            raise ClassFileError("Not a class file (bad magic number)")
        reader.skip(4)  # minor and major version

        cp_count = reader.u2()
        utf8: dict[int, str] = {}
        classes: dict[int, int] = {}
        index = 1
        while index < cp_count:
            tag = reader.u1()
            if tag == CONSTANT_UTF8:
                utf8[index] = decode_modified_utf8(reader.read(reader.u2()))
            elif tag == CONSTANT_CLASS:
                classes[index] = reader.u2()
            elif tag in _CONSTANT_SIZES:
                reader.skip(_CONSTANT_SIZES[tag])
            else:
                raise ClassFileError(f"Unknown constant pool tag {tag} at index {index}")
            index += 2 if tag in _WIDE_CONSTANTS else 1
        cp_end = reader.pos

        def utf8_at(i: int) -> str:
            try:
                return utf8[i]
            except KeyError:
                raise ClassFileError(f"Constant pool index {i} is not a UTF-8 entry") from None

        reader.skip(2)  # access flags
        this_index = reader.u2()
        if this_index not in classes:
            raise ClassFileError(f"this_class index {this_index} is not a class entry")
        this_class = utf8_at(classes[this_index])
        reader.skip(2)  # super class
        reader.skip(2 * reader.u2())  # interfaces

        line_offsets: list[int] = []

        for _ in range(reader.u2()):  # fields
            reader.skip(6)
            for _name, _start, _length in _attributes(reader, utf8_at):
                pass

        methods: list[MemberInfo] = []
        for _ in range(reader.u2()):
            access = reader.u2()
            name = utf8_at(reader.u2())
            descriptor = utf8_at(reader.u2())
            methods.append(MemberInfo(access, name, descriptor))
            for attr_name, _start, _length in _attributes(reader, utf8_at):
                if attr_name == "Code":
                    _read_code(reader, utf8_at, line_offsets)

        source_file_offset: int | None = None
        for attr_name, start, length in _attributes(reader, utf8_at):
            if attr_name == "SourceFile":
                if length != 2:
                    raise ClassFileError(f"SourceFile attribute has length {length}")
                source_file_offset = start

        if reader.pos != len(data):
            raise ClassFileError(f"{len(data) - reader.pos} trailing bytes after class file")

        return cls(
            data=data,
            utf8=utf8,
            constant_pool_count=cp_count,
            constant_pool_end=cp_end,
            this_class=this_class,
            methods=methods,
            source_file_offset=source_file_offset,
            line_offsets=line_offsets,
        )

    def _find_utf8(self, text: str) -> int | None:
        for index, value in self._utf8.items():
            if value == text:
                return index
        return None

    def with_positions(self, source_file: str | None, line_shift: int) -> bytes:
        """Re-emit the class with shifted line numbers and a new source file name.

        Shifted lines are clamped to the range a class file can hold.

        Args:
            source_file: New ``SourceFile`` value, or None to keep the current one
            line_shift: Added to every line number entry

        Raises:
            ClassFileError: If the class has no ``SourceFile`` to rewrite, or the
                constant pool cannot take another entry
        """
        data = bytearray(self._data)
        if line_shift:
            clamped = 0
            for off in self._line_offsets:
                (line,) = struct.unpack_from(">H", data, off)
                shifted = line + line_shift
                if not 0 <= shifted <= MAX_U2:
                    clamped += 1
                    shifted = min(MAX_U2, max(0, shifted))
                struct.pack_into(">H", data, off, shifted)
            if clamped:
                logger.debug(
                    f"Clamped {clamped} line numbers of {self.name} shifted by {line_shift}"
                )

        if source_file is None or source_file == self.source_file:
            return bytes(data)
        if self._source_file_offset is None:
            raise ClassFileError(f"{self.name} has no SourceFile attribute")

        index = self._find_utf8(source_file)
        if index is not None:
            struct.pack_into(">H", data, self._source_file_offset, index)
            return bytes(data)

        # Append a new UTF-8 constant; offsets above are all past the pool
        encoded = encode_modified_utf8(source_file)
        if self._cp_count >= MAX_U2:
            raise ClassFileError(f"Constant pool of {self.name} is full")
        if len(encoded) > MAX_U2:
            raise ClassFileError("Source file name too long")
        new_index = self._cp_count
        struct.pack_into(">H", data, self._source_file_offset, new_index)
        entry = bytes([CONSTANT_UTF8]) + struct.pack(">H", len(encoded)) + encoded
        data[self._cp_end : self._cp_end] = entry
        struct.pack_into(">H", data, 8, self._cp_count + 1)
        return bytes(data)


def _attributes(reader: _Reader, utf8_at) -> Iterator[tuple[str, int, int]]:
    """Iterate over an attribute table, leaving the reader after each attribute."""
    for _ in range(reader.u2()):
        name = utf8_at(reader.u2())
        length = reader.u4()
        start = reader.pos
        end = start + length
        if end > len(reader.data):
            raise ClassFileError(f"Attribute {name} overruns the class file")
        yield name, start, length
        if reader.pos > end:
            raise ClassFileError(f"Attribute {name} is shorter than its content")
        reader.pos = end


def _read_code(reader: _Reader, utf8_at, line_offsets: list[int]) -> None:
    reader.skip(4)  # max_stack, max_locals
    reader.skip(reader.u4())  # bytecode
    reader.skip(8 * reader.u2())  # exception table
    for name, _start, _length in _attributes(reader, utf8_at):
        if name == "LineNumberTable":
            for _ in range(reader.u2()):
                line_offsets.append(reader.pos + 2)  # after start_pc
                reader.skip(4)
