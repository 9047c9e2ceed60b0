"""
Type number bookkeeping for a decoding session.

A type number `(file, index)` names a slot in the type table of one file of
the current compilation unit. File 0 is the unit's main source; each
`N_BINCL` include gets the next file number. Slots are handed out in chunks
of 16 and may be referenced before they are defined: such references are
indirect types which resolve once the slot is filled.
"""

from dataclasses import dataclass, field
from typing import Callable, ClassVar, Optional

from loguru import logger

from stabs_decoder.debug_info import DebugType, SlotRef, TypeArena, TypeKind
from stabs_decoder.errors import StabsStructureError
from stabs_decoder.sink import DebugSink

TypeNumber = tuple[int, int]


class TypeSlotTable:
    """
    Sparse table of slots for one file, grown in chunks of `CHUNK_SIZE`.
    """

    CHUNK_SIZE: ClassVar[int] = 16

    def __init__(self, arena: TypeArena):
        self._arena = arena
        self._chunks: dict[int, list[SlotRef]] = {}

    def slot(self, index: int) -> SlotRef:
        base = index // self.CHUNK_SIZE * self.CHUNK_SIZE
        chunk = self._chunks.get(base)
        if chunk is None:
            chunk = [self._arena.allocate() for _ in range(self.CHUNK_SIZE)]
            self._chunks[base] = chunk
        return chunk[index - base]

    def __len__(self) -> int:
        return len(self._chunks) * self.CHUNK_SIZE


@dataclass(eq=False)
class IncludeFrame:
    """
    An `N_BINCL` include. `hash` is the value field of the record, which the
    producer sets to a checksum of the header's stabs.
    """

    name: str
    hash: int
    file_index: int
    table: TypeSlotTable


# (name, factory) for XCOFF builtin types -1 to -34.
_XCOFF_TYPES: list[tuple[str, Callable[[DebugSink], Optional[DebugType]]]] = [
    ("int", lambda s: s.make_int_type(4, False)),
    ("char", lambda s: s.make_int_type(1, False)),
    ("short", lambda s: s.make_int_type(2, False)),
    ("long long", lambda s: s.make_int_type(4, False)),
    ("unsigned char", lambda s: s.make_int_type(1, True)),
    ("signed char", lambda s: s.make_int_type(1, False)),
    ("unsigned short", lambda s: s.make_int_type(2, True)),
    ("unsigned int", lambda s: s.make_int_type(4, True)),
    ("unsigned", lambda s: s.make_int_type(4, True)),
    ("unsigned long long", lambda s: s.make_int_type(4, True)),
    ("void", lambda s: s.make_void_type()),
    ("float", lambda s: s.make_float_type(4)),
    ("double", lambda s: s.make_float_type(8)),
    ("long long double", lambda s: s.make_float_type(8)),
    ("integer", lambda s: s.make_int_type(4, False)),
    ("boolean", lambda s: s.make_bool_type(4)),
    ("short real", lambda s: s.make_float_type(4)),
    ("real", lambda s: s.make_float_type(8)),
    ("stringptr", lambda s: None),
    ("character", lambda s: s.make_int_type(1, True)),
    ("logical*1", lambda s: s.make_bool_type(1)),
    ("logical*2", lambda s: s.make_bool_type(2)),
    ("logical*4", lambda s: s.make_bool_type(4)),
    ("logical", lambda s: s.make_bool_type(4)),
    ("complex", lambda s: s.make_complex_type(8)),
    ("double complex", lambda s: s.make_complex_type(16)),
    ("integer*1", lambda s: s.make_int_type(1, False)),
    ("integer*2", lambda s: s.make_int_type(2, False)),
    ("integer*4", lambda s: s.make_int_type(4, False)),
    ("wchar", lambda s: s.make_int_type(2, False)),
    ("long long", lambda s: s.make_int_type(8, False)),
    ("unsigned long long", lambda s: s.make_int_type(8, True)),
    ("logical*8", lambda s: s.make_bool_type(8)),
    ("integer*8", lambda s: s.make_int_type(8, False)),
]


class TypeRegistry:
    """
    Maps type numbers to type handles for the current compilation unit and
    tracks include-file scopes.
    """

    def __init__(self, sink: DebugSink, arena: Optional[TypeArena] = None):
        self._sink = sink
        self.arena = arena if arena is not None else TypeArena()
        self._file_types: list[TypeSlotTable] = [TypeSlotTable(self.arena)]
        self._bincl_stack: list[IncludeFrame] = []
        # Every frame of the session, newest first, for N_EXCL lookups.
        self._bincl_frames: list[IncludeFrame] = []
        self._xcoff_types: dict[int, DebugType] = {}

    @property
    def files(self) -> int:
        return len(self._file_types)

    def reset_unit(self):
        """
        Forget the file tables of the previous compilation unit.
        """
        self._file_types = [TypeSlotTable(self.arena)]

    def find_slot(self, typenums: TypeNumber) -> SlotRef:
        filenum, index = typenums
        if filenum < 0 or filenum >= len(self._file_types):
            raise StabsStructureError(f"Type file number {filenum} out of range")
        if index < 0:
            raise StabsStructureError(f"Type index number {index} out of range")
        return self._file_types[filenum].slot(index)

    def find_type(self, typenums: TypeNumber) -> DebugType:
        """
        Return the type recorded under `typenums`, or an indirect type which
        will resolve to it once it is defined.
        """
        filenum, index = typenums
        if filenum == 0 and index < 0:
            return self.xcoff_type(index)

        slot = self.find_slot(typenums)
        typ = slot.get()
        if typ is None:
            return self._sink.make_indirect_type(slot, None)
        return typ

    def record_type(self, typenums: TypeNumber, typ: DebugType):
        slot = self.find_slot(typenums)
        if slot.resolved:
            logger.debug(f"type {typenums} redefined")
        slot.set(typ)

    def xcoff_type(self, typenum: int) -> DebugType:
        """
        Return XCOFF predefined type `typenum` (-1 to -34).
        """
        index = -typenum - 1
        if index < 0 or index >= len(_XCOFF_TYPES):
            raise StabsStructureError(f"Unrecognized XCOFF type {typenum}")

        cached = self._xcoff_types.get(index)
        if cached is not None:
            return cached

        name, factory = _XCOFF_TYPES[index]
        typ = factory(self._sink)
        if typ is None:
            raise StabsStructureError(f"Unsupported XCOFF type {name}")
        typ = self._sink.name_type(name, typ)
        self._xcoff_types[index] = typ
        return typ

    # Include files

    def push_bincl(self, name: str, hash: int) -> IncludeFrame:
        """
        Open an include file with a fresh type table under the next file number.
        """
        frame = IncludeFrame(name, hash, len(self._file_types), TypeSlotTable(self.arena))
        self._file_types.append(frame.table)
        self._bincl_stack.append(frame)
        self._bincl_frames.insert(0, frame)
        return frame

    def pop_bincl(self) -> Optional[str]:
        """
        Close the innermost include file. Returns the name of the including
        file, or None when that is the unit's main file.
        """
        if not self._bincl_stack:
            return None
        frame = self._bincl_stack.pop()
        if frame.file_index < len(self._file_types):
            frame.table = self._file_types[frame.file_index]
        if not self._bincl_stack:
            return None
        return self._bincl_stack[-1].name

    def find_excl(self, name: str, hash: int) -> bool:
        """
        Handle an `N_EXCL`: the include was elided because an identical copy
        appeared earlier. Its file number reuses that copy's table.
        """
        for frame in self._bincl_frames:
            if frame.hash == hash and frame.name == name:
                self._file_types.append(frame.table)
                return True

        logger.warning(f"Undefined N_EXCL {name!r}")
        self._file_types.append(TypeSlotTable(self.arena))
        return False


@dataclass(eq=False)
class PendingTag:
    name: str
    kind: TypeKind
    slot: SlotRef
    type: DebugType = field(repr=False)


class TagList:
    """
    Struct, union and enum tags that were referenced before their definition.
    """

    def __init__(self, sink: DebugSink, arena: TypeArena):
        self._sink = sink
        self._arena = arena
        self._pending: dict[str, PendingTag] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, name: str) -> bool:
        return name in self._pending

    def reference_tag(self, name: str, kind: TypeKind) -> DebugType:
        """
        Return the type for tag `name`, creating a pending placeholder if it
        has not been defined yet. `kind` ILLEGAL means the kind is unknown.
        """
        typ = self._sink.find_tagged_type(name, TypeKind.ILLEGAL)
        if typ is not None:
            return typ

        pending = self._pending.get(name)
        if pending is not None:
            if pending.kind == TypeKind.ILLEGAL:
                pending.kind = kind
            return pending.type

        slot = self._arena.allocate()
        pending = PendingTag(name, kind, slot, self._sink.make_indirect_type(slot, name))
        self._pending[name] = pending
        return pending.type

    def define_tag(self, name: str, typ: DebugType) -> bool:
        """
        Resolve the pending placeholder for `name`, if any, to `typ`.
        """
        pending = self._pending.pop(name, None)
        if pending is None:
            return False
        pending.slot.set(typ)
        return True

    def finish(self):
        """
        Turn every tag that was never defined into an undefined tagged type.
        """
        for pending in self._pending.values():
            kind = pending.kind
            if kind == TypeKind.ILLEGAL:
                kind = TypeKind.STRUCT
            logger.debug(f"tag {pending.name!r} never defined")
            pending.slot.set(self._sink.make_undefined_tagged_type(pending.name, kind))
        self._pending.clear()
