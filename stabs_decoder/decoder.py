"""
Record dispatcher for STABS debugging information.

A `StabsDecoder` is fed one `StabRecord` at a time, in symbol-table order.
Control records (compilation units, blocks, include files, line numbers)
drive the sink directly; every other record carries a `name:descriptor...`
string which is decoded by the symbol descriptor grammar below.
"""

from collections import deque
from io import StringIO, TextIOBase
from pathlib import PurePosixPath, PureWindowsPath
from typing import Callable, Iterable, NamedTuple, Optional

from loguru import logger

from stabs_decoder.builder import DebugInfoBuilder
from stabs_decoder.config import DEFAULT_CONFIG, DecoderConfig
from stabs_decoder.debug_info import DebugType, ParmKind, VarKind
from stabs_decoder.demangler import LegacyDemangler
from stabs_decoder.descriptors import SymbolDescriptor
from stabs_decoder.diagnostics import bad_stab, expect, warn_stab
from stabs_decoder.errors import StabsStructureError
from stabs_decoder.io_util import leading_float, leading_int, peek, rest, skip
from stabs_decoder.records import StabKind, StabRecord
from stabs_decoder.registry import TagList, TypeRegistry
from stabs_decoder.sink import DebugSink
from stabs_decoder.type_parser import TypeParser

SymbolLookup = Callable[[str], Optional[int]]

# Names of the form `$x` emitted by g++ for compiler-generated symbols.
_SPECIAL_NAMES = {"t": "this", "e": "eh_throw"}
_UNNAMED_SPECIALS = ("v", "_", "X")


class PendingVariable(NamedTuple):
    """
    A local variable seen before the `N_LBRAC` of its block.
    """

    name: Optional[str]
    type: DebugType
    kind: VarKind
    value: int


def _is_absolute(path: str) -> bool:
    return PurePosixPath(path).is_absolute() or PureWindowsPath(path).is_absolute()


class StabsDecoder:
    """
    One decoding session.

    - `symbols` resolves the address of a global variable by name, for
      object formats where the stab value of `G` symbols is not meaningful.
    - `sections` is True when the records come from a `.stab` section,
      where block and line addresses are relative to the function start
      rather than to the compilation unit.
    """

    def __init__(
        self,
        sink: DebugSink,
        symbols: Optional[SymbolLookup] = None,
        sections: bool = False,
        config: DecoderConfig = DEFAULT_CONFIG,
    ):
        self.sink = sink
        self.config = config
        self._symbols = symbols
        self._sections = sections

        self.registry = TypeRegistry(sink)
        self.tags = TagList(sink, self.registry.arena)
        self.demangler = LegacyDemangler(sink, self.tags, config)
        self.types = TypeParser(sink, self.registry, self.tags, self.demangler)

        # Unit context
        self._so_string: Optional[str] = None
        self._so_value = 0
        self.main_filename: Optional[str] = None
        self._file_start_offset = 0
        self._function_start_offset = 0
        self._function_end: Optional[int] = None
        self.block_depth = 0
        self.within_function = False
        self.gcc_compiled = 0
        self.n_opt_found = False
        self._pending: deque[PendingVariable] = deque()
        self._finished = False

        self._record_handlers: dict[int, Callable[[StabRecord], None]] = {
            StabKind.N_FN: self._ignore,
            StabKind.N_FN_SEQ: self._ignore,
            StabKind.N_OBJ: self._ignore,
            StabKind.N_ENDM: self._ignore,
            StabKind.N_MAIN: self._ignore,
            StabKind.N_WARNING: self._ignore,
            StabKind.N_LBRAC: self._on_lbrac,
            StabKind.N_RBRAC: self._on_rbrac,
            StabKind.N_SO: self._on_so,
            StabKind.N_SOL: self._on_sol,
            StabKind.N_BINCL: self._on_bincl,
            StabKind.N_EINCL: self._on_eincl,
            StabKind.N_EXCL: self._on_excl,
            StabKind.N_SLINE: self._on_sline,
            StabKind.N_BCOMM: self._on_bcomm,
            StabKind.N_ECOMM: self._on_ecomm,
            StabKind.N_FUN: self._on_fun,
            StabKind.N_OPT: self._on_opt,
        }
        self._symbol_handlers: dict[SymbolDescriptor.Kind, Callable[..., None]] = {
            SymbolDescriptor.Kind.CONSTANT: self._sym_constant,
            SymbolDescriptor.Kind.LABEL: self._sym_label,
            SymbolDescriptor.Kind.FUNCTION: self._sym_function,
            SymbolDescriptor.Kind.GLOBAL_FUNCTION: self._sym_function,
            SymbolDescriptor.Kind.GLOBAL: self._sym_global,
            SymbolDescriptor.Kind.LOCAL_IMPLICIT: self._sym_variable,
            SymbolDescriptor.Kind.LOCAL: self._sym_variable,
            SymbolDescriptor.Kind.LOCAL_S: self._sym_variable,
            SymbolDescriptor.Kind.LOCAL_X: self._sym_variable,
            SymbolDescriptor.Kind.REGISTER: self._sym_variable,
            SymbolDescriptor.Kind.STATIC: self._sym_variable,
            SymbolDescriptor.Kind.LOCAL_STATIC: self._sym_variable,
            SymbolDescriptor.Kind.PARAM: self._sym_stack_param,
            SymbolDescriptor.Kind.PROTOTYPE_OR_REG_PARAM: self._sym_prototype_or_param,
            SymbolDescriptor.Kind.REG_PARAM: self._sym_parameter,
            SymbolDescriptor.Kind.REF_PARAM: self._sym_parameter,
            SymbolDescriptor.Kind.REF_REG_PARAM: self._sym_parameter,
            SymbolDescriptor.Kind.TYPEDEF: self._sym_typedef,
            SymbolDescriptor.Kind.TAG: self._sym_tag,
            SymbolDescriptor.Kind.SUN_NAMESPACE: self._sym_sun_namespace,
        }

    # Session lifecycle

    def dispatch(self, record: StabRecord):
        """
        Decode a single record.
        """
        if self._finished:
            raise StabsStructureError("decoding session already finished")

        # gcc emits two N_SO records per compilation unit, one for the
        # directory and one for the file name. The unit starts at the first
        # record which does not continue the name.
        if self._so_string is not None and (
            record.kind != StabKind.N_SO or not record.text or record.value != self._so_value
        ):
            self._start_unit()

        handler = self._record_handlers.get(record.kind, self._on_symbol)
        handler(record)

    def finish(self, emit: bool = True):
        """
        End the session. With `emit`, an open function is closed and every
        tag which was referenced but never defined becomes an undefined
        tagged type.
        """
        if emit:
            if self.within_function:
                self._end_function(self._function_end)
            self.tags.finish()

        self._pending.clear()
        self._so_string = None
        self._finished = True

    def _start_unit(self):
        name = self._so_string
        logger.debug(f"N_SO name {name!r} starts a compilation unit")
        self.sink.set_filename(name)
        self.main_filename = name
        self._so_string = None

        self.gcc_compiled = 0
        self.n_opt_found = False

        # For stabs in the symbol table, N_LBRAC and N_RBRAC values are
        # relative to the N_SO value.
        if not self._sections:
            self._file_start_offset = self._so_value

        self.registry.reset_unit()

    def _end_function(self, address: Optional[int]):
        self._flush_pending()
        self.sink.end_function(address)
        self.within_function = False
        self._function_end = None

    def _flush_pending(self):
        while self._pending:
            pending = self._pending.popleft()
            self.sink.record_variable(pending.name, pending.type, pending.kind, pending.value)

    def _record_variable(self, name: Optional[str], typ: DebugType, kind: VarKind, value: int):
        """
        gcc emits the variables of a block before its N_LBRAC, so they are
        held until the block starts. SunPRO emits them after.
        """
        if (
            kind in (VarKind.GLOBAL, VarKind.STATIC)
            or not self.within_function
            or (self.gcc_compiled == 0 and self.n_opt_found)
        ):
            self.sink.record_variable(name, typ, kind, value)
        else:
            self._pending.append(PendingVariable(name, typ, kind, value))

    # Control records

    def _ignore(self, record: StabRecord):
        pass

    def _on_lbrac(self, record: StabRecord):
        # SunPRO cc emits an extra outermost context.
        if self.n_opt_found and record.desc == 1:
            return
        if not self.within_function:
            logger.error("N_LBRAC not within function")
            raise StabsStructureError("N_LBRAC not within function")

        self.sink.start_block(record.value + self._file_start_offset + self._function_start_offset)
        self._flush_pending()
        self.block_depth += 1

    def _on_rbrac(self, record: StabRecord):
        if self.n_opt_found and record.desc == 1:
            return
        if self.block_depth <= 0:
            logger.error("Too many N_RBRACs")
            raise StabsStructureError("Too many N_RBRACs")

        self._flush_pending()
        self.sink.end_block(record.value + self._file_start_offset + self._function_start_offset)
        self.block_depth -= 1

    def _on_so(self, record: StabRecord):
        if self.within_function:
            end = record.value
            if record.text and self._function_end is not None and self._function_end < end:
                end = self._function_end
            self._end_function(end)

        # An empty name ends the compilation unit.
        if not record.text:
            return

        if self._so_string is None or _is_absolute(record.text):
            self._so_string = record.text
        else:
            self._so_string += record.text
        self._so_value = record.value

    def _on_sol(self, record: StabRecord):
        self.sink.start_source(record.text)

    def _on_bincl(self, record: StabRecord):
        self.registry.push_bincl(record.text, record.value)
        self.sink.start_source(record.text)

    def _on_eincl(self, record: StabRecord):
        name = self.registry.pop_bincl()
        self.sink.start_source(name if name is not None else self.main_filename)

    def _on_excl(self, record: StabRecord):
        self.registry.find_excl(record.text, record.value)

    def _on_sline(self, record: StabRecord):
        offset = self._function_start_offset if self.within_function else 0
        self.sink.record_line(record.desc, record.value + offset)

    def _on_bcomm(self, record: StabRecord):
        self.sink.start_common_block(record.text)

    def _on_ecomm(self, record: StabRecord):
        self.sink.end_common_block(record.text)

    def _on_fun(self, record: StabRecord):
        if not record.text:
            if self.within_function:
                value = record.value
                if self._sections:
                    value += self._function_start_offset
                self._end_function(value)
            return

        # A const static in .text also has an N_FUN record. It cannot end the
        # function, since it may be a local static, but it bounds its end.
        if self.within_function and (
            self._function_end is None or record.value < self._function_end
        ):
            self._function_end = record.value

        self._on_symbol(record)

    def _on_opt(self, record: StabRecord):
        if record.text == "gcc2_compiled.":
            self.gcc_compiled = 2
        elif record.text == "gcc_compiled.":
            self.gcc_compiled = 1
        else:
            self.n_opt_found = True

    def _on_symbol(self, record: StabRecord):
        colon = record.text.find(":")
        if colon != -1 and record.text[colon + 1 : colon + 2] in ("f", "F"):
            if self.within_function:
                end = record.value
                if self._function_end is not None and self._function_end < end:
                    end = self._function_end
                self._end_function(end)
            # For stabs in sections, lines and blocks are offsets from the
            # start of the function.
            if self._sections:
                self._function_start_offset = record.value
            self.within_function = True

        self._parse_symbol(record)

    # Symbol descriptor grammar

    def _parse_symbol(self, record: StabRecord):
        """
        Decode `name:<descriptor><type>...`. Records without a colon carry
        no debugging information.
        """
        text = record.text
        src = StringIO(text)

        colon = text.find(":")
        if colon == -1:
            return
        while text[colon + 1 : colon + 2] == ":":
            colon = text.find(":", colon + 2)
            if colon == -1:
                raise bad_stab(src, 0)

        name = self._symbol_name(src, text, colon)

        src.seek(colon + 1)
        descriptor = SymbolDescriptor.peek(src)
        if not descriptor.content:
            raise bad_stab(src, 0)
        if descriptor.kind != SymbolDescriptor.Kind.LOCAL_IMPLICIT:
            skip(src)

        handler = self._symbol_handlers.get(descriptor.kind)
        if handler is None:
            raise bad_stab(src, 0, f"unknown symbol descriptor {descriptor.content!r}")
        handler(src, name, record, descriptor)

    @staticmethod
    def _symbol_name(src: TextIOBase, text: str, colon: int) -> Optional[str]:
        if text.startswith("$"):
            code = text[1:2]
            if code in _SPECIAL_NAMES:
                return _SPECIAL_NAMES[code]
            if code not in _UNNAMED_SPECIALS:
                warn_stab(src, 0, "unknown C++ encoded name")

        if colon == 0 or (text.startswith(" ") and colon == 1):
            return None
        return text[:colon]

    def _sym_constant(self, src: TextIOBase, name, record: StabRecord, descriptor):
        """
        `c=r<float>`, `c=i<int>` or `c=e<type>,<int>`.
        """
        expect(src, "=", 0)
        kind = src.read(1)
        if kind == "r":
            self.sink.record_float_const(name, leading_float(rest(src)))
        elif kind == "i":
            self.sink.record_int_const(name, leading_int(rest(src)))
        elif kind == "e":
            typ = self.types.parse_type(src)
            expect(src, ",", 0)
            self.sink.record_typed_const(name, typ, leading_int(rest(src)))
        else:
            raise bad_stab(src, 0)

    def _sym_label(self, src: TextIOBase, name, record: StabRecord, descriptor):
        # The name of a caught exception.
        typ = self.types.parse_type(src)
        self.sink.record_label(name, typ, record.value)

    def _sym_function(self, src: TextIOBase, name, record: StabRecord, descriptor):
        typ = self.types.parse_type(src)
        is_global = descriptor.kind == SymbolDescriptor.Kind.GLOBAL_FUNCTION
        logger.debug(f"function {name!r} at 0x{record.value:x}")
        self.sink.record_function(name, typ, is_global, record.value)

        # Sun acc lists the declared argument types; they may define new types.
        self._skip_prototype(src)

    def _skip_prototype(self, src: TextIOBase):
        while peek(src) == ";":
            skip(src)
            self.types.parse_type(src)

    def _sym_global(self, src: TextIOBase, name, record: StabRecord, descriptor):
        typ = self.types.parse_type(src)
        value = record.value
        if name is not None and self._symbols is not None:
            address = self._symbols(name)
            if address is not None:
                value = address
        self._record_variable(name, typ, VarKind.GLOBAL, value)

    def _sym_variable(self, src: TextIOBase, name, record: StabRecord, descriptor):
        typ = self.types.parse_type(src)
        self._record_variable(name, typ, descriptor.var_kind(), record.value)

    def _sym_stack_param(self, src: TextIOBase, name, record: StabRecord, descriptor):
        if peek(src) == "F":
            # A Fortran function parameter; the type is the return type.
            skip(src)
            typ = self.types.parse_type(src)
            typ = self.sink.make_pointer_type(self.sink.make_function_type(typ, None, False))
        else:
            typ = self.types.parse_type(src)
        self.sink.record_parameter(name, typ, ParmKind.STACK, record.value)

    def _sym_prototype_or_param(self, src: TextIOBase, name, record: StabRecord, descriptor):
        if record.kind == StabKind.N_FUN:
            # Prototype of a function referenced by this file.
            self._skip_prototype(src)
            return
        self._sym_parameter(src, name, record, descriptor)

    def _sym_parameter(self, src: TextIOBase, name, record: StabRecord, descriptor):
        typ = self.types.parse_type(src)
        self.sink.record_parameter(name, typ, descriptor.parm_kind(), record.value)

    def _sym_typedef(self, src: TextIOBase, name, record: StabRecord, descriptor):
        typ, slot = self.types.parse_type_with_slot(src, name)
        if name is None:
            return

        typ = self.sink.name_type(name, typ)
        if slot is not None:
            slot.set(typ)

    def _sym_tag(self, src: TextIOBase, name, record: StabRecord, descriptor):
        """
        Struct, union or enum tag. For GNU C++, `Tt` also makes it a typedef.
        """
        synonym = peek(src) == "t"
        if synonym:
            skip(src)

        typ, slot = self.types.parse_type_with_slot(src, name)
        if name is None:
            return
        self_crossref = self.types.self_crossref

        typ = self.sink.tag_type(name, typ)
        if slot is not None:
            slot.set(typ)

        # Filling a cross reference to the tag itself would make a cycle.
        if not self_crossref:
            self.tags.define_tag(name, typ)

        if synonym:
            typ = self.sink.name_type(name, typ)
            if slot is not None:
                slot.set(typ)

    def _sym_sun_namespace(self, src: TextIOBase, name, record: StabRecord, descriptor):
        # SunPRO C++ namespace mapping `Yn0name;`, which is not used.
        remaining = rest(src)
        if remaining.startswith("n0") and ";" in remaining:
            return
        raise bad_stab(src, 0)


def start_session(
    sink: DebugSink,
    symbols: Optional[SymbolLookup] = None,
    sections: bool = False,
    config: DecoderConfig = DEFAULT_CONFIG,
) -> StabsDecoder:
    """
    Begin decoding into `sink`.
    """
    return StabsDecoder(sink, symbols=symbols, sections=sections, config=config)


def decode_stabs(
    records: Iterable[StabRecord],
    sink: Optional[DebugSink] = None,
    symbols: Optional[SymbolLookup] = None,
    sections: bool = False,
    config: DecoderConfig = DEFAULT_CONFIG,
) -> DebugSink:
    """
    Decode a whole sequence of records and return the sink, a new
    `DebugInfoBuilder` unless one is given.
    """
    if sink is None:
        sink = DebugInfoBuilder()

    decoder = start_session(sink, symbols=symbols, sections=sections, config=config)
    for record in records:
        decoder.dispatch(record)
    decoder.finish()
    return sink
