"""
Recursive-descent parser for STABS type expressions.

A type expression is an optional type number, optionally followed by `=`,
type attributes and a descriptor defining the type. Examples:

    1                       reference to type 1
    (0,5)=*(0,1)            type (0,5) is a pointer to type (0,1)
    3=r3;-128;127;          type 3 is a signed 1-byte integer
    7=ar1;0;9;3             type 7 is an array [0..9] of type 3
    8=xsnode:               type 8 is `struct node`, defined elsewhere
"""

from dataclasses import dataclass
from io import TextIOBase
from typing import Optional

from stabs_decoder.aggregate import AggregateParser
from stabs_decoder.debug_info import DebugType, SlotRef, TypeKind
from stabs_decoder.descriptors import CROSS_REF_KINDS, TypeDescriptor, starts_type_number
from stabs_decoder.diagnostics import bad_stab, expect, read_number, warn_stab
from stabs_decoder.io_util import (
    leading_int,
    peek,
    read_c_number,
    read_exact,
    read_until,
    rest,
    skip,
)
from stabs_decoder.registry import TagList, TypeNumber, TypeRegistry
from stabs_decoder.sink import DebugSink

# Bound texts of `long long` ranges, which overflow on hosts with a 32-bit
# bfd_vma and are matched literally.
LLLOW = "01000000000000000000000;"
LLHIGH = "0777777777777777777777;"
ULLHIGH = "01777777777777777777777;"

# Sun float format codes which denote complex types.
NF_COMPLEX = 3
NF_COMPLEX16 = 4
NF_COMPLEX32 = 5


@dataclass
class TypeDefinition:
    """
    What is known about the type expression being parsed.
    """

    orig: int
    type_name: Optional[str]
    typenums: Optional[TypeNumber]
    stringp: bool = False


class TypeParser:
    """
    Type expression parser. One instance serves a whole decoding session.

    `self_crossref` is set when the last top-level expression was a cross
    reference to the very tag being defined (`fleep:T20=xsfleep:`).
    """

    def __init__(self, sink: DebugSink, registry: TypeRegistry, tags: TagList, demangler):
        self._sink = sink
        self._registry = registry
        self._tags = tags
        self.self_crossref = False
        self._aggregates = AggregateParser(self, sink, registry, demangler)
        self._handlers = {
            TypeDescriptor.CROSS_REF: self._parse_cross_ref,
            TypeDescriptor.TYPE_REF: self._parse_type_ref,
            TypeDescriptor.POINTER: self._parse_pointer,
            TypeDescriptor.REFERENCE: self._parse_reference,
            TypeDescriptor.FUNCTION: self._parse_function,
            TypeDescriptor.CONST: self._parse_const,
            TypeDescriptor.VOLATILE: self._parse_volatile,
            TypeDescriptor.OFFSET: self._parse_offset,
            TypeDescriptor.METHOD: self._parse_method,
            TypeDescriptor.RANGE: self._parse_range,
            TypeDescriptor.SUN_BUILTIN: self._parse_sun_builtin,
            TypeDescriptor.SUN_FLOAT: self._parse_sun_float,
            TypeDescriptor.ENUM: self._parse_enum,
            TypeDescriptor.STRUCT: self._parse_struct,
            TypeDescriptor.UNION: self._parse_union,
            TypeDescriptor.ARRAY: self._parse_array,
            TypeDescriptor.SET: self._parse_set,
        }

    def parse_type(self, src: TextIOBase, type_name: Optional[str] = None) -> DebugType:
        """
        Parse a type expression and return its type.
        """
        return self._parse_type(src, type_name, want_slot=False)[0]

    def parse_type_with_slot(
        self, src: TextIOBase, type_name: Optional[str]
    ) -> tuple[DebugType, Optional[SlotRef]]:
        """
        Parse a type expression. If it defines a type number, also return the
        slot of that number so a typedef or tag can replace it.
        """
        return self._parse_type(src, type_name, want_slot=True)

    def parse_type_number(self, src: TextIOBase) -> TypeNumber:
        """
        Read `N` (meaning `(0, N)`) or `(F,N)`.
        """
        orig = src.tell()
        if peek(src) != "(":
            return (0, read_number(src, orig))

        skip(src)
        filenum = read_number(src, orig)
        expect(src, ",", orig)
        index = read_number(src, orig)
        expect(src, ")", orig)
        return (filenum, index)

    def _parse_type(
        self, src: TextIOBase, type_name: Optional[str], want_slot: bool
    ) -> tuple[DebugType, Optional[SlotRef]]:
        orig = src.tell()
        if not peek(src):
            raise bad_stab(src, orig, "missing type")

        self.self_crossref = False
        definition = TypeDefinition(orig, type_name, None)
        slot: Optional[SlotRef] = None
        size: Optional[int] = None

        if starts_type_number(peek(src)):
            typenums = self.parse_type_number(src)
            if peek(src) != "=":
                # A reference to a type defined elsewhere, or a forward reference.
                return self._registry.find_type(typenums), None

            definition.typenums = typenums
            if want_slot and typenums[0] >= 0 and typenums[1] >= 0:
                slot = self._registry.find_slot(typenums)
            skip(src)

            while peek(src) == "@" and not starts_type_number(peek(src, offset=1)):
                skip(src)
                attr = read_until(src, ";")
                if attr is None:
                    raise bad_stab(src, orig, "unterminated type attribute")
                if attr.startswith("s"):
                    size = leading_int(attr[1:]) // 8
                    if size <= 0:
                        size = None
                elif attr.startswith("S"):
                    definition.stringp = True
                elif not attr:
                    raise bad_stab(src, orig, "empty type attribute")
                else:
                    warn_stab(src, orig, f"ignoring unknown type attribute {attr!r}")

        char = src.read(1)
        descriptor = TypeDescriptor.from_char(char)
        if descriptor == TypeDescriptor.UNKNOWN:
            raise bad_stab(src, orig, f"unknown type descriptor {char!r}")

        dtype = self._handlers[descriptor](src, definition)

        if definition.typenums is not None:
            self._registry.record_type(definition.typenums, dtype)
        if size is not None:
            self._sink.record_type_size(dtype, size)
        return dtype, slot

    def _parse_cross_ref(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        orig = definition.orig
        code = peek(src)
        if not code:
            raise bad_stab(src, orig, "missing cross reference kind")
        kind = CROSS_REF_KINDS.get(code)
        if kind is None:
            warn_stab(src, orig, "unrecognized cross reference type")
            kind = TypeKind.STRUCT
        skip(src)

        text = rest(src)
        end = text.find(":")
        if end == -1:
            raise bad_stab(src, orig, "unterminated cross reference")
        template_start = text.find("<")
        if template_start != -1 and end > template_start and text[end + 1 : end + 2] == ":":
            # Template arguments may contain `::`; find the colon at nesting level 0.
            nest = 0
            end = -1
            for idx in range(template_start, len(text)):
                if text[idx] == "<":
                    nest += 1
                elif text[idx] == ">":
                    nest -= 1
                elif text[idx] == ":" and nest == 0:
                    end = idx
                    break
            if end == -1:
                raise bad_stab(src, orig, "unterminated cross reference")

        name = text[:end]
        if definition.type_name is not None and definition.type_name == name:
            self.self_crossref = True

        dtype = self._tags.reference_tag(name, kind)
        read_exact(src, end + 1)
        return dtype

    def _parse_type_ref(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        src.seek(src.tell() - 1)
        hold = src.tell()
        if self.parse_type_number(src) == definition.typenums:
            # A type defined as itself is void.
            return self._sink.make_void_type()

        src.seek(hold)
        return self.parse_type(src)

    def _parse_pointer(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        return self._sink.make_pointer_type(self.parse_type(src))

    def _parse_reference(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        return self._sink.make_reference_type(self.parse_type(src))

    def _parse_function(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        return self._sink.make_function_type(self.parse_type(src), None, False)

    def _parse_const(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        return self._sink.make_const_type(self.parse_type(src))

    def _parse_volatile(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        return self._sink.make_volatile_type(self.parse_type(src))

    def _parse_offset(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        domain = self.parse_type(src)
        expect(src, ",", definition.orig)
        member_type = self.parse_type(src)
        return self._sink.make_offset_type(domain, member_type)

    def _parse_method(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        """
        `##ret;` is a method whose class and arguments are not given (a stub);
        `#domain,ret,arg,...;` lists them, ending in void unless varargs.
        """
        orig = definition.orig
        if peek(src) == "#":
            skip(src)
            return_type = self.parse_type(src)
            expect(src, ";", orig)
            return self._sink.make_method_type(return_type, None, None, False)

        domain = self.parse_type(src)
        expect(src, ",", orig)
        return_type = self.parse_type(src)

        args: list[DebugType] = []
        while peek(src) != ";":
            expect(src, ",", orig)
            args.append(self.parse_type(src))
        skip(src)

        if not args or self._sink.get_type_kind(args[-1]) != TypeKind.VOID:
            varargs = True
        else:
            args.pop()
            varargs = False
        return self._sink.make_method_type(return_type, domain, args, varargs)

    def _parse_range(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        orig = src.tell()
        if not peek(src):
            raise bad_stab(src, orig, "missing range")

        rangenums = self.parse_type_number(src)
        self_subrange = rangenums == definition.typenums

        index_type: Optional[DebugType] = None
        if peek(src) == "=":
            src.seek(orig)
            index_type = self.parse_type(src)

        if peek(src) == ";":
            skip(src)

        # The bounds are usually the bounds of the range, but some special
        # pairs describe builtin types.
        s2 = rest(src)
        n2, ov2 = read_c_number(src)
        expect(src, ";", orig)
        s3 = rest(src)
        n3, ov3 = read_c_number(src)
        expect(src, ";", orig)

        if ov2 or ov3:
            if index_type is None:
                if s2.startswith(LLLOW) and s3.startswith(LLHIGH):
                    return self._sink.make_int_type(8, False)
                if not ov2 and n2 == 0 and s3.startswith(ULLHIGH):
                    return self._sink.make_int_type(8, True)
            warn_stab(src, orig, "numeric overflow")

        if index_type is None:
            builtin = self._range_builtin(definition.type_name, self_subrange, n2, n3)
            if builtin is not None:
                return builtin

        if self_subrange:
            raise bad_stab(src, orig, "unsupported self subrange")

        index_type = self._registry.find_type(rangenums)
        return self._sink.make_range_type(index_type, n2, n3)

    def _range_builtin(
        self, type_name: Optional[str], self_subrange: bool, n2: int, n3: int
    ) -> Optional[DebugType]:
        """
        Map the special bound pairs compilers use for builtin types.
        """
        sink = self._sink
        if self_subrange and n2 == 0 and n3 == 0:
            return sink.make_void_type()
        if self_subrange and n3 == 0 and n2 > 0:
            return sink.make_complex_type(n2)
        if n3 == 0 and n2 > 0:
            return sink.make_float_type(n2)

        if n2 == 0 and n3 == -1:
            # gcc -gstabs (without +) describes long long this way.
            if type_name == "long long int":
                return sink.make_int_type(8, False)
            if type_name == "long long unsigned int":
                return sink.make_int_type(8, True)
            return sink.make_int_type(4, True)

        if self_subrange and n2 == 0 and n3 == 127:
            return sink.make_int_type(1, True)

        if n2 == 0:
            if n3 < 0:
                return sink.make_int_type(-n3, True)
            unsigned_widths = {0xFF: 1, 0xFFFF: 2, 0xFFFFFFFF: 4}
            if n3 in unsigned_widths:
                return sink.make_int_type(unsigned_widths[n3], True)
        elif n3 == 0 and n2 < 0 and (self_subrange or n2 == -8):
            return sink.make_int_type(-n2, True)
        elif n2 == -n3 - 1 or n2 == n3 + 1:
            signed_widths = {0x7F: 1, 0x7FFF: 2, 0x7FFFFFFF: 4, 0x7FFFFFFFFFFFFFFF: 8}
            if n3 in signed_widths:
                return sink.make_int_type(signed_widths[n3], False)
        return None

    def _parse_sun_builtin(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        """
        `b<s|u>[c|b|v]<width>;<offset>;<bits>;` from the Sun compilers.
        """
        orig = src.tell()
        sign = peek(src)
        if sign not in ("s", "u") or not sign:
            raise bad_stab(src, orig, "bad builtin signedness")
        skip(src)
        if peek(src) and peek(src) in "cbv":
            skip(src)

        read_number(src, orig)
        expect(src, ";", orig)
        read_number(src, orig)
        expect(src, ";", orig)
        bits = read_number(src, orig)
        if peek(src) == ";":
            skip(src)

        if bits == 0:
            return self._sink.make_void_type()
        return self._sink.make_int_type(bits // 8, sign == "u")

    def _parse_sun_float(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        """
        `R<format>;<bytes>;` from the Sun compilers.
        """
        orig = src.tell()
        details = read_number(src, orig)
        expect(src, ";", orig)
        size = read_number(src, orig)
        expect(src, ";", orig)

        if details in (NF_COMPLEX, NF_COMPLEX16, NF_COMPLEX32):
            return self._sink.make_complex_type(size)
        return self._sink.make_float_type(size)

    def _parse_enum(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        orig = src.tell()
        if peek(src) == "-":
            # AIX emits an extra type-like field before the members.
            if read_until(src, ":") is None:
                raise bad_stab(src, orig, "unterminated enum prefix")

        names: list[str] = []
        values: list[int] = []
        while peek(src) not in ("", ";", ","):
            name = read_until(src, ":")
            if name is None:
                raise bad_stab(src, orig, "unterminated enumerator")
            values.append(read_number(src, orig))
            names.append(name)
            expect(src, ",", orig)

        if peek(src) == ";":
            skip(src)
        return self._sink.make_enum_type(names, values)

    def _parse_struct(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        return self._aggregates.parse_aggregate(
            src, definition.type_name, True, definition.typenums
        )

    def _parse_union(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        return self._aggregates.parse_aggregate(
            src, definition.type_name, False, definition.typenums
        )

    def _parse_array(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        """
        `ar<index type>;<lower>;<upper>;<element type>`. Fortran adjustable
        arrays give a bound as `A<n>` or `T<n>`; those become `[0..-1]`.
        """
        orig = definition.orig
        expect(src, "r", orig)

        hold = src.tell()
        if self.parse_type_number(src) == (0, 0) and peek(src) != "=":
            index_type = self._sink.find_named_type("int")
            if index_type is None:
                index_type = self._sink.make_int_type(4, False)
        else:
            src.seek(hold)
            index_type = self.parse_type(src)
        expect(src, ";", orig)

        adjustable = False
        bounds = []
        for _ in range(2):
            char = peek(src)
            if char and not char.isdigit() and char != "-":
                skip(src)
                adjustable = True
            bounds.append(read_number(src, orig))
            expect(src, ";", orig)
        lower, upper = bounds

        element_type = self.parse_type(src)
        if adjustable:
            lower, upper = 0, -1
        return self._sink.make_array_type(
            element_type, index_type, lower, upper, definition.stringp
        )

    def _parse_set(self, src: TextIOBase, definition: TypeDefinition) -> DebugType:
        return self._sink.make_set_type(self.parse_type(src), definition.stringp)
