"""
Parser for struct, union and C++ class type definitions (`s` and `u`).

The layout of an aggregate definition is

    <size> [!<count>,<baseclass>...] <field>... <method>... ; [~%<vptr type>;]

for example:

    s8x:1,0,32;y:1,32,32;;
    s4!1,020,3;get::7=##1;:_ZN3Foo3getEv;2A.;;~%3;
"""

from io import TextIOBase
from typing import Optional

from loguru import logger

from stabs_decoder.debug_info import (
    BaseClass,
    DebugField,
    DebugType,
    Method,
    MethodVariant,
    TypeKind,
    Visibility,
)
from stabs_decoder.diagnostics import bad_stab, expect, read_number, warn_stab
from stabs_decoder.errors import DemangleError
from stabs_decoder.io_util import peek, read_exact, read_until, rest, skip
from stabs_decoder.registry import TypeNumber, TypeRegistry
from stabs_decoder.sink import DebugSink

_FIELD_VISIBILITY: dict[str, Visibility] = {
    "0": Visibility.PRIVATE,
    "1": Visibility.PROTECTED,
    "2": Visibility.PUBLIC,
    "9": Visibility.IGNORE,
}

_CV_QUALIFIERS: dict[str, tuple[bool, bool]] = {
    "A": (False, False),
    "B": (True, False),
    "C": (False, True),
    "D": (True, True),
}


class AggregateParser:
    """
    Parses the body of an aggregate definition. Nested type expressions are
    handed back to the owning `TypeParser`.
    """

    def __init__(self, types, sink: DebugSink, registry: TypeRegistry, demangler):
        self._types = types
        self._sink = sink
        self._registry = registry
        self._demangler = demangler

    def parse_aggregate(
        self,
        src: TextIOBase,
        tagname: Optional[str],
        is_struct: bool,
        typenums: Optional[TypeNumber],
    ) -> DebugType:
        orig = src.tell()
        size = read_number(src, orig)

        baseclasses = self._parse_baseclasses(src)
        fields, statics = self._parse_fields(src)
        methods = self._parse_members(src, tagname, typenums)
        vptrbase, ownvptr = self._parse_tilde(src, typenums)

        if (
            not statics
            and baseclasses is None
            and methods is None
            and vptrbase is None
            and not ownvptr
        ):
            return self._sink.make_struct_type(is_struct, size, fields)

        return self._sink.make_object_type(
            is_struct, size, fields, baseclasses, methods, vptrbase, ownvptr
        )

    def _parse_baseclasses(self, src: TextIOBase) -> Optional[list[BaseClass]]:
        """
        `!<count>,` then for each base class `<virtual><visibility><bitpos>,<type>;`,
        e.g. `!2,020,19;0264,21;`.
        """
        orig = src.tell()
        if peek(src) != "!":
            return None
        skip(src)

        count = read_number(src, orig)
        expect(src, ",", orig)

        baseclasses = []
        for _ in range(count):
            char = src.read(1)
            if not char:
                raise bad_stab(src, orig, "unterminated baseclass")
            if char not in "01":
                warn_stab(src, orig, "unknown virtual character for baseclass")
            is_virtual = char == "1"

            char = src.read(1)
            if not char:
                raise bad_stab(src, orig, "unterminated baseclass")
            visibility = _FIELD_VISIBILITY.get(char)
            if visibility is None or visibility == Visibility.IGNORE:
                warn_stab(src, orig, "unknown visibility character for baseclass")
                visibility = Visibility.PUBLIC

            bitpos = read_number(src, orig)
            expect(src, ",", orig)
            typ = self._types.parse_type(src)
            expect(src, ";", orig)
            baseclasses.append(self._sink.make_baseclass(typ, bitpos, is_virtual, visibility))

        return baseclasses

    def _parse_fields(self, src: TextIOBase) -> tuple[list[DebugField], bool]:
        """
        Data members up to the `;` ending them or the first `name::` method.
        Returns the fields and whether any of them is a static member.
        """
        orig = src.tell()
        fields: list[DebugField] = []
        statics = False
        while peek(src) != ";":
            char = peek(src)
            # `$` or `.` starts a C++ abbreviation unless it begins an anonymous name
            if char in ("$", ".") and peek(src, offset=1) != "_":
                skip(src)
                fields.append(self._parse_cpp_abbrev(src, orig))
                continue

            text = rest(src)
            colon = text.find(":")
            if colon == -1:
                raise bad_stab(src, orig, "unterminated field")
            if text[colon + 1 : colon + 2] == ":":
                break

            read_exact(src, colon + 1)
            fld = self._parse_one_field(src, orig, text[:colon])
            statics = statics or fld.is_static()
            fields.append(fld)

        return fields, statics

    def _parse_cpp_abbrev(self, src: TextIOBase, orig: int) -> DebugField:
        """
        `$vf<context>:<type>,<bitpos>;` (vtable pointer) or `$vb...` (virtual
        base pointer), with the marker already consumed.
        """
        expect(src, "v", orig)
        abbrev = src.read(1)
        if not abbrev:
            raise bad_stab(src, orig, "unterminated C++ abbreviation")

        context = self._types.parse_type(src)
        if abbrev == "f":
            name = "_vptr$"
        elif abbrev == "b":
            type_name = self._sink.get_type_name(context)
            if type_name is None:
                warn_stab(src, orig, "unnamed $vb type")
                type_name = "FOO"
            name = f"_vb${type_name}"
        else:
            warn_stab(src, orig, "unrecognized C++ abbreviation")
            name = "INVALID_CPLUSPLUS_ABBREV"

        expect(src, ":", orig)
        typ = self._types.parse_type(src)
        expect(src, ",", orig)
        bitpos = read_number(src, orig)
        expect(src, ";", orig)
        return self._sink.make_field(name, typ, bitpos, 0, Visibility.PRIVATE)

    def _parse_one_field(self, src: TextIOBase, orig: int, name: str) -> DebugField:
        """
        The part of `name:[/vis]type,bitpos,bitsize;` or `name:[/vis]type:physname;`
        after the colon.
        """
        visibility = Visibility.PUBLIC
        if peek(src) == "/":
            skip(src)
            char = src.read(1)
            if not char:
                raise bad_stab(src, orig, "missing field visibility")
            if char in _FIELD_VISIBILITY:
                visibility = _FIELD_VISIBILITY[char]
            else:
                warn_stab(src, orig, "unknown visibility character for field")

        typ = self._types.parse_type(src)

        if peek(src) == ":":
            skip(src)
            physname = read_until(src, ";")
            if physname is None:
                raise bad_stab(src, orig, "unterminated static member")
            return self._sink.make_static_member(name, typ, physname, visibility)

        expect(src, ",", orig)
        bitpos = read_number(src, orig)
        expect(src, ",", orig)
        bitsize = read_number(src, orig)
        expect(src, ";", orig)

        if bitpos == 0 and bitsize == 0:
            # Optimized-out members and zero-length arrays.
            visibility = Visibility.IGNORE
        return self._sink.make_field(name, typ, bitpos, bitsize, visibility)

    def _parse_members(
        self, src: TextIOBase, tagname: Optional[str], typenums: Optional[TypeNumber]
    ) -> Optional[list[Method]]:
        """
        Member functions: `name::` followed by one or more variants, the group
        ending in `;`. Operators may be written `op$::<symbol>.`.
        """
        orig = src.tell()
        methods: list[Method] = []
        while peek(src) != ";":
            text = rest(src)
            colon = text.find(":")
            if colon == -1 or text[colon + 1 : colon + 2] != ":":
                break

            read_exact(src, colon + 2)
            if text.startswith("op$"):
                name = read_until(src, ".")
                if name is None:
                    raise bad_stab(src, orig, "unterminated operator name")
            else:
                name = text[:colon]

            variants: list[MethodVariant] = []
            look_ahead: Optional[DebugType] = None
            while True:
                variant, look_ahead = self._parse_method_variant(
                    src, orig, name, tagname, typenums, look_ahead
                )
                if variant is not None:
                    variants.append(variant)
                if peek(src) in (";", ""):
                    break
            skip(src)

            if variants:
                methods.append(self._sink.make_method(name, variants))
            else:
                logger.warning(f"method {name!r} has no usable variants, dropping it")

        return methods or None

    def _parse_method_variant(
        self,
        src: TextIOBase,
        orig: int,
        name: str,
        tagname: Optional[str],
        typenums: Optional[TypeNumber],
        look_ahead: Optional[DebugType],
    ) -> tuple[Optional[MethodVariant], Optional[DebugType]]:
        """
        Parse `type:argtypes;<visibility><cv><kind>`. Returns the variant (None
        if it was dropped) and the type read ahead by an old-style virtual
        method, which belongs to the next variant.
        """
        if look_ahead is not None:
            typ = look_ahead
            look_ahead = None
        else:
            typ = self._types.parse_type(src)
        expect(src, ":", orig)

        argtypes = read_until(src, ";")
        if argtypes is None:
            raise bad_stab(src, orig, "unterminated method")

        stub = (
            self._sink.get_type_kind(typ) == TypeKind.METHOD
            and self._sink.get_parameter_types(typ)[0] is None
        )

        char = src.read(1)
        if not char:
            raise bad_stab(src, orig, "missing method visibility")
        visibility = {"0": Visibility.PRIVATE, "1": Visibility.PROTECTED}.get(
            char, Visibility.PUBLIC
        )

        constp = volatilep = False
        char = peek(src)
        if char in _CV_QUALIFIERS:
            constp, volatilep = _CV_QUALIFIERS[char]
            skip(src)
        elif not char or char not in "*?.":
            warn_stab(src, orig, "const/volatile indicator missing")

        staticp = False
        voffset = 0
        context: Optional[DebugType] = None
        char = peek(src)
        if char == "*":
            skip(src)
            voffset = read_number(src, orig)
            expect(src, ";", orig)
            voffset &= 0x7FFFFFFF
            if peek(src) not in (";", ""):
                # The class whose vtable holds this method.
                candidate = self._types.parse_type(src)
                if peek(src) == ":":
                    look_ahead = candidate
                else:
                    context = candidate
                    expect(src, ";", orig)
        elif char == "?":
            skip(src)
            staticp = True
            if not argtypes.startswith(name):
                stub = True
        elif char == ".":
            skip(src)
        else:
            warn_stab(src, orig, "member function type missing")

        physname = argtypes
        if stub:
            if typenums is None:
                raise bad_stab(src, orig, "stub method in an anonymous aggregate")
            class_type = self._registry.find_type(typenums)
            return_type = self._sink.get_return_type(typ)
            if return_type is None:
                raise bad_stab(src, orig, "stub method without a return type")
            try:
                typ, physname = self._parse_argtypes(
                    class_type, name, tagname, return_type, argtypes, constp, volatilep
                )
            except DemangleError as e:
                logger.warning(f"dropping method variant {name!r} of {tagname!r}: {e}")
                return None, look_ahead

        if staticp:
            variant = self._sink.make_static_method_variant(
                physname, typ, visibility, constp, volatilep
            )
        else:
            variant = self._sink.make_method_variant(
                physname, typ, visibility, constp, volatilep, voffset, context
            )
        return variant, look_ahead

    def _parse_argtypes(
        self,
        class_type: DebugType,
        fieldname: str,
        tagname: Optional[str],
        return_type: DebugType,
        argtypes: str,
        constp: bool,
        volatilep: bool,
    ) -> tuple[DebugType, str]:
        """
        Rebuild the physical name of a stub method from its mangled argument
        types and demangle it. Returns the method type and the physical name.
        """
        is_full_physname_constructor = (
            argtypes.startswith("__")
            and argtypes[2:3] != ""
            and (argtypes[2].isdigit() or argtypes[2] in "Qt")
        ) or argtypes.startswith("__ct")
        is_constructor = is_full_physname_constructor or (
            tagname is not None and fieldname == tagname
        )
        is_destructor = (
            argtypes[:1] == "_" and argtypes[1:2] in ("$", ".") and argtypes[2:3] == "_"
        ) or argtypes.startswith("__dt")
        is_v3 = argtypes.startswith("_Z")

        physname = argtypes
        physname_len = 0
        if not (is_destructor or is_full_physname_constructor or is_v3):
            if fieldname.startswith(("op$", "op.")):
                raise DemangleError(f"cannot select operator name {fieldname!r}")

            prefix = "__" + ("C" if constp else "") + ("V" if volatilep else "")
            tag = ""
            if tagname and "<" not in tagname:
                # Template class names are already part of the mangled arguments.
                prefix += str(len(tagname))
                tag = tagname

            head = "" if is_constructor else fieldname
            physname_len = len(head)
            physname = f"{head}{prefix}{tag}{argtypes}"

        if not argtypes or is_destructor:
            return self._sink.make_method_type(return_type, class_type, [], False), physname

        args, varargs = self._demangler.demangle_argtypes(physname, physname_len)
        return self._sink.make_method_type(return_type, class_type, args, varargs), physname

    def _parse_tilde(
        self, src: TextIOBase, typenums: Optional[TypeNumber]
    ) -> tuple[Optional[DebugType], bool]:
        """
        `~%<type>;` names the class holding the vtable pointer; it may be the
        class itself.
        """
        orig = src.tell()
        if peek(src) == ";":
            skip(src)
        if peek(src) != "~":
            return None, False
        skip(src)

        # Obsolete constructor/destructor flags.
        if peek(src) in ("=", "+", "-"):
            skip(src)
        if peek(src) != "%":
            return None, False
        skip(src)

        hold = src.tell()
        vtypenums = self._types.parse_type_number(src)
        if typenums is not None and vtypenums == typenums:
            return None, True

        src.seek(hold)
        vptrbase = self._types.parse_type(src)
        if read_until(src, ";") is None:
            raise bad_stab(src, orig, "unterminated vtable pointer")
        return vptrbase, False
