"""
Argument-type demangler for GNU v2 mangled method names.

The stabs for a C++ method only carry its mangled "physical" name; the
argument types are recovered here by walking the mangled signature and
turning each type code into a `DebugType`. Class names that are not defined
yet become pending tags. Names starting with `_Z` are handed to the Itanium
demangler.
"""

from io import StringIO, TextIOBase
from typing import NamedTuple, Optional

from loguru import logger

from stabs_decoder.config import DEFAULT_CONFIG, DecoderConfig
from stabs_decoder.debug_info import DebugType, TypeArena, TypeKind
from stabs_decoder.errors import DemangleError
from stabs_decoder.io_util import (
    bytes_left,
    lookahead_for_substring,
    lookahead_while,
    peek,
    read_count,
    read_exact,
    skip,
)
from stabs_decoder.registry import TagList
from stabs_decoder.sink import DebugSink
from stabs_decoder.token import Token
from stabs_decoder.v3_demangler import V3Demangler

_DIGITS = "0123456789"


def _read_odd_count(src: TextIOBase) -> Optional[int]:
    """
    Read the given buffer expecting a count in a mangled name. Returns None if
    the buffer does not currently point to a digit.

    - If the buffer points to a string of digits followed by an underscore,
      the returned count will contain the whole number, and the buffer will point
      to the first character after the underscore.
    - If the buffer points to a string of digits *not* followed by an underscore,
      only the first digit will be consumed and returned.
    """
    num_digits = lookahead_while(src, _DIGITS)
    if not num_digits:
        return None

    if num_digits > 1 and peek(src, offset=num_digits) == "_":
        number = int(read_exact(src, num_digits))
        skip(src)
    else:
        number = int(read_exact(src, 1))
    return number


def _squeeze(name: str) -> str:
    """
    Drop the blanks from a printed template name, except between two `>`.
    """
    kept = [
        char
        for i, char in enumerate(name)
        if char != " " or (name[i - 1 : i] == ">" and name[i + 1 : i + 2] == ">")
    ]
    return "".join(kept)


class DemangledType(NamedTuple):
    """
    A demangled type: the type itself (None when only skipping over the
    mangled text) and how it prints.
    """

    type: Optional[DebugType]
    text: str


class LegacyDemangler:
    """
    Demangler object. One instance is shared by a decoding session; every
    call to `demangle_argtypes` starts from a clean state.
    """

    def __init__(
        self,
        sink: DebugSink,
        tags: TagList,
        config: DecoderConfig = DEFAULT_CONFIG,
        v3: Optional[V3Demangler] = None,
    ):
        self._sink = sink
        self._tags = tags
        self._config = config
        self._v3 = v3 if v3 is not None else V3Demangler(sink, tags, config)
        self._reset("")

    def _reset(self, physname: str):
        self._name = physname
        # Offsets of the types that may be referred back to with `T` and `N`.
        self._typestrings: list[int] = []
        self._args: Optional[list[DebugType]] = None
        self._varargs = False

    def demangle_argtypes(
        self, physname: str, physname_len: int = 0
    ) -> tuple[list[DebugType], bool]:
        """
        Demangle the argument types of `physname`, returning `(args, varargs)`.

        `physname_len` is the length of the method name at the start of
        `physname` when the caller knows it; otherwise the name is assumed to
        end at the last `__` pair of the first run of underscores.
        """
        if physname.startswith("_Z"):
            return self._v3.demangle_argtypes(physname)

        self._reset(physname)
        src = StringIO(physname)
        self._demangle_prefix(src, physname_len)
        if peek(src):
            self._demangle_signature(src)

        if self._args is None:
            logger.warning(f"no argument types in mangled string {physname!r}")
            raise DemangleError(f"no argument types in mangled string {physname!r}")
        return self._args, self._varargs

    def _bad(self, orig: int) -> DemangleError:
        """
        Report the mangled text starting at `orig`, and return the error to raise.
        """
        text = self._name[orig:]
        logger.warning(f"bad mangled name {text!r}")
        return DemangleError(f"bad mangled name {text!r}")

    def _cursor_at(self, offset: int) -> StringIO:
        """
        A separate cursor over the same name, for re-reading a remembered type.
        """
        buf = StringIO(self._name)
        buf.seek(offset)
        return buf

    def _remember_type(self, offset: int):
        self._typestrings.append(offset)

    def _demangle_prefix(self, src: TextIOBase, physname_len: int):
        """
        Skip over the function name, leaving the buffer at the start of the signature.
        """
        if physname_len:
            dunder_offset = physname_len
        else:
            dunder_offset = lookahead_for_substring(src, "__")
            if dunder_offset is None:
                raise self._bad(src.tell())
            # Start at the last pair of a run of `_`.
            seq_length = lookahead_while(src, "_", base_offset=dunder_offset)
            if seq_length > 2:
                dunder_offset += seq_length - 2

        after_dunder = Token.peek(src, offset=dunder_offset + 2)
        skipped_chars = dunder_offset != 0

        if not skipped_chars and (
            after_dunder.is_digit()
            or after_dunder.kind in (Token.Kind.QUALIFIED, Token.Kind.TEMPLATE)
        ):
            # A GNU-style constructor.
            skip(src, 2)
        elif not (
            skipped_chars or after_dunder.is_digit() or after_dunder.kind == Token.Kind.TEMPLATE
        ):
            # The name starts with `__`: skip any further `_` and find the next pair.
            run = lookahead_while(src, "_", base_offset=dunder_offset + 2)
            guess = lookahead_for_substring(src, "__", dunder_offset + 2 + run)
            if guess is None:
                raise self._bad(src.tell())
            dunder_offset += 2 + run + guess
            if bytes_left(src, offset=dunder_offset + 2) <= 0:
                raise self._bad(src.tell())
            self._demangle_function_name(src, dunder_offset)
        elif after_dunder.content:
            self._demangle_function_name(src, dunder_offset)
        else:
            raise self._bad(src.tell())

    def _demangle_function_name(self, src: TextIOBase, separator_offset: int):
        """
        Consume the function name and the `__` after it. Conversion operators
        name a type, which is parsed (and otherwise ignored) for validation.
        """
        base = src.tell()
        func_name = read_exact(src, separator_offset)
        skip(src, 2)

        if len(func_name) >= 5 and func_name.startswith("type") and func_name[4] in "$.":
            self._demangle_type(self._cursor_at(base + 5), build=False)
        elif func_name.startswith("__op"):
            self._demangle_type(self._cursor_at(base + 4), build=False)

    def _demangle_signature(self, src: TextIOBase):
        """
        Demangle the class qualifiers and the argument list of a signature.
        """
        orig = src.tell()
        expect_func = False
        func_done = False
        hold: Optional[int] = None

        while peek(src):
            token = Token.peek(src)
            if token.kind == Token.Kind.QUALIFIED:
                hold = src.tell()
                self._demangle_qualified(src, build=False)
                self._remember_type(hold)
                hold = None
                expect_func = True

            elif token.kind in (Token.Kind.SIGNED, Token.Kind.CONST):
                # Static or const member function.
                if hold is None:
                    hold = src.tell()
                skip(src)

            elif token.is_digit():
                if hold is None:
                    hold = src.tell()
                self._demangle_class(src)
                self._remember_type(hold)
                hold = None
                expect_func = True

            elif token.kind == Token.Kind.FUNCTION:
                skip(src)
                hold = None
                func_done = True
                self._set_args(self._demangle_args(src, build=True))

            elif token.kind == Token.Kind.TEMPLATE:
                if hold is None:
                    hold = src.tell()
                self._demangle_template(src, build=False)
                self._remember_type(hold)
                hold = None
                expect_func = True

            elif token.kind == Token.Kind.UNDERSCORE:
                raise self._bad(orig)

            else:
                # Assume we have stumbled onto the first outermost function
                # argument token.
                func_done = True
                self._set_args(self._demangle_args(src, build=True))

            if expect_func:
                func_done = True
                expect_func = False
                self._set_args(self._demangle_args(src, build=True))

        if not func_done:
            # A name with no arguments, such as `foo__Fv` without the `F`.
            self._set_args(self._demangle_args(src, build=True))

    def _set_args(self, result: tuple[list[DemangledType], bool]):
        args, self._varargs = result
        self._args = [arg.type for arg in args]

    def _demangle_args(self, src: TextIOBase, build: bool) -> tuple[list[DemangledType], bool]:
        """
        Demangle arguments up to the end of the list, returning `(args, varargs)`.
        """
        orig = src.tell()
        args: list[DemangledType] = []

        while not Token.peek(src).ends_arguments():
            token = Token.peek(src)
            if token.kind in (Token.Kind.BACKREF, Token.Kind.REPEAT):
                skip(src)
                if token.kind == Token.Kind.BACKREF:
                    repeat = 1
                else:
                    repeat = _read_odd_count(src)
                    if repeat is None:
                        raise self._bad(orig)

                index = _read_odd_count(src)
                if index is None or index >= len(self._typestrings):
                    raise self._bad(orig)

                for _ in range(repeat):
                    args.append(self._demangle_arg(self._cursor_at(self._typestrings[index]), build))
            else:
                args.append(self._demangle_arg(src, build))

        varargs = False
        if Token.peek(src).kind == Token.Kind.ELLIPSIS:
            varargs = True
            skip(src)
        return args, varargs

    def _demangle_arg(self, src: TextIOBase, build: bool) -> DemangledType:
        start = src.tell()
        arg = self._demangle_type(src, build)
        self._remember_type(start)
        if build and arg.type is None:
            raise self._bad(start)
        return arg

    def _demangle_type(self, src: TextIOBase, build: bool) -> DemangledType:
        """
        Demangle a single type.
        """
        orig = src.tell()
        token = Token.peek(src)

        if token.is_pointer_or_reference():
            skip(src)
            target = self._demangle_type(src, build)
            typ = None
            if build:
                if token.kind == Token.Kind.POINTER:
                    typ = self._sink.make_pointer_type(target.type)
                else:
                    typ = self._sink.make_reference_type(target.type)
            symbol = "*" if token.kind == Token.Kind.POINTER else "&"
            return DemangledType(typ, f"{target.text} {symbol}")

        if token.kind == Token.Kind.ARRAY:
            skip(src)
            num_digits = lookahead_while(src, _DIGITS)
            high = int(read_exact(src, num_digits)) if num_digits else 0
            if peek(src) != "_":
                raise self._bad(orig)
            skip(src)
            element = self._demangle_type(src, build)
            typ = None
            if build:
                index_type = self._sink.find_named_type("int")
                if index_type is None:
                    index_type = self._sink.make_int_type(4, False)
                typ = self._sink.make_array_type(element.type, index_type, 0, high, False)
            return DemangledType(typ, f"{element.text} [{high}]")

        if token.kind == Token.Kind.BACKREF:
            skip(src)
            index = _read_odd_count(src)
            if index is None or index >= len(self._typestrings):
                raise self._bad(orig)
            return self._demangle_type(self._cursor_at(self._typestrings[index]), build)

        if token.kind == Token.Kind.FUNCTION:
            skip(src)
            args, varargs = self._demangle_args(src, build)
            if peek(src) != "_":
                # cplus_demangle will accept a function without a return
                # type, but this code doesn't.
                raise self._bad(orig)
            skip(src)
            return_type = self._demangle_type(src, build)
            typ = None
            if build:
                typ = self._sink.make_function_type(
                    return_type.type, [arg.type for arg in args], varargs
                )
            return DemangledType(typ, f"{return_type.text} ({self._args_text(args, varargs)})")

        if token.is_member():
            return self._demangle_member_type(src, build)

        if token.kind == Token.Kind.GCC_TYPE:
            skip(src)
            return self._demangle_type(src, build)

        if token.kind == Token.Kind.CONST:
            skip(src)
            target = self._demangle_type(src, build)
            typ = self._sink.make_const_type(target.type) if build else None
            text = f"const {target.text}" if self._config.demangle_ansi else target.text
            return DemangledType(typ, text)

        if token.kind == Token.Kind.QUALIFIED:
            return self._demangle_qualified(src, build)

        return self._demangle_fund_type(src, build)

    def _demangle_member_type(self, src: TextIOBase, build: bool) -> DemangledType:
        """
        Demangle a pointer to member function (`M`) or to data member (`O`).
        """
        orig = src.tell()
        memberp = Token.peek(src).kind == Token.Kind.MEMBER_FUNCTION
        skip(src)

        if Token.peek(src).is_digit():
            class_name = self._demangle_class(src)
            class_type = self._tags.reference_tag(class_name, TypeKind.CLASS) if build else None
        elif Token.peek(src).kind == Token.Kind.QUALIFIED:
            qualified = self._demangle_qualified(src, build)
            class_type, class_name = qualified
        else:
            raise self._bad(orig)

        args: list[DemangledType] = []
        varargs = False
        if memberp:
            if peek(src) in ("C", "V"):
                skip(src)
            if Token.peek(src).kind != Token.Kind.FUNCTION:
                raise self._bad(orig)
            skip(src)
            args, varargs = self._demangle_args(src, build)

        if peek(src) != "_":
            raise self._bad(orig)
        skip(src)
        target = self._demangle_type(src, build)

        typ = None
        if not memberp:
            if build:
                typ = self._sink.make_offset_type(class_type, target.type)
            return DemangledType(typ, f"{target.text} {class_name}::*")

        if build:
            typ = self._sink.make_method_type(
                target.type, class_type, [arg.type for arg in args], varargs
            )
        text = f"{target.text} ({class_name}::*)({self._args_text(args, varargs)})"
        return DemangledType(typ, text)

    def _demangle_fund_type(self, src: TextIOBase, build: bool) -> DemangledType:
        """
        Demangle a fundamental type, or a class name, with its qualifiers.
        """
        orig = src.tell()
        constp = volatilep = unsignedp = signedp = False
        words: list[str] = []

        token = Token.peek(src)
        while token.is_modifier():
            if token.kind == Token.Kind.CONST:
                constp = True
            elif token.kind == Token.Kind.VOLATILE:
                volatilep = True
            elif token.kind == Token.Kind.UNSIGNED:
                unsignedp = True
            else:
                signedp = True
            if token.kind in (Token.Kind.UNSIGNED, Token.Kind.SIGNED) or self._config.demangle_ansi:
                words.append(token.modifier())
            skip(src)
            token = Token.peek(src)

        typ: Optional[DebugType] = None
        if token.is_fundamental():
            skip(src)
            fundamental = token.fundamental()
            if build:
                typ = self._sink.find_named_type(fundamental.lookup_name(unsignedp, signedp))
                if typ is None:
                    typ = self._make_fundamental(token, unsignedp)
            words.append(fundamental.print_name)

        elif token.kind == Token.Kind.GCC_TYPE or token.is_digit():
            if token.kind == Token.Kind.GCC_TYPE:
                skip(src)
                if not Token.peek(src).is_digit():
                    raise self._bad(orig)
            name = self._demangle_class(src)
            if build:
                typ = self._sink.find_named_type(name)
                if typ is None:
                    typ = self._tags.reference_tag(name, TypeKind.ILLEGAL)
            words.append(name)

        elif token.kind == Token.Kind.TEMPLATE:
            template = self._demangle_template(src, build)
            if build:
                typ = self._tags.reference_tag(template.text, TypeKind.CLASS)
            words.append(template.text)

        else:
            raise self._bad(orig)

        if build:
            if constp:
                typ = self._sink.make_const_type(typ)
            if volatilep:
                typ = self._sink.make_volatile_type(typ)
        return DemangledType(typ, " ".join(words))

    def _make_fundamental(self, token: Token, unsignedp: bool) -> DebugType:
        fundamental = token.fundamental()
        if fundamental.kind == TypeKind.VOID:
            return self._sink.make_void_type()
        if fundamental.kind == TypeKind.BOOL:
            return self._sink.make_bool_type(fundamental.size)
        if fundamental.kind == TypeKind.FLOAT:
            return self._sink.make_float_type(fundamental.size)
        return self._sink.make_int_type(fundamental.size, unsignedp or fundamental.always_unsigned)

    def _demangle_class(self, src: TextIOBase) -> str:
        """
        Read a length-prefixed class name.
        """
        orig = src.tell()
        length = read_count(src)
        if bytes_left(src) < length:
            raise self._bad(orig)
        return read_exact(src, length)

    def _demangle_qualified(self, src: TextIOBase, build: bool) -> DemangledType:
        """
        Demangle a qualified name such as `Q23Foo3Bar`, looking each part up as
        a nested type of the previous one.
        """
        orig = src.tell()
        if peek(src, offset=1) == "_":
            # `Q_<count>_` for more than nine qualifiers.
            num_digits = lookahead_while(src, _DIGITS, base_offset=2)
            if not num_digits or peek(src, offset=2) == "0":
                raise self._bad(orig)
            qualifiers = int(peek(src, num_digits, offset=2))
            if peek(src, offset=2 + num_digits) != "_":
                raise self._bad(orig)
            skip(src, 3 + num_digits)
        elif peek(src, offset=1) in tuple("123456789"):
            qualifiers = int(peek(src, offset=1))
            if peek(src, offset=2) == "_":
                skip(src)
            skip(src, 2)
        else:
            raise self._bad(orig)

        context: Optional[DebugType] = None
        names: list[str] = []
        while qualifiers > 0:
            qualifiers -= 1
            if peek(src) == "_":
                skip(src)

            if Token.peek(src).kind == Token.Kind.TEMPLATE:
                template = self._demangle_template(src, build)
                names.append(template.text)
                if build:
                    context = self._tags.reference_tag(template.text, TypeKind.CLASS)
            else:
                name = self._demangle_class(src)
                names.append(name)
                if build:
                    context = self._lookup_nested(context, name, orig, last=qualifiers == 0)

        return DemangledType(context, "::".join(names))

    def _lookup_nested(
        self, context: Optional[DebugType], name: str, orig: int, last: bool
    ) -> DebugType:
        """
        Find `name` among the field types of `context`, or as a named type or tag.
        """
        if context is not None:
            for fld in self._sink.get_fields(context) or []:
                field_type = self._sink.get_field_type(fld)
                if field_type is None:
                    raise self._bad(orig)
                if self._sink.get_type_name(field_type) == name:
                    return field_type

        if last:
            found = self._sink.find_named_type(name)
            if found is not None:
                return found
        # The last part may be a struct, a union or an enum. Anything
        # before it contains nested names, so it is a class.
        return self._tags.reference_tag(name, TypeKind.ILLEGAL if last else TypeKind.CLASS)

    def _demangle_template(self, src: TextIOBase, build: bool) -> DemangledType:
        """
        Demangle a template class name such as `t3Foo1Zi`. Templates are
        only ever referred to by name, so `build` merely decides whether the
        parameter types are looked up.
        """
        orig = src.tell()
        skip(src)  # `t`

        length = read_count(src)
        if length == 0 or bytes_left(src) < length:
            raise self._bad(orig)
        name = read_exact(src, length)

        count = _read_odd_count(src)
        if count is None:
            raise self._bad(orig)

        params: list[str] = []
        for _ in range(count):
            if Token.peek(src).kind == Token.Kind.TEMPLATE_TYPE_PARAM:
                skip(src)
                params.append(self._demangle_type(src, build=False).text)
            else:
                start = src.tell()
                self._demangle_type(src, build=False)
                params.append(self._demangle_template_value(src, orig, start))

        text = f"{name}<{', '.join(params)}"
        text += " >" if text.endswith(">") else ">"
        return DemangledType(None, _squeeze(text))

    def _demangle_template_value(self, src: TextIOBase, orig: int, type_start: int) -> str:
        """
        Demangle the value of a non-type template parameter, whose type was
        mangled at `type_start`.
        """
        type_src = self._cursor_at(type_start)
        token = Token.peek(type_src)
        # Skip over qualifiers and composite types to find the kind of value.
        while token.kind in (
            Token.Kind.CONST,
            Token.Kind.SIGNED,
            Token.Kind.UNSIGNED,
            Token.Kind.VOLATILE,
            Token.Kind.FUNCTION,
            Token.Kind.MEMBER_FUNCTION,
            Token.Kind.MEMBER_OFFSET,
        ):
            skip(type_src)
            token = Token.peek(type_src)

        if token.kind in (Token.Kind.BACKREF, Token.Kind.VOID) or not token.content:
            raise self._bad(orig)
        if token.is_pointer_or_reference():
            return self._demangle_symbol_ref_value(src, orig)
        if token.kind == Token.Kind.BOOL:
            return self._demangle_bool_value(src, orig)
        if token.kind == Token.Kind.CHAR:
            return self._demangle_char_value(src, orig)
        if token.kind in (Token.Kind.LONG_DOUBLE, Token.Kind.DOUBLE, Token.Kind.FLOAT):
            return self._demangle_real_value(src)
        return self._demangle_integral_value(src)

    def _demangle_integral_value(self, src: TextIOBase) -> str:
        sign = ""
        if Token.peek(src).kind == Token.Kind.NEGATE:
            sign = "-"
            skip(src)
        return sign + str(read_count(src))

    def _demangle_bool_value(self, src: TextIOBase, orig: int) -> str:
        value = read_count(src)
        if value not in (0, 1):
            raise self._bad(orig)
        return "true" if value else "false"

    def _demangle_char_value(self, src: TextIOBase, orig: int) -> str:
        if Token.peek(src).kind == Token.Kind.NEGATE:
            skip(src)
        value = read_count(src)
        if value == 0:
            raise self._bad(orig)
        return repr(chr(value))

    def _demangle_real_value(self, src: TextIOBase) -> str:
        text = ""
        if Token.peek(src).kind == Token.Kind.NEGATE:
            text = "-"
            skip(src)
        text += read_exact(src, lookahead_while(src, _DIGITS))
        if peek(src) == ".":
            text += read_exact(src, 1 + lookahead_while(src, _DIGITS, base_offset=1))
        if peek(src) == "e":
            text += read_exact(src, 1 + lookahead_while(src, _DIGITS, base_offset=1))
        return text

    def _demangle_symbol_ref_value(self, src: TextIOBase, orig: int) -> str:
        length = read_count(src)
        if length == 0 or bytes_left(src) < length:
            raise self._bad(orig)
        return "&" + read_exact(src, length)

    @staticmethod
    def _args_text(args: list[DemangledType], varargs: bool) -> str:
        texts = [arg.text for arg in args]
        if varargs:
            texts.append("...")
        return ", ".join(texts)


def demangle_argtypes(
    sink: DebugSink, physname: str, config: DecoderConfig = DEFAULT_CONFIG
) -> tuple[list[DebugType], bool]:
    """
    Demangle the argument types of `physname` into types built by `sink`.

    Class names which `sink` does not know become undefined tagged types.
    """
    tags = TagList(sink, TypeArena())
    result = LegacyDemangler(sink, tags, config).demangle_argtypes(physname)
    tags.finish()
    return result
