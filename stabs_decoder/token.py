"""
Module implementing variant types for the type codes of GNU v2 mangled
argument lists.

These variants are mostly used to improve the readability of the demangler.
"""

from dataclasses import dataclass
from io import TextIOBase
from typing import ClassVar, NamedTuple, Optional

from stabs_decoder.debug_info import TypeKind
from stabs_decoder.io_util import peek
from stabs_decoder.strenum import StrEnum


class Fundamental(NamedTuple):
    """
    A fundamental type code: the names it is looked up under, the name it
    prints as, and the primitive type used when no such name is defined.
    """

    name: str
    unsigned_name: str
    print_name: str
    kind: TypeKind
    size: int = 0
    signed_name: Optional[str] = None
    always_unsigned: bool = False

    def lookup_name(self, unsignedp: bool, signedp: bool) -> str:
        if unsignedp:
            return self.unsigned_name
        if signedp and self.signed_name is not None:
            return self.signed_name
        return self.name


@dataclass(frozen=True)
class Token:
    """
    Variant type for individual GNU v2 type codes.
    """

    class Kind(StrEnum):
        # Abnormal codes
        UNKNOWN = "unknown"
        DIGIT = "digit"

        # Qualifiers and specifiers. `S` also marks a static member function
        # and `C` a const one in a signature.
        CONST = "C"
        VOLATILE = "V"
        UNSIGNED = "U"
        SIGNED = "S"
        # Fundamental types
        VOID = "v"
        LONG_LONG = "x"
        LONG = "l"
        INT = "i"
        SHORT = "s"
        BOOL = "b"
        CHAR = "c"
        WCHAR = "w"
        LONG_DOUBLE = "r"
        DOUBLE = "d"
        FLOAT = "f"
        # Derived types
        POINTER = "p"  # Also "P"
        REFERENCE = "R"
        ARRAY = "A"
        FUNCTION = "F"
        MEMBER_FUNCTION = "M"
        MEMBER_OFFSET = "O"
        GCC_TYPE = "G"
        # Names
        QUALIFIED = "Q"
        TEMPLATE = "t"
        TEMPLATE_TYPE_PARAM = "Z"
        # Argument lists
        BACKREF = "T"
        REPEAT = "N"
        ELLIPSIS = "e"
        UNDERSCORE = "_"
        NEGATE = "m"

    _FUNDAMENTALS: ClassVar[dict[Kind, Fundamental]] = {
        Kind.VOID: Fundamental("void", "void", "void", TypeKind.VOID),
        Kind.LONG_LONG: Fundamental(
            "long long int", "long long unsigned int", "long long", TypeKind.INT, 8
        ),
        Kind.LONG: Fundamental("long int", "long unsigned int", "long", TypeKind.INT, 4),
        Kind.INT: Fundamental("int", "unsigned int", "int", TypeKind.INT, 4),
        Kind.SHORT: Fundamental("short int", "short unsigned int", "short", TypeKind.INT, 2),
        Kind.BOOL: Fundamental("bool", "bool", "bool", TypeKind.BOOL, 4),
        Kind.CHAR: Fundamental(
            "char", "unsigned char", "char", TypeKind.INT, 1, signed_name="signed char"
        ),
        Kind.WCHAR: Fundamental(
            "__wchar_t", "__wchar_t", "wchar_t", TypeKind.INT, 2, always_unsigned=True
        ),
        Kind.LONG_DOUBLE: Fundamental(
            "long long double", "long long double", "long double", TypeKind.FLOAT, 8
        ),
        Kind.DOUBLE: Fundamental("double", "double", "double", TypeKind.FLOAT, 8),
        Kind.FLOAT: Fundamental("float", "float", "float", TypeKind.FLOAT, 4),
    }
    _MODIFIERS: ClassVar[dict[Kind, str]] = {
        Kind.CONST: "const",
        Kind.VOLATILE: "volatile",
        Kind.UNSIGNED: "unsigned",
        Kind.SIGNED: "signed",
    }

    kind: Kind
    content: str

    def is_digit(self) -> bool:
        return self.kind == Token.Kind.DIGIT

    def is_fundamental(self) -> bool:
        """
        Determine if this is a fundamental type code such as `i` or `c`.
        """
        return self.kind in self._FUNDAMENTALS

    def is_modifier(self) -> bool:
        """
        Determine if this is a qualifier or signedness prefix of a fundamental type.
        """
        return self.kind in self._MODIFIERS

    def is_pointer_or_reference(self) -> bool:
        return self.kind in (Token.Kind.POINTER, Token.Kind.REFERENCE)

    def is_member(self) -> bool:
        """
        Determine if this introduces a pointer-to-member type (`M` or `O`).
        """
        return self.kind in (Token.Kind.MEMBER_FUNCTION, Token.Kind.MEMBER_OFFSET)

    def ends_arguments(self) -> bool:
        """
        Determine if this code (or the end of the buffer) terminates an argument list.
        """
        return self.kind in (Token.Kind.UNDERSCORE, Token.Kind.ELLIPSIS) or not self.content

    def fundamental(self) -> Fundamental:
        """
        If this is a fundamental type code, return its description.
        Otherwise, throw an error.
        """
        return self._FUNDAMENTALS[self.kind]

    def modifier(self) -> str:
        return self._MODIFIERS[self.kind]

    @staticmethod
    def from_char(char: str) -> "Token":
        """
        Construct this variant with the given character and determine its type code.
        """
        if char == "P":
            kind = Token.Kind.POINTER  # Pointer can be upper or lowercase
        elif char.isdecimal() and len(char) == 1:
            kind = Token.Kind.DIGIT
        else:
            try:
                kind = Token.Kind(char)
            except ValueError:
                kind = Token.Kind.UNKNOWN

        return Token(kind=kind, content=char)

    @staticmethod
    def peek(src: TextIOBase, offset: int = 0) -> "Token":
        """
        Construct this variant by peeking the next character in the given buffer.
        The buffer is not modified.
        """
        return Token.from_char(peek(src, 1, offset=offset))

    def __str__(self) -> str:
        return self.content
