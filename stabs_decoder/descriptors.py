"""
Module implementing variant types for the single-character descriptors of
the STABS string grammar.
"""

from dataclasses import dataclass
from io import TextIOBase
from typing import ClassVar

from stabs_decoder.debug_info import ParmKind, TypeKind, VarKind
from stabs_decoder.io_util import peek
from stabs_decoder.strenum import StrEnum


class TypeDescriptor(StrEnum):
    """
    The character following an optional `typenum=` in a type expression.
    """

    UNKNOWN = "unknown"
    TYPE_REF = "typeref"  # a digit, '(' or '-'

    CROSS_REF = "x"
    POINTER = "*"
    REFERENCE = "&"
    FUNCTION = "f"
    CONST = "k"
    VOLATILE = "B"
    OFFSET = "@"
    METHOD = "#"
    RANGE = "r"
    SUN_BUILTIN = "b"
    SUN_FLOAT = "R"
    ENUM = "e"
    STRUCT = "s"
    UNION = "u"
    ARRAY = "a"
    SET = "S"

    @staticmethod
    def from_char(char: str) -> "TypeDescriptor":
        if starts_type_number(char):
            return TypeDescriptor.TYPE_REF
        try:
            return TypeDescriptor(char)
        except ValueError:
            return TypeDescriptor.UNKNOWN


def starts_type_number(char: str) -> bool:
    """
    Determine if `char` can begin a type number such as `12`, `(1,2)` or `-3`.
    """
    return bool(char) and (char.isdigit() or char in "(-")


@dataclass(frozen=True)
class SymbolDescriptor:
    """
    Variant type for the descriptor following the colon of `name:...` in a
    symbol record.
    """

    class Kind(StrEnum):
        UNKNOWN = "unknown"
        LOCAL_IMPLICIT = "implicit"  # a type number directly after the colon
        CONSTANT = "c"
        LABEL = "C"
        FUNCTION = "f"
        GLOBAL_FUNCTION = "F"
        GLOBAL = "G"
        LOCAL = "l"
        LOCAL_S = "s"
        PARAM = "p"
        PROTOTYPE_OR_REG_PARAM = "P"
        REG_PARAM = "R"
        REGISTER = "r"
        STATIC = "S"
        TYPEDEF = "t"
        TAG = "T"
        LOCAL_STATIC = "V"
        REF_PARAM = "v"
        REF_REG_PARAM = "a"
        LOCAL_X = "X"
        SUN_NAMESPACE = "Y"

    _VARIABLES: ClassVar[dict[Kind, VarKind]] = {
        Kind.LOCAL_IMPLICIT: VarKind.LOCAL,
        Kind.LOCAL: VarKind.LOCAL,
        Kind.LOCAL_S: VarKind.LOCAL,
        Kind.LOCAL_X: VarKind.LOCAL,
        Kind.GLOBAL: VarKind.GLOBAL,
        Kind.REGISTER: VarKind.REGISTER,
        Kind.STATIC: VarKind.STATIC,
        Kind.LOCAL_STATIC: VarKind.LOCAL_STATIC,
    }
    _PARAMETERS: ClassVar[dict[Kind, ParmKind]] = {
        Kind.PARAM: ParmKind.STACK,
        Kind.PROTOTYPE_OR_REG_PARAM: ParmKind.REG,
        Kind.REG_PARAM: ParmKind.REG,
        Kind.REF_PARAM: ParmKind.REFERENCE,
        Kind.REF_REG_PARAM: ParmKind.REF_REG,
    }

    kind: Kind
    content: str

    def var_kind(self) -> VarKind:
        return self._VARIABLES[self.kind]

    def parm_kind(self) -> ParmKind:
        return self._PARAMETERS[self.kind]

    @staticmethod
    def from_char(char: str) -> "SymbolDescriptor":
        if starts_type_number(char):
            return SymbolDescriptor(SymbolDescriptor.Kind.LOCAL_IMPLICIT, char)
        try:
            return SymbolDescriptor(SymbolDescriptor.Kind(char), char)
        except ValueError:
            return SymbolDescriptor(SymbolDescriptor.Kind.UNKNOWN, char)

    @staticmethod
    def peek(src: TextIOBase) -> "SymbolDescriptor":
        return SymbolDescriptor.from_char(peek(src))


# Cross-reference kind letters after `x`.
CROSS_REF_KINDS: dict[str, TypeKind] = {
    "s": TypeKind.STRUCT,
    "u": TypeKind.UNION,
    "e": TypeKind.ENUM,
}
