"""
Decoder configuration.

A `DecoderConfig` is created once (usually at startup) and shared read-only
by every decoding session that uses it.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, NamedTuple

from stabs_decoder.debug_info import TypeKind


class BuiltinType(NamedTuple):
    """
    Shape of a primitive type named by a demangled builtin.
    """

    kind: TypeKind
    size: int = 0
    unsigned: bool = False


# The Itanium ABI encodes the identity of a builtin, not its width. These
# widths follow the legacy demangler's fallbacks (`long` is 4 bytes).
DEFAULT_V3_BUILTINS: Mapping[str, BuiltinType] = MappingProxyType(
    {
        "signed char": BuiltinType(TypeKind.INT, 1, False),
        "bool": BuiltinType(TypeKind.BOOL, 1),
        "char": BuiltinType(TypeKind.INT, 1, False),
        "double": BuiltinType(TypeKind.FLOAT, 8),
        "long double": BuiltinType(TypeKind.FLOAT, 8),
        "long long double": BuiltinType(TypeKind.FLOAT, 8),
        "__float80": BuiltinType(TypeKind.FLOAT, 8),
        "float": BuiltinType(TypeKind.FLOAT, 4),
        "__float128": BuiltinType(TypeKind.FLOAT, 16),
        "unsigned char": BuiltinType(TypeKind.INT, 1, True),
        "int": BuiltinType(TypeKind.INT, 4, False),
        "unsigned int": BuiltinType(TypeKind.INT, 4, True),
        "unsigned": BuiltinType(TypeKind.INT, 4, True),
        "long": BuiltinType(TypeKind.INT, 4, False),
        "unsigned long": BuiltinType(TypeKind.INT, 4, True),
        "long long": BuiltinType(TypeKind.INT, 8, False),
        "unsigned long long": BuiltinType(TypeKind.INT, 8, True),
        "__int128": BuiltinType(TypeKind.INT, 16, False),
        "unsigned __int128": BuiltinType(TypeKind.INT, 16, True),
        "short": BuiltinType(TypeKind.INT, 2, False),
        "unsigned short": BuiltinType(TypeKind.INT, 2, True),
        "void": BuiltinType(TypeKind.VOID),
        "wchar_t": BuiltinType(TypeKind.INT, 4, True),
        "char8_t": BuiltinType(TypeKind.INT, 1, True),
        "char16_t": BuiltinType(TypeKind.INT, 2, True),
        "char32_t": BuiltinType(TypeKind.INT, 4, True),
    }
)


@dataclass(frozen=True)
class DecoderConfig:
    """
    Immutable options threaded into a decoding session.

    - `demangle_ansi`: print `const`/`volatile` in the template class names
      rebuilt by the legacy demangler.
    - `v3_builtins`: maps Itanium builtin print-names to primitive types.
    """

    demangle_ansi: bool = True
    v3_builtins: Mapping[str, BuiltinType] = field(default_factory=lambda: DEFAULT_V3_BUILTINS)

    def with_builtins(self, overrides: Mapping[str, BuiltinType]) -> "DecoderConfig":
        """
        Return a copy with some builtin widths replaced, e.g.
        `{"long": BuiltinType(TypeKind.INT, 8)}` for an LP64 target.
        """
        table = dict(self.v3_builtins)
        table.update(overrides)
        return DecoderConfig(demangle_ansi=self.demangle_ansi, v3_builtins=MappingProxyType(table))


DEFAULT_CONFIG = DecoderConfig()
