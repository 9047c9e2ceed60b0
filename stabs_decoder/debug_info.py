"""
Module implementing the generic debug-information model.

Types are `DebugType` variants; program structure (compilation units,
functions, blocks, variables) is held by the plain dataclasses at the end
of the module. Type handles are compared by identity.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from stabs_decoder.strenum import StrEnum


class TypeKind(StrEnum):
    ILLEGAL = "illegal"
    INDIRECT = "indirect"
    VOID = "void"
    INT = "int"
    FLOAT = "float"
    COMPLEX = "complex"
    BOOL = "bool"
    STRUCT = "struct"
    UNION = "union"
    CLASS = "class"
    UNION_CLASS = "union class"
    ENUM = "enum"
    POINTER = "pointer"
    FUNCTION = "function"
    REFERENCE = "reference"
    RANGE = "range"
    ARRAY = "array"
    SET = "set"
    OFFSET = "offset"
    METHOD = "method"
    CONST = "const"
    VOLATILE = "volatile"
    NAMED = "named"
    TAGGED = "tagged"


class Visibility(StrEnum):
    PUBLIC = "public"
    PROTECTED = "protected"
    PRIVATE = "private"
    IGNORE = "ignore"


class VarKind(StrEnum):
    GLOBAL = "global"
    STATIC = "static"
    LOCAL_STATIC = "local static"
    LOCAL = "local"
    REGISTER = "register"


class ParmKind(StrEnum):
    STACK = "stack"
    REG = "register"
    REFERENCE = "reference"
    REF_REG = "register reference"


class TypeArena:
    """
    Storage for type slots. A slot starts empty and is filled at most once
    per definition; every `SlotRef` to it observes the update.
    """

    def __init__(self):
        self._slots: list[Optional["DebugType"]] = []

    def allocate(self) -> "SlotRef":
        self._slots.append(None)
        return SlotRef(self, len(self._slots) - 1)

    def __len__(self) -> int:
        return len(self._slots)


@dataclass(frozen=True, eq=False)
class SlotRef:
    """
    Handle to one slot of a `TypeArena`.
    """

    arena: TypeArena
    index: int

    def get(self) -> Optional["DebugType"]:
        return self.arena._slots[self.index]

    def set(self, typ: Optional["DebugType"]):
        self.arena._slots[self.index] = typ

    @property
    def resolved(self) -> bool:
        return self.get() is not None


_AGGREGATE_KINDS = frozenset(
    {TypeKind.STRUCT, TypeKind.UNION, TypeKind.CLASS, TypeKind.UNION_CLASS}
)


@dataclass(eq=False)
class DebugType:
    """
    Variant type for debug types. Each kind uses a subset of the fields:

    - INT/BOOL/FLOAT/COMPLEX: `size`, and `unsigned` for INT.
    - POINTER/REFERENCE/CONST/VOLATILE/SET: `target`.
    - NAMED/TAGGED: `name` and `target`.
    - INDIRECT: `slot` and optionally `name`.
    - FUNCTION/METHOD: `target` is the return type, `args`/`varargs` the
      parameters (`args` is None for a method stub), `domain` the class of a
      method.
    - OFFSET: `domain` is the base type, `target` the member type.
    - RANGE: `index_type`, `lower`, `upper`.
    - ARRAY: `target` is the element type, plus the RANGE fields and `stringp`.
    - ENUM: `enumerators`.
    - STRUCT/UNION/CLASS/UNION_CLASS: `size`, `fields`, and for object types
      `baseclasses`, `methods`, `vptrbase`, `ownvptr`. An `incomplete`
      aggregate stands in for a tag that was never defined.
    """

    kind: TypeKind
    size: int = 0
    unsigned: bool = False
    name: Optional[str] = None
    target: Optional["DebugType"] = None
    domain: Optional["DebugType"] = None
    args: Optional[list["DebugType"]] = None
    varargs: bool = False
    index_type: Optional["DebugType"] = None
    lower: int = 0
    upper: int = 0
    stringp: bool = False
    enumerators: list[tuple[str, int]] = field(default_factory=list)
    fields: Optional[list["DebugField"]] = None
    baseclasses: Optional[list["BaseClass"]] = None
    methods: Optional[list["Method"]] = None
    vptrbase: Optional["DebugType"] = None
    ownvptr: bool = False
    incomplete: bool = False
    slot: Optional[SlotRef] = None

    def resolve(self) -> "DebugType":
        """
        Follow indirect placeholders to the type they currently stand for.
        An unresolved placeholder resolves to itself.
        """
        typ = self
        while typ.kind == TypeKind.INDIRECT and typ.slot is not None and typ.slot.resolved:
            typ = typ.slot.get()
        return typ

    def real(self) -> "DebugType":
        """
        Strip indirections, typedef names and tags.
        """
        typ = self.resolve()
        while typ.kind in (TypeKind.NAMED, TypeKind.TAGGED) and typ.target is not None:
            typ = typ.target.resolve()
        return typ

    def is_aggregate(self) -> bool:
        return self.kind in _AGGREGATE_KINDS

    def is_object(self) -> bool:
        """
        Determine if this aggregate carries C++ class facets.
        """
        return self.is_aggregate() and (
            self.baseclasses is not None
            or self.methods is not None
            or self.vptrbase is not None
            or self.ownvptr
        )

    def __str__(self) -> str:
        typ = self.resolve()
        if typ.kind in (TypeKind.NAMED, TypeKind.TAGGED, TypeKind.INDIRECT):
            return typ.name or "<unresolved>"
        if typ.kind == TypeKind.INT:
            return f"{'u' if typ.unsigned else ''}int{typ.size * 8}"
        if typ.kind in (TypeKind.FLOAT, TypeKind.COMPLEX, TypeKind.BOOL):
            return f"{typ.kind}{typ.size * 8}"
        if typ.kind == TypeKind.POINTER:
            return f"{typ.target} *"
        if typ.kind == TypeKind.REFERENCE:
            return f"{typ.target} &"
        if typ.kind in (TypeKind.CONST, TypeKind.VOLATILE):
            return f"{typ.kind} {typ.target}"
        if typ.kind in (TypeKind.FUNCTION, TypeKind.METHOD):
            params = "?" if typ.args is None else ", ".join(str(a) for a in typ.args)
            if typ.varargs:
                params = f"{params}, ..." if params else "..."
            return f"{typ.target} ({params})"
        if typ.kind == TypeKind.ARRAY:
            return f"{typ.target} [{typ.lower}..{typ.upper}]"
        if typ.kind == TypeKind.RANGE:
            return f"{typ.index_type} [{typ.lower}..{typ.upper}]"
        if typ.is_aggregate() or typ.kind == TypeKind.ENUM:
            return f"{typ.kind} {{...}}" if not typ.incomplete else f"{typ.kind} <incomplete>"
        return str(typ.kind)


@dataclass(eq=False)
class DebugField:
    """
    A data member. Static members carry the `physname` of their storage.
    """

    name: str
    type: DebugType
    bitpos: int = 0
    bitsize: int = 0
    visibility: Visibility = Visibility.PUBLIC
    physname: Optional[str] = None

    def is_static(self) -> bool:
        return self.physname is not None


@dataclass(eq=False)
class BaseClass:
    type: DebugType
    bitpos: int
    is_virtual: bool
    visibility: Visibility


@dataclass(eq=False)
class MethodVariant:
    """
    One overload of a member function.

    `voffset` is the virtual table index for virtual methods; `context` is the
    class which introduced the virtual function, when known.
    """

    physname: str
    type: DebugType
    visibility: Visibility
    constp: bool = False
    volatilep: bool = False
    voffset: int = 0
    context: Optional[DebugType] = None
    is_static: bool = False

    def is_virtual(self) -> bool:
        return self.voffset != 0 or self.context is not None


@dataclass(eq=False)
class Method:
    name: str
    variants: list[MethodVariant]


@dataclass
class Variable:
    name: str
    type: DebugType
    kind: VarKind
    value: int


@dataclass
class Parameter:
    name: str
    type: DebugType
    kind: ParmKind
    value: int


@dataclass
class Label:
    name: str
    type: DebugType
    value: int


@dataclass
class Constant:
    """
    A named constant. `type` is None for untyped integer and float constants.
    """

    name: str
    value: Any
    type: Optional[DebugType] = None


@dataclass
class LineEntry:
    source: str
    lineno: int
    address: int


@dataclass
class Block:
    start: int
    end: Optional[int] = None
    variables: list[Variable] = field(default_factory=list)
    constants: list[Constant] = field(default_factory=list)
    blocks: list["Block"] = field(default_factory=list)


@dataclass
class Function:
    name: str
    type: DebugType
    is_global: bool
    start: int
    end: Optional[int] = None
    parameters: list[Parameter] = field(default_factory=list)
    body: Block = None
    labels: list[Label] = field(default_factory=list)

    def __post_init__(self):
        if self.body is None:
            self.body = Block(self.start)


@dataclass
class CommonBlock:
    name: str
    variables: list[Variable] = field(default_factory=list)


@dataclass
class CompilationUnit:
    name: str
    sources: list[str] = field(default_factory=list)
    functions: list[Function] = field(default_factory=list)
    variables: list[Variable] = field(default_factory=list)
    constants: list[Constant] = field(default_factory=list)
    labels: list[Label] = field(default_factory=list)
    common_blocks: list[CommonBlock] = field(default_factory=list)
    lines: list[LineEntry] = field(default_factory=list)
    named_types: dict[str, DebugType] = field(default_factory=dict)
    tagged_types: dict[str, DebugType] = field(default_factory=dict)
