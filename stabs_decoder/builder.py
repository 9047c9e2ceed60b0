"""
In-memory `DebugSink` which collects decoded debugging information into
`CompilationUnit` trees.
"""

from typing import Optional

from loguru import logger

from stabs_decoder.debug_info import (
    BaseClass,
    Block,
    CommonBlock,
    CompilationUnit,
    Constant,
    DebugField,
    DebugType,
    Function,
    Label,
    LineEntry,
    Method,
    MethodVariant,
    Parameter,
    ParmKind,
    SlotRef,
    TypeKind,
    Variable,
    VarKind,
    Visibility,
)
from stabs_decoder.errors import StabsStructureError
from stabs_decoder.sink import DebugSink


class DebugInfoBuilder(DebugSink):
    """
    Reference sink. After decoding, `units` holds one `CompilationUnit` per
    source file in record order.
    """

    def __init__(self):
        self.units: list[CompilationUnit] = []
        self._unit: Optional[CompilationUnit] = None
        self._source: Optional[str] = None
        self._function: Optional[Function] = None
        self._blocks: list[Block] = []
        self._common: Optional[CommonBlock] = None

    # Program structure

    def _current_unit(self) -> CompilationUnit:
        if self._unit is None:
            raise StabsStructureError("no compilation unit has been started")
        return self._unit

    def _current_function(self, what: str) -> Function:
        if self._function is None:
            raise StabsStructureError(f"{what} outside of a function")
        return self._function

    def set_filename(self, name: str):
        logger.debug(f"Starting compilation unit {name!r}")
        self._unit = CompilationUnit(name, sources=[name])
        self.units.append(self._unit)
        self._source = name
        self._function = None
        self._blocks = []

    def start_source(self, name: str):
        unit = self._current_unit()
        if name not in unit.sources:
            unit.sources.append(name)
        self._source = name

    def record_function(self, name: str, typ: DebugType, is_global: bool, address: int):
        unit = self._current_unit()
        self._function = Function(name, typ, is_global, address)
        self._blocks = [self._function.body]
        unit.functions.append(self._function)

    def end_function(self, address: Optional[int]):
        function = self._current_function("end of function")
        if len(self._blocks) > 1:
            logger.warning(f"{len(self._blocks) - 1} blocks left open in {function.name!r}")
        function.end = address
        function.body.end = address
        self._function = None
        self._blocks = []

    def start_block(self, address: int):
        self._current_function("block start")
        block = Block(address)
        self._blocks[-1].blocks.append(block)
        self._blocks.append(block)

    def end_block(self, address: int):
        self._current_function("block end")
        if len(self._blocks) <= 1:
            raise StabsStructureError("attempt to close the top level block")
        self._blocks.pop().end = address

    def record_line(self, lineno: int, address: int):
        unit = self._current_unit()
        unit.lines.append(LineEntry(self._source, lineno, address))

    def start_common_block(self, name: str):
        self._common = CommonBlock(name)
        self._current_unit().common_blocks.append(self._common)

    def end_common_block(self, name: str):
        if self._common is None or self._common.name != name:
            logger.warning(f"mismatched end of common block {name!r}")
        self._common = None

    def record_variable(self, name: str, typ: DebugType, kind: VarKind, value: int):
        variable = Variable(name, typ, kind, value)
        if self._common is not None and kind == VarKind.GLOBAL:
            self._common.variables.append(variable)
        elif kind in (VarKind.GLOBAL, VarKind.STATIC) or not self._blocks:
            self._current_unit().variables.append(variable)
        else:
            self._blocks[-1].variables.append(variable)

    def record_parameter(self, name: str, typ: DebugType, kind: ParmKind, value: int):
        function = self._current_function(f"parameter {name!r}")
        function.parameters.append(Parameter(name, typ, kind, value))

    def record_label(self, name: str, typ: DebugType, value: int):
        label = Label(name, typ, value)
        if self._function is not None:
            self._function.labels.append(label)
        else:
            self._current_unit().labels.append(label)

    def _record_constant(self, constant: Constant):
        if self._blocks:
            self._blocks[-1].constants.append(constant)
        else:
            self._current_unit().constants.append(constant)

    def record_int_const(self, name: str, value: int):
        self._record_constant(Constant(name, value))

    def record_float_const(self, name: str, value: float):
        self._record_constant(Constant(name, value))

    def record_typed_const(self, name: str, typ: DebugType, value: int):
        self._record_constant(Constant(name, value, typ))

    # Type construction

    def make_indirect_type(self, slot: SlotRef, name: Optional[str]) -> DebugType:
        return DebugType(TypeKind.INDIRECT, name=name, slot=slot)

    def make_void_type(self) -> DebugType:
        return DebugType(TypeKind.VOID)

    def make_int_type(self, size: int, unsigned: bool) -> DebugType:
        return DebugType(TypeKind.INT, size=size, unsigned=unsigned)

    def make_float_type(self, size: int) -> DebugType:
        return DebugType(TypeKind.FLOAT, size=size)

    def make_bool_type(self, size: int) -> DebugType:
        return DebugType(TypeKind.BOOL, size=size)

    def make_complex_type(self, size: int) -> DebugType:
        return DebugType(TypeKind.COMPLEX, size=size)

    def make_pointer_type(self, target: DebugType) -> DebugType:
        return DebugType(TypeKind.POINTER, target=target)

    def make_reference_type(self, target: DebugType) -> DebugType:
        return DebugType(TypeKind.REFERENCE, target=target)

    def make_const_type(self, target: DebugType) -> DebugType:
        return DebugType(TypeKind.CONST, target=target)

    def make_volatile_type(self, target: DebugType) -> DebugType:
        return DebugType(TypeKind.VOLATILE, target=target)

    def make_function_type(
        self, return_type: DebugType, args: Optional[list[DebugType]], varargs: bool
    ) -> DebugType:
        return DebugType(TypeKind.FUNCTION, target=return_type, args=args, varargs=varargs)

    def make_method_type(
        self,
        return_type: DebugType,
        domain: Optional[DebugType],
        args: Optional[list[DebugType]],
        varargs: bool,
    ) -> DebugType:
        return DebugType(
            TypeKind.METHOD, target=return_type, domain=domain, args=args, varargs=varargs
        )

    def make_offset_type(self, base: DebugType, target: DebugType) -> DebugType:
        return DebugType(TypeKind.OFFSET, domain=base, target=target)

    def make_range_type(self, index_type: DebugType, lower: int, upper: int) -> DebugType:
        return DebugType(TypeKind.RANGE, index_type=index_type, lower=lower, upper=upper)

    def make_array_type(
        self, element: DebugType, index_type: DebugType, lower: int, upper: int, stringp: bool
    ) -> DebugType:
        return DebugType(
            TypeKind.ARRAY,
            target=element,
            index_type=index_type,
            lower=lower,
            upper=upper,
            stringp=stringp,
        )

    def make_set_type(self, target: DebugType, bitstringp: bool) -> DebugType:
        return DebugType(TypeKind.SET, target=target, stringp=bitstringp)

    def make_enum_type(self, names: list[str], values: list[int]) -> DebugType:
        return DebugType(TypeKind.ENUM, enumerators=list(zip(names, values)))

    def make_struct_type(self, structp: bool, size: int, fields: list[DebugField]) -> DebugType:
        kind = TypeKind.STRUCT if structp else TypeKind.UNION
        return DebugType(kind, size=size, fields=fields)

    def make_object_type(
        self,
        structp: bool,
        size: int,
        fields: list[DebugField],
        baseclasses: Optional[list[BaseClass]],
        methods: Optional[list[Method]],
        vptrbase: Optional[DebugType],
        ownvptr: bool,
    ) -> DebugType:
        kind = TypeKind.CLASS if structp else TypeKind.UNION_CLASS
        return DebugType(
            kind,
            size=size,
            fields=fields,
            baseclasses=baseclasses,
            methods=methods,
            vptrbase=vptrbase,
            ownvptr=ownvptr,
        )

    def make_undefined_tagged_type(self, name: str, kind: TypeKind) -> DebugType:
        fields = None if kind == TypeKind.ENUM else []
        return self.tag_type(name, DebugType(kind, fields=fields, incomplete=True))

    def make_field(
        self, name: str, typ: DebugType, bitpos: int, bitsize: int, visibility: Visibility
    ) -> DebugField:
        return DebugField(name, typ, bitpos, bitsize, visibility)

    def make_static_member(
        self, name: str, typ: DebugType, physname: str, visibility: Visibility
    ) -> DebugField:
        return DebugField(name, typ, visibility=visibility, physname=physname)

    def make_baseclass(
        self, typ: DebugType, bitpos: int, is_virtual: bool, visibility: Visibility
    ) -> BaseClass:
        return BaseClass(typ, bitpos, is_virtual, visibility)

    def make_method(self, name: str, variants: list[MethodVariant]) -> Method:
        return Method(name, variants)

    def make_method_variant(
        self,
        physname: str,
        typ: DebugType,
        visibility: Visibility,
        constp: bool,
        volatilep: bool,
        voffset: int,
        context: Optional[DebugType],
    ) -> MethodVariant:
        return MethodVariant(physname, typ, visibility, constp, volatilep, voffset, context)

    def make_static_method_variant(
        self, physname: str, typ: DebugType, visibility: Visibility, constp: bool, volatilep: bool
    ) -> MethodVariant:
        return MethodVariant(physname, typ, visibility, constp, volatilep, is_static=True)

    def name_type(self, name: str, typ: DebugType) -> DebugType:
        named = DebugType(TypeKind.NAMED, name=name, target=typ)
        if self._unit is not None:
            self._unit.named_types[name] = named
        return named

    def tag_type(self, name: str, typ: DebugType) -> DebugType:
        tagged = DebugType(TypeKind.TAGGED, name=name, target=typ)
        if self._unit is not None:
            self._unit.tagged_types[name] = tagged
        return tagged

    def record_type_size(self, typ: DebugType, size: int):
        typ = typ.resolve()
        if typ.size and typ.size != size:
            logger.debug(f"type size {typ.size} overridden by {size}")
        typ.size = size

    # Queries

    def find_named_type(self, name: str) -> Optional[DebugType]:
        if self._unit is None:
            return None
        return self._unit.named_types.get(name)

    def find_tagged_type(self, name: str, kind: TypeKind) -> Optional[DebugType]:
        for unit in reversed(self.units):
            tagged = unit.tagged_types.get(name)
            if tagged is None:
                continue
            if kind == TypeKind.ILLEGAL or self.get_type_kind(tagged) == kind:
                return tagged
        return None

    def get_type_kind(self, typ: DebugType) -> TypeKind:
        return typ.real().kind

    def get_type_name(self, typ: DebugType) -> Optional[str]:
        typ = typ.resolve()
        if typ.kind in (TypeKind.NAMED, TypeKind.TAGGED, TypeKind.INDIRECT):
            return typ.name
        return None

    def get_return_type(self, typ: DebugType) -> Optional[DebugType]:
        typ = typ.real()
        if typ.kind not in (TypeKind.FUNCTION, TypeKind.METHOD):
            return None
        return typ.target

    def get_parameter_types(self, typ: DebugType) -> tuple[Optional[list[DebugType]], bool]:
        typ = typ.real()
        if typ.kind not in (TypeKind.FUNCTION, TypeKind.METHOD):
            return None, False
        return typ.args, typ.varargs

    def get_fields(self, typ: DebugType) -> Optional[list[DebugField]]:
        typ = typ.real()
        if not typ.is_aggregate():
            return None
        return typ.fields

    def get_field_type(self, fld: DebugField) -> Optional[DebugType]:
        return fld.type
