"""
Interface between the decoder and the debug-information builder it populates.

The decoder never stores program entities itself: every compilation unit,
function, block, variable and type is handed to a `DebugSink`. The few
queries the decoder needs (named types, tags, parameter lists, fields) go
through the same interface.
"""

from abc import ABC, abstractmethod
from typing import Optional

from stabs_decoder.debug_info import (
    BaseClass,
    DebugField,
    DebugType,
    Method,
    MethodVariant,
    ParmKind,
    SlotRef,
    TypeKind,
    VarKind,
    Visibility,
)


class DebugSink(ABC):
    # Program structure

    @abstractmethod
    def set_filename(self, name: str):
        """Start a new compilation unit whose main source is `name`."""

    @abstractmethod
    def start_source(self, name: str):
        """Switch the current source file (include files, `#line`)."""

    @abstractmethod
    def record_function(self, name: str, typ: DebugType, is_global: bool, address: int):
        pass

    @abstractmethod
    def end_function(self, address: Optional[int]):
        pass

    @abstractmethod
    def start_block(self, address: int):
        pass

    @abstractmethod
    def end_block(self, address: int):
        pass

    @abstractmethod
    def record_line(self, lineno: int, address: int):
        pass

    @abstractmethod
    def start_common_block(self, name: str):
        pass

    @abstractmethod
    def end_common_block(self, name: str):
        pass

    @abstractmethod
    def record_variable(self, name: str, typ: DebugType, kind: VarKind, value: int):
        pass

    @abstractmethod
    def record_parameter(self, name: str, typ: DebugType, kind: ParmKind, value: int):
        pass

    @abstractmethod
    def record_label(self, name: str, typ: DebugType, value: int):
        pass

    @abstractmethod
    def record_int_const(self, name: str, value: int):
        pass

    @abstractmethod
    def record_float_const(self, name: str, value: float):
        pass

    @abstractmethod
    def record_typed_const(self, name: str, typ: DebugType, value: int):
        pass

    # Type construction

    @abstractmethod
    def make_indirect_type(self, slot: SlotRef, name: Optional[str]) -> DebugType:
        """Make a placeholder which resolves to whatever `slot` later holds."""

    @abstractmethod
    def make_void_type(self) -> DebugType:
        pass

    @abstractmethod
    def make_int_type(self, size: int, unsigned: bool) -> DebugType:
        pass

    @abstractmethod
    def make_float_type(self, size: int) -> DebugType:
        pass

    @abstractmethod
    def make_bool_type(self, size: int) -> DebugType:
        pass

    @abstractmethod
    def make_complex_type(self, size: int) -> DebugType:
        pass

    @abstractmethod
    def make_pointer_type(self, target: DebugType) -> DebugType:
        pass

    @abstractmethod
    def make_reference_type(self, target: DebugType) -> DebugType:
        pass

    @abstractmethod
    def make_const_type(self, target: DebugType) -> DebugType:
        pass

    @abstractmethod
    def make_volatile_type(self, target: DebugType) -> DebugType:
        pass

    @abstractmethod
    def make_function_type(
        self, return_type: DebugType, args: Optional[list[DebugType]], varargs: bool
    ) -> DebugType:
        pass

    @abstractmethod
    def make_method_type(
        self,
        return_type: DebugType,
        domain: Optional[DebugType],
        args: Optional[list[DebugType]],
        varargs: bool,
    ) -> DebugType:
        """`args` is None for a stub whose arguments are not yet known."""

    @abstractmethod
    def make_offset_type(self, base: DebugType, target: DebugType) -> DebugType:
        pass

    @abstractmethod
    def make_range_type(self, index_type: DebugType, lower: int, upper: int) -> DebugType:
        pass

    @abstractmethod
    def make_array_type(
        self, element: DebugType, index_type: DebugType, lower: int, upper: int, stringp: bool
    ) -> DebugType:
        pass

    @abstractmethod
    def make_set_type(self, target: DebugType, bitstringp: bool) -> DebugType:
        pass

    @abstractmethod
    def make_enum_type(self, names: list[str], values: list[int]) -> DebugType:
        pass

    @abstractmethod
    def make_struct_type(self, structp: bool, size: int, fields: list[DebugField]) -> DebugType:
        pass

    @abstractmethod
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
        pass

    @abstractmethod
    def make_undefined_tagged_type(self, name: str, kind: TypeKind) -> DebugType:
        pass

    @abstractmethod
    def make_field(
        self, name: str, typ: DebugType, bitpos: int, bitsize: int, visibility: Visibility
    ) -> DebugField:
        pass

    @abstractmethod
    def make_static_member(
        self, name: str, typ: DebugType, physname: str, visibility: Visibility
    ) -> DebugField:
        pass

    @abstractmethod
    def make_baseclass(
        self, typ: DebugType, bitpos: int, is_virtual: bool, visibility: Visibility
    ) -> BaseClass:
        pass

    @abstractmethod
    def make_method(self, name: str, variants: list[MethodVariant]) -> Method:
        pass

    @abstractmethod
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
        pass

    @abstractmethod
    def make_static_method_variant(
        self, physname: str, typ: DebugType, visibility: Visibility, constp: bool, volatilep: bool
    ) -> MethodVariant:
        pass

    @abstractmethod
    def name_type(self, name: str, typ: DebugType) -> DebugType:
        """Give `typ` a typedef name and return the named type."""

    @abstractmethod
    def tag_type(self, name: str, typ: DebugType) -> DebugType:
        """Give `typ` a struct/union/enum tag and return the tagged type."""

    @abstractmethod
    def record_type_size(self, typ: DebugType, size: int):
        pass

    # Queries

    @abstractmethod
    def find_named_type(self, name: str) -> Optional[DebugType]:
        pass

    @abstractmethod
    def find_tagged_type(self, name: str, kind: TypeKind) -> Optional[DebugType]:
        """`kind` ILLEGAL matches a tag of any kind."""

    @abstractmethod
    def get_type_kind(self, typ: DebugType) -> TypeKind:
        pass

    @abstractmethod
    def get_type_name(self, typ: DebugType) -> Optional[str]:
        pass

    @abstractmethod
    def get_return_type(self, typ: DebugType) -> Optional[DebugType]:
        pass

    @abstractmethod
    def get_parameter_types(self, typ: DebugType) -> tuple[Optional[list[DebugType]], bool]:
        """Return `(args, varargs)`; `args` is None for a method stub."""

    @abstractmethod
    def get_fields(self, typ: DebugType) -> Optional[list[DebugField]]:
        pass

    @abstractmethod
    def get_field_type(self, fld: DebugField) -> Optional[DebugType]:
        pass
