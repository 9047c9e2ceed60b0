"""
Tests for type number bookkeeping and pending tags.
"""

import pytest

from stabs_decoder import DebugInfoBuilder, StabsStructureError, TypeKind
from stabs_decoder.registry import TagList, TypeRegistry, TypeSlotTable
from stabs_decoder.debug_info import TypeArena


@pytest.fixture
def registry(builder: DebugInfoBuilder) -> TypeRegistry:
    return TypeRegistry(builder)


def test_slot_table_grows_in_chunks():
    table = TypeSlotTable(TypeArena())
    assert len(table) == 0

    slot = table.slot(17)
    assert len(table) == 16
    assert table.slot(17) is slot

    table.slot(3)
    assert len(table) == 32
    assert table.slot(3) is not slot


def test_forward_reference_resolves(registry: TypeRegistry, builder: DebugInfoBuilder):
    forward = registry.find_type((0, 5))
    assert forward.kind == TypeKind.INDIRECT
    assert str(forward) == "<unresolved>"

    int_type = builder.make_int_type(4, False)
    registry.record_type((0, 5), int_type)

    assert forward.resolve() is int_type
    assert registry.find_type((0, 5)) is int_type


def test_file_number_out_of_range(registry: TypeRegistry):
    with pytest.raises(StabsStructureError, match="Type file number 1 out of range"):
        registry.find_type((1, 0))
    with pytest.raises(StabsStructureError):
        registry.find_slot((-1, 0))


def test_index_number_out_of_range(registry: TypeRegistry):
    registry.push_bincl("a.h", 1)
    with pytest.raises(StabsStructureError, match="Type index number -3 out of range"):
        registry.find_type((1, -3))
    with pytest.raises(StabsStructureError, match="Type index number -1 out of range"):
        registry.record_type((1, -1), registry.find_type((0, -1)))


def test_xcoff_types(registry: TypeRegistry):
    int_type = registry.find_type((0, -1))
    assert int_type.kind == TypeKind.NAMED
    assert int_type.name == "int"
    assert str(int_type.real()) == "int32"
    assert registry.find_type((0, -1)) is int_type

    assert str(registry.xcoff_type(-32).real()) == "uint64"
    assert registry.xcoff_type(-16).real().kind == TypeKind.BOOL


@pytest.mark.parametrize("typenum", [0, -35, -100])
def test_xcoff_type_out_of_range(registry: TypeRegistry, typenum: int):
    with pytest.raises(StabsStructureError, match="Unrecognized XCOFF type"):
        registry.xcoff_type(typenum)


def test_xcoff_stringptr_is_unsupported(registry: TypeRegistry):
    with pytest.raises(StabsStructureError, match="stringptr"):
        registry.xcoff_type(-19)


def test_include_files(registry: TypeRegistry, builder: DebugInfoBuilder):
    outer = registry.push_bincl("outer.h", 1)
    inner = registry.push_bincl("inner.h", 2)
    assert (outer.file_index, inner.file_index) == (1, 2)
    assert registry.files == 3

    typ = builder.make_void_type()
    registry.record_type((2, 0), typ)
    assert registry.find_type((2, 0)) is typ

    assert registry.pop_bincl() == "outer.h"
    assert registry.pop_bincl() is None
    # Nothing left to close.
    assert registry.pop_bincl() is None


def test_reset_unit_forgets_files(registry: TypeRegistry):
    registry.push_bincl("a.h", 1)
    registry.pop_bincl()
    registry.reset_unit()

    assert registry.files == 1
    with pytest.raises(StabsStructureError):
        registry.find_type((1, 0))


def test_excluded_include_reuses_types(registry: TypeRegistry, builder: DebugInfoBuilder):
    registry.push_bincl("a.h", 42)
    typ = builder.make_float_type(8)
    registry.record_type((1, 3), typ)
    registry.pop_bincl()

    registry.reset_unit()
    assert registry.find_excl("a.h", 42)
    assert registry.files == 2
    assert registry.find_type((1, 3)) is typ


def test_unknown_excluded_include(registry: TypeRegistry, log_warnings: list[str]):
    assert not registry.find_excl("missing.h", 7)
    # The file number still exists, with no types.
    assert registry.files == 2
    assert registry.find_type((1, 0)).kind == TypeKind.INDIRECT
    assert any("Undefined N_EXCL" in message for message in log_warnings)


def test_redefinition_replaces_type(registry: TypeRegistry, builder: DebugInfoBuilder):
    first = builder.make_int_type(2, False)
    second = builder.make_int_type(8, False)
    registry.record_type((0, 1), first)
    registry.record_type((0, 1), second)
    assert registry.find_type((0, 1)) is second


def test_tag_defined_later(builder: DebugInfoBuilder):
    tags = TagList(builder, TypeArena())
    first = tags.reference_tag("node", TypeKind.STRUCT)
    second = tags.reference_tag("node", TypeKind.ILLEGAL)
    assert first is second
    assert "node" in tags and len(tags) == 1

    node = builder.tag_type("node", builder.make_struct_type(True, 4, []))
    assert tags.define_tag("node", node)
    assert "node" not in tags
    assert first.resolve() is node
    assert not tags.define_tag("node", node)


def test_known_tag_is_returned(builder: DebugInfoBuilder):
    node = builder.tag_type("node", builder.make_struct_type(True, 4, []))
    tags = TagList(builder, TypeArena())
    assert tags.reference_tag("node", TypeKind.STRUCT) is node
    assert len(tags) == 0


def test_undefined_tags_on_finish(builder: DebugInfoBuilder):
    tags = TagList(builder, TypeArena())
    unknown = tags.reference_tag("mystery", TypeKind.ILLEGAL)
    color = tags.reference_tag("color", TypeKind.ENUM)
    # A later reference fixes the kind of a tag first seen without one.
    tags.reference_tag("later", TypeKind.ILLEGAL)
    later = tags.reference_tag("later", TypeKind.UNION)

    tags.finish()

    assert len(tags) == 0
    assert unknown.real().kind == TypeKind.STRUCT
    assert unknown.real().incomplete
    assert color.real().kind == TypeKind.ENUM
    assert later.real().kind == TypeKind.UNION
    assert builder.find_tagged_type("color", TypeKind.ENUM) is not None
