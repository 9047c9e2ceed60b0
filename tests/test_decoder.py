"""
Tests for the record dispatcher.
"""

import pytest

from stabs_decoder import (
    BadStabError,
    DebugInfoBuilder,
    StabKind,
    StabRecord,
    StabsDecoder,
    StabsStructureError,
    SymbolTable,
    TypeKind,
    decode_stabs,
)
from stabs_decoder.debug_info import LineEntry, ParmKind, VarKind

INT_TYPE = StabRecord(StabKind.N_LSYM, 0, 0, "int:t1=r1;-2147483648;2147483647;")


def so(name: str, value: int = 0) -> StabRecord:
    return StabRecord(StabKind.N_SO, 0, value, name)


def lsym(text: str, value: int = 0) -> StabRecord:
    return StabRecord(StabKind.N_LSYM, 0, value, text)


def decode(records, **kwargs) -> DebugInfoBuilder:
    return decode_stabs(records, DebugInfoBuilder(), **kwargs)


def test_compilation_unit():
    builder = decode(
        [
            so("/src/", 0x100),
            so("point.c", 0x100),
            INT_TYPE,
            lsym("Point:T2=s8x:1,0,32;y:1,32,32;;"),
            StabRecord(StabKind.N_FUN, 0, 0x100, "main:F1"),
            StabRecord(StabKind.N_PSYM, 0, 8, "argc:p1"),
            lsym("i:1", -4),
            StabRecord(StabKind.N_LBRAC, 0, 0x10),
            StabRecord(StabKind.N_SLINE, 5, 0x14),
            StabRecord(StabKind.N_RBRAC, 0, 0x20),
            StabRecord(StabKind.N_FUN, 0, 0x30),
            StabRecord(StabKind.N_GSYM, 0, 0, "count:G1"),
            so("", 0x200),
        ],
        sections=True,
        symbols=SymbolTable({"_count": 0x2000}, leading_char="_"),
    )

    (unit,) = builder.units
    assert unit.name == "/src/point.c"
    assert sorted(unit.named_types) == ["int"]
    point = unit.tagged_types["Point"].real()
    assert point.kind == TypeKind.STRUCT
    assert [f.name for f in point.fields] == ["x", "y"]

    (main,) = unit.functions
    assert main.name == "main" and main.is_global
    assert (main.start, main.end) == (0x100, 0x130)
    assert str(main.type) == "int"

    (argc,) = main.parameters
    assert (argc.name, argc.kind, argc.value) == ("argc", ParmKind.STACK, 8)

    (block,) = main.body.blocks
    assert (block.start, block.end) == (0x110, 0x120)
    assert [(v.name, v.kind, v.value) for v in block.variables] == [("i", VarKind.LOCAL, -4)]

    assert unit.lines == [LineEntry("/src/point.c", 5, 0x114)]
    assert [(v.name, v.kind, v.value) for v in unit.variables] == [
        ("count", VarKind.GLOBAL, 0x2000)
    ]


def test_symbol_table_addresses_are_relative():
    builder = decode(
        [
            so("a.c", 0x1000),
            INT_TYPE,
            StabRecord(StabKind.N_FUN, 0, 0x1040, "f:f1"),
            StabRecord(StabKind.N_LBRAC, 0, 0x8),
            StabRecord(StabKind.N_SLINE, 3, 0x1044),
            StabRecord(StabKind.N_RBRAC, 0, 0x10),
            StabRecord(StabKind.N_FUN, 0, 0x20),
        ]
    )

    (f,) = builder.units[0].functions
    assert not f.is_global
    block = f.body.blocks[0]
    assert (block.start, block.end) == (0x1008, 0x1010)
    assert builder.units[0].lines[0].address == 0x1044
    # Outside .stab sections the end record is already absolute.
    assert f.end == 0x20


def test_pending_variables_keep_their_order():
    builder = decode(
        [
            so("a.c"),
            INT_TYPE,
            StabRecord(StabKind.N_FUN, 0, 0, "f:F1"),
            lsym("a:1", -4),
            lsym("b:1", -8),
            StabRecord(StabKind.N_STSYM, 0, 0x3000, "s:V1"),
            StabRecord(StabKind.N_RSYM, 0, 3, "r:r1"),
            StabRecord(StabKind.N_LBRAC, 0, 0),
            StabRecord(StabKind.N_RBRAC, 0, 0x10),
        ]
    )

    function = builder.units[0].functions[0]
    block = function.body.blocks[0]
    assert [v.name for v in block.variables] == ["a", "b", "s", "r"]
    assert block.variables[3].kind == VarKind.REGISTER
    # The session was finished with the function still open.
    assert function.end is None


def test_sunpro_variables_follow_the_block():
    builder = decode(
        [
            so("a.c"),
            StabRecord(StabKind.N_OPT, 0, 0, "V=2.0;DBG_GEN=4.14.14;"),
            INT_TYPE,
            StabRecord(StabKind.N_FUN, 0, 0, "f:F1"),
            StabRecord(StabKind.N_LBRAC, 1, 0),
            StabRecord(StabKind.N_LBRAC, 0, 4),
            lsym("a:1", -4),
            StabRecord(StabKind.N_RBRAC, 0, 8),
            StabRecord(StabKind.N_RBRAC, 1, 0x10),
            StabRecord(StabKind.N_FUN, 0, 0x10),
        ]
    )

    function = builder.units[0].functions[0]
    (block,) = function.body.blocks
    assert [v.name for v in block.variables] == ["a"]


def test_gcc_marker_keeps_variables_pending():
    decoder = StabsDecoder(DebugInfoBuilder())
    decoder.dispatch(so("a.c"))
    decoder.dispatch(StabRecord(StabKind.N_OPT, 0, 0, "gcc2_compiled."))
    assert decoder.gcc_compiled == 2
    assert not decoder.n_opt_found


def test_brackets_outside_function():
    decoder = StabsDecoder(DebugInfoBuilder())
    decoder.dispatch(so("a.c"))
    decoder.dispatch(INT_TYPE)
    with pytest.raises(StabsStructureError, match="N_LBRAC not within function"):
        decoder.dispatch(StabRecord(StabKind.N_LBRAC, 0, 0))


def test_too_many_right_brackets():
    decoder = StabsDecoder(DebugInfoBuilder())
    for record in [
        so("a.c"),
        INT_TYPE,
        StabRecord(StabKind.N_FUN, 0, 0, "f:F1"),
        StabRecord(StabKind.N_LBRAC, 0, 0),
        StabRecord(StabKind.N_RBRAC, 0, 4),
    ]:
        decoder.dispatch(record)

    with pytest.raises(StabsStructureError, match="Too many N_RBRACs"):
        decoder.dispatch(StabRecord(StabKind.N_RBRAC, 0, 8))


def test_negative_type_index_in_include_file():
    with pytest.raises(StabsStructureError, match="Type index number -3 out of range"):
        decode(
            [
                so("a.c"),
                INT_TYPE,
                StabRecord(StabKind.N_BINCL, 0, 7, "a.h"),
                lsym("x:(1,-3)"),
            ]
        )


def test_finished_session_rejects_records():
    decoder = StabsDecoder(DebugInfoBuilder())
    decoder.finish()
    with pytest.raises(StabsStructureError):
        decoder.dispatch(so("a.c"))


def test_new_function_ends_previous_one():
    builder = decode(
        [
            so("a.c"),
            INT_TYPE,
            StabRecord(StabKind.N_FUN, 0, 0x10, "f:F1"),
            # A const static in .text bounds the end of `f`.
            StabRecord(StabKind.N_FUN, 0, 0x18, "table:V1"),
            StabRecord(StabKind.N_FUN, 0, 0x20, "g:F1"),
            so("", 0x40),
        ]
    )

    f, g = builder.units[0].functions
    assert (f.start, f.end) == (0x10, 0x18)
    assert (g.start, g.end) == (0x20, 0x40)
    assert [v.name for v in f.body.variables] == ["table"]


def test_several_units_and_include_files():
    builder = decode(
        [
            so("a.c"),
            StabRecord(StabKind.N_BINCL, 0, 7, "a.h"),
            lsym("t:t(1,1)=*(1,2)=r(1,2);0;255;"),
            StabRecord(StabKind.N_EINCL, 0, 0),
            lsym("u:t2=(1,1)"),
            StabRecord(StabKind.N_SOL, 0, 0, "other.c"),
            so("b.c", 0x100),
            StabRecord(StabKind.N_EXCL, 0, 7, "a.h"),
            lsym("v:t1=(1,1)"),
        ]
    )

    first, second = builder.units
    assert first.sources == ["a.c", "a.h", "other.c"]
    t = first.named_types["t"]
    assert str(t.real()) == "uint8 *"
    assert first.named_types["u"].target is t
    assert second.name == "b.c"
    assert second.named_types["v"].target is t


def test_constants():
    builder = decode(
        [
            so("a.c"),
            lsym("color:T2=ered:0,green:1,;"),
            lsym("pi:c=r3.25;"),
            lsym("answer:c=i42;"),
            lsym("green:c=e2,1;"),
        ]
    )

    constants = builder.units[0].constants
    assert [(c.name, c.value) for c in constants] == [("pi", 3.25), ("answer", 42), ("green", 1)]
    assert constants[0].type is None
    assert constants[2].type.real().kind == TypeKind.ENUM


def test_special_names():
    builder = decode([so("a.cc"), INT_TYPE, lsym("$t:1"), lsym(":1"), lsym("$vf:1")])
    assert [v.name for v in builder.units[0].variables] == ["this", None, "$vf"]


def test_tag_and_typedef_synonym():
    builder = decode([so("a.cc"), INT_TYPE, lsym("Foo:Tt3=s4x:1,0,32;;"), lsym("f:G3")])

    unit = builder.units[0]
    assert "Foo" in unit.tagged_types
    assert unit.named_types["Foo"].target is unit.tagged_types["Foo"]
    # Type 3 now refers to the typedef.
    assert unit.variables[0].type is unit.named_types["Foo"]


def test_forward_tag_is_resolved():
    builder = decode(
        [so("a.c"), INT_TYPE, lsym("np:t3=*4=xsnode:"), lsym("node:T5=s4v:1,0,32;;")]
    )

    pointer = builder.units[0].named_types["np"].real()
    assert pointer.kind == TypeKind.POINTER
    node = pointer.target.real()
    assert node.kind == TypeKind.STRUCT
    assert not node.incomplete
    assert node.fields[0].name == "v"


def test_undefined_tag_is_completed_on_finish():
    builder = decode([so("a.c"), lsym("fleep:T20=xsfleep:")])
    fleep = builder.units[0].tagged_types["fleep"].real()
    assert fleep.kind == TypeKind.STRUCT
    assert fleep.incomplete


def test_class_with_stub_method():
    builder = decode([so("a.cc"), INT_TYPE, lsym("Foo:T20=s4x:1,0,32;bar::21=##1;:i;2A.;;")])

    foo = builder.units[0].tagged_types["Foo"].real()
    (variant,) = foo.methods[0].variants
    assert variant.physname == "bar__3Fooi"
    assert variant.type.args[0] is builder.units[0].named_types["int"]


def test_common_block():
    builder = decode(
        [
            so("a.f"),
            INT_TYPE,
            StabRecord(StabKind.N_BCOMM, 0, 0, "shared"),
            StabRecord(StabKind.N_GSYM, 0, 0, "n:G1"),
            StabRecord(StabKind.N_ECOMM, 0, 0, "shared"),
        ]
    )

    (common,) = builder.units[0].common_blocks
    assert common.name == "shared"
    assert [v.name for v in common.variables] == ["n"]


def test_parameters():
    builder = decode(
        [
            so("a.f"),
            INT_TYPE,
            StabRecord(StabKind.N_FUN, 0, 0, "f:F1"),
            StabRecord(StabKind.N_RSYM, 0, 3, "r:P1"),
            StabRecord(StabKind.N_PSYM, 0, 8, "v:v1"),
            StabRecord(StabKind.N_PSYM, 0, 12, "fn:pF1"),
            # A prototype under N_FUN declares no parameter.
            StabRecord(StabKind.N_FUN, 0, 0, "g:P1;1"),
        ]
    )

    params = builder.units[0].functions[0].parameters
    assert [(p.name, p.kind) for p in params] == [
        ("r", ParmKind.REG),
        ("v", ParmKind.REFERENCE),
        ("fn", ParmKind.STACK),
    ]
    assert str(params[2].type) == "int (?) *"


def test_records_without_debug_info_are_ignored():
    builder = decode(
        [
            so("a.c"),
            StabRecord(StabKind.N_LSYM, 0, 0, "no colon here"),
            StabRecord(StabKind.N_MAIN, 0, 0, "main"),
            lsym("ns:Yn0std;"),
        ]
    )
    assert builder.units[0].variables == []


@pytest.mark.parametrize(
    "text, message",
    [
        ("x:", "bad stab"),
        ("x:Q1", "unknown symbol descriptor"),
        ("x:c=q1", "bad stab"),
        ("x:c1", "expected '='"),
        ("ns:Yq", "bad stab"),
        ("x::y", "bad stab"),
    ],
)
def test_bad_symbols(text: str, message: str):
    decoder = StabsDecoder(DebugInfoBuilder())
    decoder.dispatch(so("a.c"))
    with pytest.raises(BadStabError, match=message):
        decoder.dispatch(lsym(text))


def test_unknown_encoded_name_warns(log_warnings: list[str]):
    builder = decode([so("a.cc"), INT_TYPE, lsym("$q:1")])
    assert builder.units[0].variables[0].name == "$q"
    assert any("unknown C++ encoded name" in message for message in log_warnings)
