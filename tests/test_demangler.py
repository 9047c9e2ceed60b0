"""
Tests for the argument-type demanglers.
"""

from dataclasses import dataclass

import pytest

from stabs_decoder import (
    BuiltinType,
    DebugInfoBuilder,
    DecoderConfig,
    DemangleError,
    LegacyDemangler,
    TypeKind,
)
from stabs_decoder.debug_info import TypeArena, Visibility
from stabs_decoder.registry import TagList


def make_demangler(sink: DebugInfoBuilder, config: DecoderConfig = DecoderConfig()):
    tags = TagList(sink, TypeArena())
    return LegacyDemangler(sink, tags, config), tags


def format_args(args, varargs: bool) -> str:
    texts = [str(arg) for arg in args]
    if varargs:
        texts.append("...")
    return ", ".join(texts)


@dataclass
class CaseData:
    input: str
    expected: str
    physname_len: int = 0

    def test(self):
        """
        Demangle the input into a fresh builder and verify the printed arguments.
        """
        sink = DebugInfoBuilder()
        sink.set_filename("test.cc")
        demangler, _ = make_demangler(sink)
        try:
            args, varargs = demangler.demangle_argtypes(self.input, self.physname_len)
        except Exception as e:
            raise AssertionError(f"Failed on input `{self.input}`") from e

        actual = format_args(args, varargs)
        assert self.expected == actual, (
            "\n" f"Input:    {self.input}\n" f"Expected: {self.expected}\n" f"Actual:   {actual}\n"
        )


def test_basic():
    """
    Test plain functions and methods with fundamental argument types.
    """
    test_data = [
        CaseData(input="foo__Fi", expected="int32"),
        CaseData(input="textShake__FiPi", expected="int32, int32 *"),
        CaseData(input="Check__6UArrayi", expected="int32"),
        CaseData(input="Round__Ff", expected="float32"),
        CaseData(input="Scale__Fd", expected="float64"),
        CaseData(input="Test__Fb", expected="bool32"),
        CaseData(input="Wide__Fw", expected="uint16"),
        CaseData(input="Big__Fx", expected="int64"),
        CaseData(input="Bytes__3FooUcSc", expected="uint8, int8"),
        CaseData(input="Shorts__FsUs", expected="int16, uint16"),
        CaseData(input="saveOnQuitOverlay__Fv", expected="void"),
    ]

    for case in test_data:
        case.test()


def test_qualifiers_and_derived_types():
    test_data = [
        CaseData(input="puts__FPCc", expected="const int8 *"),
        CaseData(input="printf__FPCce", expected="const int8 *, ..."),
        CaseData(input="set__FRCi", expected="const int32 &"),
        CaseData(input="poke__FPVi", expected="volatile int32 *"),
        CaseData(input="fill__FA10_i", expected="int32 [0..10]"),
        CaseData(input="apply__FPFi_v", expected="void (int32) *"),
        CaseData(input="member__FM3FooFi_v", expected="void (int32)"),
        CaseData(input="offset__FO3Foo_i", expected="offset"),
    ]

    for case in test_data:
        case.test()


def test_back_references():
    """
    `T` repeats one remembered type; `N` repeats one several times.
    """
    test_data = [
        CaseData(input="f__FiT0", expected="int32, int32"),
        CaseData(input="f__FiN20", expected="int32, int32, int32"),
        CaseData(input="f__FfiT1", expected="float32, int32, int32"),
        CaseData(input="Check__6UArrayiT0", expected="int32, UArray"),
        CaseData(input="f__FPcN11_0", expected="int8 *" + ", int8 *" * 11),
    ]

    for case in test_data:
        case.test()


def test_class_names():
    test_data = [
        CaseData(input="f__FP3Foo", expected="Foo *"),
        CaseData(input="f__FQ23Foo3Bar", expected="Bar"),
        CaseData(input="f__FQ_2_3Foo3Bar", expected="Bar"),
        CaseData(input="f__FG3Foo", expected="Foo"),
    ]

    for case in test_data:
        case.test()


def test_templates():
    """
    Template classes are referenced by their printed names.
    """
    test_data = [
        CaseData(input="f__FPt3Foo1Zi", expected="Foo<int> *"),
        CaseData(input="f__Ft3Bar2Zii5", expected="Bar<int,5>"),
        CaseData(input="f__Ft3Bar2Zib1", expected="Bar<int,true>"),
        CaseData(input="f__Ft3Bar1im3", expected="Bar<-3>"),
        CaseData(input="f__Ft3Bar1Zt3Foo1Zi", expected="Bar<Foo<int> >"),
    ]

    for case in test_data:
        case.test()


def test_prefixes():
    """
    Constructors, names known by length and conversion operators.
    """
    test_data = [
        CaseData(input="__3Fooi", expected="int32"),
        CaseData(input="__Q23Foo3Bari", expected="int32"),
        CaseData(input="bar__3Fooi", expected="int32", physname_len=3),
        CaseData(input="a__b__3Fooi", expected="int32", physname_len=4),
        CaseData(input="type$i__3Foo", expected=""),
        CaseData(input="__op3Bar__3Foo", expected=""),
        CaseData(input="get__C3Foo", expected=""),
        CaseData(input="make__S3Fooi", expected="int32"),
    ]

    for case in test_data:
        case.test()


@pytest.mark.parametrize(
    "physname",
    [
        "foo",
        "f__",
        "f__FT5",
        "f__FN21",
        "f__F_",
        "f__FA10i",
        "f__FFi",
        "f__FM3FooXi_v",
        "f__Ft3Bar1b2",
        "f__FQ03Foo",
    ],
)
def test_bad_names(physname: str, log_warnings: list[str]):
    sink = DebugInfoBuilder()
    sink.set_filename("test.cc")
    demangler, _ = make_demangler(sink)

    with pytest.raises(DemangleError):
        demangler.demangle_argtypes(physname)
    assert any("bad mangled name" in message for message in log_warnings)


def test_named_types_are_preferred(builder: DebugInfoBuilder):
    int_type = builder.name_type("int", builder.make_int_type(4, False))
    uint_type = builder.name_type("unsigned int", builder.make_int_type(4, True))
    demangler, _ = make_demangler(builder)

    args, varargs = demangler.demangle_argtypes("f__FiUi")

    assert args == [int_type, uint_type]
    assert not varargs


def test_classes_become_tags(builder: DebugInfoBuilder):
    demangler, tags = make_demangler(builder)

    args, _ = demangler.demangle_argtypes("f__FR3FooP3Foo")

    assert "Foo" in tags
    assert args[0].kind == TypeKind.REFERENCE
    assert args[0].target is args[1].target

    tags.finish()
    foo = args[0].target.real()
    assert foo.kind == TypeKind.STRUCT
    assert foo.incomplete


def test_state_is_reset_between_names(builder: DebugInfoBuilder):
    demangler, _ = make_demangler(builder)
    demangler.demangle_argtypes("f__Fi")

    # T0 would refer to the `i` of the previous name if the table survived.
    with pytest.raises(DemangleError):
        demangler.demangle_argtypes("g__FT0")


@dataclass
class V3CaseData:
    input: str
    expected: str

    def test(self, config: DecoderConfig = DecoderConfig()):
        sink = DebugInfoBuilder()
        sink.set_filename("test.cc")
        demangler, _ = make_demangler(sink, config)
        try:
            args, varargs = demangler.demangle_argtypes(self.input)
        except Exception as e:
            raise AssertionError(f"Failed on input `{self.input}`") from e

        actual = format_args(args, varargs)
        assert self.expected == actual, (
            "\n" f"Input:    {self.input}\n" f"Expected: {self.expected}\n" f"Actual:   {actual}\n"
        )


def test_v3_names():
    test_data = [
        V3CaseData(input="_ZN3Foo3barEi", expected="int32"),
        V3CaseData(input="_ZN3Foo3barEv", expected=""),
        V3CaseData(input="_ZNK3Foo3getEv", expected=""),
        V3CaseData(input="_ZN3Foo3barEPKc", expected="const int8 *"),
        V3CaseData(input="_Z3fooiz", expected="int32, ..."),
        V3CaseData(input="_Z3barR3Foo", expected="Foo &"),
        V3CaseData(input="_Z3barPVi", expected="volatile int32 *"),
        V3CaseData(input="_Z3bar3FooIiE", expected="Foo<int>"),
        V3CaseData(input="_Z3barN2ns3FooE", expected="Foo"),
        V3CaseData(input="_Z3barPFivE", expected="int32 () *"),
        V3CaseData(input="_Z3barmyb", expected="uint32, uint64, bool8"),
    ]

    for case in test_data:
        case.test()


def test_default_config():
    config = DecoderConfig()
    assert config.demangle_ansi
    assert config.v3_builtins["int"] == BuiltinType(TypeKind.INT, 4, False)
    assert DecoderConfig().v3_builtins is config.v3_builtins


def test_v3_builtin_widths_are_configurable():
    config = DecoderConfig().with_builtins({"unsigned long": BuiltinType(TypeKind.INT, 8, True)})
    V3CaseData(input="_Z3foom", expected="uint64").test(config)
    assert DecoderConfig().v3_builtins["unsigned long"].size == 4


@pytest.mark.parametrize(
    "physname, message",
    [
        ("_ZN3Foo3barE", "not a function"),
        ("_Z3fooA10_i", "Unrecognized demangle component"),
        ("_Z3fooDh", "Unrecognized v3 builtin"),
        ("_Z", "Failed to demangle"),
    ],
)
def test_v3_failures(physname: str, message: str, log_warnings: list[str]):
    sink = DebugInfoBuilder()
    sink.set_filename("test.cc")
    demangler, _ = make_demangler(sink)

    with pytest.raises(DemangleError):
        demangler.demangle_argtypes(physname)
    assert any(message in warning for warning in log_warnings)


def test_v3_nested_names_use_context_fields(builder: DebugInfoBuilder):
    inner = builder.tag_type("Inner", builder.make_struct_type(True, 4, []))
    outer = builder.tag_type(
        "Outer",
        builder.make_struct_type(
            True, 4, [builder.make_field("in", inner, 0, 32, Visibility.PUBLIC)]
        ),
    )
    demangler, _ = make_demangler(builder)

    args, _ = demangler.demangle_argtypes("_Z1fN5Outer5InnerE")

    assert args == [inner]
    assert outer.real().fields[0].type is inner
