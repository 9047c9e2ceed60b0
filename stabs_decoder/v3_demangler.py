"""
Argument-type demangler for Itanium C++ ABI (`_Z`) method names.

Tokenizing the name is left to `itanium_demangler`; this module walks the
component tree it returns and turns each argument into a `DebugType`.
"""

from typing import Callable, Optional

import itanium_demangler
from itanium_demangler import Node
from loguru import logger

from stabs_decoder.config import DEFAULT_CONFIG, DecoderConfig
from stabs_decoder.debug_info import DebugType, TypeKind
from stabs_decoder.errors import DemangleError
from stabs_decoder.registry import TagList
from stabs_decoder.sink import DebugSink

_VOID_ARGS = (Node("builtin", "void"),)


class V3Demangler:
    """
    Recovers the argument types of Itanium mangled names.

    Builtins are sized through `DecoderConfig.v3_builtins`; class names are
    looked up among the fields of the context class first and otherwise
    become tag references.
    """

    def __init__(self, sink: DebugSink, tags: TagList, config: DecoderConfig = DEFAULT_CONFIG):
        self._sink = sink
        self._tags = tags
        self._config = config
        self._handlers: dict[str, Callable[..., DebugType]] = {
            "name": self._name_type,
            "qual_name": self._qualified_type,
            "abi": self._abi_type,
            "builtin": self._builtin_type,
            "pointer": self._indirect_type,
            "lvalue": self._indirect_type,
            "rvalue": self._indirect_type,
            "cv_qual": self._cv_type,
            "func": self._function_type,
        }

    def demangle_argtypes(self, physname: str) -> tuple[list[DebugType], bool]:
        """
        Demangle the argument types of `physname`, returning `(args, varargs)`.
        """
        try:
            ast = itanium_demangler.parse(physname)
        except (NotImplementedError, IndexError, KeyError, ValueError) as e:
            logger.warning(f"Failed to demangle {physname!r}: {e}")
            raise DemangleError(f"Failed to demangle {physname!r}") from e

        if ast is None:
            logger.warning(f"Failed to demangle {physname!r}")
            raise DemangleError(f"Failed to demangle {physname!r}")
        if ast.kind != "func":
            logger.warning(f"Demangled name is not a function: {physname!r}")
            raise DemangleError(f"Demangled name is not a function: {physname!r}")

        return self._arglist(ast.arg_tys)

    def _arglist(self, arg_tys: tuple) -> tuple[list[DebugType], bool]:
        if arg_tys == _VOID_ARGS:
            return [], False

        args: list[DebugType] = []
        varargs = False
        for node in arg_tys:
            if node.kind == "builtin" and node.value == "...":
                varargs = True
                continue
            args.append(self._arg(node))
        return args, varargs

    def _arg(self, node, context: Optional[DebugType] = None) -> DebugType:
        """
        Convert one component of the tree into a type. `context` is the
        enclosing class when `node` is part of a qualified name.
        """
        handler = self._handlers.get(node.kind)
        if handler is None:
            logger.warning(f"Unrecognized demangle component {node.kind!r}")
            raise DemangleError(f"Unrecognized demangle component {node.kind!r}")
        return handler(node, context)

    def _name_type(self, node, context: Optional[DebugType]) -> DebugType:
        if context is not None:
            # Try to find this type by looking through the context class.
            for fld in self._sink.get_fields(context) or []:
                field_type = self._sink.get_field_type(fld)
                if field_type is None:
                    raise DemangleError(f"Field of {node.value!r} context has no type")
                if self._sink.get_type_name(field_type) == node.value:
                    return field_type

        return self._tags.reference_tag(node.value, TypeKind.ILLEGAL)

    def _qualified_type(self, node, context: Optional[DebugType]) -> DebugType:
        parts = node.value
        for i, part in enumerate(parts):
            if part.kind == "tpl_args":
                continue
            if i + 1 < len(parts) and parts[i + 1].kind == "tpl_args":
                # Templates are only known by their printed name.
                text = str(Node("qual_name", parts[: i + 2]))
                context = self._tags.reference_tag(text, TypeKind.CLASS)
            else:
                context = self._arg(part, context)
        return context

    def _abi_type(self, node, context: Optional[DebugType]) -> DebugType:
        return self._arg(node.value, context)

    def _builtin_type(self, node, context: Optional[DebugType]) -> DebugType:
        builtin = self._config.v3_builtins.get(node.value)
        if builtin is None:
            logger.warning(f"Unrecognized v3 builtin type {node.value!r}")
            raise DemangleError(f"Unrecognized v3 builtin type {node.value!r}")

        if builtin.kind == TypeKind.VOID:
            return self._sink.make_void_type()
        if builtin.kind == TypeKind.BOOL:
            return self._sink.make_bool_type(builtin.size)
        if builtin.kind == TypeKind.FLOAT:
            return self._sink.make_float_type(builtin.size)
        return self._sink.make_int_type(builtin.size, builtin.unsigned)

    def _indirect_type(self, node, context: Optional[DebugType]) -> DebugType:
        target = self._arg(node.value)
        if node.kind == "pointer":
            return self._sink.make_pointer_type(target)
        return self._sink.make_reference_type(target)

    def _cv_type(self, node, context: Optional[DebugType]) -> DebugType:
        typ = self._arg(node.value)
        if "const" in node.qual:
            typ = self._sink.make_const_type(typ)
        if "volatile" in node.qual:
            typ = self._sink.make_volatile_type(typ)
        return typ

    def _function_type(self, node, context: Optional[DebugType]) -> DebugType:
        if node.ret_ty is None:
            return_type = self._sink.make_void_type()
        else:
            return_type = self._arg(node.ret_ty)
        args, varargs = self._arglist(node.arg_tys)
        return self._sink.make_function_type(return_type, args, varargs)
