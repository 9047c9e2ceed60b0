"""
Python package which decodes STABS debugging information into a generic
debug-information model.
"""

from stabs_decoder.builder import DebugInfoBuilder
from stabs_decoder.config import DEFAULT_CONFIG, BuiltinType, DecoderConfig
from stabs_decoder.debug_info import DebugType, TypeKind
from stabs_decoder.decoder import StabsDecoder, decode_stabs, start_session
from stabs_decoder.demangler import LegacyDemangler
from stabs_decoder.errors import BadStabError, DemangleError, StabsError, StabsStructureError
from stabs_decoder.records import StabKind, StabRecord, SymbolTable, read_objdump_stabs
from stabs_decoder.sink import DebugSink
from stabs_decoder.v3_demangler import V3Demangler

__all__ = [
    "decode_stabs",
    "start_session",
    "StabsDecoder",
    "DebugSink",
    "DebugInfoBuilder",
    "DebugType",
    "TypeKind",
    "DecoderConfig",
    "DEFAULT_CONFIG",
    "BuiltinType",
    "LegacyDemangler",
    "V3Demangler",
    "StabKind",
    "StabRecord",
    "SymbolTable",
    "read_objdump_stabs",
    "StabsError",
    "BadStabError",
    "StabsStructureError",
    "DemangleError",
]
