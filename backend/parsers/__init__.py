"""
FlyFF item resource parsers
"""

from .diagnostics import Diagnostic, DiagnosticLog, DiagnosticSeverity
from .encoding import DecodedText, decode_bytes, detect_encoding, encode_text, clean_for_legacy_save
from .define_item import DefineTable, DefineTableParser
from .mdl_dyna import ModelRegistry, ModelRegistryEntry, ModelRegistryParser
from .prop_item import StringPairEntry, StringPairParser, StringPairTable, canonical_key
from .spec_item import (
    ItemEffect, ItemRecord, ItemTable, ItemTableParser, SetEffectRef,
    serialize_item_table
)

__all__ = [
    # Diagnostics
    'Diagnostic', 'DiagnosticLog', 'DiagnosticSeverity',

    # Encoding
    'DecodedText', 'decode_bytes', 'detect_encoding', 'encode_text', 'clean_for_legacy_save',

    # Resource files
    'DefineTable', 'DefineTableParser',
    'ModelRegistry', 'ModelRegistryEntry', 'ModelRegistryParser',
    'StringPairEntry', 'StringPairParser', 'StringPairTable', 'canonical_key',
    'ItemEffect', 'ItemRecord', 'ItemTable', 'ItemTableParser', 'SetEffectRef',
    'serialize_item_table',
]
