"""
Encoding detection for FlyFF resource files

The client ships its text resources in a mix of UTF-8, UTF-16LE (usually
with a BOM) and plain ANSI code pages. Detection looks at the BOM first and
falls back to a zero-byte heuristic; decoding never raises.
"""

import codecs
from dataclasses import dataclass, field
from typing import List, Tuple

from .diagnostics import Diagnostic, DiagnosticLog

UTF8 = 'utf-8'
UTF16_LE = 'utf-16-le'
UTF16_BE = 'utf-16-be'

# Longest BOM first so EF BB BF is never mistaken for something shorter
BOM_TABLE: List[Tuple[bytes, str]] = [
    (codecs.BOM_UTF8, UTF8),
    (codecs.BOM_UTF16_LE, UTF16_LE),
    (codecs.BOM_UTF16_BE, UTF16_BE),
]

HEURISTIC_SAMPLE_SIZE = 100

BOM_FOR_ENCODING = {encoding: bom for bom, encoding in BOM_TABLE}


@dataclass
class DecodedText:
    """Decoded file content plus what was needed to get it"""
    text: str
    encoding: str
    bom: bytes = b''
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def had_bom(self) -> bool:
        return bool(self.bom)


def detect_encoding(data: bytes) -> Tuple[str, bytes]:
    """
    Pick a codec for raw bytes.

    Returns:
        (encoding, bom) where bom is the exact prefix to skip (may be empty)
    """
    for bom, encoding in BOM_TABLE:
        if data.startswith(bom):
            return encoding, bom

    sample = data[:HEURISTIC_SAMPLE_SIZE]
    if len(sample) >= 2 and all(byte == 0 for byte in sample[1::2]):
        return UTF16_LE, b''

    return UTF8, b''


def decode_bytes(data: bytes, legacy_encoding: str = 'cp1252', source: str = 'resource') -> DecodedText:
    """
    Decode resource bytes to text without ever raising.

    UTF-8 content that fails strict decoding is retried with the legacy
    single-byte code page, then decoded best-effort with replacement
    characters. Every fallback is reported as a warning diagnostic.
    """
    log = DiagnosticLog(source)
    if not data:
        return DecodedText('', UTF8, b'', log.entries)

    encoding, bom = detect_encoding(data)
    payload = data[len(bom):]

    try:
        return DecodedText(payload.decode(encoding), encoding, bom, log.entries)
    except UnicodeDecodeError as e:
        log.warning(f"Content is not valid {encoding} ({e.reason} at byte {e.start})")

    if encoding == UTF8 and not bom and legacy_encoding:
        try:
            text = payload.decode(legacy_encoding)
            log.warning(f"Decoded as {legacy_encoding} instead")
            return DecodedText(text, legacy_encoding, b'', log.entries)
        except (UnicodeDecodeError, LookupError) as e:
            log.warning(f"Legacy decoding with {legacy_encoding} failed: {e}")

    text = payload.decode(encoding, errors='replace')
    log.warning(f"Decoded best-effort as {encoding}; unreadable bytes were replaced")
    return DecodedText(text, encoding, bom, log.entries)


def clean_for_legacy_save(text: str) -> str:
    """Drop stray BOM and replacement characters before writing a code page file."""
    return text.replace('\ufeff', '').replace('\ufffd', '')


def encode_text(text: str, encoding: str, bom: bytes = b'', source: str = 'resource') -> Tuple[bytes, List[Diagnostic]]:
    """
    Encode text for writing.

    Characters a legacy code page cannot represent are replaced with '?'
    and reported; nothing is dropped without a warning.
    """
    log = DiagnosticLog(source)
    try:
        payload = text.encode(encoding)
    except UnicodeEncodeError as e:
        unmappable = sum(1 for ch in text if not _encodable(ch, encoding))
        log.warning(
            f"{unmappable} character(s) cannot be represented in {encoding} "
            f"(first: {text[e.start]!r}); replaced with '?'"
        )
        payload = text.encode(encoding, errors='replace')
    return bom + payload, log.entries


def _encodable(ch: str, encoding: str) -> bool:
    try:
        ch.encode(encoding)
        return True
    except UnicodeEncodeError:
        return False
