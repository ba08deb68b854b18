"""
defineItem.h parser

Extracts item define names and their numeric ids from C preprocessor
lines such as:

    #define II_WEA_AXE_RODNEY        21
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List

from loguru import logger

from .diagnostics import Diagnostic, DiagnosticLog

DEFAULT_DEFINE_PREFIX = 'II_'


@dataclass
class DefineTable:
    """Read-only lookup of define name -> numeric id (kept as text)"""
    ids: Dict[str, str] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def lookup(self, define_name: str) -> str:
        """Numeric id for a define name, '' when unknown. Wrapping quotes are ignored."""
        if not define_name:
            return ''
        return self.ids.get(define_name.strip().strip('"'), '')

    def __len__(self) -> int:
        return len(self.ids)

    def __contains__(self, define_name: str) -> bool:
        return define_name in self.ids

    def __iter__(self) -> Iterator[str]:
        return iter(self.ids)


class DefineTableParser:
    """Parser for defineItem.h style define tables"""

    def __init__(self, prefix: str = DEFAULT_DEFINE_PREFIX):
        self.prefix = prefix
        self._pattern = re.compile(
            r'^\s*#define\s+(' + re.escape(prefix) + r'[A-Za-z0-9_]+)\s+(\d+)\b'
        )

    def parse(self, content: str, source: str = 'defineItem.h') -> DefineTable:
        """
        Parse define lines into a lookup table.

        Duplicate names keep the last value seen. Anything that is not a
        matching define (comments, other macros, blank lines) is skipped.
        """
        log = DiagnosticLog(source)
        ids: Dict[str, str] = {}

        for line in (content or '').splitlines():
            match = self._pattern.match(line)
            if match:
                ids[match.group(1)] = match.group(2)

        if not ids:
            log.warning(f"No {self.prefix}* defines found")
        else:
            logger.info(f"Parsed {len(ids)} item definitions from {source}")

        return DefineTable(ids, log.entries)
