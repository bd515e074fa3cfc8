"""Meter export dialects and the selector that routes raw rows to one of them."""

from __future__ import annotations
import logging
from typing import Final

from ..exceptions import NoSuitableParser
from .base import MeterParser, Rows
from .jemena import JemenaParser
from .nem12 import Nem12Parser
from .origin import OriginParser
from .powerpal import PowerpalParser

logger = logging.getLogger(__name__)

# Probe order matters: first match wins.
PARSERS: Final[tuple[MeterParser, ...]] = (
    OriginParser(),
    Nem12Parser(),
    JemenaParser(),
    PowerpalParser(),
)


def select_parser(rows: Rows) -> MeterParser:
    """Return the first parser whose structural sniff accepts the rows."""
    for parser in PARSERS:
        if parser.is_valid(rows):
            logger.info("Selected %s parser", parser.name)
            return parser
    raise NoSuitableParser(
        "No suitable parser found for the provided data format. Expected an "
        "interval export, a NEM12 file, a daily interval table or a per-minute log."
    )


__all__ = [
    "PARSERS",
    "MeterParser",
    "OriginParser",
    "Nem12Parser",
    "JemenaParser",
    "PowerpalParser",
    "select_parser",
]
