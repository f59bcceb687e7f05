"""
Configuration for HTML loading.

Parser options use libxml2's HTML_PARSE_* bit values and are translated to
lxml.etree.HTMLParser keyword arguments.
"""
import codecs
import os
from enum import IntFlag
from typing import Any, Dict

from pydantic import BaseModel, field_validator

# Seed for the process-wide default charset
DEFAULT_CHARSET = os.environ.get("DOMUTILS_DEFAULT_CHARSET", "UTF-8")


class ParseOption(IntFlag):
    """libxml2 HTML parser options understood by the loader."""
    NODEFDTD = 1 << 2     # no default doctype
    NOERROR = 1 << 5      # suppress error diagnostics
    NOWARNING = 1 << 6    # suppress warning diagnostics
    PEDANTIC = 1 << 7     # no recovery: malformed markup fails the parse
    NOBLANKS = 1 << 8     # drop blank text nodes
    NONET = 1 << 11       # forbid network access
    COMPACT = 1 << 16     # compact small text nodes
    HUGE = 1 << 19        # relax hardcoded parser limits


def parser_kwargs(options: int) -> Dict[str, Any]:
    """
    Translate an options bitmask into HTMLParser arguments.

    Args:
        options: ParseOption flags or a plain int; unknown bits are ignored

    Returns:
        Keyword arguments for lxml.etree.HTMLParser (without encoding)
    """
    flags = ParseOption(int(options) & sum(ParseOption))
    return {
        "recover": not flags & ParseOption.PEDANTIC,
        "default_doctype": not flags & ParseOption.NODEFDTD,
        "remove_blank_text": bool(flags & ParseOption.NOBLANKS),
        # lxml already defaults both of these to True
        "no_network": True,
        "compact": True,
        "huge_tree": bool(flags & ParseOption.HUGE),
    }


class LoaderConfig(BaseModel):
    """Explicit loader settings, used when a call passes no value of its own."""
    options: int = 0
    charset: str = ""

    @field_validator("charset")
    @classmethod
    def _known_charset(cls, value: str) -> str:
        if value:
            try:
                codecs.lookup(value)
            except LookupError:
                raise ValueError(f"Unknown charset: {value}")
        return value
