import logging
import re
from dataclasses import replace
from typing import List, Optional, Tuple, Union
import lxml.etree

from diagnostics import error_log
from diagnostics.types import ErrorLevel, ErrorRecord
from domutils.charset import default_charset
from domutils.config import LoaderConfig, ParseOption, parser_kwargs

logger = logging.getLogger(__name__)

HTMLInput = Union[str, bytes]

XML_DECLARATION = '<?xml encoding="{charset}" ?>'

# libxml2 error code reported when a parse produces no root element
XML_ERR_DOCUMENT_EMPTY = 4

_DECLARATION_PATTERN = r"^\s*<\?xml"
_ENCODING_PATTERN = r"^\s*<\?xml[^>]*?encoding\s*=\s*[\"']([A-Za-z0-9._:-]+)[\"']"

_DECLARATION_RE = re.compile(_DECLARATION_PATTERN, re.IGNORECASE)
_DECLARATION_BYTES_RE = re.compile(_DECLARATION_PATTERN.encode("ascii"), re.IGNORECASE)
_ENCODING_RE = re.compile(_ENCODING_PATTERN, re.IGNORECASE)
_ENCODING_BYTES_RE = re.compile(_ENCODING_PATTERN.encode("ascii"), re.IGNORECASE)


class FatalParseError(Exception):
    """Exception raised when loading a document produced a fatal diagnostic."""

    def __init__(self, record: ErrorRecord):
        super().__init__(record.message)
        self.record = record

    @property
    def code(self) -> int:
        return self.record.code


def has_xml_declaration(html: HTMLInput) -> bool:
    """Check whether the input already opens with an XML declaration."""
    if isinstance(html, bytes):
        return _DECLARATION_BYTES_RE.match(html) is not None
    return _DECLARATION_RE.match(html) is not None


def _declared_encoding(html: HTMLInput) -> Optional[str]:
    if isinstance(html, bytes):
        match = _ENCODING_BYTES_RE.match(html)
        return match.group(1).decode("ascii") if match else None
    match = _ENCODING_RE.match(html)
    return match.group(1) if match else None


def prepare_html(html: HTMLInput, charset: str) -> Tuple[bytes, Optional[str]]:
    """
    Normalize input for the parser.

    Inputs without an XML declaration get the synthetic declaration for
    ``charset`` prepended. Text is encoded to bytes, since lxml rejects
    ``str`` input that carries an encoding declaration.

    The declaration stays in the parsed document as a node before the root
    element: a processing instruction on older libxml2, a comment such as
    ``<!--?xml encoding="UTF-8" ?-->`` on libxml2 2.14 and later.

    Args:
        html: HTML text or bytes
        charset: Charset to declare when the input has no declaration

    Returns:
        Tuple of (bytes to parse, encoding to hand the parser or None to let
        libxml2 detect it)

    Raises:
        LookupError: If the charset is unknown
    """
    if has_xml_declaration(html):
        encoding = _declared_encoding(html)
        if isinstance(html, bytes):
            return html, encoding
        encoding = encoding or charset
        return html.encode(encoding, "xmlcharrefreplace"), encoding

    declaration = XML_DECLARATION.format(charset=charset)
    if isinstance(html, bytes):
        return declaration.encode("ascii") + html, charset
    return (declaration + html).encode(charset, "xmlcharrefreplace"), charset


def _records_from_log(log, options: int) -> List[ErrorRecord]:
    dropped = set()
    if options & ParseOption.NOERROR:
        dropped.add(ErrorLevel.ERROR)
    if options & ParseOption.NOWARNING:
        dropped.add(ErrorLevel.WARNING)

    records = [ErrorRecord.from_log_entry(entry) for entry in log]
    return [record for record in records if record.level not in dropped]


def _mark_fatal(records: List[ErrorRecord], exc: lxml.etree.XMLSyntaxError) -> List[ErrorRecord]:
    """
    Record a parse failure as FATAL.

    lxml builds the exception from the first error in the parser's log, so
    that entry is promoted in place instead of being reported twice.
    """
    failure = ErrorRecord.from_syntax_error(exc)

    for i, record in enumerate(records):
        if record.level >= ErrorLevel.ERROR:
            if record.code == failure.code and record.line == failure.line:
                return records[:i] + [replace(record, level=ErrorLevel.FATAL)] + records[i + 1:]
            break

    return records + [failure]


def parse_document(data: bytes, options: int = 0,
                   encoding: Optional[str] = None) -> Tuple[Optional[lxml.etree._ElementTree], List[ErrorRecord]]:
    """
    Parse prepared bytes with the lxml HTML parser.

    Args:
        data: Bytes produced by prepare_html
        options: ParseOption bitmask
        encoding: Encoding to force, or None

    Returns:
        Tuple of (document or None when nothing could be built, diagnostics in
        the order the parser reported them)
    """
    parser = lxml.etree.HTMLParser(encoding=encoding, **parser_kwargs(options))

    try:
        root = lxml.etree.fromstring(data, parser=parser)
    except lxml.etree.XMLSyntaxError as e:
        # e.error_log can hold entries from earlier parses on this thread
        records = _records_from_log(parser.error_log, options)
        return None, _mark_fatal(records, e)

    records = _records_from_log(parser.error_log, options)
    if root is None:
        records.append(ErrorRecord(
            level=ErrorLevel.FATAL,
            message="Document is empty",
            code=XML_ERR_DOCUMENT_EMPTY,
            line=1,
            column=1,
        ))
        return None, records

    return root.getroottree(), records


def parse_html_document(html: HTMLInput, options: int,
                        charset: str) -> Tuple[Optional[lxml.etree._ElementTree], List[ErrorRecord]]:
    """
    Parse one input through the engine's diagnostic buffer.

    The buffer is cleared first, so the returned diagnostics belong to this
    input only. Callers are expected to be inside ``collecting_errors()``.
    """
    error_log.clear_errors()

    data, encoding = prepare_html(html, charset)
    document, records = parse_document(data, options, encoding)
    error_log.report(records)

    return document, error_log.get_errors()


class HTMLDocumentLoader:
    """Loads HTML strings into lxml documents, failing on fatal diagnostics."""

    def __init__(self, config: Optional[LoaderConfig] = None):
        self.config = config or LoaderConfig()

    def resolve_charset(self, charset: str = "") -> str:
        return charset or self.config.charset or default_charset()

    def resolve_options(self, options: Optional[int] = None) -> int:
        return self.config.options if options is None else int(options)

    def load(self, html: HTMLInput, options: Optional[int] = None,
             charset: str = "") -> lxml.etree._ElementTree:
        """
        Load an HTML string into a document, with error handling and charset
        normalization.

        Args:
            html: HTML text or bytes
            options: ParseOption bitmask; the configured options when None
            charset: Charset for inputs without an XML declaration; the
                configured or process default when empty

        Returns:
            Parsed document

        Raises:
            FatalParseError: If the parser reported a fatal diagnostic
        """
        options = self.resolve_options(options)
        charset = self.resolve_charset(charset)

        with error_log.collecting_errors():
            document, errors = parse_html_document(html, options, charset)

        for error in errors:
            if error.is_fatal:
                logger.warning(f"Fatal parse error {error.code} at line {error.line}: {error.message}")
                raise FatalParseError(error)

        logger.debug(f"Loaded HTML document as {charset}, discarded {len(errors)} non-fatal diagnostics")
        return document


_default_loader = HTMLDocumentLoader()


def load_html(html: HTMLInput, options: int = 0, charset: str = "") -> lxml.etree._ElementTree:
    """Load an HTML string with the process-wide defaults. See HTMLDocumentLoader.load."""
    return _default_loader.load(html, options, charset)
