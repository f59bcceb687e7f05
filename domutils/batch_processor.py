"""
Batch loading of HTML documents.

Every input is parsed and handed to a callback together with its own
diagnostics and a fatal flag. Fatal diagnostics are reported, never raised,
so one broken document does not stop the rest of the batch.
"""
import logging
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional
import lxml.etree

from diagnostics import error_log
from diagnostics.types import ErrorRecord
from domutils.config import LoaderConfig
from domutils.html_loader import HTMLDocumentLoader, HTMLInput, parse_html_document

logger = logging.getLogger(__name__)


class BatchControl(Enum):
    """Explicit callback results for process()."""
    CONTINUE = "continue"
    STOP = "stop"


DocumentCallback = Callable[[Optional[lxml.etree._ElementTree], List[ErrorRecord], bool], Any]


def _should_stop(result: Any) -> bool:
    # Only an explicit STOP or the literal False ends the batch; None, 0 and "" continue
    return result is BatchControl.STOP or result is False


class BatchDocumentProcessor:
    """Loads sequences of HTML strings and streams the results to a callback."""

    def __init__(self, config: Optional[LoaderConfig] = None):
        self.loader = HTMLDocumentLoader(config)

    def process(self, html_strings: Iterable[HTMLInput], callback: DocumentCallback,
                options: Optional[int] = None, charset: str = "") -> None:
        """
        Load each HTML string and invoke the callback once per document.

        The callback receives the document (None if the parser could not build
        one), the list of ErrorRecord diagnostics for that document, and True
        if any of them is fatal. Returning BatchControl.STOP or False ends the
        iteration; any other return value is ignored.

        Args:
            html_strings: HTML inputs, processed in order
            callback: Called as callback(document, errors, fatal)
            options: ParseOption bitmask; the configured options when None
            charset: Charset for inputs without an XML declaration, resolved
                once for the whole batch
        """
        options = self.loader.resolve_options(options)
        charset = self.loader.resolve_charset(charset)
        processed = 0

        with error_log.collecting_errors():
            for html in html_strings:
                document, errors = parse_html_document(html, options, charset)
                fatal = any(error.is_fatal for error in errors)
                processed += 1

                logger.debug(f"Batch document {processed}: {len(errors)} diagnostics, fatal={fatal}")

                if _should_stop(callback(document, errors, fatal)):
                    logger.debug(f"Batch stopped by callback after {processed} documents")
                    break


_default_processor = BatchDocumentProcessor()


def process_html_docs(html_strings: Iterable[HTMLInput], callback: DocumentCallback,
                      options: int = 0, charset: str = "") -> None:
    """Process a batch with the process-wide defaults. See BatchDocumentProcessor.process."""
    _default_processor.process(html_strings, callback, options, charset)
