"""
Test batch processing of HTML documents.
Verifies:
1. One callback per document, in input order
2. Diagnostics never leak from one document to the next
3. Fatal documents are reported, not raised
4. False / BatchControl.STOP end the batch early
"""
import pytest

from diagnostics import error_log
from diagnostics.types import ErrorLevel, ErrorRecord
from domutils import html_loader
from domutils.batch_processor import BatchControl, BatchDocumentProcessor, process_html_docs
from domutils.charset import default_charset
from domutils.config import LoaderConfig, ParseOption
from domutils.html_loader import load_html
from domutils.xpath_query import get_element

FATAL = ErrorRecord(ErrorLevel.FATAL, "Premature end of data in tag unclosed", 77, 1, 40)
WARNING = ErrorRecord(ErrorLevel.WARNING, "htmlParseEntityRef: expecting ';'", 23, 1, 12)


@pytest.fixture(autouse=True)
def restore_state():
    charset = default_charset()
    mode = error_log.use_internal_errors()
    yield
    default_charset(charset)
    error_log.use_internal_errors(mode)


@pytest.fixture
def parsed(monkeypatch):
    """Record every parse and inject diagnostics for inputs containing markers."""
    calls = []
    real_parse = html_loader.parse_document

    def fake_parse(data, options=0, encoding=None):
        calls.append(data)
        document, records = real_parse(data, options, encoding)
        if b"unclosed" in data:
            records = records + [FATAL]
        if b"&amp" in data:
            records = records + [WARNING]
        return document, records

    monkeypatch.setattr(html_loader, "parse_document", fake_parse)
    return calls


class Recorder:
    def __init__(self, result=None):
        self.result = result
        self.calls = []

    def __call__(self, document, errors, fatal):
        self.calls.append((document, errors, fatal))
        return self.result


def text_of(document):
    return get_element(document, "//p").text


def test_callback_per_document_in_order(parsed):
    recorder = Recorder()

    process_html_docs(["<p>one</p>", "<p>two</p>", "<p>three</p>"], recorder)

    assert [text_of(document) for document, _, _ in recorder.calls] == ["one", "two", "three"]
    assert len(parsed) == 3


def test_fatal_flag_reflects_only_its_own_document(parsed):
    recorder = Recorder()

    process_html_docs(["<p>ok</p>", "<p><unclosed", "<p>fine</p>"], recorder)

    fatal_flags = [fatal for _, _, fatal in recorder.calls]
    assert fatal_flags == [False, True, False]

    _, second_errors, _ = recorder.calls[1]
    assert second_errors[-1] == FATAL
    _, third_errors, _ = recorder.calls[2]
    assert FATAL not in third_errors


def test_non_fatal_diagnostics_are_reported(parsed):
    recorder = Recorder()

    process_html_docs(["<p>a &amp b</p>", "<p>ok</p>"], recorder)

    _, first_errors, first_fatal = recorder.calls[0]
    _, second_errors, _ = recorder.calls[1]
    assert WARNING in first_errors
    assert not first_fatal
    assert WARNING not in second_errors


def test_fatal_documents_do_not_raise(parsed):
    recorder = Recorder()

    process_html_docs(["<p><unclosed"], recorder)

    assert len(recorder.calls) == 1
    assert recorder.calls[0][2] is True


def test_false_stops_iteration(parsed):
    recorder = Recorder(result=False)

    process_html_docs(["<p>1</p>", "<p>2</p>", "<p>3</p>"], recorder)

    assert len(recorder.calls) == 1
    assert len(parsed) == 1


def test_batch_control_stop(parsed):
    def stop_on_fatal(document, errors, fatal):
        return BatchControl.STOP if fatal else BatchControl.CONTINUE

    seen = []

    def callback(document, errors, fatal):
        seen.append(fatal)
        return stop_on_fatal(document, errors, fatal)

    process_html_docs(["<p>1</p>", "<p><unclosed", "<p>3</p>"], callback)

    assert seen == [False, True]
    assert len(parsed) == 2


@pytest.mark.parametrize("result", [None, 0, "", [], True, BatchControl.CONTINUE])
def test_other_return_values_continue(parsed, result):
    recorder = Recorder(result=result)

    process_html_docs(["<p>1</p>", "<p>2</p>", "<p>3</p>"], recorder)

    assert len(recorder.calls) == 3


def test_charset_resolved_once(monkeypatch):
    seen = []
    real_prepare = html_loader.prepare_html

    def spy(html, charset):
        seen.append(charset)
        # changing the default mid-batch must not affect later documents
        default_charset("windows-1252")
        return real_prepare(html, charset)

    monkeypatch.setattr(html_loader, "prepare_html", spy)
    default_charset("ISO-8859-1")
    recorder = Recorder()

    process_html_docs(["<p>café</p>", "<p>thé</p>"], recorder)

    assert seen == ["ISO-8859-1", "ISO-8859-1"]
    assert [text_of(document) for document, _, _ in recorder.calls] == ["café", "thé"]


def test_configured_charset():
    recorder = Recorder()
    processor = BatchDocumentProcessor(LoaderConfig(charset="ISO-8859-1"))

    processor.process(["<p>café</p>"], recorder)

    assert text_of(recorder.calls[0][0]) == "café"


def test_collection_mode_restored_when_callback_raises(parsed):
    def callback(document, errors, fatal):
        raise RuntimeError("callback failed")

    assert error_log.use_internal_errors() is False
    with pytest.raises(RuntimeError):
        process_html_docs(["<p>1</p>", "<p>2</p>"], callback)

    assert error_log.use_internal_errors() is False
    assert len(parsed) == 1


def test_nested_load_inside_callback(parsed):
    loaded = []
    recorder = Recorder()

    def callback(document, errors, fatal):
        loaded.append(text_of(load_html("<p>nested</p>")))
        return recorder(document, errors, fatal)

    process_html_docs(["<p>ok</p>", "<p><unclosed"], callback)

    assert loaded == ["nested", "nested"]
    assert [fatal for _, _, fatal in recorder.calls] == [False, True]
    assert error_log.use_internal_errors() is False


@pytest.mark.parametrize("options", [0, ParseOption.PEDANTIC])
def test_real_diagnostics_stay_with_their_document(options):
    recorder = Recorder()

    process_html_docs(
        ["<html><body></span></body></html>", "<html><body></div></body></html>"],
        recorder,
        options,
    )

    first_messages = [error.message for error in recorder.calls[0][1]]
    second_messages = [error.message for error in recorder.calls[1][1]]

    assert "Unexpected end tag : span" in first_messages
    assert not any("div" in message for message in first_messages)
    assert "Unexpected end tag : div" in second_messages
    assert not any("span" in message for message in second_messages)

    pedantic = bool(options & ParseOption.PEDANTIC)
    assert [fatal for _, _, fatal in recorder.calls] == [pedantic, pedantic]
    if pedantic:
        assert recorder.calls[1][0] is None
        assert [error.level for error in recorder.calls[1][1]] == [ErrorLevel.FATAL]


def test_real_diagnostics_filtered_by_options():
    recorder = Recorder()

    process_html_docs(["<html><body></div></body></html>"], recorder, ParseOption.NOERROR)

    _, errors, fatal = recorder.calls[0]
    assert all(error.level != ErrorLevel.ERROR for error in errors)
    assert not fatal
