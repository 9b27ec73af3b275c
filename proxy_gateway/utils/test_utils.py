import logging

from proxy_gateway.errors import DispatchError
from proxy_gateway.utils import mask_header_value, masked_headers
from proxy_gateway.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)


class BrokenStrException(Exception):
    """An exception that breaks when __str__ is called."""

    def __str__(self):
        raise RuntimeError("Cannot convert to string!")

    def __repr__(self):
        return "BrokenStrException(cannot convert to string)"


def _chained_error():
    try:
        try:
            raise ConnectionResetError("reset by peer")
        except ConnectionResetError as cause:
            raise DispatchError("Upstream request failed") from cause
    except DispatchError as e:
        return e


def test_mask_sensitive_headers():
    assert mask_header_value("Authorization", "Bearer secret-token") == "Bear****"
    assert mask_header_value("cookie", "session=abc") == "sess****"
    assert mask_header_value("content-type", "text/plain") == "text/plain"
    assert mask_header_value("authorization", "") == ""


def test_masked_headers_keeps_order():
    headers = [("accept", "*/*"), ("x-api-key", "k-123456"), ("accept", "text/html")]
    assert masked_headers(headers) == [
        ("accept", "*/*"),
        ("x-api-key", "k-12****"),
        ("accept", "text/html"),
    ]


def test_format_includes_cause_chain():
    message = format_exception_message(_chained_error())
    assert message == (
        "DispatchError: Upstream request failed <- "
        "caused by ConnectionResetError: reset by peer"
    )


def test_format_broken_str():
    assert "BrokenStrException(cannot convert to string)" in format_exception_message(
        BrokenStrException()
    )


def test_format_none():
    assert format_exception_message(None) == "None"


def test_log_exception_with_details(caplog):
    logger = logging.getLogger("test.proxy")
    with caplog.at_level(logging.ERROR, logger="test.proxy"):
        log_exception_with_details(logger, "[Proxy]", _chained_error())

    assert "[Proxy] DispatchError: Upstream request failed" in caplog.text
    assert "reset by peer" in caplog.text


def test_log_exception_never_raises():
    class BrokenLogger:
        def log(self, *args, **kwargs):
            raise RuntimeError("logger down")

    log_exception_with_details(BrokenLogger(), "[Proxy]", ValueError("x"))
