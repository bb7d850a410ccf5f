import json
import logging

import pytest

from extractor.core.logging import _JsonFormatter, _RequestIdFilter, request_id_var, setup_logging


@pytest.mark.unit
def test_request_id_filter_uses_context_var():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    token = request_id_var.set("rid-1")
    try:
        assert _RequestIdFilter().filter(record) is True
    finally:
        request_id_var.reset(token)
    assert record.request_id == "rid-1"


@pytest.mark.unit
def test_json_formatter():
    record = logging.LogRecord("extractor.test", logging.WARNING, __file__, 7, "hello %s", ("world",), None)
    record.request_id = "abc"
    payload = json.loads(_JsonFormatter().format(record))
    assert payload["level"] == "WARNING"
    assert payload["logger"] == "extractor.test"
    assert payload["message"] == "hello world"
    assert payload["request_id"] == "abc"


@pytest.mark.unit
def test_setup_logging_is_idempotent():
    root = logging.getLogger()
    old_level = root.level
    try:
        setup_logging(level="debug")
        setup_logging(level="debug")
        assert root.level == logging.DEBUG
        for h in root.handlers:
            assert sum(isinstance(f, _RequestIdFilter) for f in h.filters) == 1
    finally:
        root.setLevel(old_level)
