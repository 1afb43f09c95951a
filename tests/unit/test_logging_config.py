import logging

from config.logging_config import MetricsLogger, SensitiveDataFilter, log_external_api_call


def make_record(msg, args=()):
    return logging.LogRecord("site_audit", logging.INFO, __file__, 1, msg, args, None)


def test_basic_auth_and_password_masked():
    record = make_record("Authorization: Basic dXNlcjpzZWNyZXQ= password=hunter2")

    SensitiveDataFilter().filter(record)

    assert "dXNlcjpzZWNyZXQ=" not in record.msg
    assert "hunter2" not in record.msg
    assert record.msg.count("***MASKED***") == 2


def test_string_args_masked():
    record = make_record("calling %s", ("https://api?api_key=abc123",))

    SensitiveDataFilter().filter(record)

    assert record.args == ("https://api?api_key=***MASKED***",)


def test_external_call_counters():
    MetricsLogger.reset_metrics()
    logger = logging.getLogger("test_external_call_counters")

    log_external_api_call(logger, "dataforseo", "/on_page/summary/1", 0.2, 20000)
    log_external_api_call(logger, "dataforseo", "/on_page/summary/1", 0.2, 500, error="boom")

    metrics = MetricsLogger.get_metrics()
    assert metrics["api_calls_success"] == 1
    assert metrics["api_calls_failed"] == 1
