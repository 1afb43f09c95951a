# logging_config.py

import os
import re
import sys
import logging
import logging.handlers
from pathlib import Path
from pythonjsonlogger import jsonlogger
from typing import Dict

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")


class SensitiveDataFilter(logging.Filter):

    SENSITIVE_KEYS = [
        'password', 'token', 'api_key', 'secret', 'authorization',
        'credentials', 'basic', 'bearer', 'login',
        'DATAFORSEO_PASSWORD', 'DATA_FOR_SEO_PASSWORD', 'SITE_AUDIT_VENDOR_PASSWORD',
    ]

    PATTERNS = [
        (r'(api[_-]?key\s*[=:]\s*)[^\s&]+', r'\1***MASKED***'),
        (r'(token\s*[=:]\s*)[^\s&]+', r'\1***MASKED***'),
        (r'(password\s*[=:]\s*)[^\s&]+', r'\1***MASKED***'),
        (r'(Basic\s+)[A-Za-z0-9+/=]+', r'\1***MASKED***'),
        (r'(Bearer\s+)[^\s]+', r'\1***MASKED***'),
    ]

    def filter(self, record):
        if hasattr(record, 'msg') and isinstance(record.msg, str):
            lowered = record.msg.lower()
            if any(key.lower() in lowered for key in self.SENSITIVE_KEYS):
                record.msg = self._mask_sensitive_data(record.msg)

        if hasattr(record, 'args') and isinstance(record.args, tuple) and record.args:
            record.args = tuple(
                self._mask_if_sensitive(arg) for arg in record.args
            )

        return True

    def _mask_sensitive_data(self, text):
        for pattern, replacement in self.PATTERNS:
            text = re.sub(pattern, replacement, text, flags=re.IGNORECASE)
        return text

    def _mask_if_sensitive(self, value):
        if isinstance(value, str):
            return self._mask_sensitive_data(value)
        return value


class CustomJsonFormatter(jsonlogger.JsonFormatter):

    CONTEXT_FIELDS = (
        'service_name', 'task_id', 'vendor_task_id', 'report_id',
        'endpoint', 'method', 'attempt', 'status_code', 'step',
    )

    def add_fields(self, log_record, record, message_dict):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)

        log_record['timestamp'] = self.formatTime(record, self.datefmt)
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['module'] = record.module
        log_record['function'] = record.funcName
        log_record['line'] = record.lineno

        for field in self.CONTEXT_FIELDS:
            if hasattr(record, field):
                log_record[field] = getattr(record, field)

        if record.exc_info:
            log_record['exception'] = self.formatException(record.exc_info)


class MetricsLogger:

    _metrics = {
        'api_calls_success': 0,
        'api_calls_failed': 0,
        'cache_hits': 0,
        'cache_misses': 0,
        'reports_generated': 0,
        'reports_failed': 0,
    }

    @classmethod
    def increment(cls, metric_name: str, value: int = 1):
        if metric_name in cls._metrics:
            cls._metrics[metric_name] += value

    @classmethod
    def get_metrics(cls) -> Dict[str, int]:
        return cls._metrics.copy()

    @classmethod
    def reset_metrics(cls):
        for key in cls._metrics:
            cls._metrics[key] = 0


def _build_formatter():
    if ENVIRONMENT == "production":
        return CustomJsonFormatter(
            '%(timestamp)s %(level)s %(name)s %(message)s'
        )
    return logging.Formatter(
        '[%(asctime)s] %(levelname)-8s [%(name)s.%(funcName)s:%(lineno)d] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def setup_logging(service_name="site_audit", log_to_files=True):

    logger = logging.getLogger()
    logger.setLevel(LOG_LEVEL)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    sensitive_filter = SensitiveDataFilter()
    formatter = _build_formatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(LOG_LEVEL)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(sensitive_filter)
    logger.addHandler(console_handler)

    if log_to_files:
        LOG_DIR.mkdir(exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            LOG_DIR / f"{service_name}.log",
            maxBytes=50 * 1024 * 1024,
            backupCount=10,
            encoding='utf-8'
        )
        file_handler.setLevel(LOG_LEVEL)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(sensitive_filter)
        logger.addHandler(file_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            LOG_DIR / f"{service_name}_error.log",
            maxBytes=50 * 1024 * 1024,
            backupCount=10,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        error_handler.addFilter(sensitive_filter)
        logger.addHandler(error_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    return logger


def get_logger(name, service_name=None):
    logger = logging.getLogger(name)

    if service_name:
        logger = logging.LoggerAdapter(logger, {'service_name': service_name})

    return logger


def log_external_api_call(logger, service_name, endpoint, duration, status_code, error=None):
    extra = {
        'api_service': service_name,
        'endpoint': endpoint,
        'duration_ms': round(duration * 1000, 2),
        'status_code': status_code,
    }

    if error:
        logger.warning(
            f"External API call failed: {service_name} - {endpoint}: {error}",
            extra={**extra, 'error': str(error)}
        )
        MetricsLogger.increment('api_calls_failed')
    else:
        logger.info(
            f"External API call: {service_name} - {endpoint}",
            extra=extra
        )
        MetricsLogger.increment('api_calls_success')


class APIRetryLogger:

    def __init__(self):
        self.logger = get_logger('api_retry', service_name='site_audit')

    def log_retry_attempt(self, api_name, attempt, max_retries, backoff_seconds, error):
        self.logger.warning(
            f"Retrying {api_name} ({attempt}/{max_retries}) in {backoff_seconds}s: {error}",
            extra={
                'api_name': api_name,
                'attempt': attempt,
                'max_retries': max_retries,
                'backoff_seconds': backoff_seconds,
                'error': str(error),
            }
        )

    def log_max_retries_exceeded(self, api_name, total_attempts, error):
        self.logger.error(
            f"Max retries exceeded: {api_name} after {total_attempts} attempts: {error}",
            extra={
                'api_name': api_name,
                'total_attempts': total_attempts,
                'error': str(error),
                'fatal': True
            }
        )


class AuditLogger:

    def __init__(self):
        self.logger = get_logger('site_audit', service_name='site_audit')

    def log_task_created(self, task_id, vendor_task_id, target, max_crawl_pages):
        self.logger.info(
            f"Audit task created: {target}",
            extra={
                'task_id': task_id,
                'vendor_task_id': vendor_task_id,
                'target': target,
                'max_crawl_pages': max_crawl_pages,
            }
        )

    def log_task_rejected(self, target, reason):
        self.logger.warning(
            f"Audit task rejected for {target}: {reason}",
            extra={'target': target, 'reason': reason}
        )

    def log_status_polled(self, task_id, status, progress):
        self.logger.info(
            f"Audit task {task_id} is {status} ({progress}%)",
            extra={'task_id': task_id, 'status': status, 'progress': progress}
        )

    def log_poll_failed(self, task_id, error):
        self.logger.warning(
            f"Status poll failed for audit task {task_id}: {error}",
            extra={'task_id': task_id, 'error': str(error)}
        )

    def log_task_cancelled(self, task_id, acknowledged):
        self.logger.info(
            f"Cancel requested for audit task {task_id} - {'ACKNOWLEDGED' if acknowledged else 'REFUSED'}",
            extra={'task_id': task_id, 'acknowledged': acknowledged}
        )

    def log_report_generated(self, task_id, report_id, total_issues, duration):
        self.logger.info(
            f"Report {report_id} generated for task {task_id}",
            extra={
                'task_id': task_id,
                'report_id': report_id,
                'total_issues': total_issues,
                'duration_seconds': round(duration, 2),
            }
        )
        MetricsLogger.increment('reports_generated')

    def log_report_failed(self, task_id, step, error):
        self.logger.error(
            f"Report generation failed for task {task_id} at step '{step}'",
            extra={'task_id': task_id, 'step': step, 'error': str(error)}
        )
        MetricsLogger.increment('reports_failed')

    def log_reports_compared(self, current_id, prior_id, new_issues, resolved_issues):
        self.logger.info(
            f"Compared report {current_id} against {prior_id}",
            extra={
                'report_id': current_id,
                'prior_report_id': prior_id,
                'new_issues': new_issues,
                'resolved_issues': resolved_issues,
            }
        )
