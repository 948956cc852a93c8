"""
Unit tests for structured logging.
"""

import io
import json
import logging
import socket
import sys

import pytest

from simon.log import JSONFormatter, get_logger, parse_level, setup_logging


def record(level=logging.INFO, msg='Test message', exc_info=None, func=None):
    return logging.LogRecord(
        name='simon.test',
        level=level,
        pathname='/path/to/test.py',
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
        func=func
    )


class TestJSONFormatter:
    """Test JSONFormatter"""

    def test_format_basic_log(self):
        """Should format log as JSON with required fields"""
        data = json.loads(JSONFormatter().format(record()))

        assert data['timestamp'].endswith('Z')
        assert data['level'] == 'INFO'
        assert data['logger'] == 'simon.test'
        assert data['message'] == 'Test message'
        assert 'context' not in data

    def test_format_with_context(self):
        """Should include context from extra fields"""
        rec = record(msg='Collection cycle finished')
        rec.context = {'ok': True, 'duration_ms': 12.5}

        data = json.loads(JSONFormatter().format(rec))

        assert data['context'] == {'ok': True, 'duration_ms': 12.5}

    def test_format_with_exception(self):
        """Should include exception info"""
        try:
            raise ValueError('Test error')
        except ValueError:
            exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record(logging.ERROR, exc_info=exc_info)))

        assert data['exception']['type'] == 'ValueError'
        assert data['exception']['message'] == 'Test error'
        assert 'traceback' in data['exception']

    def test_format_debug_includes_source(self):
        """Should include source location in debug mode"""
        data = json.loads(JSONFormatter().format(record(logging.DEBUG, func='run_once')))

        assert data['source'] == '/path/to/test.py:42 in run_once'

    def test_format_tags_host(self):
        """Should tag every line with the exported host"""
        assert json.loads(JSONFormatter(host='edge-01').format(record()))['host'] == 'edge-01'
        assert json.loads(JSONFormatter().format(record()))['host'] == socket.gethostname()

    def test_format_timestamp_from_record(self):
        """Should stamp the line with the record's creation time"""
        rec = record()
        rec.created = 0.5

        assert json.loads(JSONFormatter().format(rec))['timestamp'] == '1970-01-01T00:00:00.500000Z'

    def test_format_names_collection_thread(self):
        """Should include the thread name for records from the collection loop"""
        rec = record(msg='Collection cycle finished')
        rec.threadName = 'simon-scheduler'
        assert json.loads(JSONFormatter().format(rec))['thread'] == 'simon-scheduler'

        rec.threadName = 'MainThread'
        assert 'thread' not in json.loads(JSONFormatter().format(rec))

    def test_format_info_no_source(self):
        """Should not include source location for INFO and above"""
        data = json.loads(JSONFormatter().format(record()))
        assert 'source' not in data


class TestSetupLogging:
    """Test setup_logging and get_logger"""

    def teardown_method(self):
        logger = logging.getLogger('simon')
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)

    def test_setup_sets_level(self):
        """Should accept level names"""
        logger = setup_logging('debug')
        assert logger.name == 'simon'
        assert logger.level == logging.DEBUG

    def test_setup_is_idempotent(self):
        """Should not duplicate handlers on repeated calls"""
        setup_logging()
        setup_logging()
        assert len(logging.getLogger('simon').handlers) == 1

    def test_setup_with_file(self, tmp_path):
        """Should write JSON lines to the log file"""
        log_file = tmp_path / 'exporter.log'
        setup_logging(log_file=str(log_file))

        get_logger('scheduler').info('Collection loop started')
        for handler in logging.getLogger('simon').handlers:
            handler.flush()

        data = json.loads(log_file.read_text().strip())
        assert data['message'] == 'Collection loop started'
        assert data['logger'] == 'simon.scheduler'

    def test_plain_text_output(self):
        """Should support plain text format"""
        logger = setup_logging(use_json=False)
        stream = io.StringIO()
        logger.handlers[0].setStream(stream)

        get_logger('api').info('Plain text message')

        output = stream.getvalue()
        assert 'Plain text message' in output
        assert 'INFO' in output
        with pytest.raises(json.JSONDecodeError):
            json.loads(output)

    def test_get_logger_namespacing(self):
        """Should place loggers under the simon hierarchy"""
        assert get_logger('api').name == 'simon.api'
        assert get_logger('simon.scheduler').name == 'simon.scheduler'

    def test_parse_level(self):
        """Should reject unknown level names"""
        assert parse_level(logging.WARNING) == logging.WARNING
        assert parse_level('error') == logging.ERROR
        with pytest.raises(ValueError):
            parse_level('LOUD')
