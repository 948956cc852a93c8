"""
Unit tests for Prometheus rendering.
"""

from unittest.mock import patch

import pytest

from simon.errors import EncodingFailure
from simon.render import CONTENT_TYPE, render
from simon.store import MetricKind, MetricStore


@pytest.fixture
def store():
    store = MetricStore()
    store.register('simon_process_cpu_usage_percentage', MetricKind.GAUGE,
                   'CPU usage per process (aggregated by name)', ['name'])
    store.register('simon_network_received_bytes_total', MetricKind.COUNTER,
                   'Total number of bytes received, per network interface', ['interface'])
    store.register('simon_memory_total_bytes', MetricKind.GAUGE, 'Total physical memory in bytes')
    return store


class TestRender:
    """Test render()"""

    def test_renders_help_type_and_samples(self, store):
        """Should emit family comments and one line per label set"""
        store.set(store.get_or_create('simon_process_cpu_usage_percentage', {'name': 'worker'}), 25)
        store.increment(store.get_or_create('simon_network_received_bytes_total', {'interface': 'eth0'}), 500)
        store.set(store.get_or_create('simon_memory_total_bytes'), 8192)

        text = render(store).decode('utf-8')

        assert '# HELP simon_process_cpu_usage_percentage CPU usage per process (aggregated by name)' in text
        assert '# TYPE simon_process_cpu_usage_percentage gauge' in text
        assert 'simon_process_cpu_usage_percentage{name="worker"} 25.0' in text
        assert '# TYPE simon_network_received_bytes_total counter' in text
        assert 'simon_network_received_bytes_total{interface="eth0"} 500.0' in text
        assert 'simon_memory_total_bytes 8192.0' in text

    def test_empty_family_still_described(self, store):
        """Should describe families that have no series yet"""
        text = render(store).decode('utf-8')
        assert '# TYPE simon_memory_total_bytes gauge' in text

    def test_escapes_label_values(self, store):
        """Should leave label escaping to the encoder"""
        store.set(store.get_or_create('simon_process_cpu_usage_percentage', {'name': 'we"ird'}), 1)

        text = render(store).decode('utf-8')

        assert 'name="we\\"ird"' in text

    def test_encoder_error_becomes_encoding_failure(self, store):
        """Should wrap encoder exceptions"""
        with patch('simon.render.generate_latest', side_effect=ValueError('bad')):
            with pytest.raises(EncodingFailure):
                render(store)

    def test_content_type(self):
        """Should use the Prometheus text content type"""
        assert CONTENT_TYPE.startswith('text/plain')
