"""
Unit tests for configuration loading.
"""

import pytest

from simon.config import ExporterConfig, load_config
from simon.errors import ConfigError


def write(tmp_path, text):
    path = tmp_path / 'config.yml'
    path.write_text(text)
    return str(path)


class TestLoadConfig:
    """Test load_config()"""

    def test_defaults(self):
        """Should fall back to defaults without a file"""
        config = load_config(environ={})

        assert config == ExporterConfig()
        assert config.port == 9184
        assert config.collection_interval == 5.0
        assert config.cpu_mode == 'percentage'

    def test_reads_exporter_section(self, tmp_path):
        """Should read values from the exporter section"""
        path = write(tmp_path, (
            'exporter:\n'
            '  port: 9200\n'
            '  collection_interval: 2.5\n'
            '  cpu_mode: seconds\n'
            '  log_json: false\n'
        ))

        config = load_config(path, environ={})

        assert config.port == 9200
        assert config.collection_interval == 2.5
        assert config.cpu_mode == 'seconds'
        assert config.log_json is False

    def test_expands_environment_variables(self, tmp_path, monkeypatch):
        """Should expand ${VAR} in string values"""
        monkeypatch.setenv('SIMON_TEST_LOG_DIR', '/var/log/simon')
        path = write(tmp_path, 'exporter:\n  log_file: ${SIMON_TEST_LOG_DIR}/exporter.log\n')

        config = load_config(path, environ={})

        assert config.log_file == '/var/log/simon/exporter.log'

    def test_port_from_environment(self, tmp_path):
        """Should let SIMON_PORT override the file"""
        path = write(tmp_path, 'exporter:\n  port: 9200\n')

        config = load_config(path, environ={'SIMON_PORT': '9300'})

        assert config.port == 9300

    def test_overrides_win(self, tmp_path):
        """Should apply CLI overrides last, ignoring None"""
        path = write(tmp_path, 'exporter:\n  port: 9200\n  host: 127.0.0.1\n')

        config = load_config(path, overrides={'port': 9400, 'host': None}, environ={'SIMON_PORT': '9300'})

        assert config.port == 9400
        assert config.host == '127.0.0.1'

    def test_empty_file(self, tmp_path):
        """Should accept an empty file"""
        assert load_config(write(tmp_path, ''), environ={}) == ExporterConfig()


class TestConfigErrors:
    """Test configuration validation"""

    def test_missing_file(self):
        """Should reject a missing file"""
        with pytest.raises(ConfigError, match='not found'):
            load_config('/nonexistent/config.yml', environ={})

    def test_invalid_yaml(self, tmp_path):
        """Should reject malformed YAML"""
        with pytest.raises(ConfigError, match='Invalid YAML'):
            load_config(write(tmp_path, 'exporter: [unclosed\n'), environ={})

    def test_unknown_key(self, tmp_path):
        """Should reject keys it does not know"""
        with pytest.raises(ConfigError, match='Unknown'):
            load_config(write(tmp_path, 'exporter:\n  prot: 1\n'), environ={})

    @pytest.mark.parametrize('text', [
        'exporter:\n  port: 0\n',
        'exporter:\n  port: http\n',
        'exporter:\n  collection_interval: 0\n',
        'exporter:\n  collection_interval: -1\n',
        'exporter:\n  cpu_mode: ticks\n',
        'exporter:\n  log_level: LOUD\n',
        'exporter:\n  stop_timeout: -5\n',
        'exporter:\n  collection_interval: true\n',
        'exporter:\n  stop_timeout: false\n',
    ])
    def test_invalid_values(self, tmp_path, text):
        """Should reject out-of-range values"""
        with pytest.raises(ConfigError):
            load_config(write(tmp_path, text), environ={})

    def test_section_must_be_mapping(self, tmp_path):
        """Should reject a non-mapping exporter section"""
        with pytest.raises(ConfigError):
            load_config(write(tmp_path, 'exporter: 5\n'), environ={})
