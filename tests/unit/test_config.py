"""Tests for client configuration loading."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from dockapi.config import DEFAULT_API_VERSION, DEFAULT_URL, ClientConfig, LoggingConfig, load_config


# ============================================================================
# ClientConfig
# ============================================================================


class TestClientConfig:
    """Tests for the ClientConfig model."""

    def test_defaults(self):
        """Test that the default config targets the local socket."""
        config = ClientConfig()

        assert config.url == DEFAULT_URL == "unix:///var/run/docker.sock"
        assert config.api_version == DEFAULT_API_VERSION == "1.41"
        assert config.timeout is None
        assert config.casify_keys is False
        assert isinstance(config.logging, LoggingConfig)

    def test_unix_socket(self):
        """Test that unix URLs resolve to a socket path and a fixed base URL."""
        config = ClientConfig(url="unix:///tmp/engine.sock")

        assert config.is_unix_socket
        assert config.socket_path == "/tmp/engine.sock"
        assert config.base_url == "http://localhost"

    def test_tcp_becomes_http(self):
        """Test that tcp URLs map to plain HTTP."""
        config = ClientConfig(url="tcp://10.0.0.5:2375")

        assert not config.is_unix_socket
        assert config.socket_path is None
        assert config.base_url == "http://10.0.0.5:2375"

    def test_tcp_with_tls_becomes_https(self):
        """Test that TLS settings switch tcp URLs to HTTPS."""
        assert ClientConfig(url="tcp://engine:2376", tls_verify=True).base_url == "https://engine:2376"
        assert ClientConfig(url="tcp://engine:2376", cert_path=Path("/c.pem")).base_url == "https://engine:2376"

    def test_http_url_kept(self):
        assert ClientConfig(url="https://engine.example/").base_url == "https://engine.example"

    @pytest.mark.parametrize("url", ["ftp://engine", "engine:2375", ""])
    def test_unsupported_scheme(self, url):
        """Test that unknown URL schemes are rejected."""
        with pytest.raises(ValidationError):
            ClientConfig(url=url)

    @pytest.mark.parametrize("version", ["v1.41", "1", "latest"])
    def test_invalid_api_version(self, version):
        with pytest.raises(ValidationError):
            ClientConfig(api_version=version)

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            ClientConfig(timeout=0)

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            LoggingConfig(log_level="LOUD")


# ============================================================================
# load_config
# ============================================================================


class TestLoadConfig:
    """Tests for load_config()."""

    def test_no_file_no_env(self):
        """Test that an empty environment yields the defaults."""
        assert load_config(env={}) == ClientConfig()

    def test_yaml_file(self, tmp_path):
        """Test that YAML values, including nested logging, are loaded."""
        path = tmp_path / "dockapi.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "url": "tcp://engine.test:2375",
                    "api_version": "1.43",
                    "timeout": 30,
                    "casify_keys": True,
                    "logging": {"log_level": "DEBUG", "log_format": "json"},
                }
            )
        )

        config = load_config(path, env={})

        assert config.url == "tcp://engine.test:2375"
        assert config.api_version == "1.43"
        assert config.timeout == 30
        assert config.casify_keys is True
        assert config.logging.log_level == "DEBUG"
        assert config.logging.log_format == "json"

    def test_empty_yaml_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config(str(path), env={}) == ClientConfig()

    def test_missing_file(self, tmp_path):
        """Test that a named but missing file is an error."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml", env={})

    def test_invalid_file_contents(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("url: gopher://engine\n")

        with pytest.raises(ValidationError):
            load_config(path, env={})

    def test_environment_overrides_file(self, tmp_path):
        """Test that DOCKER_HOST and DOCKER_API_VERSION win over the file."""
        path = tmp_path / "dockapi.yaml"
        path.write_text("url: tcp://from-file:2375\napi_version: '1.40'\n")

        config = load_config(path, env={"DOCKER_HOST": "tcp://from-env:2375", "DOCKER_API_VERSION": "v1.44"})

        assert config.url == "tcp://from-env:2375"
        assert config.api_version == "1.44"

    @pytest.mark.parametrize("value,expected", [("1", True), ("yes", True), ("0", False)])
    def test_tls_verify(self, value, expected):
        assert load_config(env={"DOCKER_TLS_VERIFY": value}).tls_verify is expected

    def test_cert_path(self):
        """Test that DOCKER_CERT_PATH fills in the three TLS files."""
        config = load_config(env={"DOCKER_HOST": "tcp://engine:2376", "DOCKER_CERT_PATH": "/certs"})

        assert config.cert_path == Path("/certs/cert.pem")
        assert config.key_path == Path("/certs/key.pem")
        assert config.ca_path == Path("/certs/ca.pem")
        assert config.base_url == "https://engine:2376"

    def test_cert_path_does_not_override_file(self, tmp_path):
        path = tmp_path / "dockapi.yaml"
        path.write_text("cert_path: /mine/cert.pem\n")

        config = load_config(path, env={"DOCKER_CERT_PATH": "/certs"})

        assert config.cert_path == Path("/mine/cert.pem")
        assert config.key_path == Path("/certs/key.pem")

    def test_reads_process_environment_by_default(self, monkeypatch):
        monkeypatch.setenv("DOCKER_HOST", "tcp://process-env:2375")
        monkeypatch.delenv("DOCKER_API_VERSION", raising=False)

        assert load_config().url == "tcp://process-env:2375"
