import pytest
from fastapi.testclient import TestClient

from proxy_gateway.config import AppConfig
from proxy_gateway.server import create_app
from proxy_gateway.utils_tests.upstream import RecordingUpstream

DEFAULT_CONFIG = {
    "server": {"host": "127.0.0.1", "port": 3000},
    "target": {"host": "172.22.32.12", "port": 8383, "protocol": "https"},
    "proxy": {"path_prefix": "/federation-server"},
    "request": {"timeout": 5, "accept_invalid_certs": True},
    "log": {"level": "debug"},
}


@pytest.fixture
def make_config():
    """Factory for configs, keyword arguments override whole sections' fields."""

    def _make(**overrides) -> AppConfig:
        values = {
            section: {**fields, **overrides.get(section, {})}
            for section, fields in DEFAULT_CONFIG.items()
        }
        return AppConfig.model_validate(values)

    return _make


@pytest.fixture
def proxy_config(make_config):
    return make_config()


@pytest.fixture
def upstream():
    return RecordingUpstream()


@pytest.fixture
def gateway(proxy_config, upstream):
    """TestClient in front of the gateway, upstream served by the recorder."""
    app = create_app(proxy_config, client=upstream.client())
    with TestClient(app) as client:
        yield client
