import tempfile
from types import SimpleNamespace

import pytest


def _settings(**overrides):
    values = dict(
        openai_api_key=None,
        openai_access_token=None,
        openai_api_base_url=None,
        openai_api_model=None,
        api_reverse_proxy=None,
        timeout_ms=30000,
        openai_api_disable_debug=False,
        https_proxy=None,
        all_proxy=None,
        socks_proxy_host=None,
        socks_proxy_port=None,
        socks_proxy_username=None,
        socks_proxy_password=None,
        message_store="memory",
        storage_root=".storage",
        log_dir="logs",
        log_redact_content=False,
        openai_cli="openai",
        cli_timeout=5.0,
        upload_root=tempfile.gettempdir(),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def make_settings():
    return _settings
