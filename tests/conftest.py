"""
Shared test fixtures and configuration for pytest
"""
import os
import ssl

os.environ.setdefault("MAILRELAY_LOG_TO_FILE", "0")

import pytest  # noqa: E402
import trustme  # noqa: E402

from mailrelay.core.email.smtp.models import ConnectionConfig, Envelope  # noqa: E402
from mailrelay.utils.config_manager import ConfigManager, set_config_manager  # noqa: E402

from .test_helpers import FakeSMTPServer  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_config(tmp_path):
    """Point the shared ConfigManager at a throwaway config file"""
    manager = ConfigManager(tmp_path / "config.json")
    set_config_manager(manager)
    yield manager
    set_config_manager(None)


@pytest.fixture
def starttls_config():
    """Submission port with STARTTLS upgrade"""
    return ConnectionConfig(
        host="smtp.example.com",
        port=587,
        use_tls=True,
        username="u",
        password="p",
        from_address="a@x.com",
        from_display_name="Escola Exemplo",
    )


@pytest.fixture
def implicit_tls_config(starttls_config):
    """Port 465 with TLS negotiated on connect"""
    return starttls_config.model_copy(update={"port": 465})


@pytest.fixture
def plaintext_config(starttls_config):
    """Legacy relay without encryption"""
    return starttls_config.model_copy(update={"port": 25, "use_tls": False})


@pytest.fixture
def html_envelope():
    """Non-ASCII subject with an HTML body"""
    return Envelope(
        to_address="b@y.com",
        subject="Olá",
        body="<b>hi</b>",
        is_html=True,
    )


@pytest.fixture
def fake_server():
    """Scripted SMTP server with default happy-path replies"""
    return FakeSMTPServer()


@pytest.fixture(scope="session")
def tls_contexts():
    """Server and client contexts sharing a throwaway CA for 127.0.0.1"""
    ca = trustme.CA()
    server_context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    ca.issue_cert("127.0.0.1").configure_cert(server_context)
    client_context = ssl.create_default_context()
    ca.configure_trust(client_context)
    return server_context, client_context
