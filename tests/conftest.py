"""
Pytest configuration and shared fixtures for CertChain tests.

This module provides shared fixtures and test configuration including:
- Fresh chain and in-memory storage instances
- A temporary uploads directory
- A live server on an ephemeral port, run on a background thread
- Metrics reset between tests
"""

import os
import sys

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

# Keep a developer's .env out of the test run
os.environ.setdefault("STORAGE_BACKEND", "memory")


@pytest.fixture(scope="function")
def fresh_chain():
    """Create a chain holding only the genesis block."""
    from blockchain import CertificateChain
    return CertificateChain()


@pytest.fixture(scope="function")
def memory_storage():
    """Create an empty in-memory storage backend."""
    from storage.memory import MemoryStorage
    return MemoryStorage()


@pytest.fixture(scope="function")
def uploads_dir(tmp_path):
    """Directory for uploaded certificate files."""
    path = tmp_path / "uploads"
    path.mkdir()
    return str(path)


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with empty metrics."""
    from monitoring import metrics
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture(scope="function")
def service(fresh_chain, memory_storage, uploads_dir):
    """Certificate handlers over a fresh chain and memory storage."""
    from certificate_service import CertificateService
    return CertificateService(fresh_chain, memory_storage, uploads_dir)


@pytest.fixture(scope="function")
def server_config(uploads_dir):
    """Configuration for a server on an ephemeral local port."""
    from config import ServerConfig
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        max_workers=10,
        connection_timeout=2.0,
        max_body_bytes=1024 * 1024,
        uploads_dir=uploads_dir,
        storage_backend="memory",
    )


@pytest.fixture(scope="function")
def live_server(server_config, memory_storage):
    """Start a server on a background thread and stop it after the test."""
    from server import build_application

    server = build_application(server_config, storage=memory_storage)
    server.start()
    try:
        yield server
    finally:
        server.stop()


@pytest.fixture(scope="function")
def base_url(live_server):
    """Base URL of the live server."""
    host, port = live_server.server_address
    return f"http://{host}:{port}"
