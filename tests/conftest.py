# Test configuration
import importlib.util
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).parent.parent

# Add repo root to path so tests can import modules
sys.path.insert(0, str(REPO_ROOT))

from encoding_gateway.config import get_settings  # noqa: E402

HAS_GRPC_TOOLS = importlib.util.find_spec("grpc_tools") is not None

requires_protoc = pytest.mark.skipif(
    not HAS_GRPC_TOOLS, reason="grpcio-tools is not installed"
)


@pytest.fixture
def scratch_root(tmp_path, monkeypatch):
    """Point scratch workspaces at an empty directory for the test."""
    root = tmp_path / "scratch"
    root.mkdir()
    monkeypatch.setenv("SCRATCH_DIR", str(root))
    get_settings.cache_clear()
    yield root
    get_settings.cache_clear()
