"""
Pytest configuration and fixtures for the GGUF launcher test suite.

This module provides shared fixtures, test configuration, and utilities
for all test modules in the project.
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Generator
from unittest.mock import Mock, patch

import pytest
from click.testing import CliRunner

from gguf_launcher.config import Settings, load_settings

TEST_CONFIG = """HF_REPO=test/test-repo
MODEL_NAME=test-model
MODEL_QUANT=Q4_K_M
RAM_LIMIT=8G
USE_MMAP=true
USE_MLOCK=false
CONTEXT_SIZE=2048
MAX_TOKENS=1024
TEMPERATURE=0.7
GPU_LAYERS=0
DOWNLOAD_TIMEOUT=60
DOWNLOAD_MAX_RETRIES=3
DOWNLOAD_RETRY_DELAY=1
"""


@pytest.fixture(scope="function")
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for each test."""
    temp_dir = Path(tempfile.mkdtemp())
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(scope="function")
def mock_env() -> Generator[Dict[str, str], None, None]:
    """Provide a clean environment for each test."""
    original_env = os.environ.copy()
    os.environ.clear()
    yield {}
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture(scope="function")
def config_file(temp_dir: Path) -> Path:
    """Provide a minimal config.env pointing MODELS_DIR into the temp directory."""
    path = temp_dir / "config.env"
    path.write_text(TEST_CONFIG + f"MODELS_DIR={temp_dir / 'models'}\n")
    return path


@pytest.fixture(scope="function")
def settings(config_file: Path) -> Settings:
    """Provide settings loaded from the test config file."""
    return load_settings(config_file)


@pytest.fixture(scope="function")
def sample_gguf_model(temp_dir: Path) -> Path:
    """Provide a sample single-file GGUF model for testing."""
    models_dir = temp_dir / "models"
    models_dir.mkdir(exist_ok=True)
    model_path = models_dir / "test-model-Q2_K.gguf"
    model_path.write_bytes(b"fake gguf model content")
    return model_path


@pytest.fixture(scope="function")
def sample_shards(temp_dir: Path) -> Path:
    """Provide a sharded Q4_K_M model (three shards) and return the first shard."""
    shard_dir = temp_dir / "models" / "Q4_K_M"
    shard_dir.mkdir(parents=True)
    for i in range(1, 4):
        (shard_dir / f"test-model-Q4_K_M-0000{i}-of-00003.gguf").write_bytes(b"shard")
    return shard_dir / "test-model-Q4_K_M-00001-of-00003.gguf"


@pytest.fixture(scope="function")
def mock_subprocess() -> Generator[Mock, None, None]:
    """Provide a mocked subprocess.run for testing process execution."""
    with patch("gguf_launcher.launcher.subprocess.run") as mock_run:
        mock_run.return_value = Mock(returncode=0, stdout="", stderr="")
        yield mock_run


@pytest.fixture(scope="function")
def mock_psutil() -> Generator[Mock, None, None]:
    """Provide a mocked psutil for testing process management."""
    with patch("psutil.Process") as mock_process_class:
        mock_process = Mock()
        mock_process.children.return_value = []
        mock_process.terminate.return_value = None
        mock_process.wait.return_value = None
        mock_process_class.return_value = mock_process
        yield mock_process_class


@pytest.fixture(scope="function")
def mock_huggingface_hub() -> Generator[Dict[str, Mock], None, None]:
    """Provide a mocked huggingface_hub for testing HF downloads."""
    with patch("gguf_launcher.sources_hf.snapshot_download") as mock_snapshot, patch(
        "gguf_launcher.sources_hf.hf_hub_download"
    ) as mock_download:
        mock_snapshot.return_value = None
        mock_download.return_value = "/tmp/test/model.gguf"
        yield {"snapshot": mock_snapshot, "download": mock_download}


@pytest.fixture(scope="function")
def cli_runner() -> CliRunner:
    """Provide a click test runner."""
    return CliRunner()


# Test configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "mock: mark test as using mocks")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add default markers."""
    for item in items:
        # Add unit marker to tests that don't have integration marker
        if "integration" not in item.keywords:
            item.add_marker(pytest.mark.unit)
