"""Pytest configuration and shared fixtures for n8n-cloudrun tests."""

import os
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from n8n_cloudrun.models.project import ProjectConfig


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test file operations.

    Yields:
        Path to temporary directory

    Cleanup:
        Automatically removes directory after test
    """
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def isolated_env() -> Generator[dict[str, str], None, None]:
    """Provide isolated environment variables for testing.

    Removes every ``TF_VAR_*`` variable for the duration of the test and
    restores the original environment afterwards.

    Yields:
        Dictionary of original environment variables
    """
    original_env = os.environ.copy()
    for key in list(os.environ):
        if key.startswith("TF_VAR_"):
            del os.environ[key]
    yield original_env
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def project_config() -> ProjectConfig:
    """A valid configuration with every default in place."""
    return ProjectConfig(project_id="proj-123")


@pytest.fixture
def tfvars_file(temp_dir: Path) -> Path:
    """A deploy.tfvars file naming only the project."""
    path = temp_dir / "deploy.tfvars"
    path.write_text('gcp_project_id = "proj-123"\n')
    return path


# Configure pytest
def pytest_configure(config: Any) -> None:
    """Configure pytest with marker options."""
    config.addinivalue_line(
        "markers",
        "unit: marks tests as unit tests",
    )
