import sys
from pathlib import Path

import pytest

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.config import Settings  # noqa: E402


@pytest.fixture
def fast_settings():
    """No backoff sleeps, short timeouts."""
    return Settings(
        environment="development",
        embedding_timeout_seconds=1.0,
        embedding_max_retries=2,
        embedding_backoff_seconds=0.0,
        embedding_backoff_max_seconds=0.0,
        request_deadline_seconds=5.0,
        warmup_image_dir=None,
    )
