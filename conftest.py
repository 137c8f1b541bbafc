"""
Pytest configuration and shared fixtures.

Test environment variables are set here, before any wabridge import reads
settings. Values already present in the environment win.
"""

import os
import tempfile

_tmp_dir = tempfile.mkdtemp(prefix="wabridge-test-")

os.environ.setdefault("DATABASE_URL", f"sqlite:///{_tmp_dir}/test.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("WEBHOOK_SECRET", "test-app-secret")
os.environ.setdefault("WB_PHONE_NUMBER_ID", "106540352242922")
os.environ.setdefault("WB_VERIFY_TOKEN", "test-verify-token")
os.environ.setdefault("MEDIA_ROOT", f"{_tmp_dir}/media")

import pytest

# Clear settings cache before any app imports to ensure test env vars are used
from wabridge.config import get_settings
get_settings.cache_clear()

from wabridge.storage import Base, SessionLocal, engine
from wabridge import models  # noqa: F401


@pytest.fixture(scope="function")
def db():
    """Session on freshly created tables."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
