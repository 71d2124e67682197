from __future__ import annotations

import os

import pytest

# Set env before any claimflow imports (settings/engine are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.claimflow_test.db")
os.environ.setdefault("MATERIALITY_THRESHOLD", "100")


@pytest.fixture(autouse=True)
def _reset_db() -> None:
    import claimflow.models  # noqa: F401
    from claimflow.core.db import engine
    from claimflow.core.models import Base

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield
