"""
Shared fixtures. Required settings are seeded before anything imports sitepress.core.config.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "whsec_test_secret_0123456789")
os.environ.setdefault("GITHUB_TOKEN", "ghp_test")
os.environ.setdefault("GITHUB_OWNER", "acme")
os.environ.setdefault("GITHUB_REPO", "sites")
os.environ.setdefault("GITHUB_WEBHOOK_SECRET", "gh_test_secret")
os.environ.setdefault("ADMIN_API_KEY", "admin-test-key")

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sitepress.db.base import Base
from sitepress.models import operation as _operation_model  # noqa: F401  (registers the table)


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)
