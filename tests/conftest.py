from __future__ import annotations

import os
import tempfile

_TEST_DIR = tempfile.mkdtemp(prefix="jobboard-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TEST_DIR}/test.db")
os.environ.setdefault("DATA_DIR", _TEST_DIR)
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("STRIPE_EMPLOYER_PRICE_ID", "price_test_employer")
os.environ.setdefault("ZOHO_CLIENT_ID", "zoho-client")
os.environ.setdefault("ZOHO_CLIENT_SECRET", "zoho-secret")

import pytest  # noqa: E402

from jobboard.db.base import Base  # noqa: E402
from jobboard.db import models  # noqa: E402,F401
from jobboard.db.session import engine  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
