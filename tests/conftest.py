import pytest
import os
from io import BytesIO

from fastapi.testclient import TestClient
from openpyxl import Workbook
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")

import stockdesk.models  # noqa: F401
from stockdesk.core.deps import get_db
from stockdesk.core.security_current import Actor
from stockdesk.db.base import Base
from stockdesk.db.session import configure_sqlite_engine
from stockdesk.main import app

ACTOR_HEADERS = {"X-Actor-Id": "user1", "X-Actor-Name": "User One"}
IMPORT_HEADER_ROW = [
    "Date",
    "Bill No",
    "Supplier",
    "Part Code",
    "Amount",
    "Item Details",
    "In Stock",
    "SPU Cleared",
    "SPU Pending",
    "Return",
    "Return Pending",
    "Pending To Check",
    "OG",
    "Notes",
]


def _make_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite_engine(engine)
    return engine


@pytest.fixture()
def test_context():
    engine = _make_engine()
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield client, session_local

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session():
    engine = _make_engine()
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    db = session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def actor() -> Actor:
    return Actor(id="user1", name="User One")


def build_workbook(rows: list[list], *, header: list | None = None) -> bytes:
    """Serialize rows into an in-memory .xlsx, header row first."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(header if header is not None else IMPORT_HEADER_ROW)
    for row in rows:
        sheet.append(row)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture()
def make_workbook():
    return build_workbook


@pytest.fixture()
def actor_headers() -> dict[str, str]:
    return dict(ACTOR_HEADERS)
