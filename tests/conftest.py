import os

# Set testing environment before the app (and its settings) are imported
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///./test.db"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from medrelay.main import app
from medrelay.core.database import Base, get_db, get_session_factory, redis_client
from medrelay.core.storage import ReportStorage, get_storage

# Create test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()

def override_get_session_factory():
    return TestingSessionLocal

app.dependency_overrides[get_db] = override_get_db
app.dependency_overrides[get_session_factory] = override_get_session_factory

@pytest.fixture(scope="function")
def test_db():
    # Create tables
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def db_session(test_db):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture
def session_factory(test_db):
    return TestingSessionLocal

@pytest.fixture
def storage(tmp_path):
    report_storage = ReportStorage(str(tmp_path), "reports")
    app.dependency_overrides[get_storage] = lambda: report_storage
    yield report_storage
    app.dependency_overrides.pop(get_storage, None)

@pytest.fixture
def client(storage, test_db):
    redis_client.data.clear()
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client
