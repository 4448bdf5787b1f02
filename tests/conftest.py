import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bello.config import Settings, get_settings
from bello.db import Base, get_session
from bello.main import app

TEST_SETTINGS = Settings(
    database_url="sqlite://",
    r2_account_id="acct123",
    r2_access_key_id="test-access-key",
    r2_secret_access_key="test-secret-key",
    r2_bucket_name="bello-uploads",
)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(engine):
    db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(engine):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_session():
        db = factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_settings] = lambda: TEST_SETTINGS
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def count_rows(engine):
    def count(model, *criteria):
        with engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(model).where(*criteria)).scalar_one()

    return count


def auth(user_id: str, email: str | None = None, name: str | None = None) -> dict:
    headers = {"Authorization": f"Bearer {user_id}"}
    if email:
        headers["X-User-Email"] = email
    if name:
        headers["X-User-Name"] = name
    return headers
