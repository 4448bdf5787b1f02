import pytest
from sqlalchemy import select

from bello import db
from bello.config import Settings, load_settings
from bello.db import User


def test_load_settings_reads_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///tmp/x.db")
    monkeypatch.setenv("BELLO_STORE_SCOPE", "Request")
    monkeypatch.setenv("BELLO_LOG_LEVEL", "debug")
    monkeypatch.setenv("R2_ACCOUNT_ID", "acct")
    monkeypatch.setenv("BELLO_UPLOAD_EXPIRES", "120")
    settings = load_settings()
    assert settings.database_url == "sqlite:///tmp/x.db"
    assert settings.store_scope == "request"
    assert settings.log_level == "DEBUG"
    assert settings.upload_expires == 120
    assert settings.storage_endpoint == "https://acct.r2.cloudflarestorage.com"
    assert not settings.storage_configured


def test_unknown_store_scope_is_rejected(monkeypatch):
    monkeypatch.setenv("BELLO_STORE_SCOPE", "thread")
    with pytest.raises(ValueError):
        load_settings()


def _write_user(settings, user_id):
    sessions = db.get_session(settings)
    session = next(sessions)
    session.add(User(id=user_id, email=f"{user_id}@example.com"))
    session.commit()
    sessions.close()


def _user_ids(settings):
    sessions = db.get_session(settings)
    session = next(sessions)
    try:
        return session.execute(select(User.id).order_by(User.id)).scalars().all()
    finally:
        sessions.close()


def test_request_scope_opens_a_fresh_engine_per_session(tmp_path):
    settings = Settings(database_url=f"sqlite:///{tmp_path / 'request.db'}", store_scope="request")
    db.init_db(settings)
    _write_user(settings, "a")
    _write_user(settings, "b")
    assert _user_ids(settings) == ["a", "b"]


def test_process_scope_reuses_one_engine(tmp_path):
    settings = Settings(database_url=f"sqlite:///{tmp_path / 'process.db'}")
    try:
        db.init_db(settings)
        engine = db._engine
        _write_user(settings, "a")
        assert db.get_engine(settings) is engine
        assert _user_ids(settings) == ["a"]
    finally:
        db.dispose_engine()
    assert db._engine is None
