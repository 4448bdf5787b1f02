from sqlalchemy.orm import sessionmaker

from bello.db import User
from bello.store import ensure_user


def test_ensure_user_creates_then_refreshes_profile(session, count_rows):
    ensure_user(session, "u1", name="Una", email="una@example.com")
    user = ensure_user(session, "u1", email="una@work.example.com")
    assert (user.name, user.email) == ("Una", "una@work.example.com")
    assert count_rows(User) == 1


def test_ensure_user_survives_concurrent_first_insert(engine, session, count_rows, monkeypatch):
    other = sessionmaker(bind=engine)()
    lookup = session.get

    def lookup_racing_with_other_request(model, ident):
        # the other request inserts the same identity between our lookup and our commit
        found = lookup(model, ident)
        if found is None and ident == "new":
            other.add(User(id="new", name="First"))
            other.commit()
        return found

    monkeypatch.setattr(session, "get", lookup_racing_with_other_request)
    user = ensure_user(session, "new", email="new@example.com")
    other.close()

    assert user.id == "new"
    assert user.name == "First"
    assert user.email == "new@example.com"
    assert count_rows(User) == 1


def test_first_authenticated_requests_do_not_duplicate_users(client, count_rows):
    headers = {"Authorization": "Bearer u7", "X-User-Email": "u7@example.com"}
    assert client.get("/v1/boards", headers=headers).status_code == 200
    assert client.get("/v1/boards", headers=headers).status_code == 200
    assert count_rows(User, User.id == "u7") == 1
