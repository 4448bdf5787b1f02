import pytest

from conftest import auth

U1 = auth("u1", email="u1@example.com", name="Una")
U2 = auth("u2", email="u2@example.com", name="Dos")
U3 = auth("u3", email="u3@example.com", name="Tres")


def make_board(client, name="Roadmap", headers=U1):
    resp = client.post("/v1/boards", json={"name": name}, headers=headers)
    assert resp.status_code == 201
    return resp.json()


def add_member(client, board_id, email, role, headers=U1):
    return client.post(f"/v1/boards/{board_id}/members", json={"email": email, "role": role}, headers=headers)


def board_view(client, board_id, headers=U1):
    resp = client.get(f"/v1/boards/{board_id}", headers=headers)
    assert resp.status_code == 200
    return resp.json()


def register(client, *headers):
    # the identity headers are mirrored on the first authenticated request
    for h in headers:
        assert client.get("/v1/boards", headers=h).status_code == 200


def test_requests_without_identity_are_unauthenticated(client):
    resp = client.get("/v1/boards")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthenticated"
    assert client.get("/v1/boards", headers={"Authorization": "Basic abc"}).status_code == 401


def test_new_board_gets_default_lists_and_labels(client):
    board = make_board(client)
    assert board["ownerId"] == "u1"
    assert board["background"] == "#059669"
    view = board_view(client, board["id"])
    assert view["myRole"] == "owner"
    assert [(l["title"], l["position"]) for l in view["lists"]] == [
        ("To Do", 0),
        ("In Progress", 1),
        ("Done", 2),
    ]
    assert {l["name"] for l in view["labels"]} == {
        "Bug",
        "Feature",
        "Enhancement",
        "Urgent",
        "Design",
        "Documentation",
    }


def test_roadmap_card_move_scenario(client):
    board = make_board(client)
    bid = board["id"]
    lists = board_view(client, bid)["lists"]
    first, second = lists[0]["id"], lists[1]["id"]

    fix = client.post(f"/v1/boards/{bid}/cards", json={"listId": first, "title": "Fix bug"}, headers=U1).json()
    docs = client.post(f"/v1/boards/{bid}/cards", json={"listId": first, "title": "Write docs"}, headers=U1).json()
    assert (fix["position"], docs["position"]) == (0, 1)

    resp = client.patch(
        f"/v1/boards/{bid}/cards/reorder",
        json={
            "cards": [
                {"id": fix["id"], "listId": second, "position": 0},
                {"id": docs["id"], "listId": first, "position": 0},
            ]
        },
        headers=U1,
    )
    assert resp.status_code == 200

    lists = board_view(client, bid)["lists"]
    assert [(c["title"], c["position"]) for c in lists[0]["cards"]] == [("Write docs", 0)]
    assert [(c["title"], c["position"]) for c in lists[1]["cards"]] == [("Fix bug", 0)]


def test_single_card_move_endpoint(client):
    bid = make_board(client)["id"]
    lists = board_view(client, bid)["lists"]
    first, second = lists[0]["id"], lists[1]["id"]
    cards = [
        client.post(f"/v1/boards/{bid}/cards", json={"listId": first, "title": t}, headers=U1).json()
        for t in ("a", "b", "c")
    ]
    client.post(f"/v1/boards/{bid}/cards", json={"listId": second, "title": "x"}, headers=U1)

    resp = client.post(f"/v1/boards/{bid}/cards/{cards[1]['id']}/move", json={"listId": second, "index": 0}, headers=U1)
    assert resp.status_code == 200
    assert resp.json()["listId"] == second
    assert resp.json()["position"] == 0

    lists = board_view(client, bid)["lists"]
    assert [(c["title"], c["position"]) for c in lists[0]["cards"]] == [("a", 0), ("c", 1)]
    assert [(c["title"], c["position"]) for c in lists[1]["cards"]] == [("b", 0), ("x", 1)]


def test_non_member_then_viewer_scenario(client):
    register(client, U2)
    bid = make_board(client)["id"]

    resp = client.get(f"/v1/boards/{bid}", headers=U2)
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "forbidden"

    assert add_member(client, bid, "u2@example.com", "viewer").status_code == 201
    view = board_view(client, bid, headers=U2)
    assert view["myRole"] == "viewer"

    # viewers may still create content on the board
    resp = client.post(f"/v1/boards/{bid}/lists", json={"title": "Ideas"}, headers=U2)
    assert resp.status_code == 201
    assert resp.json()["position"] == 3


@pytest.mark.parametrize("role", ["viewer", "member"])
def test_plain_members_cannot_close_or_delete(client, role):
    register(client, U2)
    bid = make_board(client)["id"]
    add_member(client, bid, "u2@example.com", role)

    resp = client.patch(f"/v1/boards/{bid}", json={"isClosed": True}, headers=U2)
    assert resp.status_code == 403
    assert client.delete(f"/v1/boards/{bid}", headers=U2).status_code == 403
    assert board_view(client, bid)["board"]["isClosed"] is False


def test_admin_can_update_but_only_owner_deletes(client):
    register(client, U2)
    bid = make_board(client)["id"]
    add_member(client, bid, "u2@example.com", "admin")

    resp = client.patch(f"/v1/boards/{bid}", json={"name": "Roadmap 2", "description": "Q3"}, headers=U2)
    assert resp.status_code == 200
    assert resp.json()["name"] == "Roadmap 2"
    assert resp.json()["description"] == "Q3"

    assert client.delete(f"/v1/boards/{bid}", headers=U2).status_code == 403
    assert client.delete(f"/v1/boards/{bid}", headers=U1).status_code == 200
    assert client.get(f"/v1/boards/{bid}", headers=U1).status_code == 403


def test_closed_board_is_inaccessible_but_owner_can_delete(client):
    bid = make_board(client)["id"]
    assert client.patch(f"/v1/boards/{bid}", json={"isClosed": True}, headers=U1).status_code == 200
    assert client.get(f"/v1/boards/{bid}", headers=U1).status_code == 403
    assert client.post(f"/v1/boards/{bid}/lists", json={"title": "x"}, headers=U1).status_code == 403
    assert client.delete(f"/v1/boards/{bid}", headers=U1).status_code == 200


def test_update_board_requires_fields(client):
    bid = make_board(client)["id"]
    resp = client.patch(f"/v1/boards/{bid}", json={}, headers=U1)
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "No fields to update"
    assert client.patch(f"/v1/boards/{bid}", json={"name": None}, headers=U1).status_code == 400


def test_board_name_is_bounded(client):
    resp = client.post("/v1/boards", json={"name": "x" * 101}, headers=U1)
    assert resp.status_code == 400
    body = resp.json()["error"]
    assert body["code"] == "validation_error"
    assert "name" in body["details"]["fields"]


def test_list_boards_includes_shared_boards_with_member_count(client):
    register(client, U2, U3)
    mine = make_board(client, "Mine")
    shared = make_board(client, "Shared", headers=U2)
    add_member(client, shared["id"], "u1@example.com", "member", headers=U2)
    add_member(client, shared["id"], "u3@example.com", "viewer", headers=U2)
    make_board(client, "Not mine", headers=U3)

    boards = {b["name"]: b for b in client.get("/v1/boards", headers=U1).json()["boards"]}
    assert set(boards) == {"Mine", "Shared"}
    assert boards["Mine"]["memberCount"] == 1
    assert boards["Shared"]["memberCount"] == 3
    assert boards["Mine"]["id"] == mine["id"]


def test_member_management(client):
    register(client, U2, U3)
    bid = make_board(client)["id"]

    assert add_member(client, bid, "nobody@example.com", "member").status_code == 404
    assert add_member(client, bid, "u1@example.com", "member").status_code == 409
    assert add_member(client, bid, "u2@example.com", "member").status_code == 201
    resp = add_member(client, bid, "u2@example.com", "admin")
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "conflict"

    # only owner/admin may manage members
    assert add_member(client, bid, "u3@example.com", "viewer", headers=U2).status_code == 403

    page = client.get(f"/v1/boards/{bid}/members", headers=U2).json()
    assert page["owner"]["id"] == "u1"
    assert [(m["userId"], m["role"], m["user"]["name"]) for m in page["members"]] == [("u2", "member", "Dos")]

    assert client.delete(f"/v1/boards/{bid}/members/u1", headers=U1).status_code == 403
    assert client.delete(f"/v1/boards/{bid}/members/u3", headers=U1).status_code == 404
    assert client.delete(f"/v1/boards/{bid}/members/u2", headers=U1).status_code == 200
    assert client.get(f"/v1/boards/{bid}", headers=U2).status_code == 403


def test_member_role_must_be_known(client):
    register(client, U2)
    bid = make_board(client)["id"]
    assert add_member(client, bid, "u2@example.com", "owner").status_code == 400


def test_board_view_roster_and_card_annotations(client):
    register(client, U2)
    bid = make_board(client)["id"]
    add_member(client, bid, "u2@example.com", "member")
    view = board_view(client, bid)
    todo = view["lists"][0]["id"]
    bug = next(l for l in view["labels"] if l["name"] == "Bug")

    card = client.post(f"/v1/boards/{bid}/cards", json={"listId": todo, "title": "Crash"}, headers=U1).json()
    client.post(f"/v1/boards/{bid}/cards/{card['id']}/labels", json={"labelId": bug["id"]}, headers=U1)
    client.post(f"/v1/boards/{bid}/cards/{card['id']}/members", json={"userId": "u1"}, headers=U1)
    client.post(f"/v1/boards/{bid}/cards/{card['id']}/members", json={"userId": "u2"}, headers=U1)
    archived = client.post(f"/v1/boards/{bid}/cards", json={"listId": todo, "title": "Old"}, headers=U1).json()
    client.patch(f"/v1/boards/{bid}/cards/{archived['id']}", json={"isArchived": True}, headers=U1)

    view = board_view(client, bid)
    cards = view["lists"][0]["cards"]
    assert [c["title"] for c in cards] == ["Crash"]
    assert cards[0]["memberCount"] == 2
    assert [l["name"] for l in cards[0]["labels"]] == ["Bug"]
    assert [(m["userId"], m["user"]["email"]) for m in view["members"]] == [("u2", "u2@example.com")]


def test_update_board_clears_blank_description(client):
    bid = client.post("/v1/boards", json={"name": "Roadmap", "description": "Q3"}, headers=U1).json()["id"]
    resp = client.patch(f"/v1/boards/{bid}", json={"description": "   "}, headers=U1)
    assert resp.status_code == 200
    assert resp.json()["description"] is None
    resp = client.patch(f"/v1/boards/{bid}", json={"description": "  Q4 goals  "}, headers=U1)
    assert resp.json()["description"] == "Q4 goals"
