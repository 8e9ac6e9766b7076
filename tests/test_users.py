from tests.conftest import HR_EMAIL, auth


def test_register_user_twice_rejects_duplicate(client):
    first = client.post("/users", json={"email": "a@x.com"})
    assert first.status_code == 201
    body = first.json()
    assert body["email"] == "a@x.com"
    assert body["role"] == "employee"
    assert body["packageLimit"] == 0
    assert "createdAt" in body
    assert "_id" in body

    second = client.post("/users", json={"email": "a@x.com"})
    assert second.status_code == 400
    assert second.json() == {"success": False, "message": "User already exists"}


def test_register_user_keeps_profile_fields(client, db):
    response = client.post(
        "/users",
        json={"email": "boss@acme.com", "name": "Boss", "role": "hr", "companyName": "Acme", "dateOfBirth": "1990-02-01"},
    )
    assert response.status_code == 201
    stored = db["users"].find_one({"email": "boss@acme.com"})
    assert stored["companyName"] == "Acme"
    assert stored["dateOfBirth"] == "1990-02-01"
    assert stored["role"] == "hr"


def test_register_user_rejects_unknown_fields(client):
    response = client.post("/users", json={"email": "a@x.com", "isAdmin": True})
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_register_user_rejects_malformed_email(client):
    response = client.post("/users", json={"email": "not-an-email"})
    assert response.status_code == 400


def test_user_role(client, hr_user):
    assert client.get(f"/user-role/{HR_EMAIL}/role").json() == {"role": "hr"}
    assert client.get("/user-role/nobody@x.com/role").json() == {"role": None}


def test_missing_bearer_is_unauthorized(client, hr_user):
    response = client.get("/my-team")
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_invalid_bearer_is_unauthorized(client, hr_user):
    assert client.get("/my-team", headers=auth("invalid")).status_code == 401


def test_employee_is_forbidden_on_hr_routes(client, hr_user):
    response = client.get("/my-team", headers=auth("employee@acme.com"))
    assert response.status_code == 403


def test_unknown_user_is_forbidden_on_hr_routes(client, hr_user):
    assert client.get("/my-team", headers=auth("ghost@acme.com")).status_code == 403


def test_root_and_health(client):
    assert client.get("/").json() == {"message": "Asset Management Backend Running"}
    body = client.get("/test").json()
    assert body["database"] == "ok"
    assert "users" in body["collections"]


def test_request_id_header_is_echoed(client):
    response = client.get("/", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"


def test_register_user_cannot_grant_itself_seats(client, db):
    response = client.post(
        "/users",
        json={"email": "free@x.com", "role": "hr", "packageLimit": 1000, "subscription": "Premium"},
    )
    assert response.status_code == 400
    assert db["users"].find_one({"email": "free@x.com"}) is None

    created = client.post("/users", json={"email": "free@x.com", "role": "hr"}).json()
    assert created["packageLimit"] == 0
    assert created["subscription"] is None
