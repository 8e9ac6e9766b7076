from datetime import datetime, timedelta, timezone

from schemas import Package
from tests.conftest import HR_EMAIL, auth


def test_add_asset_then_listed_first(client, db, hr_user):
    db["asset_collection"].insert_one(
        {"productName": "Old Laptop", "availableQuantity": 1, "dataAdded": datetime.now(timezone.utc) - timedelta(days=3)}
    )

    response = client.post(
        "/add-asset",
        json={"productName": "Monitor", "productType": "returnable", "availableQuantity": 3},
        headers=auth(HR_EMAIL),
    )
    assert response.status_code == 201
    created = response.json()
    assert created["productName"] == "Monitor"
    assert created["hrEmail"] == HR_EMAIL
    assert created["dataAdded"]

    listed = client.get("/asset-list").json()
    assert [a["productName"] for a in listed] == ["Monitor", "Old Laptop"]


def test_add_asset_rejects_duplicate_name(client, hr_user):
    payload = {"productName": "Chair", "availableQuantity": 2}
    assert client.post("/add-asset", json=payload, headers=auth(HR_EMAIL)).status_code == 201
    response = client.post("/add-asset", json=payload, headers=auth(HR_EMAIL))
    assert response.status_code == 400
    assert response.json()["message"] == "product already exists"


def test_add_asset_rejects_negative_quantity(client, hr_user):
    response = client.post("/add-asset", json={"productName": "Desk", "availableQuantity": -1}, headers=auth(HR_EMAIL))
    assert response.status_code == 400


def test_add_asset_requires_hr(client, hr_user):
    response = client.post("/add-asset", json={"productName": "Desk", "availableQuantity": 1}, headers=auth("employee@acme.com"))
    assert response.status_code == 403


def test_packages_sorted_by_employee_limit(client, db):
    for name, limit, price in (("Basic", 5, 5), ("Premium", 20, 15), ("Standard", 10, 8)):
        db["package_collection"].insert_one(Package(name=name, employeeLimit=limit, price=price).model_dump())

    names = [p["name"] for p in client.get("/packages").json()]
    assert names == ["Premium", "Standard", "Basic"]


def test_listing_limit_is_applied(client, db):
    for i in range(5):
        db["package_collection"].insert_one({"name": f"P{i}", "employeeLimit": i + 1, "price": 1})
    assert len(client.get("/packages", params={"limit": 2}).json()) == 2
    assert client.get("/packages", params={"limit": 0}).status_code == 400
