"""
Asset request lifecycle: submission, approval/rejection and asset return.

Approval touches four collections in sequence (request status, asset
inventory, assignment, affiliation). MongoDB offers no cross-document
transaction on a standalone deployment, so the steps are ordered to fail
before any write where possible:

1. every precondition (asset matches the request and exists, quantity
   numeric and positive) is checked up front,
2. the request is claimed with a conditional ``pending -> approved`` update,
3. the inventory is decremented with a compare-and-set on the value just
   read, never below zero; if that fails the claim is reverted to pending,
4. the assignment row is inserted and the affiliation is upserted.

A failure in step 4 leaves the request approved and the stock decremented
without the assignment; that window is logged with the request id.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from fastapi import HTTPException
from pymongo import ReturnDocument
from pymongo.database import Database

from database import AFFILIATIONS, ASSETS, ASSIGNED_ASSETS, REQUESTS, object_id, serialize
from schemas import (
    PENDING_NOTE,
    Affiliation,
    AssetRequest,
    AssetRequestCreate,
    AssignedAsset,
    RequestStatusUpdate,
)

logger = structlog.get_logger(__name__)

DECREMENT_ATTEMPTS = 5


def submit_request(db: Database, payload: AssetRequestCreate) -> Dict[str, Any]:
    data = payload.model_dump(mode="json")
    company_logo = data.pop("companyLogo", None)
    request = AssetRequest(
        **data,
        requestDate=datetime.now(timezone.utc),
        approvalDate=None,
        requestStatus="pending",
        note=PENDING_NOTE,
    ).model_dump()
    if company_logo:
        request["companyLogo"] = company_logo
    result = db[REQUESTS].insert_one(request)
    request["_id"] = result.inserted_id
    return serialize(request)


def parse_quantity(value: Any) -> int:
    if isinstance(value, bool):
        raise HTTPException(status_code=400, detail="Invalid availableQuantity")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid availableQuantity")


def _claim_request(db: Database, request_oid, new_status: str, now: datetime) -> Dict[str, Any]:
    updated = db[REQUESTS].find_one_and_update(
        {"_id": request_oid, "requestStatus": "pending"},
        {"$set": {"requestStatus": new_status, "approvalDate": now}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        if db[REQUESTS].find_one({"_id": request_oid}, {"_id": 1}) is None:
            raise HTTPException(status_code=404, detail="Request not found")
        raise HTTPException(status_code=409, detail="Request already processed")
    return updated


def _release_request(db: Database, request_oid) -> None:
    db[REQUESTS].update_one(
        {"_id": request_oid},
        {"$set": {"requestStatus": "pending", "approvalDate": None}},
    )


def decrement_inventory(db: Database, asset_oid) -> Dict[str, Any]:
    """Take one unit from the asset's stock, refusing to go below zero.

    The write only lands if ``availableQuantity`` still holds the value that was
    read, so two concurrent approvals cannot both spend the last unit.
    """
    for _ in range(DECREMENT_ATTEMPTS):
        asset = db[ASSETS].find_one({"_id": asset_oid})
        if asset is None:
            raise HTTPException(status_code=404, detail="Asset not found")
        current = asset.get("availableQuantity")
        quantity = parse_quantity(current)
        if quantity <= 0:
            raise HTTPException(status_code=400, detail="Insufficient inventory")
        updated = db[ASSETS].find_one_and_update(
            {"_id": asset_oid, "availableQuantity": current},
            {"$set": {"availableQuantity": quantity - 1}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is not None:
            return updated
        logger.info("inventory_contention", asset_id=str(asset_oid))
    raise HTTPException(status_code=409, detail="Asset inventory changed concurrently, retry")


def upsert_affiliation(db: Database, affiliation: Affiliation) -> bool:
    """Create the employee/employer link unless that pair already exists."""
    doc = affiliation.model_dump()
    result = db[AFFILIATIONS].update_one(
        {"employeeEmail": doc["employeeEmail"], "hrEmail": doc["hrEmail"]},
        {"$setOnInsert": doc},
        upsert=True,
    )
    return result.upserted_id is not None


def update_request_status(db: Database, request_id: str, payload: RequestStatusUpdate) -> Dict[str, Any]:
    request_oid = object_id(request_id)
    now = datetime.now(timezone.utc)

    if payload.status != "approved":
        updated = _claim_request(db, request_oid, payload.status, now)
        logger.info("request_rejected", request_id=request_id)
        return {"success": True, "requestResult": serialize(updated), "assetResult": None}

    if not payload.assetId:
        raise HTTPException(status_code=400, detail="assetId is required")
    asset_oid = object_id(payload.assetId)

    request = db[REQUESTS].find_one({"_id": request_oid})
    if request is None:
        raise HTTPException(status_code=404, detail="Request not found")
    if request.get("assetId") and request["assetId"] != payload.assetId:
        raise HTTPException(status_code=400, detail="assetId does not match the request")
    asset = db[ASSETS].find_one({"_id": asset_oid})
    if asset is None:
        raise HTTPException(status_code=404, detail="Asset not found")
    if parse_quantity(asset.get("availableQuantity")) <= 0:
        raise HTTPException(status_code=400, detail="Insufficient inventory")

    employee_email = payload.employeeEmail or request.get("requesterEmail")
    hr_email = payload.hrEmail or request.get("hrEmail")
    if not employee_email or not hr_email:
        raise HTTPException(status_code=400, detail="employeeEmail and hrEmail are required")

    updated_request = _claim_request(db, request_oid, "approved", now)
    try:
        updated_asset = decrement_inventory(db, asset_oid)
    except Exception:
        _release_request(db, request_oid)
        logger.warning("approval_released", request_id=request_id, asset_id=payload.assetId)
        raise

    company_name = payload.companyName or request.get("companyName")
    try:
        assignment = AssignedAsset(
            employeeEmail=employee_email,
            employeeName=payload.employeeName or request.get("requesterName"),
            assetId=payload.assetId,
            assetName=payload.assetName or request.get("assetName") or asset.get("productName"),
            assetType=payload.assetType or request.get("assetType") or asset.get("productType"),
            hrEmail=hr_email,
            companyName=company_name,
            assignedDate=now,
            status="assigned",
            returnDate=None,
        )
        assignment_id = db[ASSIGNED_ASSETS].insert_one(assignment.model_dump()).inserted_id
        affiliation_created = upsert_affiliation(
            db,
            Affiliation(
                employeeEmail=employee_email,
                employeeName=payload.employeeName or request.get("requesterName"),
                hrEmail=hr_email,
                companyName=company_name,
                companyLogo=payload.companyLogo or request.get("companyLogo"),
                affiliationDate=now,
                status="active",
            ),
        )
    except Exception:
        logger.exception("approval_partially_applied", request_id=request_id, asset_id=payload.assetId)
        raise

    logger.info(
        "request_approved",
        request_id=request_id,
        asset_id=payload.assetId,
        available_quantity=updated_asset.get("availableQuantity"),
        affiliation_created=affiliation_created,
    )
    return {
        "success": True,
        "requestResult": serialize(updated_request),
        "assetResult": serialize(updated_asset),
        "assignmentId": str(assignment_id),
        "affiliationCreated": affiliation_created,
    }


def return_asset(db: Database, assignment_id: str) -> Dict[str, Any]:
    assignment_oid = object_id(assignment_id)
    now = datetime.now(timezone.utc)
    updated = db[ASSIGNED_ASSETS].find_one_and_update(
        {"_id": assignment_oid, "status": "assigned"},
        {"$set": {"status": "returned", "returnDate": now}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        if db[ASSIGNED_ASSETS].find_one({"_id": assignment_oid}, {"_id": 1}) is None:
            raise HTTPException(status_code=404, detail="Assignment not found")
        raise HTTPException(status_code=409, detail="Asset already returned")

    asset_result: Optional[Dict[str, Any]] = None
    asset_oid = object_id(updated["assetId"])
    asset = db[ASSETS].find_one({"_id": asset_oid})
    if asset is not None:
        current = asset.get("availableQuantity")
        if isinstance(current, int) and not isinstance(current, bool):
            update = {"$inc": {"availableQuantity": 1}}
        else:
            # legacy string quantities are normalised on write
            update = {"$set": {"availableQuantity": parse_quantity(current) + 1}}
        asset_result = db[ASSETS].find_one_and_update(
            {"_id": asset_oid},
            update,
            return_document=ReturnDocument.AFTER,
        )
    logger.info("asset_returned", assignment_id=assignment_id, asset_id=updated["assetId"])
    return {"success": True, "assignment": serialize(updated), "assetResult": serialize(asset_result)}
