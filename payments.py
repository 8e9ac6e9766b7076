"""
Package purchases through Stripe hosted checkout.

A checkout session carries the package name and employee limit as metadata.
When the browser comes back with the session id, the session is reconciled
against the purchaser's user record. The Payment row is the claim on the
gateway's payment intent: its unique ``transactionId`` index makes
reconciliation idempotent, so a session credits ``packageLimit`` at most once.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import stripe
import structlog
from fastapi import Depends, HTTPException
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import Settings, get_settings
from database import PAYMENTS, USERS
from schemas import CheckoutCreate, CheckoutSession, Payment

logger = structlog.get_logger(__name__)

DEFAULT_PLAN = "Basic"


def _field(obj: Any, name: str) -> Any:
    return getattr(obj, name, None)


class StripeGateway:
    def __init__(self, api_key: str):
        self.api_key = api_key

    def create_checkout_session(self, **params) -> CheckoutSession:
        session = stripe.checkout.Session.create(api_key=self.api_key, **params)
        return self._to_session(session)

    def retrieve_session(self, session_id: str) -> Optional[CheckoutSession]:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except stripe.InvalidRequestError as e:
            logger.warning("checkout_session_not_found", session_id=session_id, error=str(e))
            return None
        return self._to_session(session)

    @staticmethod
    def _to_session(session) -> CheckoutSession:
        metadata = _field(session, "metadata")
        email = _field(session, "customer_email")
        if not email and _field(session, "customer_details") is not None:
            email = _field(session.customer_details, "email")
        intent = _field(session, "payment_intent")
        if intent is not None and not isinstance(intent, str):
            intent = intent.id
        return CheckoutSession(
            id=session.id,
            url=_field(session, "url"),
            payment_status=_field(session, "payment_status"),
            customer_email=email,
            payment_intent=intent,
            amount_total=_field(session, "amount_total"),
            currency=_field(session, "currency"),
            metadata={key: str(metadata[key]) for key in metadata.keys()} if metadata is not None else None,
        )


_gateway: Optional[StripeGateway] = None


def get_payment_gateway(settings: Settings = Depends(get_settings)) -> StripeGateway:
    global _gateway
    if _gateway is None:
        if not settings.stripe_secret:
            raise HTTPException(status_code=500, detail="Payment gateway not configured")
        _gateway = StripeGateway(settings.stripe_secret)
    return _gateway


def checkout_amount(price: float, settings: Settings) -> int:
    """Convert a package price to the gateway's minor currency unit."""
    return int(round(price * settings.checkout_amount_multiplier))


def create_checkout(payload: CheckoutCreate, gateway: StripeGateway, settings: Settings) -> Dict[str, str]:
    session = gateway.create_checkout_session(
        line_items=[
            {
                "price_data": {
                    "currency": settings.checkout_currency,
                    "unit_amount": checkout_amount(payload.price, settings),
                    "product_data": {"name": payload.packageName},
                },
                "quantity": 1,
            }
        ],
        customer_email=payload.email,
        mode="payment",
        metadata={
            "employeeLimit": str(payload.employeeLimit),
            "name": payload.packageName,
        },
        success_url=f"{settings.website_domain}dashboard/package-payment-successful?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{settings.website_domain}dashboard/package-payment-declined",
    )
    logger.info("checkout_session_created", session_id=session.id, email=payload.email, package=payload.packageName)
    return {"url": session.url}


def reconcile_payment(db: Database, gateway: StripeGateway, session_id: Optional[str]) -> Dict[str, Any]:
    if not session_id:
        raise HTTPException(status_code=400, detail="session_id is required")

    session = gateway.retrieve_session(session_id)
    if session is None or session.metadata is None or not session.customer_email:
        raise HTTPException(status_code=400, detail="Invalid session data")

    if session.payment_status != "paid":
        logger.info("payment_not_paid", session_id=session_id, payment_status=session.payment_status)
        return {"success": False}

    email = session.customer_email
    user = db[USERS].find_one({"email": email})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    try:
        employee_limit = int(session.metadata.get("employeeLimit") or 0)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid session data")
    plan = session.metadata.get("name") or DEFAULT_PLAN
    transaction_id = session.payment_intent or session.id

    if db[PAYMENTS].find_one({"transactionId": transaction_id}):
        return {"success": True, "alreadyProcessed": True}

    payment = Payment(
        hrEmail=email,
        packageName=plan,
        employeeLimit=employee_limit,
        amount=session.amount_total or 0,
        currency=session.currency,
        transactionId=transaction_id,
        paymentDate=datetime.now(timezone.utc),
        status=session.payment_status,
    )
    try:
        inserted = db[PAYMENTS].insert_one(payment.model_dump())
    except DuplicateKeyError:
        # A concurrent reconciliation of the same session won the claim
        return {"success": True, "alreadyProcessed": True}

    try:
        result = db[USERS].update_one(
            {"_id": user["_id"]},
            {"$inc": {"packageLimit": employee_limit}, "$set": {"subscription": plan}},
        )
    except Exception:
        db[PAYMENTS].delete_one({"_id": inserted.inserted_id})
        logger.exception("payment_credit_failed", transaction_id=transaction_id, email=email)
        raise

    logger.info("payment_reconciled", transaction_id=transaction_id, email=email, employee_limit=employee_limit)
    return {
        "success": True,
        "result": {
            "acknowledged": result.acknowledged,
            "matchedCount": result.matched_count,
            "modifiedCount": result.modified_count,
        },
        "paymentId": str(inserted.inserted_id),
    }
