"""
Canonical account state driven by Stripe payment events.

Identity rule: `accountId = acct_{paymentIntentId}`, fixed at the first
completion event. Later events that only carry the payment intent id reach
the account through the correlation index written alongside it.

    checkout.session.completed   completion: create/merge account, activate,
                                 write correlation + email indexes
    payment_intent.succeeded     confirmation: merge payment status
    charge.succeeded             supplementary: merge receipt URL
"""

import hashlib
from datetime import datetime
from typing import Any, Dict, Optional, Union

from va_gateway.merge import FieldPolicy, merge_canonical
from va_gateway.projection import TaskTrackerClient, projection_state, record_projection
from va_gateway.results import Invalid, MutationResult, SkipReason, Validation
from va_gateway.schemas import Charge, CheckoutSession, PaymentIntent, StripeEnvelope, validate
from va_gateway.store import ObjectStore
from va_gateway.utils.logger import get_logger

logger = get_logger("va_gateway.accounts")

PROVIDER = "stripe"

COMPLETION = "checkout.session.completed"
CONFIRMATION = "payment_intent.succeeded"
SUPPLEMENTARY = "charge.succeeded"

EVENT_MODELS = {
    COMPLETION: CheckoutSession,
    CONFIRMATION: PaymentIntent,
    SUPPLEMENTARY: Charge,
}

ACCOUNT_POLICY = {
    "updatedAt": FieldPolicy.ALWAYS_OVERWRITE,
    "stripe.eventId": FieldPolicy.ALWAYS_OVERWRITE,
    "subscription.active": FieldPolicy.ALWAYS_OVERWRITE,
    "subscription.activatedAt": FieldPolicy.IMMUTABLE,
}

INDEX_POLICY = {
    "accountId": FieldPolicy.ALWAYS_OVERWRITE,
    "updatedAt": FieldPolicy.ALWAYS_OVERWRITE,
}

PaymentObject = Union[CheckoutSession, PaymentIntent, Charge]


def account_id_for(payment_intent_id: str) -> str:
    return f"acct_{payment_intent_id}"


def account_key(account_id: str) -> str:
    return f"accounts/{account_id}.json"


def correlation_key(payment_intent_id: str) -> str:
    return f"{PROVIDER}/payment-intents/{payment_intent_id}.json"


def email_hash(email: str) -> str:
    return hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()


def email_index_key(email: str) -> str:
    return f"accounts/by-email/{email_hash(email)}.json"


def parse_payment_object(envelope: StripeEnvelope) -> Optional[Validation]:
    """
    Validate the `data.object` of a handled event type.

    Returns None for event types the gateway does not handle.
    """
    model = EVENT_MODELS.get(envelope.type)
    if model is None:
        return None
    result = validate(model, envelope.data_object)
    if isinstance(result, Invalid) and envelope.type == COMPLETION and result.field == "payment_intent":
        return Invalid(f"Missing paymentIntentId on {COMPLETION}", "data.object.payment_intent")
    if isinstance(result, Invalid) and result.field:
        return Invalid(result.reason, f"data.object.{result.field}")
    return result


def apply_payment_event(
    store: ObjectStore,
    event_id: str,
    event_type: str,
    obj: PaymentObject,
    now: datetime,
    tracker: Optional[TaskTrackerClient] = None,
    accounts_list_id: Optional[str] = None,
) -> MutationResult:
    if event_type == COMPLETION:
        return apply_completion(store, event_id, obj, now, tracker, accounts_list_id)
    if event_type == CONFIRMATION:
        return apply_confirmation(store, event_id, obj, now)
    if event_type == SUPPLEMENTARY:
        return apply_charge(store, event_id, obj, now)
    return MutationResult.skipped(SkipReason.IGNORED_EVENT_TYPE, ignoredType=event_type)


def apply_completion(
    store: ObjectStore,
    event_id: str,
    session: CheckoutSession,
    now: datetime,
    tracker: Optional[TaskTrackerClient] = None,
    accounts_list_id: Optional[str] = None,
) -> MutationResult:
    ts = now.isoformat()
    payment_intent_id = session.payment_intent
    account_id = account_id_for(payment_intent_id)
    email = session.email.strip().lower() if session.email else None

    incoming: Dict[str, Any] = {
        "accountId": account_id,
        "createdAt": ts,
        "updatedAt": ts,
        "primaryEmail": email,
        "stripe": {
            "customerId": session.customer,
            "eventId": event_id,
            "paymentIntentId": payment_intent_id,
            "paymentLink": session.payment_link,
            "paymentStatus": session.payment_status or session.status,
            "receiptUrl": None,
            "sessionId": session.id,
        },
        "subscription": {"active": True, "activatedAt": ts},
    }

    account = store.update_json(
        account_key(account_id),
        lambda current: merge_canonical(current, incoming, ACCOUNT_POLICY),
    )
    store.update_json(
        correlation_key(payment_intent_id),
        lambda current: merge_canonical(
            current,
            {"accountId": account_id, "paymentIntentId": payment_intent_id, "createdAt": ts, "updatedAt": ts},
            INDEX_POLICY,
        ),
    )
    if email:
        store.update_json(
            email_index_key(email),
            lambda current: merge_canonical(
                current, {"accountId": account_id, "createdAt": ts, "updatedAt": ts}, INDEX_POLICY
            ),
        )

    logger.info(
        "accounts.activated",
        extra={"account_id": account_id, "event_id": event_id, "payment_intent_id": payment_intent_id},
    )

    data: Dict[str, Any] = {"accountId": account_id, "subscription": {"active": True}}
    projection = _project_account(store, account or {}, tracker, accounts_list_id)
    if projection is not None:
        data["projection"] = projection
    return MutationResult.done(**data)


def _merge_into_correlated_account(
    store: ObjectStore,
    payment_intent_id: str,
    stripe_fields: Dict[str, Any],
    now: datetime,
) -> MutationResult:
    index = store.get_json(correlation_key(payment_intent_id))
    account_id = index.get("accountId") if index else None
    if not account_id:
        logger.info("accounts.correlation_missing", extra={"payment_intent_id": payment_intent_id})
        return MutationResult.skipped(SkipReason.CORRELATION_MISSING, paymentIntentId=payment_intent_id)

    incoming = {"updatedAt": now.isoformat(), "stripe": stripe_fields}

    def mutate(current):
        if current is None:
            return None
        return merge_canonical(current, incoming, ACCOUNT_POLICY)

    if store.update_json(account_key(account_id), mutate) is None:
        logger.warning(
            "accounts.correlated_account_missing",
            extra={"account_id": account_id, "payment_intent_id": payment_intent_id},
        )
        return MutationResult.skipped(
            SkipReason.ACCOUNT_MISSING, accountId=account_id, paymentIntentId=payment_intent_id
        )
    return MutationResult.done(accountId=account_id)


def apply_confirmation(store: ObjectStore, event_id: str, intent: PaymentIntent, now: datetime) -> MutationResult:
    return _merge_into_correlated_account(
        store,
        intent.id,
        {"eventId": event_id, "paymentStatus": intent.status},
        now,
    )


def apply_charge(store: ObjectStore, event_id: str, charge: Charge, now: datetime) -> MutationResult:
    if not charge.payment_intent:
        # Direct charges carry no payment intent, so there is nothing to correlate
        logger.info("accounts.charge_without_payment_intent", extra={"event_id": event_id, "charge_id": charge.id})
        return MutationResult.skipped(SkipReason.CORRELATION_MISSING, chargeId=charge.id)
    return _merge_into_correlated_account(
        store,
        charge.payment_intent,
        {"eventId": event_id, "chargeId": charge.id, "receiptUrl": charge.receipt_url},
        now,
    )


def _project_account(
    store: ObjectStore,
    account: Dict[str, Any],
    tracker: Optional[TaskTrackerClient],
    list_id: Optional[str],
) -> Optional[Dict[str, Any]]:
    """Create one tracker task per account; later completions do not re-project."""
    if tracker is None or not list_id or not account.get("accountId"):
        return None
    previous = account.get("projection") or {}
    if previous.get("taskId"):
        return None

    account_id = account["accountId"]
    try:
        task_id = tracker.create_task(
            list_id,
            name=f"New subscription: {account.get('primaryEmail') or account_id}",
            description=f"Account {account_id} activated at {account.get('subscription', {}).get('activatedAt')}.",
        )
        state = projection_state(previous, ok=True, task_id=task_id)
    except Exception as e:
        # Tracker trouble never fails the request
        logger.warning("accounts.projection_failed", extra={"account_id": account_id, "error": str(e)})
        state = projection_state(previous, ok=False, error=str(e))

    return record_projection(store, account_key(account_id), state)


def account_for_email(store: ObjectStore, email: str) -> Optional[str]:
    index = store.get_json(email_index_key(email))
    account_id = index.get("accountId") if index else None
    return account_id if isinstance(account_id, str) else None
