"""
Registration workflow, status lifecycle and status lookup.

A submission moves EDITING -> CONFIRMING -> SUBMITTING -> SUCCESS. Validation
happens before any remote write; a failed write drops back to CONFIRMING with
the entered data intact so the user can simply retry.
"""

import logging
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from database import GatewayError
from schemas import Category, Registration, RegistrationCreate, RegistrationDraft

logger = logging.getLogger(__name__)

MOBILE_RE = re.compile(r"[0-9]{10}")

ALLOWED_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "pending": ("approved", "rejected"),
    "approved": (),
    "rejected": (),
}

SUBMIT_FAILED = "Failed to submit registration. Please try again."


class RegistrationError(Exception):
    """Validation or submission failure; carries a user-facing message only."""


class InvalidTransition(Exception):
    pass


class WorkflowState(str, Enum):
    EDITING = "editing"
    CONFIRMING = "confirming"
    SUBMITTING = "submitting"
    SUCCESS = "success"


def fee_summary(category: Category) -> Dict[str, Any]:
    discount = category.actual_fee - category.offer_fee
    percent = round(discount / category.actual_fee * 100) if category.actual_fee > 0 else 0
    return {
        "actualFee": category.actual_fee,
        "offerFee": category.offer_fee,
        "discountAmount": discount,
        "discountPercent": percent,
        "isFree": category.actual_fee == 0,
    }


class RegistrationWorkflow:
    def __init__(self, store, category: Category):
        self.store = store
        self.category = category
        self.draft = RegistrationDraft(category_id=category.id)
        self.state = WorkflowState.EDITING
        self.customer_id: Optional[str] = None
        self.error: Optional[str] = None
        self._panchayaths_loaded = False

    def load_panchayaths(self) -> List:
        """Fetch the locality list once; only active ones are offered."""
        if not self._panchayaths_loaded:
            self.store.fetch_panchayaths()
            self._panchayaths_loaded = True
        return [p for p in self.store.panchayaths if p.is_active]

    def edit(self, **fields) -> None:
        if self.state != WorkflowState.EDITING:
            raise RegistrationError("Registration details can only be changed while editing")
        data = self.draft.model_dump()
        data.update(fields)
        data["category_id"] = self.category.id
        self.draft = RegistrationDraft(**data)

    def validate(self) -> None:
        d = self.draft
        if not d.name.strip():
            raise RegistrationError("Name is required")
        if not d.address.strip():
            raise RegistrationError("Address is required")
        if not MOBILE_RE.fullmatch(d.mobile_number):
            raise RegistrationError("Valid 10-digit mobile number is required")
        if not d.panchayath_id or self.store.get_panchayath(d.panchayath_id) is None:
            raise RegistrationError("Panchayath is required")
        if not d.ward.strip():
            raise RegistrationError("Ward is required")
        # only as fresh as the last registrations fetch
        if self.store.get_registration_by_mobile(d.mobile_number) is not None:
            raise RegistrationError(
                "This mobile number is already registered. Each person can register only once."
            )

    def confirm(self) -> Dict[str, Any]:
        if self.state != WorkflowState.EDITING:
            raise RegistrationError("Registration is not being edited")
        self.validate()
        self.state = WorkflowState.CONFIRMING
        self.error = None
        return self.recap()

    def back(self) -> None:
        if self.state != WorkflowState.CONFIRMING:
            raise RegistrationError("Nothing to go back from")
        self.state = WorkflowState.EDITING

    def recap(self) -> Dict[str, Any]:
        d = self.draft
        panchayath = self.store.get_panchayath(d.panchayath_id)
        return {
            "name": d.name,
            "address": d.address,
            "mobileNumber": d.mobile_number,
            "panchayathId": d.panchayath_id,
            "panchayathName": panchayath.name if panchayath else "",
            "district": panchayath.district if panchayath else "",
            "ward": d.ward,
            "agentPro": d.agent_pro or None,
            "categoryId": self.category.id,
            "categoryName": self.category.name,
            "fee": fee_summary(self.category),
        }

    def submit(self) -> str:
        if self.state != WorkflowState.CONFIRMING:
            raise RegistrationError("Registration must be confirmed before submitting")
        self.state = WorkflowState.SUBMITTING
        d = self.draft
        panchayath = self.store.get_panchayath(d.panchayath_id)
        payload = RegistrationCreate(
            category_id=self.category.id,
            category_name=self.category.name,
            name=d.name,
            address=d.address,
            mobile_number=d.mobile_number,
            panchayath_id=d.panchayath_id,
            panchayath_name=panchayath.name if panchayath else "",
            ward=d.ward,
            agent_pro=d.agent_pro or None,
        )
        try:
            customer_id = self.store.add_registration(payload)
        except GatewayError as e:
            logger.error("Registration submit failed for %s: %s", d.mobile_number, e)
            self.state = WorkflowState.CONFIRMING
            self.error = SUBMIT_FAILED
            raise RegistrationError(SUBMIT_FAILED) from e
        self.customer_id = customer_id
        self.state = WorkflowState.SUCCESS
        return customer_id


# ===================== Status lifecycle =====================

def next_statuses(status: str) -> Tuple[str, ...]:
    return ALLOWED_TRANSITIONS.get(status, ())


def change_status(store, registration_id: str, new_status: str) -> Registration:
    registration = store.get_registration(registration_id)
    if registration is None:
        raise LookupError("Registration not found")
    if new_status not in next_statuses(registration.status):
        raise InvalidTransition(f"Cannot change status from {registration.status} to {new_status}")
    store.update_registration(registration_id, {"status": new_status})
    return store.get_registration(registration_id) or registration


# ===================== Lookup & reporting =====================

def find_registration(store, query: str) -> Optional[Registration]:
    query = (query or "").strip()
    if not query:
        raise RegistrationError("Please enter a Customer ID or Mobile Number")
    return store.get_registration_by_customer_id(query) or store.get_registration_by_mobile(query)


def filter_registrations(registrations, category: Optional[str] = None, panchayath: Optional[str] = None,
                         status: Optional[str] = None) -> List[Registration]:
    def keep(reg: Registration) -> bool:
        if category and category != "all" and reg.category_id != category:
            return False
        if panchayath and panchayath != "all" and reg.panchayath_id != panchayath:
            return False
        if status and status != "all" and reg.status != status:
            return False
        return True

    return [reg for reg in registrations if keep(reg)]


def _status_counts(registrations) -> Dict[str, int]:
    counts = {"total": len(registrations), "pending": 0, "approved": 0, "rejected": 0}
    for reg in registrations:
        counts[reg.status] += 1
    return counts


def dashboard_stats(store) -> Dict[str, Any]:
    registrations = store.registrations
    return {
        "totals": _status_counts(registrations),
        "panchayaths": [
            {
                "id": p.id,
                "name": p.name,
                "district": p.district,
                **_status_counts([r for r in registrations if r.panchayath_id == p.id]),
            }
            for p in store.panchayaths
        ],
        "categories": [
            {
                "id": c.id,
                "name": c.name,
                "fee": c.offer_fee if c.actual_fee > 0 else 0,
                "registrations": sum(1 for r in registrations if r.category_id == c.id),
            }
            for c in store.categories
        ],
    }
