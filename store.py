"""
Domain State Store

In-memory copy of the five collections, kept in step with the remote gateway.
Collections are tuples that are only ever replaced wholesale: every write is
followed by a full re-fetch of the affected collection, and realtime change
notifications trigger the same re-fetch. Readers therefore always see a
complete snapshot, old or new.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, Type, Union

from pydantic import BaseModel, ValidationError

from auth import hash_password
from database import GatewayError
from realtime import Debouncer
from schemas import (
    Admin,
    AdminCreate,
    Announcement,
    Category,
    CategoryCreate,
    Panchayath,
    PanchayathCreate,
    Registration,
    RegistrationCreate,
)

logger = logging.getLogger(__name__)

Patch = Union[BaseModel, Dict[str, Any]]


class Gateway(Protocol):
    def select(self, table, filter_dict=None, order=None, limit=None): ...
    def insert(self, table, row): ...
    def update(self, table, patch, filter_dict): ...
    def delete(self, table, filter_dict): ...
    def subscribe(self, table, on_change): ...


# table -> fetch method re-run when the table changes
REALTIME_TABLES = {
    "categories": "fetch_categories",
    "registrations": "fetch_registrations",
    "panchayaths": "fetch_panchayaths",
    "announcements": "fetch_announcements",
}


def generate_customer_id(mobile: str, name: str) -> str:
    first_letter = name[:1].upper()
    return f"ESEP{mobile}{first_letter}"


def _to_patch(updates: Patch) -> Dict[str, Any]:
    if isinstance(updates, BaseModel):
        return updates.model_dump(exclude_unset=True)
    return dict(updates)


class DomainStore:
    def __init__(self, gateway: Gateway, debounce_seconds: float = 0.5):
        self.gateway = gateway
        self.debounce_seconds = debounce_seconds

        self.categories: Tuple[Category, ...] = ()
        self.panchayaths: Tuple[Panchayath, ...] = ()
        self.registrations: Tuple[Registration, ...] = ()
        self.admins: Tuple[Admin, ...] = ()
        self.announcements: Tuple[Announcement, ...] = ()

        self.loading = False
        self.error: Optional[str] = None
        # table whose failed fetch set `error`; None for write or subscribe failures
        self._error_table: Optional[str] = None

        self._channels: Dict[str, Any] = {}
        self._debouncers: Dict[str, Debouncer] = {}

    # ------------------------------------------------------------------ fetch

    def _fetch(self, table: str, model: Type[BaseModel], order) -> bool:
        try:
            rows = self.gateway.select(table, order=order)
            items = tuple(model.model_validate(row) for row in rows)
        except (GatewayError, ValidationError) as e:
            logger.error("Error fetching %s: %s", table, e)
            self._set_error(f"Failed to load {table}: {e}", table)
            return False
        setattr(self, table, items)
        if self._error_table == table:
            self._set_error(None)
        return True

    def _set_error(self, message: Optional[str], table: Optional[str] = None) -> None:
        self.error = message
        self._error_table = table

    def fetch_categories(self) -> bool:
        self.loading = True
        try:
            return self._fetch("categories", Category, [("created_at", 1)])
        finally:
            self.loading = False

    def fetch_panchayaths(self) -> bool:
        return self._fetch("panchayaths", Panchayath, [("name", 1)])

    def fetch_registrations(self) -> bool:
        return self._fetch("registrations", Registration, [("created_at", -1)])

    def fetch_admins(self) -> bool:
        return self._fetch("admins", Admin, [("username", 1)])

    def fetch_announcements(self) -> bool:
        return self._fetch("announcements", Announcement, [("created_at", -1)])

    def fetch_all(self) -> bool:
        """Reload every collection. `error` keeps the first failure of this pass."""
        self._set_error(None)
        first_failure = None
        for fetch in (self.fetch_categories, self.fetch_panchayaths, self.fetch_registrations,
                      self.fetch_admins, self.fetch_announcements):
            if not fetch() and first_failure is None:
                first_failure = (self.error, self._error_table)
        if first_failure is not None:
            self._set_error(*first_failure)
        return first_failure is None

    # ----------------------------------------------------------------- writes

    def _write(self, action: str, call: Callable[[], Any]) -> Any:
        try:
            return call()
        except GatewayError as e:
            logger.error("Error %s: %s", action, e)
            self._set_error(str(e))
            raise

    def _update(self, table: str, _id: str, updates: Patch) -> bool:
        patch = _to_patch(updates)
        patch["updated_at"] = datetime.now(timezone.utc)
        matched = self._write(f"updating {table}", lambda: self.gateway.update(table, patch, {"id": _id}))
        return matched > 0

    def _delete(self, table: str, _id: str) -> bool:
        deleted = self._write(f"deleting from {table}", lambda: self.gateway.delete(table, {"id": _id}))
        return deleted > 0

    def add_registration(self, draft: RegistrationCreate) -> str:
        customer_id = generate_customer_id(draft.mobile_number, draft.name)
        row = draft.model_dump(exclude={"status"})
        row["customer_id"] = customer_id
        row["status"] = "pending"
        self._write("adding registration", lambda: self.gateway.insert("registrations", row))
        logger.info("Registration %s created", customer_id)
        self.fetch_registrations()
        return customer_id

    def update_registration(self, _id: str, updates: Patch) -> bool:
        ok = self._update("registrations", _id, updates)
        self.fetch_registrations()
        return ok

    def add_category(self, category: CategoryCreate) -> str:
        row = category.model_dump()
        row["is_active"] = True
        new_id = self._write("adding category", lambda: self.gateway.insert("categories", row))
        self.fetch_categories()
        return new_id

    def update_category(self, _id: str, updates: Patch) -> bool:
        ok = self._update("categories", _id, updates)
        self.fetch_categories()
        return ok

    def delete_category(self, _id: str) -> bool:
        ok = self._delete("categories", _id)
        self.fetch_categories()
        return ok

    def add_panchayath(self, panchayath: PanchayathCreate) -> str:
        row = panchayath.model_dump()
        row["is_active"] = True
        new_id = self._write("adding panchayath", lambda: self.gateway.insert("panchayaths", row))
        self.fetch_panchayaths()
        return new_id

    def update_panchayath(self, _id: str, updates: Patch) -> bool:
        ok = self._update("panchayaths", _id, updates)
        self.fetch_panchayaths()
        return ok

    def delete_panchayath(self, _id: str) -> bool:
        ok = self._delete("panchayaths", _id)
        self.fetch_panchayaths()
        return ok

    def add_admin(self, admin: AdminCreate) -> str:
        row = {
            "username": admin.username,
            "password_hash": hash_password(admin.password),
            "role": admin.role,
            "is_active": True,
        }
        new_id = self._write("adding admin", lambda: self.gateway.insert("admins", row))
        self.fetch_admins()
        return new_id

    def update_admin(self, _id: str, updates: Patch) -> bool:
        patch = _to_patch(updates)
        password = patch.pop("password", None)
        if password is not None:
            patch["password_hash"] = hash_password(password)
        ok = self._update("admins", _id, patch)
        self.fetch_admins()
        return ok

    # ---------------------------------------------------------------- lookups

    def generate_customer_id(self, mobile: str, name: str) -> str:
        return generate_customer_id(mobile, name)

    def get_registration_by_mobile(self, mobile: str) -> Optional[Registration]:
        return next((r for r in self.registrations if r.mobile_number == mobile), None)

    def get_registration_by_customer_id(self, customer_id: str) -> Optional[Registration]:
        return next((r for r in self.registrations if r.customer_id == customer_id), None)

    def get_registration(self, _id: str) -> Optional[Registration]:
        return next((r for r in self.registrations if r.id == _id), None)

    def get_category(self, _id: str) -> Optional[Category]:
        return next((c for c in self.categories if c.id == _id), None)

    def get_panchayath(self, _id: str) -> Optional[Panchayath]:
        return next((p for p in self.panchayaths if p.id == _id), None)

    # --------------------------------------------------------------- realtime

    def setup_realtime_subscriptions(self) -> None:
        if self._channels:
            return
        for table, fetch_name in REALTIME_TABLES.items():
            debounced = Debouncer(getattr(self, fetch_name), self.debounce_seconds, name=fetch_name)
            try:
                channel = self.gateway.subscribe(table, debounced)
            except GatewayError as e:
                logger.error("Error subscribing to %s: %s", table, e)
                self._set_error(str(e))
                continue
            self._channels[table] = channel
            self._debouncers[table] = debounced
        logger.info("Realtime subscriptions setup complete (%d tables)", len(self._channels))

    def close_realtime_subscriptions(self) -> None:
        for table, channel in self._channels.items():
            channel.close()
            self._debouncers[table].cancel()
        self._channels = {}
        self._debouncers = {}

    @property
    def subscribed_tables(self) -> Tuple[str, ...]:
        return tuple(self._channels)
