import copy
import itertools
from collections import defaultdict
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from auth import hash_password
from config import Settings
from database import GatewayError
from main import create_app
from store import DomainStore


class FakeChannel:
    def __init__(self, gateway, table, on_change):
        self.gateway = gateway
        self.table = table
        self.on_change = on_change
        self.closed = False

    def close(self):
        self.closed = True
        self.gateway.subscribers[self.table].remove(self)


class InMemoryGateway:
    """Row store with the same contract as MongoGateway, kept in dicts."""

    def __init__(self):
        self.tables = defaultdict(dict)
        self.subscribers = defaultdict(list)
        self.fail = set()
        self.calls = []
        self._ids = itertools.count(1)
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def tick(self):
        self._clock += timedelta(seconds=1)
        return self._clock

    def _check(self, op, table):
        self.calls.append((op, table))
        if op in self.fail or (op, table) in self.fail:
            raise GatewayError(f"{op} on {table} failed")

    @staticmethod
    def _matches(row, filter_dict):
        return all(row.get(k) == v for k, v in (filter_dict or {}).items())

    def emit(self, table):
        for channel in list(self.subscribers[table]):
            channel.on_change()

    def select(self, table, filter_dict=None, order=None, limit=None):
        self._check("select", table)
        rows = [copy.deepcopy(r) for r in self.tables[table].values() if self._matches(r, filter_dict)]
        for field, direction in reversed(list(order or [])):
            rows.sort(key=lambda r: r.get(field), reverse=direction < 0)
        return rows[:limit] if limit else rows

    def insert(self, table, row):
        self._check("insert", table)
        new_id = str(next(self._ids))
        payload = dict(row, id=new_id)
        now = self.tick()
        payload.setdefault("created_at", now)
        payload.setdefault("updated_at", now)
        self.tables[table][new_id] = payload
        self.emit(table)
        return new_id

    def update(self, table, patch, filter_dict):
        self._check("update", table)
        matched = [r for r in self.tables[table].values() if self._matches(r, filter_dict)]
        for row in matched:
            row.update(copy.deepcopy(patch))
        if matched:
            self.emit(table)
        return len(matched)

    def delete(self, table, filter_dict):
        self._check("delete", table)
        doomed = [k for k, r in self.tables[table].items() if self._matches(r, filter_dict)]
        for key in doomed:
            del self.tables[table][key]
        if doomed:
            self.emit(table)
        return len(doomed)

    def subscribe(self, table, on_change):
        self._check("subscribe", table)
        channel = FakeChannel(self, table, on_change)
        self.subscribers[table].append(channel)
        return channel

    def count(self, table):
        self._check("count", table)
        return len(self.tables[table])

    def list_tables(self):
        return sorted(t for t, rows in self.tables.items() if rows)


ADMIN_PASSWORDS = {"superadmin": "super-secret", "localadmin": "local-secret", "viewer": "viewer-secret"}


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def seeded_gateway(gateway):
    ids = {}
    ids["free"] = gateway.insert("categories", {
        "name": "Pennyekart Free Registration", "description": "Free tier",
        "actual_fee": 0, "offer_fee": 0, "is_active": True,
    })
    ids["paid"] = gateway.insert("categories", {
        "name": "Pennyekart Paid Registration", "description": "Premium tier",
        "actual_fee": 500, "offer_fee": 299, "is_active": True,
    })
    ids["amarambalam"] = gateway.insert("panchayaths", {"name": "Amarambalam", "district": "Malappuram", "is_active": True})
    ids["kondotty"] = gateway.insert("panchayaths", {"name": "Kondotty", "district": "Malappuram", "is_active": True})
    ids["closed"] = gateway.insert("panchayaths", {"name": "Closed Village", "district": "Malappuram", "is_active": False})
    gateway.insert("announcements", {"title": "Welcome", "content": "Hello", "is_active": True})
    gateway.ids = ids
    return gateway


@pytest.fixture
def admin_gateway(seeded_gateway):
    roles = {"superadmin": "super", "localadmin": "local", "viewer": "user"}
    for username, password in ADMIN_PASSWORDS.items():
        seeded_gateway.ids[username] = seeded_gateway.insert("admins", {
            "username": username,
            "password_hash": hash_password(password),
            "role": roles[username],
            "is_active": True,
        })
    return seeded_gateway


@pytest.fixture
def store(seeded_gateway):
    s = DomainStore(seeded_gateway, debounce_seconds=0)
    s.fetch_all()
    return s


@pytest.fixture
def asha_draft(seeded_gateway):
    return {
        "categoryId": seeded_gateway.ids["paid"],
        "name": "Asha Menon",
        "address": "Near the library, Amarambalam",
        "mobileNumber": "9876543210",
        "panchayathId": seeded_gateway.ids["amarambalam"],
        "ward": "7",
        "agentPro": "",
    }


@pytest.fixture
def client(admin_gateway):
    store = DomainStore(admin_gateway, debounce_seconds=0)
    app = create_app(store=store, settings=Settings())
    with TestClient(app) as c:
        yield c


def _login(client, username):
    resp = client.post("/admin/login", json={"username": username, "password": ADMIN_PASSWORDS[username]})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture
def super_headers(client):
    return _login(client, "superadmin")


@pytest.fixture
def local_headers(client):
    return _login(client, "localadmin")


@pytest.fixture
def viewer_headers(client):
    return _login(client, "viewer")
