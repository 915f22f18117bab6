"""
In-memory stand-ins for the Supabase async client used by the tests.

``FakeSupabase`` keeps tables as lists of dicts and implements the part of
the postgrest query builder the services use. Realtime channels record
their bindings and receive rows pushed with ``emit``. Failures and
side effects can be injected per table and operation.
"""
import inspect
import itertools
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError

BASE_TIME = datetime(2026, 10, 17, 8, 0, 0, tzinfo=timezone.utc)


def not_found_error() -> APIError:
    return APIError({"code": "PGRST116", "message": "JSON object requested, multiple (or no) rows returned", "details": None, "hint": None})


def api_error(code: str, message: str = "error") -> APIError:
    return APIError({"code": code, "message": message, "details": None, "hint": None})


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


def _matches_filter(row: dict, filter_expr: Optional[str]) -> bool:
    """Realtime filter syntax: col=eq.value or col=in.(a,b)"""
    if not filter_expr:
        return True
    column, _, condition = filter_expr.partition("=")
    op, _, value = condition.partition(".")
    actual = row.get(column)
    if op == "eq":
        return str(actual) == value
    if op == "in":
        return str(actual) in value.strip("()").split(",")
    raise ValueError(f"Unsupported filter {filter_expr}")


class FakeQuery:
    def __init__(self, client: "FakeSupabase", table: str):
        self.client = client
        self.table_name = table
        self.operation = "select"
        self.columns = "*"
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.filters: List[Callable[[dict], bool]] = []
        self.orderings: List[tuple] = []
        self.limit_count: Optional[int] = None
        self.single_mode: Optional[str] = None

    # Operations

    def select(self, columns: str = "*", count=None):
        if self.operation == "select":
            self.columns = columns
        return self

    def insert(self, rows, **kwargs):
        self.operation = "insert"
        self.payload = rows
        return self

    def update(self, values, **kwargs):
        self.operation = "update"
        self.payload = values
        return self

    def upsert(self, rows, on_conflict: str = "", **kwargs):
        self.operation = "upsert"
        self.payload = rows
        self.on_conflict = on_conflict or "id"
        return self

    def delete(self, **kwargs):
        self.operation = "delete"
        return self

    # Filters and modifiers

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        allowed = list(values)
        self.filters.append(lambda row: row.get(column) in allowed)
        return self

    def order(self, column, desc: bool = False, **kwargs):
        self.orderings.append((column, desc))
        return self

    def limit(self, count: int, **kwargs):
        self.limit_count = count
        return self

    def single(self):
        self.single_mode = "single"
        return self

    def maybe_single(self):
        self.single_mode = "maybe"
        return self

    # Execution

    def _matching(self) -> List[dict]:
        return [row for row in self.client.rows(self.table_name) if all(f(row) for f in self.filters)]

    def _project(self, row: dict) -> dict:
        if self.columns.strip() == "*":
            return dict(row)
        names = [c.strip() for c in self.columns.split(",") if c.strip()]
        return {name: row.get(name) for name in names}

    async def execute(self):
        await self.client._before(self.table_name, self.operation)
        handler = getattr(self, f"_run_{self.operation}")
        result = handler()
        await self.client._after(self.table_name, self.operation, result.data)
        return result

    def _run_select(self):
        rows = self._matching()
        for column, desc in reversed(self.orderings):
            rows.sort(key=lambda row: (row.get(column) is None, row.get(column) or ""), reverse=desc)
        if self.limit_count is not None:
            rows = rows[:self.limit_count]
        data = [self._project(row) for row in rows]
        if self.single_mode == "single":
            if len(data) != 1:
                raise not_found_error()
            return FakeResponse(data[0])
        if self.single_mode == "maybe":
            return FakeResponse(data[0] if data else None)
        return FakeResponse(data)

    def _rows_payload(self) -> List[dict]:
        return [dict(r) for r in (self.payload if isinstance(self.payload, list) else [self.payload])]

    def _run_insert(self):
        inserted = []
        for row in self._rows_payload():
            inserted.append(self.client.add_row(self.table_name, row))
        return FakeResponse([dict(r) for r in inserted])

    def _run_update(self):
        updated = []
        for row in self._matching():
            row.update(self.payload)
            updated.append(dict(row))
        return FakeResponse(updated)

    def _run_upsert(self):
        keys = [k.strip() for k in self.on_conflict.split(",")]
        result = []
        for row in self._rows_payload():
            existing = next(
                (r for r in self.client.rows(self.table_name) if all(r.get(k) == row.get(k) for k in keys)),
                None,
            )
            if existing is not None:
                existing.update(row)
                result.append(dict(existing))
            else:
                result.append(dict(self.client.add_row(self.table_name, row)))
        return FakeResponse(result)

    def _run_delete(self):
        doomed = self._matching()
        table = self.client.rows(self.table_name)
        for row in doomed:
            table.remove(row)
        return FakeResponse([dict(r) for r in doomed])


class FakeChannel:
    def __init__(self, client: "FakeSupabase", name: str):
        self.client = client
        self.name = name
        self.bindings: List[dict] = []
        self.subscribed = False
        self.removed = False

    def on_postgres_changes(self, event, callback, table="*", schema="public", filter=None):
        self.bindings.append({"event": event, "callback": callback, "table": table, "schema": schema, "filter": filter})
        return self

    async def subscribe(self, callback=None):
        self.subscribed = True
        if callback is not None:
            callback("SUBSCRIBED", None)
        return self

    def deliver(self, table: str, event_type: str, new: dict, old: dict) -> int:
        delivered = 0
        row = new or old
        for binding in self.bindings:
            if binding["table"] not in ("*", table):
                continue
            if binding["event"] not in ("*", event_type):
                continue
            if not _matches_filter(row, binding["filter"]):
                continue
            binding["callback"]({
                "data": {"type": event_type, "table": table, "schema": "public", "record": new, "old_record": old}
            })
            delivered += 1
        return delivered


class FakeBucket:
    def __init__(self, storage: "FakeStorage", bucket: str):
        self.storage = storage
        self.bucket = bucket

    async def upload(self, path, file, file_options=None):
        if self.storage.fail_uploads:
            raise httpx.ConnectError("storage unreachable")
        self.storage.objects[(self.bucket, path)] = (file, dict(file_options or {}))
        return SimpleNamespace(path=path)

    async def get_public_url(self, path, options=None):
        return f"https://fake.supabase.co/storage/v1/object/public/{self.bucket}/{path}"

    async def remove(self, paths):
        for path in paths:
            self.storage.objects.pop((self.bucket, path), None)
            self.storage.removed.append(path)
        return []


class FakeStorage:
    def __init__(self):
        self.objects: Dict[tuple, tuple] = {}
        self.removed: List[str] = []
        self.fail_uploads = False

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self, bucket)


class FakeSubscription:
    def __init__(self, auth: "FakeAuth", callback):
        self.auth = auth
        self.callback = callback

    def unsubscribe(self):
        if self.callback in self.auth.listeners:
            self.auth.listeners.remove(self.callback)


class FakeAuth:
    def __init__(self):
        self.users: Dict[str, dict] = {}
        self.tokens: Dict[str, dict] = {}
        self.session = None
        self.listeners: List[Callable] = []
        self.sign_outs = 0

    def add_user(self, email: str, password: str = "secret1", user_id: Optional[str] = None) -> dict:
        user = {"id": user_id or str(uuid.uuid4()), "email": email, "password": password}
        self.users[email] = user
        return user

    def token_for(self, user: dict) -> str:
        token = f"token-{user['id']}"
        self.tokens[token] = user
        return token

    def _user(self, user: dict):
        return SimpleNamespace(
            id=user["id"], email=user["email"], user_metadata={}, app_metadata={}, created_at=BASE_TIME.isoformat()
        )

    async def sign_up(self, credentials):
        if credentials["email"] in self.users:
            raise Exception("User already registered")
        user = self.add_user(credentials["email"], credentials["password"])
        return SimpleNamespace(user=self._user(user), session=None)

    async def sign_in_with_password(self, credentials):
        user = self.users.get(credentials["email"])
        if user is None or user["password"] != credentials["password"]:
            raise Exception("Invalid login credentials")
        session = SimpleNamespace(access_token=self.token_for(user), user=self._user(user))
        self.session = session
        return SimpleNamespace(user=self._user(user), session=session)

    async def sign_in_with_oauth(self, credentials):
        provider = credentials["provider"]
        redirect = credentials.get("options", {}).get("redirect_to", "")
        return SimpleNamespace(provider=provider, url=f"https://fake.supabase.co/auth/v1/authorize?provider={provider}&redirect_to={redirect}")

    async def get_user(self, jwt=None):
        user = self.tokens.get(jwt)
        if user is None:
            raise Exception("invalid JWT: unable to parse or verify signature")
        return SimpleNamespace(user=self._user(user))

    async def get_session(self):
        return self.session

    async def sign_out(self, options=None):
        self.sign_outs += 1
        self.session = None

    def on_auth_state_change(self, callback):
        self.listeners.append(callback)
        return FakeSubscription(self, callback)

    def fire(self, event: str, session) -> None:
        for listener in list(self.listeners):
            listener(event, session)


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[dict]] = {}
        self.channels: List[FakeChannel] = []
        self.storage = FakeStorage()
        self.auth = FakeAuth()
        self.calls: List[tuple] = []
        self._failures: List[dict] = []
        self._hooks: List[dict] = []
        self._clock = itertools.count(1)

    # Data helpers

    def rows(self, table: str) -> List[dict]:
        return self.tables.setdefault(table, [])

    def now(self) -> str:
        return (BASE_TIME + timedelta(seconds=next(self._clock))).isoformat()

    def add_row(self, table: str, row: dict) -> dict:
        row = dict(row)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", self.now())
        self.rows(table).append(row)
        return row

    def seed(self, table: str, *rows: dict) -> List[dict]:
        return [self.add_row(table, row) for row in rows]

    def find(self, table: str, **criteria) -> List[dict]:
        return [row for row in self.rows(table) if all(row.get(k) == v for k, v in criteria.items())]

    # Injection

    def fail(self, table: str, operation: str = "*", error: Optional[Exception] = None, times: Optional[int] = 1) -> None:
        """Make the next ``times`` matching calls raise (None: every call)"""
        self._failures.append({
            "table": table,
            "operation": operation,
            "error": error or httpx.ConnectError("connection refused"),
            "times": times,
        })

    def after(self, table: str, operation: str, callback: Callable[[Any], Any]) -> None:
        """Run ``callback(rows)`` once the mutation is applied but before the call returns"""
        self._hooks.append({"table": table, "operation": operation, "callback": callback})

    async def _before(self, table: str, operation: str) -> None:
        self.calls.append((table, operation))
        for failure in self._failures:
            if failure["table"] != table or failure["operation"] not in ("*", operation):
                continue
            if failure["times"] is not None:
                if failure["times"] <= 0:
                    continue
                failure["times"] -= 1
            raise failure["error"]

    async def _after(self, table: str, operation: str, data) -> None:
        for hook in list(self._hooks):
            if hook["table"] == table and hook["operation"] == operation:
                result = hook["callback"](data)
                if inspect.isawaitable(result):
                    await result

    # Client surface

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def from_(self, name: str) -> FakeQuery:
        return self.table(name)

    def channel(self, name: str, params=None) -> FakeChannel:
        channel = FakeChannel(self, name)
        self.channels.append(channel)
        return channel

    async def remove_channel(self, channel: FakeChannel) -> None:
        channel.removed = True
        if channel in self.channels:
            self.channels.remove(channel)

    def channel_named(self, name: str) -> Optional[FakeChannel]:
        return next((c for c in self.channels if c.name == name), None)

    def emit(self, table: str, event_type: str, new: Optional[dict] = None, old: Optional[dict] = None) -> int:
        """Broadcast a row change to every open channel"""
        delivered = 0
        for channel in list(self.channels):
            if channel.subscribed and not channel.removed:
                delivered += channel.deliver(table, event_type, dict(new or {}), dict(old or {}))
        return delivered


def add_profile(supabase: FakeSupabase, name: str, role: str = "parent", **fields) -> dict:
    user_id = fields.pop("id", None) or str(uuid.uuid4())
    return supabase.add_row("profiles", {"id": user_id, "name": name, "role": role, **fields})


def add_member(supabase: FakeSupabase, user_id: str, name: str = "", **fields) -> dict:
    row = {
        "user_id": user_id,
        "name": name,
        "status": "safe",
        "battery": 100,
        "gps_enabled": False,
        "latitude": 35.6812,
        "longitude": 139.7671,
        "address": "Location unavailable",
        "last_update": BASE_TIME.isoformat(),
    }
    row.update(fields)
    return supabase.add_row("members", row)


def link(supabase: FakeSupabase, parent_id: str, child_id: str) -> dict:
    return supabase.add_row("parent_children", {"parent_id": parent_id, "child_id": child_id})


def add_child(supabase: FakeSupabase, parent_id: str, name: str, **member_fields):
    """Child profile + member row + link to the parent; returns (profile, member)"""
    child = add_profile(supabase, name, role="child")
    member = add_member(supabase, child["id"], name, **member_fields)
    link(supabase, parent_id, child["id"])
    return child, member
