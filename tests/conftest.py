"""
Shared fixtures.

Repositories are replaced by `FakeStore`, an in-memory stand-in that keeps
the same function names and row shapes as the SQL versions, so the app runs
end to end without Postgres. The TestClient is not entered as a context
manager, which keeps the lifespan (and the DB pool) from starting.
"""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from auth import repository as auth_repository
from auth import security
from calculators import repository as calculators_repository
from comments import repository as comments_repository
from community import repository as community_repository
from core import mailer
from core.ratelimit import limiter
from users import repository as users_repository

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

PATCHED = {
    auth_repository: (
        "create_user",
        "get_user_by_id",
        "get_user_by_username",
        "get_user_by_email",
        "get_user_by_google_id",
        "record_user_ip",
        "link_google_account",
        "set_password",
        "bump_token_version",
    ),
    users_repository: (
        "list_users",
        "count_users",
        "update_profile",
        "update_privacy",
        "set_activation",
        "delete_user",
        "list_notifications",
        "count_notifications",
        "mark_notification_read",
        "list_commented_calculators",
        "count_commented_calculators",
    ),
    calculators_repository: (
        "list_calculators",
        "count_calculators",
        "get_calculator",
        "get_calculator_by_slug",
        "slug_taken",
        "create_calculator",
        "update_calculator",
        "set_verified",
        "delete_calculator",
        "save_calculator",
        "unsave_calculator",
    ),
    comments_repository: (
        "list_comments",
        "count_comments",
        "get_comment",
        "list_replies",
        "create_comment",
        "create_reply",
        "like_comment",
        "unlike_comment",
        "delete_comment",
        "delete_reply",
    ),
    community_repository: (
        "create_report",
        "list_reports",
        "count_reports",
        "set_report_seen",
        "delete_report",
        "create_contact",
        "list_contacts",
        "count_contacts",
        "set_contact_seen",
        "delete_contact",
    ),
}


def _page(rows: list[dict], limit: int | None, offset: int) -> list[dict]:
    if limit is None:
        return rows[offset:]
    return rows[offset : offset + limit]


def _contains(haystack: str | None, needle: str) -> bool:
    return not needle or needle.lower() in (haystack or "").lower()


class FakeStore:
    def __init__(self) -> None:
        self.users: dict[int, dict] = {}
        self.calculators: dict[int, dict] = {}
        self.saves: list[tuple[int, int]] = []
        self.comments: dict[int, dict] = {}
        self.likes: list[tuple[int, int]] = []
        self.replies: dict[int, dict] = {}
        self.notifications: dict[int, dict] = {}
        self.reports: dict[int, dict] = {}
        self.contacts: dict[int, dict] = {}
        self.calls: list[str] = []
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)

    def next_id(self) -> int:
        return next(self._ids)

    def now(self) -> datetime:
        return BASE_TIME + timedelta(seconds=next(self._clock))

    # users

    def add_user(self, username: str, *, password: str | None = "secret123", role: str = "user", **fields) -> dict:
        row = {
            "id": self.next_id(),
            "username": username.lower(),
            "email": fields.pop("email", f"{username.lower()}@example.com"),
            "password_hash": security.hash_password(password) if password else None,
            "google_id": None,
            "user_ip": None,
            "slug": username.lower(),
            "avatar": None,
            "profession": None,
            "company": None,
            "role": role,
            "is_activated": True,
            "show_saved_calculators": False,
            "show_comments": False,
            "token_version": 0,
            "created_at": self.now(),
            "updated_at": self.now(),
        }
        row.update(fields)
        self.users[row["id"]] = row
        return dict(row)

    async def create_user(self, *, username, email, password_hash, google_id=None, avatar=None, is_activated=True, user_ip=None):
        row = self.add_user(
            auth_repository.normalize_username(username),
            password=None,
            email=auth_repository.normalize_email(email),
            password_hash=password_hash,
            google_id=google_id,
            avatar=avatar,
            is_activated=is_activated,
            user_ip=user_ip,
        )
        return row

    async def get_user_by_id(self, user_id):
        row = self.users.get(user_id)
        return dict(row) if row else None

    async def get_user_by_username(self, username):
        wanted = auth_repository.normalize_username(username)
        for row in self.users.values():
            if row["username"] == wanted:
                return dict(row)
        return None

    async def get_user_by_email(self, email):
        wanted = auth_repository.normalize_email(email)
        for row in self.users.values():
            if row["email"] == wanted:
                return dict(row)
        return None

    async def get_user_by_google_id(self, google_id):
        for row in self.users.values():
            if row["google_id"] == google_id:
                return dict(row)
        return None

    async def record_user_ip(self, user_id, user_ip):
        if user_id in self.users:
            self.users[user_id]["user_ip"] = user_ip

    async def link_google_account(self, user_id, *, google_id, avatar, is_activated, user_ip):
        row = self.users.get(user_id)
        if row is None:
            return None
        row.update(google_id=google_id, is_activated=is_activated, user_ip=user_ip)
        if avatar:
            row["avatar"] = avatar
        return dict(row)

    async def set_password(self, user_id, password_hash):
        row = self.users.get(user_id)
        if row is None:
            return None
        row["password_hash"] = password_hash
        row["token_version"] += 1
        return dict(row)

    async def bump_token_version(self, user_id):
        row = self.users.get(user_id)
        if row is None:
            return None
        row["token_version"] += 1
        return dict(row)

    async def list_users(self, *, search="", limit, offset):
        rows = [dict(r) for r in self.users.values() if _contains(r["username"], search)]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        return _page(rows, limit, offset)

    async def count_users(self, *, search=""):
        return len([r for r in self.users.values() if _contains(r["username"], search)])

    async def update_profile(self, user_id, *, username=None, email=None, avatar=None, profession=None, company=None):
        row = self.users.get(user_id)
        if row is None:
            return None
        if username:
            row["username"] = row["slug"] = auth_repository.normalize_username(username)
        if email:
            row["email"] = auth_repository.normalize_email(email)
        for key, value in (("avatar", avatar), ("profession", profession), ("company", company)):
            if value is not None:
                row[key] = value
        return dict(row)

    async def update_privacy(self, user_id, *, show_saved_calculators, show_comments):
        row = self.users.get(user_id)
        if row is None:
            return None
        row.update(show_saved_calculators=show_saved_calculators, show_comments=show_comments)
        return dict(row)

    async def set_activation(self, user_id, *, is_activated):
        row = self.users.get(user_id)
        if row is None:
            return None
        row["is_activated"] = is_activated
        return dict(row)

    async def delete_user(self, user_id, *, delete_calculators, delete_comments):
        if user_id not in self.users:
            return False
        if delete_calculators:
            for calc_id in [c for c, row in self.calculators.items() if row["author_id"] == user_id]:
                self._drop_calculator(calc_id)
        if delete_comments:
            for comment_id in [c for c, row in self.comments.items() if row["author_id"] == user_id]:
                self._drop_comment(comment_id)
        self.notifications = {k: n for k, n in self.notifications.items() if n["user_id"] != user_id}
        del self.users[user_id]
        return True

    def _notify(self, notification: dict | None) -> None:
        if notification is None or notification["user_id"] not in self.users:
            return
        notification_id = self.next_id()
        self.notifications[notification_id] = {
            "id": notification_id,
            "is_read": False,
            "created_at": self.now(),
            **notification,
        }

    async def list_notifications(self, user_id, *, limit, offset):
        rows = [dict(n) for n in self.notifications.values() if n["user_id"] == user_id]
        rows.sort(key=lambda n: n["created_at"], reverse=True)
        return _page(rows, limit, offset)

    async def count_notifications(self, user_id):
        return len([n for n in self.notifications.values() if n["user_id"] == user_id])

    async def mark_notification_read(self, user_id, notification_id):
        row = self.notifications.get(notification_id)
        if row is None or row["user_id"] != user_id:
            return False
        row["is_read"] = True
        return True

    def _commented(self, user_id) -> list[dict]:
        latest: dict[int, dict] = {}
        for comment in sorted(self.comments.values(), key=lambda c: c["created_at"]):
            calc = self.calculators.get(comment["calculator_id"])
            if comment["author_id"] != user_id or calc is None:
                continue
            latest[calc["id"]] = {
                "calculator_id": calc["id"],
                "title": calc["title"],
                "slug": calc["slug"],
                "type": calc["type"],
                "comment_id": comment["id"],
                "text": comment["text"],
                "created_at": comment["created_at"],
            }
        return sorted(latest.values(), key=lambda r: r["created_at"], reverse=True)

    async def list_commented_calculators(self, user_id, *, limit, offset):
        return _page(self._commented(user_id), limit, offset)

    async def count_commented_calculators(self, user_id):
        return len(self._commented(user_id))

    # calculators

    def _author_fields(self, author_id: int) -> dict:
        author = self.users.get(author_id) or {}
        return {
            "author_username": author.get("username"),
            "author_avatar": author.get("avatar"),
            "author_profession": author.get("profession"),
            "author_company": author.get("company"),
        }

    def _calculator_view(self, calc: dict) -> dict:
        return {
            **calc,
            **self._author_fields(calc["author_id"]),
            "saved_user_ids": [user_id for calc_id, user_id in self.saves if calc_id == calc["id"]],
        }

    def _filtered(self, *, verified=None, calc_type=None, author_id=None, saved_by=None, search="", tag=""):
        rows = []
        for calc in self.calculators.values():
            if verified is not None and calc["is_verified"] != verified:
                continue
            if calc_type and calc["type"] != calc_type:
                continue
            if author_id is not None and calc["author_id"] != author_id:
                continue
            if saved_by is not None and (calc["id"], saved_by) not in self.saves:
                continue
            if not _contains(calc["title"], search) or not _contains(calc["category"], tag):
                continue
            rows.append(self._calculator_view(calc))
        return rows

    async def list_calculators(self, *, sort="recent", limit=None, offset=0, **filters):
        rows = self._filtered(**filters)
        if sort == "a-z":
            rows.sort(key=lambda r: r["slug"])
        elif sort == "z-a":
            rows.sort(key=lambda r: r["slug"], reverse=True)
        elif sort == "popular":
            rows.sort(key=lambda r: (len(r["saved_user_ids"]), r["created_at"]), reverse=True)
        else:
            rows.sort(key=lambda r: r["created_at"], reverse=True)
        return _page(rows, limit, offset)

    async def count_calculators(self, **filters):
        return len(self._filtered(**filters))

    async def get_calculator(self, calc_id):
        calc = self.calculators.get(calc_id)
        return self._calculator_view(calc) if calc else None

    async def get_calculator_by_slug(self, slug):
        for calc in self.calculators.values():
            if calc["slug"] == slug:
                return self._calculator_view(calc)
        return None

    async def slug_taken(self, slug, *, exclude_id=None):
        return any(c["slug"] == slug and c["id"] != exclude_id for c in self.calculators.values())

    def add_calculator(self, author_id: int, title: str, **fields) -> dict:
        calc = {
            "id": self.next_id(),
            "author_id": author_id,
            "title": title,
            "slug": fields.pop("slug", title.replace(" ", "-").lower()),
            "description": "A calculator",
            "category": "math",
            "type": "modular",
            "info": "How it works",
            "is_info_markdown": False,
            "formula": "a+b",
            "formula_variables": [],
            "input_length": 2,
            "input_labels": {},
            "input_selects": {},
            "is_verified": True,
            "created_at": self.now(),
            "updated_at": self.now(),
        }
        calc.update(fields)
        self.calculators[calc["id"]] = calc
        return self._calculator_view(calc)

    async def create_calculator(self, *, author_id, title, **fields):
        fields.setdefault("is_verified", False)
        return self.add_calculator(author_id, title, **fields)

    async def update_calculator(self, calc_id, **fields):
        calc = self.calculators.get(calc_id)
        if calc is None:
            return None
        calc.update({key: value for key, value in fields.items() if value is not None})
        return self._calculator_view(calc)

    async def set_verified(self, calc_id, *, is_verified):
        calc = self.calculators.get(calc_id)
        if calc is None:
            return False
        calc["is_verified"] = is_verified
        return True

    def _drop_calculator(self, calc_id: int) -> None:
        self.calculators.pop(calc_id, None)
        self.saves = [s for s in self.saves if s[0] != calc_id]

    async def delete_calculator(self, calc_id):
        if calc_id not in self.calculators:
            return False
        self._drop_calculator(calc_id)
        return True

    async def save_calculator(self, calc_id, user_id, *, notification=None):
        if (calc_id, user_id) in self.saves:
            return False
        self.saves.append((calc_id, user_id))
        self._notify(notification)
        return True

    async def unsave_calculator(self, calc_id, user_id):
        if (calc_id, user_id) not in self.saves:
            return False
        self.saves.remove((calc_id, user_id))
        return True

    # comments

    def _comment_view(self, comment: dict) -> dict:
        return {
            **comment,
            **self._author_fields(comment["author_id"]),
            "like_user_ids": [user_id for comment_id, user_id in self.likes if comment_id == comment["id"]],
        }

    async def list_comments(self, calc_id, *, sort, limit, offset):
        rows = [self._comment_view(c) for c in self.comments.values() if c["calculator_id"] == calc_id]
        if sort == "popular":
            rows.sort(key=lambda r: (len(r["like_user_ids"]), r["created_at"]), reverse=True)
        elif sort == "a-z":
            rows.sort(key=lambda r: r["text"])
        elif sort == "z-a":
            rows.sort(key=lambda r: r["text"], reverse=True)
        else:
            rows.sort(key=lambda r: r["created_at"], reverse=True)
        return _page(rows, limit, offset)

    async def count_comments(self, calc_id):
        return len([c for c in self.comments.values() if c["calculator_id"] == calc_id])

    async def get_comment(self, comment_id):
        comment = self.comments.get(comment_id)
        return self._comment_view(comment) if comment else None

    async def list_replies(self, comment_ids):
        rows = [
            {**r, **self._author_fields(r["author_id"])}
            for r in self.replies.values()
            if r["comment_id"] in comment_ids
        ]
        return sorted(rows, key=lambda r: (r["comment_id"], r["id"]))

    def add_comment(self, calc_id: int, author_id: int, text: str) -> int:
        comment_id = self.next_id()
        now = self.now()
        self.comments[comment_id] = {
            "id": comment_id,
            "calculator_id": calc_id,
            "author_id": author_id,
            "text": text,
            "created_at": now,
            "updated_at": now,
        }
        return comment_id

    async def create_comment(self, calc_id, author_id, text, *, notification=None):
        comment_id = self.add_comment(calc_id, author_id, text)
        self._notify(notification)
        return comment_id

    async def create_reply(self, comment_id, author_id, text, *, notification=None):
        reply_id = self.next_id()
        now = self.now()
        self.replies[reply_id] = {
            "id": reply_id,
            "comment_id": comment_id,
            "author_id": author_id,
            "text": text,
            "created_at": now,
            "updated_at": now,
        }
        self._notify(notification)
        return reply_id

    async def like_comment(self, comment_id, user_id, *, notification=None):
        if (comment_id, user_id) in self.likes:
            return False
        self.likes.append((comment_id, user_id))
        self._notify(notification)
        return True

    async def unlike_comment(self, comment_id, user_id):
        if (comment_id, user_id) not in self.likes:
            return False
        self.likes.remove((comment_id, user_id))
        return True

    def _drop_comment(self, comment_id: int) -> None:
        self.comments.pop(comment_id, None)
        self.likes = [like for like in self.likes if like[0] != comment_id]
        self.replies = {k: r for k, r in self.replies.items() if r["comment_id"] != comment_id}

    async def delete_comment(self, comment_id):
        if comment_id not in self.comments:
            return False
        self._drop_comment(comment_id)
        return True

    async def delete_reply(self, comment_id, reply_id):
        reply = self.replies.get(reply_id)
        if reply is None or reply["comment_id"] != comment_id:
            return False
        del self.replies[reply_id]
        return True

    # moderation

    async def create_report(self, *, username, email, title, **fields):
        report_id = self.next_id()
        now = self.now()
        row = {
            "id": report_id,
            "username": username,
            "email": email,
            "title": title,
            "subject": None,
            "message": None,
            "calculator_title": None,
            "calculator_id": None,
            "comment_content": None,
            "comment_id": None,
            "comment_report_reasons": None,
            "is_report_seen": False,
            "created_at": now,
            "updated_at": now,
        }
        row.update(fields)
        self.reports[report_id] = row
        return dict(row)

    def _moderation_rows(self, table: dict, seen_key: str, search_key: str, seen: bool, search: str) -> list[dict]:
        rows = [dict(r) for r in table.values() if r[seen_key] == seen and _contains(r[search_key], search)]
        return sorted(rows, key=lambda r: r["created_at"], reverse=True)

    async def list_reports(self, *, seen, search="", limit, offset):
        return _page(self._moderation_rows(self.reports, "is_report_seen", "username", seen, search), limit, offset)

    async def count_reports(self, *, seen, search=""):
        return len(self._moderation_rows(self.reports, "is_report_seen", "username", seen, search))

    async def set_report_seen(self, report_id, *, is_seen):
        if report_id not in self.reports:
            return False
        self.reports[report_id]["is_report_seen"] = is_seen
        return True

    async def delete_report(self, report_id):
        return self.reports.pop(report_id, None) is not None

    async def create_contact(self, *, username, email, subject, message):
        contact_id = self.next_id()
        now = self.now()
        row = {
            "id": contact_id,
            "username": username,
            "email": email,
            "subject": subject,
            "message": message,
            "is_contact_seen": False,
            "created_at": now,
            "updated_at": now,
        }
        self.contacts[contact_id] = row
        return dict(row)

    async def list_contacts(self, *, seen, search="", limit, offset):
        return _page(self._moderation_rows(self.contacts, "is_contact_seen", "message", seen, search), limit, offset)

    async def count_contacts(self, *, seen, search=""):
        return len(self._moderation_rows(self.contacts, "is_contact_seen", "message", seen, search))

    async def set_contact_seen(self, contact_id, *, is_seen):
        if contact_id not in self.contacts:
            return False
        self.contacts[contact_id]["is_contact_seen"] = is_seen
        return True

    async def delete_contact(self, contact_id):
        return self.contacts.pop(contact_id, None) is not None


def _recording(store: FakeStore, name: str):
    method = getattr(store, name)

    async def wrapper(*args, **kwargs):
        store.calls.append(name)
        return await method(*args, **kwargs)

    return wrapper


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    monkeypatch.setenv("ACCESS_TOKEN_SECRET", "test-access-secret-0123456789abcdef")
    monkeypatch.setenv("REFRESH_TOKEN_SECRET", "test-refresh-secret-0123456789abcdef")
    monkeypatch.setenv("JWT_SECRET", "test-purpose-secret-0123456789abcdef")
    monkeypatch.setenv("CLIENT_URL", "http://client.test")
    monkeypatch.setenv("ADMIN_EMAIL", "admin@example.com")
    monkeypatch.delenv("TRUST_PROXY_HEADERS", raising=False)
    # Keep hashing fast; the cost factor is not under test.
    monkeypatch.setattr(security, "BCRYPT_ROUNDS", 4)
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def store(monkeypatch) -> FakeStore:
    fake = FakeStore()
    for module, names in PATCHED.items():
        for name in names:
            monkeypatch.setattr(module, name, _recording(fake, name))
    return fake


@pytest.fixture
def sent_emails(monkeypatch) -> list[dict]:
    sent: list[dict] = []

    def fake_send(*, template_name, to_email, subject, replacements):
        sent.append(
            {
                "template_name": template_name,
                "to_email": to_email,
                "subject": subject,
                "replacements": replacements,
            }
        )

    monkeypatch.setattr(mailer, "send_templated_email", fake_send)
    return sent


@pytest.fixture
def client(store) -> TestClient:
    from main import app

    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def login(client, store):
    """
    Put a refresh cookie for `user` on the client; returns a matching access token.
    """

    def _login(user: dict) -> str:
        row = store.users[user["id"]]
        # Same domain the jar uses for cookies set by "testserver" responses.
        client.cookies.set("jwt", security.build_refresh_token(row), domain="testserver.local")
        return security.build_access_token(row)

    return _login
