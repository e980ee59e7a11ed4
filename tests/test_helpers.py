"""
Test helper functions and utilities for reducing duplicate code across test modules
"""
import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx

from vemail.core.models.account import Account

ACCOUNT_SERVICE_URL = "https://accounts.test"
STORE_URL = "https://store.test"
CUSTOM_STORE_URL = "https://custom-store.test"

Responder = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class ServiceStub:
    """Stand-in for the remote services behind an ``httpx.MockTransport``.

    Routes are keyed by (method, path); unmatched requests get a 200 with
    ``{"success": true}``. Every request is recorded.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], Responder] = {}
        self.failures: Dict[Tuple[str, str], type] = {}

    def on(self, method: str, path: str, status: int = 200, json: Any = None,
           responder: Optional[Responder] = None) -> None:
        """Answer ``method path`` with a JSON response (or a custom responder)."""
        if responder is None:
            responder = httpx.Response(status, json=json if json is not None else {})
        self.routes[(method, path)] = responder

    def fail(self, method: str, path: str, error: type = httpx.ConnectError) -> None:
        """Make ``method path`` raise a transport error."""
        self.failures[(method, path)] = error

    @staticmethod
    def path(request: httpx.Request) -> str:
        """Request path as sent, with percent-escapes intact."""
        return request.url.raw_path.decode("ascii").split("?", 1)[0]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, self.path(request))

        if key in self.failures:
            raise self.failures[key]("stubbed failure", request=request)

        responder = self.routes.get(key)
        if responder is None:
            return httpx.Response(200, json={"success": True})
        if callable(responder):
            return responder(request)
        return responder

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def calls(self, method: Optional[str] = None, path: Optional[str] = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if (method is None or r.method == method) and (path is None or self.path(r) == path)
        ]

    @staticmethod
    def body(request: httpx.Request) -> Dict[str, Any]:
        return json.loads(request.content)


class AccountServiceFake:
    """Account service that keeps per-user records between requests.

    Applies create/update, delete, list and full-replace the way the real
    service does, so several clients can be checked against one remote state.
    """

    def __init__(self):
        self.records: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = ServiceStub.path(request)
        params = request.url.params

        if request.method == "POST" and path == "/email-accounts":
            body = json.loads(request.content)
            record = body["account"]
            self.records.setdefault(body["userEmail"], {})[record["id"]] = record
        elif request.method == "DELETE" and path == "/email-accounts":
            self.records.get(params["user"], {}).pop(params["id"], None)
        elif request.method == "GET" and path == "/email-accounts":
            return httpx.Response(
                200, json={"accounts": list(self.records.get(params["user"], {}).values())}
            )
        elif request.method == "PUT" and path == "/email-accounts/sync":
            body = json.loads(request.content)
            self.records[body["userEmail"]] = {r["id"]: r for r in body["accounts"]}
        else:
            return httpx.Response(404, json={"error": "not found"})

        return httpx.Response(200, json={"success": True})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def default_emails(self, user_email: str) -> List[str]:
        return [r["email"] for r in self.records.get(user_email, {}).values() if r.get("isDefault")]


class AccountTestHelper:
    """Helper methods for building accounts and wire records"""

    @staticmethod
    def create_account(**kwargs) -> Account:
        """Create an Account with default values"""
        defaults = {
            "id": "acc-1",
            "name": "Test",
            "email": "a@x.com",
            "aliases": [],
            "is_default": False,
            "account_type": "gmail",
        }
        defaults.update(kwargs)
        return Account.model_validate(defaults)

    @staticmethod
    def create_record(**kwargs) -> Dict[str, Any]:
        """Create a camelCase account record as the account service sends it"""
        record = {
            "id": "acc-1",
            "name": "Test",
            "email": "a@x.com",
            "aliases": [],
            "isDefault": False,
            "hasPassword": True,
            "accountType": "gmail",
        }
        record.update(kwargs)
        return record


class MessageTestHelper:
    """Helper methods for mailbox store payloads"""

    @staticmethod
    def create_record(**kwargs) -> Dict[str, Any]:
        """Create a stored message header record with default values"""
        record = {
            "id": "msg-1",
            "user_email": "a@x.com",
            "message_id": "<msg-1@x.com>",
            "folder": "inbox",
            "from_address": "sender@example.com",
            "from_name": "Sender",
            "to_address": "a@x.com",
            "cc": None,
            "bcc": None,
            "subject": "Test Subject",
            "snippet": "Test snippet",
            "has_attachments": 0,
            "read": 0,
            "starred": 0,
            "received_at": "2025-10-02T10:30:00Z",
            "created_at": "2025-10-02T10:30:01Z",
        }
        record.update(kwargs)
        return record

    @staticmethod
    def create_records(count: int = 2, **kwargs) -> List[Dict[str, Any]]:
        """Create multiple message records"""
        return [
            MessageTestHelper.create_record(id=f"msg-{i}", subject=f"Subject {i}", **kwargs)
            for i in range(count)
        ]
