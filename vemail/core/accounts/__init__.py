"""Account metadata: local cache, cloud sync and the account manager.

Usage Examples
--------------

    >>> cache = AccountCache(JsonFileStore(path))
    >>> manager = AccountManager(cache, cloud, CloudSyncQueue(), user_email="me@x.com")
    >>> manager.add({"email": "me@x.com", "accountType": "gmail"}, credential="app-pass")
    >>> manager.resolve_active()
    Account(id='...', email='me@x.com', is_default=True, ...)
"""

from .cache import AccountCache, JsonFileStore, KeyValueStore, MemoryStore
from .cloud import CloudAccountClient
from .manager import AccountManager
from .sync_queue import CloudSyncQueue, RetryPolicy

__all__ = [
    "AccountCache",
    "AccountManager",
    "CloudAccountClient",
    "CloudSyncQueue",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "RetryPolicy",
]
