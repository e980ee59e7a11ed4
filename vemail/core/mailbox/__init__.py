"""Remote mailbox store access.

- MailboxClient: list, fetch, flag, move and delete messages
- LatestRequestTracker: discard results that a newer request superseded
"""

from .client import MailboxClient
from .tracker import LatestRequestTracker, RequestToken

__all__ = ["MailboxClient", "LatestRequestTracker", "RequestToken"]
