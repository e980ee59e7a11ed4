"""Vemail account and mailbox synchronisation core.

Subpackages
-----------
- core.models: Account and stored message models
- core.accounts: local cache, cloud sync client, sync queue, account manager
- core.mailbox: remote mailbox store client and request tracking
- core.send: outbound send routing
- core.session: per-session wiring of the above
- cli: command line front end
"""

__version__ = "0.1.0"
