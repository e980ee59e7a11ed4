"""Account manager - CRUD over the cached account list.

Every operation reads the cache, applies the change, persists and returns the
full resulting list. The list always satisfies the default-account rule: if
it is non-empty, exactly one account has ``is_default`` set.

Mutations are mirrored to the account service through the sync queue. That
is best effort and happens after the local write, so it can never block or
roll back the change.
"""

import uuid
from functools import partial
from typing import Any, Callable, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from vemail.core.accounts.cache import AccountCache
from vemail.core.accounts.cloud import CloudAccountClient
from vemail.core.accounts.sync_queue import CloudSyncQueue
from vemail.core.models.account import Account, AccountDraft, AccountPatch
from vemail.utils.errors import MissingRequiredFieldError, ValidationError
from vemail.utils.logging import async_log_call, get_logger, log_call, log_event

logger = get_logger(__name__)

DraftInput = Union[AccountDraft, Mapping[str, Any]]
PatchInput = Union[AccountPatch, Mapping[str, Any]]


def _new_uuid() -> str:
    return str(uuid.uuid4())


def _validation_error(e: PydanticValidationError, what: str) -> ValidationError:
    fields = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
    if "email" in fields:
        return MissingRequiredFieldError(
            f"{what}: an email address is required", details={"fields": fields}
        )
    return ValidationError(f"{what}: invalid fields {', '.join(fields)}", details={"fields": fields})


def _demote_all(accounts: List[Account], keep_id: Optional[str] = None) -> List[Account]:
    return [
        a if a.id == keep_id or not a.is_default else a.model_copy(update={"is_default": False})
        for a in accounts
    ]


def _ensure_default(accounts: List[Account]) -> List[Account]:
    """Promote the first account when a non-empty list has no default."""
    if accounts and not any(a.is_default for a in accounts):
        accounts[0] = accounts[0].model_copy(update={"is_default": True})
    return accounts


def _others_changed_default(
    before: List[Account], after: List[Account], account_id: str
) -> bool:
    """True if any account besides ``account_id`` gained or lost the default."""
    was_default = {a.id: a.is_default for a in before}
    return any(
        a.id != account_id and a.id in was_default and was_default[a.id] != a.is_default
        for a in after
    )


class AccountManager:
    """Session-scoped owner of the account list."""

    def __init__(
        self,
        cache: AccountCache,
        cloud: Optional[CloudAccountClient] = None,
        sync_queue: Optional[CloudSyncQueue] = None,
        user_email: str = "",
        id_factory: Callable[[], str] = _new_uuid,
    ):
        self.cache = cache
        self.cloud = cloud
        self.sync_queue = sync_queue
        self.user_email = user_email
        self._id_factory = id_factory

    ## Queries

    def list_accounts(self) -> List[Account]:
        return self.cache.read()

    def get(self, account_id: str) -> Optional[Account]:
        return next((a for a in self.cache.read() if a.id == account_id), None)

    def find_by_email(self, email: str) -> Optional[Account]:
        return next((a for a in self.cache.read() if a.email == email), None)

    @property
    def needs_configuration(self) -> bool:
        return not self.cache.read()

    def resolve_active(self, explicit_id: Optional[str] = None) -> Optional[Account]:
        """Pick the account to act as.

        Returns the account with ``explicit_id`` if present, else the default,
        else the first account, else None. None means "nothing configured"
        and should prompt the user to add an account.
        """
        accounts = self.cache.read()

        if explicit_id is not None:
            match = next((a for a in accounts if a.id == explicit_id), None)
            if match is not None:
                return match

        default = next((a for a in accounts if a.is_default), None)
        if default is not None:
            return default

        return accounts[0] if accounts else None

    ## Mutations

    @log_call
    def add(self, draft: DraftInput, credential: Optional[str] = None) -> List[Account]:
        """Add a new account with a fresh id.

        The first account is always the default; a draft asking to be the
        default demotes everyone else. ``credential`` is only forwarded to the
        account service and marks the account as having a password.
        """
        draft = self._coerce_draft(draft)
        accounts = self.cache.read()

        fields = draft.model_dump()
        fields["id"] = self._unique_id(accounts)
        if credential:
            fields["has_password"] = True
        if not accounts:
            fields["is_default"] = True

        before = list(accounts)
        account = Account.model_validate(fields)
        if account.is_default:
            accounts = _demote_all(accounts)

        accounts.append(account)
        self.cache.write(accounts)

        log_event("account_added", f"Account {account.id} added", account_id=account.id)
        self._schedule(f"push account {account.id}", self._push_call(account, credential))
        self._sync_demotions(before, accounts, account.id)
        return accounts

    @log_call
    def update(
        self, account_id: str, patch: PatchInput, credential: Optional[str] = None
    ) -> List[Account]:
        """Merge ``patch`` onto an account; unknown ids leave the list untouched.

        Clearing ``is_default`` on the only default hands it to the first
        account in list order. When that first account is the one being
        updated it stays the default, so the flag change has no effect.

        When the default moves, the other accounts changed too, so the full
        list is synced after the push.
        """
        patch = self._coerce_patch(patch)
        accounts = self.cache.read()

        index = next((i for i, a in enumerate(accounts) if a.id == account_id), None)
        if index is None:
            logger.debug(f"Update ignored, no account {account_id}")
            return accounts

        changes = patch.changes()
        if credential:
            changes["has_password"] = True

        try:
            updated = Account.model_validate({**accounts[index].model_dump(), **changes})
        except PydanticValidationError as e:
            raise _validation_error(e, f"Cannot update account {account_id}") from e

        before = list(accounts)
        if changes.get("is_default"):
            accounts = _demote_all(accounts, keep_id=account_id)
        else:
            accounts = list(accounts)

        accounts[index] = updated
        accounts = _ensure_default(accounts)
        self.cache.write(accounts)

        log_event("account_updated", f"Account {account_id} updated", account_id=account_id,
                  fields=sorted(changes))
        self._schedule(f"push account {account_id}", self._push_call(updated, credential))
        self._sync_demotions(before, accounts, account_id)
        return accounts

    @log_call
    def remove(self, account_id: str) -> List[Account]:
        """Delete an account, promoting the first survivor if it was the default."""
        accounts = self.cache.read()
        remaining = [a for a in accounts if a.id != account_id]

        if len(remaining) == len(accounts):
            logger.debug(f"Remove ignored, no account {account_id}")
            return accounts

        remaining = _ensure_default(remaining)
        self.cache.write(remaining)

        log_event("account_removed", f"Account {account_id} removed", account_id=account_id)
        self._schedule("sync account list", self._sync_all_call(remaining))
        self._schedule(f"remove account {account_id}", self._remove_call(account_id))
        return remaining

    @log_call
    def set_default(self, account_id: str) -> List[Account]:
        """Make ``account_id`` the one default account.

        An unknown id changes nothing; demoting everyone would leave the list
        without a default.
        """
        accounts = self.cache.read()

        if not any(a.id == account_id for a in accounts):
            logger.debug(f"Set default ignored, no account {account_id}")
            return accounts

        accounts = [
            a.model_copy(update={"is_default": a.id == account_id}) for a in accounts
        ]
        self.cache.write(accounts)

        log_event("default_account_changed", f"Default account is now {account_id}",
                  account_id=account_id)
        self._schedule("sync account list", self._sync_all_call(accounts))
        return accounts

    def add_alias(self, account_id: str, alias: str) -> List[Account]:
        """Add a send-as alias; adding one that is already there is a no-op."""
        alias = self._clean_alias(alias)
        account = self.get(account_id)

        if account is None or alias in account.aliases:
            return self.cache.read()

        return self._set_aliases(account, [*account.aliases, alias])

    def remove_alias(self, account_id: str, alias: str) -> List[Account]:
        """Remove a send-as alias; removing one that is absent is a no-op."""
        alias = self._clean_alias(alias)
        account = self.get(account_id)

        if account is None or alias not in account.aliases:
            return self.cache.read()

        return self._set_aliases(account, [a for a in account.aliases if a != alias])

    def push_all(self) -> bool:
        """Queue a full metadata sync of the current list; False if sync is off."""
        return self._schedule("sync account list", self._sync_all_call(self.cache.read()))

    ## Bootstrap

    @async_log_call
    async def bootstrap(self) -> List[Account]:
        """Load accounts once per session.

        A non-empty local cache is used as is. Otherwise the cloud is asked,
        and a non-empty answer hydrates the cache. Anything else leaves the
        session with no accounts.
        """
        local = self.cache.read()
        if local:
            logger.debug(f"Bootstrap: using {len(local)} cached account(s)")
            return local

        if self.cloud is None or not self.user_email:
            logger.info("Bootstrap: cache empty and no cloud identity, nothing to hydrate")
            return []

        remote = await self.cloud.pull(self.user_email)
        if not remote:
            logger.info("Bootstrap: no remote accounts to hydrate from")
            return []

        accounts = _ensure_default(_demote_all(remote, keep_id=self._first_default_id(remote)))
        self.cache.write(accounts)

        log_event("accounts_hydrated", f"Hydrated {len(accounts)} account(s) from cloud",
                  count=len(accounts))
        return accounts

    ## Helpers

    def _set_aliases(self, account: Account, aliases: List[str]) -> List[Account]:
        accounts = [
            a.model_copy(update={"aliases": aliases}) if a.id == account.id else a
            for a in self.cache.read()
        ]
        self.cache.write(accounts)

        logger.info(f"Aliases for account {account.id} now {len(aliases)}")
        self._schedule("sync account list", self._sync_all_call(accounts))
        return accounts

    def _unique_id(self, accounts: List[Account]) -> str:
        taken = {a.id for a in accounts}
        new_id = self._id_factory()
        while new_id in taken:
            new_id = self._id_factory()
        return new_id

    @staticmethod
    def _first_default_id(accounts: List[Account]) -> Optional[str]:
        return next((a.id for a in accounts if a.is_default), None)

    @staticmethod
    def _clean_alias(alias: str) -> str:
        alias = (alias or "").strip()
        if not alias:
            raise MissingRequiredFieldError("Alias address cannot be empty")
        return alias

    @staticmethod
    def _coerce_draft(draft: DraftInput) -> AccountDraft:
        if isinstance(draft, AccountDraft):
            return draft
        try:
            return AccountDraft.model_validate(dict(draft))
        except PydanticValidationError as e:
            raise _validation_error(e, "Cannot add account") from e

    @staticmethod
    def _coerce_patch(patch: PatchInput) -> AccountPatch:
        if isinstance(patch, AccountPatch):
            return patch
        try:
            return AccountPatch.model_validate(dict(patch))
        except PydanticValidationError as e:
            raise _validation_error(e, "Invalid account update") from e

    ## Cloud sync scheduling

    def _sync_demotions(self, before: List[Account], after: List[Account], account_id: str) -> None:
        if _others_changed_default(before, after, account_id):
            self._schedule("sync account list", self._sync_all_call(after))

    def _sync_enabled(self) -> bool:
        return self.cloud is not None and self.sync_queue is not None and bool(self.user_email)

    def _schedule(self, description: str, call: Optional[Callable]) -> bool:
        if call is None:
            return False
        self.sync_queue.submit(description, call)
        return True

    def _push_call(self, account: Account, credential: Optional[str]):
        if not self._sync_enabled():
            return None
        return partial(self.cloud.push, self.user_email, account, credential)

    def _remove_call(self, account_id: str):
        if not self._sync_enabled():
            return None
        return partial(self.cloud.remove, self.user_email, account_id)

    def _sync_all_call(self, accounts: List[Account]):
        if not self._sync_enabled():
            return None
        return partial(self.cloud.sync_all, self.user_email, list(accounts))
