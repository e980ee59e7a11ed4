"""
Tests for the account manager

Tests cover:
- The one-default rule across add/update/remove/set_default
- Active account resolution
- Alias idempotence
- Cloud sync scheduling
- Session bootstrap from cache or cloud
"""
import json
import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from vemail.core.accounts.cache import AccountCache, MemoryStore
from vemail.core.accounts.cloud import CloudAccountClient
from vemail.core.accounts.manager import AccountManager
from vemail.core.accounts.sync_queue import CloudSyncQueue
from vemail.core.http import ServiceTransport, create_http_client
from vemail.core.models.account import AccountDraft, AccountPatch
from vemail.utils.errors import MissingRequiredFieldError, ValidationError

from .test_helpers import ACCOUNT_SERVICE_URL, AccountServiceFake, AccountTestHelper


def default_ids(accounts):
    return [a.id for a in accounts if a.is_default]


def assert_one_default(accounts):
    if accounts:
        assert len(default_ids(accounts)) == 1
    else:
        assert default_ids(accounts) == []


@pytest.fixture
def two_accounts(manager):
    manager.add({"email": "a@x.com"})
    manager.add({"email": "b@x.com"})
    return manager


class TestAdd:
    """Tests for adding accounts"""

    def test_first_account_forced_default(self, manager):
        accounts = manager.add(AccountDraft(email="a@x.com", is_default=False))

        assert len(accounts) == 1
        assert accounts[0].is_default is True

    def test_second_account_not_default(self, two_accounts):
        accounts = two_accounts.list_accounts()
        assert default_ids(accounts) == ["acc-1"]

    def test_default_draft_demotes_others(self, two_accounts):
        accounts = two_accounts.add({"email": "c@x.com", "isDefault": True})
        assert default_ids(accounts) == ["acc-3"]

    def test_ids_are_unique(self, cache):
        ids = iter(["dup", "dup", "fresh"])
        manager = AccountManager(cache, id_factory=lambda: next(ids))
        manager.add({"email": "a@x.com"})
        accounts = manager.add({"email": "b@x.com"})

        assert [a.id for a in accounts] == ["dup", "fresh"]

    def test_default_uuid_ids(self, cache):
        accounts = AccountManager(cache).add({"email": "a@x.com"})
        assert len(accounts[0].id) == 36

    def test_credential_sets_has_password_but_is_not_stored(self, manager, store):
        accounts = manager.add({"email": "a@x.com"}, credential="app-secret")

        assert accounts[0].has_password is True
        assert "app-secret" not in store.get("vemail_accounts")

    def test_missing_email(self, manager):
        with pytest.raises(MissingRequiredFieldError):
            manager.add({"name": "No address"})

    def test_invalid_type(self, manager):
        with pytest.raises(ValidationError):
            manager.add({"email": "a@x.com", "accountType": "exchange"})

    def test_persisted(self, manager, cache):
        manager.add({"email": "a@x.com"})
        assert [a.email for a in cache.read()] == ["a@x.com"]


class TestUpdate:
    """Tests for updating accounts"""

    def test_unknown_id_unchanged(self, two_accounts):
        before = two_accounts.list_accounts()
        assert two_accounts.update("missing", {"name": "X"}) == before

    def test_merge_preserves_unspecified_fields(self, manager):
        manager.add({"email": "a@x.com", "name": "A", "aliases": ["b@x.com"]})
        accounts = manager.update("acc-1", AccountPatch(name="Renamed"))

        assert accounts[0].name == "Renamed"
        assert accounts[0].aliases == ["b@x.com"]
        assert accounts[0].is_default is True

    def test_set_default_via_update_demotes_others(self, two_accounts):
        accounts = two_accounts.update("acc-2", {"isDefault": True})
        assert default_ids(accounts) == ["acc-2"]

    def test_clearing_only_default_promotes_first(self, two_accounts):
        two_accounts.set_default("acc-2")
        accounts = two_accounts.update("acc-2", {"isDefault": False})
        assert default_ids(accounts) == ["acc-1"]

    def test_blank_store_url_clears_override(self, manager):
        manager.add({"email": "a@x.com", "storeUrl": "https://custom.test"})
        accounts = manager.update("acc-1", {"storeUrl": ""})
        assert accounts[0].mailbox_endpoint is None

    def test_legacy_type_in_patch(self, manager):
        manager.add({"email": "a@x.com"})
        accounts = manager.update("acc-1", {"accountType": "smtp"})
        assert accounts[0].account_type.value == "generic-smtp"

    def test_blank_email_rejected(self, manager):
        manager.add({"email": "a@x.com"})
        with pytest.raises(MissingRequiredFieldError):
            manager.update("acc-1", {"email": ""})


class TestRemove:
    """Tests for removing accounts"""

    def test_remove_non_default_keeps_default(self, two_accounts):
        # Second account is the default
        two_accounts.set_default("acc-2")
        accounts = two_accounts.remove("acc-1")

        assert [a.id for a in accounts] == ["acc-2"]
        assert accounts[0].is_default is True

    def test_remove_default_promotes_first_remaining(self, two_accounts):
        accounts = two_accounts.remove("acc-1")

        assert [a.id for a in accounts] == ["acc-2"]
        assert accounts[0].is_default is True

    def test_remove_last(self, manager):
        manager.add({"email": "a@x.com"})
        assert manager.remove("acc-1") == []

    def test_remove_unknown_is_noop(self, two_accounts):
        before = two_accounts.list_accounts()
        assert two_accounts.remove("missing") == before


class TestSetDefault:
    """Tests for changing the default account"""

    def test_set_default(self, two_accounts):
        accounts = two_accounts.set_default("acc-2")
        assert default_ids(accounts) == ["acc-2"]

    def test_unknown_id_keeps_current_default(self, two_accounts):
        accounts = two_accounts.set_default("missing")
        assert default_ids(accounts) == ["acc-1"]


class TestDefaultInvariant:
    """Exactly one default after any mutation sequence"""

    @pytest.mark.parametrize("seed", [1, 7, 42, 1234])
    def test_random_sequences(self, manager, seed):
        rng = random.Random(seed)

        for step in range(200):
            ids = [a.id for a in manager.list_accounts()] + ["missing"]
            op = rng.choice(["add", "add", "update", "remove", "set_default"])

            if op == "add":
                accounts = manager.add({
                    "email": f"user{step}@x.com",
                    "isDefault": rng.random() < 0.3,
                })
            elif op == "update":
                accounts = manager.update(rng.choice(ids), {"isDefault": rng.choice([True, False])})
            elif op == "remove":
                accounts = manager.remove(rng.choice(ids))
            else:
                accounts = manager.set_default(rng.choice(ids))

            assert_one_default(accounts)
            assert accounts == manager.list_accounts()


class TestResolveActive:
    """Tests for picking the acting account"""

    def test_empty_list_returns_none(self, manager):
        assert manager.resolve_active() is None
        assert manager.needs_configuration

    def test_explicit_id(self, two_accounts):
        assert two_accounts.resolve_active("acc-2").id == "acc-2"

    def test_unknown_explicit_id_falls_back_to_default(self, two_accounts):
        assert two_accounts.resolve_active("missing").id == "acc-1"

    def test_default(self, two_accounts):
        two_accounts.set_default("acc-2")
        assert two_accounts.resolve_active().id == "acc-2"

    def test_first_when_no_default(self, cache):
        cache.write([
            AccountTestHelper.create_account(id="x"),
            AccountTestHelper.create_account(id="y", email="b@x.com"),
        ])
        assert AccountManager(cache).resolve_active().id == "x"

    def test_find_by_email(self, two_accounts):
        assert two_accounts.find_by_email("b@x.com").id == "acc-2"
        assert two_accounts.find_by_email("z@x.com") is None


class TestAliases:
    """Tests for send-as aliases"""

    def test_add_alias_twice(self, two_accounts):
        two_accounts.add_alias("acc-1", "alias@x.com")
        accounts = two_accounts.add_alias("acc-1", "alias@x.com")

        assert accounts[0].aliases == ["alias@x.com"]

    def test_remove_absent_alias(self, two_accounts):
        before = two_accounts.list_accounts()
        assert two_accounts.remove_alias("acc-1", "nobody@x.com") == before

    def test_remove_alias(self, two_accounts):
        two_accounts.add_alias("acc-2", "alias@x.com")
        accounts = two_accounts.remove_alias("acc-2", "alias@x.com")
        assert accounts[1].aliases == []

    def test_alias_whitespace_stripped(self, two_accounts):
        accounts = two_accounts.add_alias("acc-1", "  alias@x.com ")
        assert accounts[0].aliases == ["alias@x.com"]

    def test_empty_alias_rejected(self, two_accounts):
        with pytest.raises(MissingRequiredFieldError):
            two_accounts.add_alias("acc-1", "   ")


@pytest.fixture
def cloud():
    client = MagicMock(spec=CloudAccountClient)
    client.push = AsyncMock(return_value=True)
    client.remove = AsyncMock(return_value=True)
    client.sync_all = AsyncMock(return_value=True)
    client.pull = AsyncMock(return_value=None)
    return client


@pytest.fixture
def synced_manager(cache, cloud, id_factory):
    return AccountManager(cache, cloud, CloudSyncQueue(), user_email="me@x.com", id_factory=id_factory)


class TestCloudSyncScheduling:
    """Tests for mirroring mutations to the account service"""

    @pytest.mark.asyncio
    async def test_add_pushes_with_credential(self, synced_manager, cloud):
        synced_manager.add({"email": "a@x.com"}, credential="app-secret")
        await synced_manager.sync_queue.drain()

        user, account, credential = cloud.push.await_args.args
        assert user == "me@x.com"
        assert account.email == "a@x.com"
        assert credential == "app-secret"

    @pytest.mark.asyncio
    async def test_update_pushes_without_credential(self, synced_manager, cloud):
        synced_manager.add({"email": "a@x.com"})
        synced_manager.update("acc-1", {"name": "New"})
        await synced_manager.sync_queue.drain()

        assert cloud.push.await_count == 2
        assert cloud.push.await_args.args[2] is None

    @pytest.mark.asyncio
    async def test_remove_syncs_then_deletes(self, synced_manager, cloud):
        synced_manager.add({"email": "a@x.com"})
        synced_manager.add({"email": "b@x.com"})
        synced_manager.remove("acc-1")
        await synced_manager.sync_queue.drain()

        synced = cloud.sync_all.await_args.args[1]
        assert [a.id for a in synced] == ["acc-2"]
        cloud.remove.assert_awaited_once_with("me@x.com", "acc-1")

    @pytest.mark.asyncio
    async def test_set_default_and_aliases_sync_all(self, synced_manager, cloud):
        synced_manager.add({"email": "a@x.com"})
        synced_manager.set_default("acc-1")
        synced_manager.add_alias("acc-1", "alias@x.com")
        synced_manager.remove_alias("acc-1", "alias@x.com")
        await synced_manager.sync_queue.drain()

        assert cloud.sync_all.await_count == 3

    @pytest.mark.asyncio
    async def test_noop_mutations_queue_nothing(self, synced_manager):
        synced_manager.update("missing", {"name": "X"})
        synced_manager.remove("missing")
        synced_manager.set_default("missing")

        assert synced_manager.sync_queue.stats.submitted == 0

    @pytest.mark.asyncio
    async def test_cloud_failure_does_not_roll_back(self, synced_manager, cloud):
        cloud.push.side_effect = RuntimeError("boom")

        accounts = synced_manager.add({"email": "a@x.com"})
        await synced_manager.sync_queue.drain()

        assert accounts == synced_manager.list_accounts()
        assert synced_manager.sync_queue.stats.dropped == 1

    def test_no_user_identity_disables_sync(self, cache, cloud):
        queue = CloudSyncQueue()
        manager = AccountManager(cache, cloud, queue, user_email="")
        manager.add({"email": "a@x.com"})

        assert queue.stats.submitted == 0
        assert manager.push_all() is False

    @pytest.mark.asyncio
    async def test_push_all(self, synced_manager, cloud):
        synced_manager.add({"email": "a@x.com"})
        assert synced_manager.push_all() is True
        await synced_manager.sync_queue.drain()

        cloud.sync_all.assert_awaited()


class TestBootstrap:
    """Tests for the once-per-session account bootstrap"""

    @pytest.mark.asyncio
    async def test_local_cache_used_without_pull(self, synced_manager, cloud):
        synced_manager.add({"email": "a@x.com"})
        accounts = await synced_manager.bootstrap()

        assert [a.email for a in accounts] == ["a@x.com"]
        cloud.pull.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_hydrates_from_cloud(self, synced_manager, cloud, cache):
        cloud.pull.return_value = [
            AccountTestHelper.create_account(id="r1", is_default=True),
            AccountTestHelper.create_account(id="r2", email="b@x.com", is_default=True),
        ]
        accounts = await synced_manager.bootstrap()

        assert default_ids(accounts) == ["r1"]
        assert cache.read() == accounts

    @pytest.mark.asyncio
    async def test_hydrated_list_without_default_gets_one(self, synced_manager, cloud):
        cloud.pull.return_value = [AccountTestHelper.create_account(id="r1")]
        accounts = await synced_manager.bootstrap()

        assert default_ids(accounts) == ["r1"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("remote", [None, []])
    async def test_nothing_to_hydrate(self, synced_manager, cloud, store, remote):
        cloud.pull.return_value = remote
        accounts = await synced_manager.bootstrap()

        assert accounts == []
        assert store.get("vemail_accounts") is None

    @pytest.mark.asyncio
    async def test_no_identity_skips_pull(self, cache, cloud):
        manager = AccountManager(cache, cloud, CloudSyncQueue(), user_email="")
        assert await manager.bootstrap() == []
        cloud.pull.assert_not_awaited()

    def test_cache_payload_is_metadata_only(self, synced_manager, store):
        synced_manager.add({"email": "a@x.com"}, credential="app-secret")
        record = json.loads(store.get("vemail_accounts"))[0]

        assert set(record) == {
            "id", "name", "email", "aliases", "isDefault", "hasPassword", "storeUrl", "accountType",
        }


@pytest.fixture
def account_service():
    return AccountServiceFake()


@pytest.fixture
async def make_device(account_service):
    """Build account managers that share one remote account service"""
    clients, queues = [], []

    def _make(id_factory=None):
        client = create_http_client(transport=account_service.transport)
        queue = CloudSyncQueue()
        clients.append(client)
        queues.append(queue)
        cloud = CloudAccountClient(ServiceTransport(client, ACCOUNT_SERVICE_URL))
        kwargs = {"id_factory": id_factory} if id_factory else {}
        return AccountManager(AccountCache(MemoryStore()), cloud, queue, user_email="me@x.com", **kwargs)

    yield _make

    for queue in queues:
        await queue.stop()
    for client in clients:
        await client.aclose()


class TestCloudConvergence:
    """Tests that the remote default follows local default changes"""

    @pytest.mark.asyncio
    async def test_default_draft_demotes_remote_default(self, make_device, account_service, id_factory):
        device = make_device(id_factory)
        device.add({"email": "a@x.com"})
        device.add({"email": "b@x.com", "isDefault": True})
        await device.sync_queue.drain()

        assert account_service.default_emails("me@x.com") == ["b@x.com"]

    @pytest.mark.asyncio
    async def test_set_default_via_update_demotes_remote_default(
        self, make_device, account_service, id_factory
    ):
        device = make_device(id_factory)
        device.add({"email": "a@x.com"})
        device.add({"email": "b@x.com"})
        device.update("acc-2", {"isDefault": True})
        await device.sync_queue.drain()

        assert account_service.default_emails("me@x.com") == ["b@x.com"]

    @pytest.mark.asyncio
    async def test_clearing_default_promotes_first_remotely(
        self, make_device, account_service, id_factory
    ):
        device = make_device(id_factory)
        device.add({"email": "a@x.com"})
        device.add({"email": "b@x.com", "isDefault": True})
        device.update("acc-2", {"isDefault": False})
        await device.sync_queue.drain()

        assert account_service.default_emails("me@x.com") == ["a@x.com"]

    @pytest.mark.asyncio
    async def test_fresh_device_hydrates_same_default(self, make_device, id_factory):
        first = make_device(id_factory)
        first.add({"email": "a@x.com"})
        first.add({"email": "b@x.com", "isDefault": True})
        await first.sync_queue.drain()

        second = make_device()
        accounts = await second.bootstrap()

        assert [a.email for a in accounts if a.is_default] == ["b@x.com"]
        assert second.resolve_active().email == first.resolve_active().email

    @pytest.mark.asyncio
    async def test_plain_update_does_not_sync_full_list(self, synced_manager, cloud):
        synced_manager.add({"email": "a@x.com"})
        synced_manager.add({"email": "b@x.com"})
        synced_manager.update("acc-2", {"name": "Renamed"})
        await synced_manager.sync_queue.drain()

        cloud.sync_all.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clearing_first_default_is_a_noop_for_the_flag(self, synced_manager, cloud):
        synced_manager.add({"email": "a@x.com"})
        synced_manager.add({"email": "b@x.com"})
        accounts = synced_manager.update("acc-1", {"isDefault": False})
        await synced_manager.sync_queue.drain()

        assert default_ids(accounts) == ["acc-1"]
        cloud.sync_all.assert_not_awaited()
