"""Tests for the cascading account delete."""

import pytest

from keyadmin.models.session import SessionMatchPolicy
from keyadmin.services.accounts import InvalidAccountIdError
from keyadmin.services.deletion_service import delete_account_data
from tests.test_utils import read_json, write_json

ACCOUNT = "111"
OTHER = "222"


@pytest.fixture
def seeded(kv):
    """Both schema generations populated for ACCOUNT and OTHER."""
    kv.seed(
        "exhub:redeemed-keys",
        [
            {"token": "L-1", "discordId": ACCOUNT, "hwid": "pc-1"},
            {"token": "L-OTHER", "discordId": OTHER},
            {"key": "L-2", "discordId": ACCOUNT},
            "not-a-record",
        ],
    )
    kv.seed("exhub:deleted-keys", [{"token": "OLD", "discordId": "999"}])
    kv.seed(
        "exhub:exec-users",
        {
            "L-1": {"runtime": "a"},
            "L-OTHER": {"runtime": "b"},
        },
    )
    kv.seed("exhub:discord-users", {ACCOUNT: {"username": "me"}, OTHER: {"username": "them"}})

    kv.seed("exhub:freekey:user:" + ACCOUNT, ["F-1"])
    kv.seed("exhub:freekey:token:F-1", {"token": "F-1", "discordId": ACCOUNT, "free": True})
    kv.seed("exhub:paidkey:user:" + OTHER, ["P-OTHER"])
    kv.seed("exhub:paidkey:token:P-OTHER", {"token": "P-OTHER", "discordId": OTHER})

    kv.seed_set("exhub:exec-users:index", "e-account", "e-token", "e-other", "e-dangling")
    kv.seed("exhub:exec-user:e-account", {"discordId": ACCOUNT, "keyToken": "UNRELATED"})
    kv.seed("exhub:exec-user:e-token", {"ownerDiscordId": OTHER, "token": "F-1"})
    kv.seed("exhub:exec-user:e-other", {"discordId": OTHER, "keyToken": "P-OTHER"})

    kv.seed("exhub:discord:userprofile:" + ACCOUNT, {"username": "me"})
    kv.seed("exhub:discord:userindex", [ACCOUNT, OTHER, " ", None])
    return kv


class TestDeleteAccountData:
    @pytest.mark.asyncio
    async def test_two_legacy_and_one_free_key(self, store, seeded):
        result = await delete_account_data(store, ACCOUNT)

        assert result.removed_credentials == 3
        assert (result.legacy_keys, result.free_keys, result.paid_keys) == (2, 1, 0)
        assert result.failed_stages == []

        redeemed = seeded.peek("exhub:redeemed-keys")
        assert [r for r in redeemed if isinstance(r, dict) and r.get("discordId") == ACCOUNT] == []
        assert seeded.peek("exhub:freekey:user:" + ACCOUNT) == []

    @pytest.mark.asyncio
    async def test_other_accounts_are_conserved(self, store, seeded):
        original = seeded.peek("exhub:redeemed-keys")

        result = await delete_account_data(store, ACCOUNT)

        redeemed = seeded.peek("exhub:redeemed-keys")
        assert result.legacy_keys + len(redeemed) == len(original)
        assert redeemed == [{"token": "L-OTHER", "discordId": OTHER}, "not-a-record"]
        assert seeded.peek("exhub:paidkey:token:P-OTHER") == {"token": "P-OTHER", "discordId": OTHER}
        assert seeded.peek("exhub:paidkey:user:" + OTHER) == ["P-OTHER"]
        assert seeded.peek("exhub:exec-users") == {"L-OTHER": {"runtime": "b"}}
        assert seeded.peek("exhub:discord-users") == {OTHER: {"username": "them"}}

    @pytest.mark.asyncio
    async def test_legacy_keys_move_to_deleted_store(self, store, seeded):
        await delete_account_data(store, ACCOUNT)

        deleted = seeded.peek("exhub:deleted-keys")
        assert deleted[0] == {"token": "OLD", "discordId": "999"}
        moved = deleted[1:]
        assert [item.get("token") or item.get("key") for item in moved] == ["L-1", "L-2"]
        for item in moved:
            assert item["deleteReason"] == "discord-user-delete"
            assert item["deleteByAccountId"] == ACCOUNT
            assert item["deletedAt"].endswith("Z")
        assert moved[0]["hwid"] == "pc-1"

    @pytest.mark.asyncio
    async def test_indexed_keys_are_tombstoned(self, store, seeded):
        await delete_account_data(store, ACCOUNT)

        record = seeded.peek("exhub:freekey:token:F-1")
        assert record["deleted"] is True
        assert record["valid"] is False
        assert record["deletedByDiscordId"] == ACCOUNT
        assert record["free"] is True

    @pytest.mark.asyncio
    async def test_exec_entries_match_by_account_or_token(self, store, seeded):
        result = await delete_account_data(store, ACCOUNT)

        assert result.legacy_session_entries == 1
        assert result.indexed_session_entries == 2
        assert result.removed_session_entries == 3
        assert seeded.sets["exhub:exec-users:index"] == {"e-other"}
        assert seeded.peek("exhub:exec-user:e-account") is None
        assert seeded.peek("exhub:exec-user:e-token") is None
        assert seeded.peek("exhub:exec-user:e-other") is not None

    @pytest.mark.asyncio
    async def test_both_policy_requires_account_and_token(self, store, seeded):
        result = await delete_account_data(store, ACCOUNT, policy=SessionMatchPolicy.BOTH)

        assert result.indexed_session_entries == 0
        # Only the dangling id is cleaned up
        assert seeded.sets["exhub:exec-users:index"] == {"e-account", "e-token", "e-other"}

    @pytest.mark.asyncio
    async def test_profiles_removed_from_both_generations(self, store, seeded):
        result = await delete_account_data(store, ACCOUNT)

        assert result.legacy_profile is True
        assert result.indexed_profile is True
        assert result.profile_removed is True
        assert seeded.peek("exhub:discord:userprofile:" + ACCOUNT) is None
        assert seeded.peek("exhub:discord:userindex") == [OTHER]

    @pytest.mark.asyncio
    async def test_second_delete_is_a_noop(self, store, seeded):
        await delete_account_data(store, ACCOUNT)
        again = await delete_account_data(store, ACCOUNT)

        assert again.removed_credentials == 0
        assert again.removed_session_entries == 0
        assert again.profile_removed is False
        assert len(seeded.peek("exhub:deleted-keys")) == 3

    @pytest.mark.asyncio
    async def test_paid_keys_and_paid_index(self, store, kv):
        kv.seed("exhub:paidkey:user:" + ACCOUNT, ["P-1", "P-MISSING", "", None])
        kv.seed("exhub:paidkey:token:P-1", {"token": "P-1", "discordId": ACCOUNT, "plan": "month"})

        result = await delete_account_data(store, ACCOUNT)

        assert result.paid_keys == 1
        assert kv.peek("exhub:paidkey:user:" + ACCOUNT) == []
        assert kv.peek("exhub:paidkey:token:P-1")["deleted"] is True

    @pytest.mark.asyncio
    async def test_empty_exec_entry_is_not_dangling(self, store, kv):
        kv.seed_set("exhub:exec-users:index", "e-empty")
        kv.seed("exhub:exec-user:e-empty", {})

        result = await delete_account_data(store, ACCOUNT)

        assert result.indexed_session_entries == 0
        assert kv.sets["exhub:exec-users:index"] == {"e-empty"}
        assert kv.peek("exhub:exec-user:e-empty") == {}

    @pytest.mark.asyncio
    async def test_already_deleted_indexed_key_is_not_counted_again(self, store, kv):
        tombstone = {"token": "F-1", "discordId": ACCOUNT, "deleted": True, "valid": False}
        kv.seed("exhub:freekey:user:" + ACCOUNT, ["F-1"])
        kv.seed("exhub:freekey:token:F-1", tombstone)
        kv.seed_set("exhub:exec-users:index", "e-1")
        kv.seed("exhub:exec-user:e-1", {"discordId": OTHER, "token": "F-1"})

        result = await delete_account_data(store, ACCOUNT)

        assert result.free_keys == 0
        assert kv.peek("exhub:freekey:token:F-1") == tombstone
        assert kv.peek("exhub:freekey:user:" + ACCOUNT) == []
        # Its token still ties exec entries to the account
        assert result.indexed_session_entries == 1

    @pytest.mark.asyncio
    async def test_failed_stage_does_not_stop_later_stages(self, store, seeded, monkeypatch):
        async def broken_set_members(key):
            raise RuntimeError("index unreadable")

        monkeypatch.setattr(store, "set_members", broken_set_members)

        result = await delete_account_data(store, ACCOUNT)

        assert result.failed_stages == ["exec_entries"]
        assert result.indexed_session_entries == 0
        assert result.indexed_profile is True
        assert result.removed_credentials == 3
        assert seeded.peek("exhub:discord:userindex") == [OTHER]
        assert seeded.peek("exhub:exec-users") == {"L-OTHER": {"runtime": "b"}}

    @pytest.mark.asyncio
    async def test_non_array_legacy_store_is_treated_as_empty(self, store, kv):
        kv.seed("exhub:redeemed-keys", {"unexpected": "shape"})

        result = await delete_account_data(store, ACCOUNT)

        assert result.legacy_keys == 0
        assert kv.peek("exhub:redeemed-keys") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("account_id", ["", "  ", None])
    async def test_blank_account_id_is_rejected(self, store, kv, account_id):
        with pytest.raises(InvalidAccountIdError):
            await delete_account_data(store, account_id)

        assert kv.calls == []


class TestDeleteWithoutRemoteStore:
    @pytest.mark.asyncio
    async def test_legacy_files_are_reconciled(self, file_store, data_dir):
        write_json(
            data_dir / "redeemed-keys.json",
            [{"token": "L-1", "discordId": ACCOUNT}, {"token": "L-2", "discordId": OTHER}],
        )
        write_json(data_dir / "exec-users.json", {"L-1": {"runtime": "a"}})
        write_json(data_dir / "discord-users.json", {ACCOUNT: {"username": "me"}})

        result = await delete_account_data(file_store, ACCOUNT)

        assert result.removed_credentials == 1
        assert result.removed_session_entries == 1
        assert result.profile_removed is True
        assert read_json(data_dir / "redeemed-keys.json") == [{"token": "L-2", "discordId": OTHER}]
        assert read_json(data_dir / "deleted-keys.json")[0]["token"] == "L-1"
        assert read_json(data_dir / "exec-users.json") == {}
        assert read_json(data_dir / "discord-users.json") == {}

    @pytest.mark.asyncio
    async def test_missing_files_are_empty_stores(self, file_store, data_dir):
        result = await delete_account_data(file_store, ACCOUNT)

        assert result.removed_credentials == 0
        assert result.failed_stages == []
        assert read_json(data_dir / "redeemed-keys.json") == []
        assert read_json(data_dir / "exec-users.json") == {}
