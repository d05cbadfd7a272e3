"""Tests for change-notification channels."""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

from services.change_channel import ChangeEvent, LocalChangeChannel, SupabaseChangeChannel


class TestLocalChangeChannel:

    def test_only_subscribed_account_and_watched_tables(self):
        channel = LocalChangeChannel()
        events = []
        channel.changed.connect(events.append)

        channel.publish("members", "INSERT", "acct")  # not subscribed yet
        channel.subscribe("acct")
        channel.publish("members", "INSERT", "acct")
        channel.publish("members", "INSERT", "other")
        channel.publish("activity_log", "INSERT", "acct")
        channel.publish("users", "UPDATE", "acct")

        assert events == [ChangeEvent("members", "INSERT"), ChangeEvent("users", "UPDATE")]

    def test_resubscribe_is_idempotent(self):
        channel = LocalChangeChannel()
        channel.subscribe("acct")
        channel.subscribe("acct")
        assert channel.account_id == "acct"

        channel.subscribe("other")
        assert channel.account_id == "other"

        channel.unsubscribe()
        channel.unsubscribe()
        assert not channel.is_subscribed


def test_supabase_payload_is_reduced_to_table_and_operation():
    channel = SupabaseChangeChannel("https://x.supabase.co", "anon-key")
    events = []
    channel.changed.connect(events.append)

    callback = channel._forward("payments")
    callback({"data": {"type": "DELETE", "old_record": {"id": "p1"}}})
    callback({"eventType": "INSERT"})
    callback(None)

    assert events == [
        ChangeEvent("payments", "DELETE"),
        ChangeEvent("payments", "INSERT"),
        ChangeEvent("payments", "*"),
    ]


def test_each_account_joins_with_its_own_token():
    """Should re-authenticate the shared realtime client before joining another account."""
    client = MagicMock()
    client.realtime.set_auth = AsyncMock()
    client.channel.return_value.subscribe = AsyncMock()
    channel = SupabaseChangeChannel("https://x.supabase.co", "anon-key")

    with patch("services.change_channel.acreate_client", AsyncMock(return_value=client)) as create:
        asyncio.run(channel._join("acct-a", "jwt-a"))
        asyncio.run(channel._join("acct-b", "jwt-b"))

    create.assert_awaited_once_with("https://x.supabase.co", "anon-key")
    assert [c.args[0] for c in client.realtime.set_auth.await_args_list] == ["jwt-a", "jwt-b"]
    assert client.channel.call_args.args[0] == "user-acct-b"
    filters = {c.kwargs["filter"] for c in client.channel.return_value.on_postgres_changes.call_args_list}
    assert "user_id=eq.acct-b" in filters
