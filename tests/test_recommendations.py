"""Tests for AI recommendations (the model client is mocked)."""
import datetime
from unittest.mock import MagicMock

import httpx
import pytest
from openai import APIConnectionError

from ai_module.recommendations import (RecommendationService, build_prompt, build_request,
                                       summarize_members)
from core.errors import RecommendationError
from models.account import Profile
from models.member import Member
from models.payment import Payment
from models.snapshot import Snapshot

DAY = datetime.date(2025, 3, 10)


def member(mid, days):
    return Member(id=mid, name=mid, phone="1", plan_duration=1, joining_date=DAY,
                  expiry_date=DAY + datetime.timedelta(days=days), status="")


@pytest.fixture
def snapshot():
    profile = Profile("acct", "Ravi", "", "", "Iron Temple", "owner")
    snap = Snapshot(account_id="acct", as_of=DAY, profile=profile)
    members = [member("a", 30), member("b", 3), member("c", 0), member("d", -2)]
    payments = [
        Payment(id="p1", member_id="a", amount=1000, payment_method="cash", payment_date=DAY),
        Payment(id="p2", member_id="b", amount=600, payment_method="upi", payment_date=DAY,
                status="pending"),
    ]
    return snap.with_members(members).with_payments(payments)


@pytest.fixture
def client():
    client = MagicMock()
    message = MagicMock(content="  1. Call members expiring this week.\n2. Run a referral drive.  ")
    client.chat.completions.create.return_value = MagicMock(choices=[MagicMock(message=message)])
    return client


def test_member_summary():
    summary = summarize_members([member("a", 30), member("b", 7), member("c", 0), member("d", -1)], DAY)
    assert (summary.total, summary.active, summary.expiring_soon) == (4, 2, 1)


def test_prompt_contents(snapshot):
    prompt = build_prompt(build_request(snapshot, "Peak time is 6 PM."))
    assert "Total Members: 4" in prompt
    assert "Active Members: 2" in prompt
    assert "Members Expiring Soon (7 days): 1" in prompt
    assert "Total Revenue: ₹1000" in prompt
    assert "Average Payment: ₹500" in prompt
    assert "Recent Context: Peak time is 6 PM." in prompt


def test_prompt_without_context(snapshot):
    assert "Recent Context: No additional context" in build_prompt(build_request(snapshot))


class TestRecommendationService:

    def test_recommend(self, client, snapshot):
        service = RecommendationService(client=client, model="llama-3.3-70b-versatile")
        text = service.recommend(build_request(snapshot))

        assert text.startswith("1. Call members")
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "llama-3.3-70b-versatile"
        assert kwargs["messages"][0]["role"] == "user"

    def test_api_error(self, client, snapshot):
        client.chat.completions.create.side_effect = APIConnectionError(
            request=httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions"))
        with pytest.raises(RecommendationError):
            RecommendationService(client=client).recommend(build_request(snapshot))

    def test_empty_answer(self, client, snapshot):
        client.chat.completions.create.return_value = MagicMock(choices=[])
        with pytest.raises(RecommendationError):
            RecommendationService(client=client).recommend(build_request(snapshot))

    def test_not_configured(self, monkeypatch):
        monkeypatch.setattr("config.AI_API_KEY", None)
        with pytest.raises(RecommendationError):
            RecommendationService()
