"""
HTTP tests for the deployable app

Tests cover:
1. Rider, record and ranking endpoints
2. Points-add and referral endpoints with error mapping
3. Cron settlement endpoint secret and summary
"""

import pytest
from datetime import date, datetime, timedelta
from fastapi.testclient import TestClient

from api.index import build_services, create_app
from core.config import Settings
from core.storage import InMemoryStorage, StorageReadError
from rankings.periods import previous_business_date


SETTINGS = Settings(cron_secret="s3cret", signup_bonus=0)
AUTH = {"Authorization": "Bearer s3cret"}


class BrokenReadStorage(InMemoryStorage):
    """Fails every delivery record read with an internal hostname in the message."""

    def select(self, table, predicate=None):
        if table == "delivery_records":
            raise StorageReadError("dns failure for db.internal")
        return super().select(table, predicate)


@pytest.fixture
def client():
    app = create_app(build_services(settings=SETTINGS), SETTINGS)
    return TestClient(app)


def create_rider(client, nickname="rider", region="seoul"):
    response = client.post("/riders", json={"nickname": nickname, "region": region, "vehicle": "motorcycle"})
    assert response.status_code == 201
    return response.json()


def verified_record(client, rider, amount, recorded_at):
    response = client.post("/records", json={
        "user_id": rider["id"],
        "platform": "coupang_eats",
        "amount": amount,
        "delivery_count": 10,
        "recorded_at": recorded_at.isoformat(),
    })
    assert response.status_code == 201
    record = response.json()
    response = client.post(f"/records/{record['id']}/verify", json={"status": "verified", "performed_by": "admin"})
    assert response.status_code == 200
    return response.json()


class TestSystem:
    """Tests for system endpoints."""

    def test_health(self, client):
        """Health check answers without touching storage."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestRankingEndpoints:
    """Tests for record and ranking endpoints."""

    def test_ranking_for_day(self, client):
        """The day ranking endpoint orders riders by verified amount."""
        a, b = create_rider(client, "a"), create_rider(client, "b")
        verified_record(client, a, 30000, datetime(2024, 5, 10, 12, 0))
        verified_record(client, b, 50000, datetime(2024, 5, 10, 12, 0))

        response = client.get("/rankings", params={"period": "day", "date": "2024-05-10"})

        assert response.status_code == 200
        entries = response.json()["entries"]
        assert [e["user_id"] for e in entries] == [b["id"], a["id"]]
        assert [e["rank"] for e in entries] == [1, 2]

    def test_rider_ranks(self, client):
        """A rider's own ranks are available by id."""
        a = create_rider(client, "a")
        verified_record(client, a, 30000, datetime(2024, 5, 10, 12, 0))

        response = client.get(f"/riders/{a['id']}/ranks", params={"date": "2024-05-10"})

        assert response.json()["daily_rank"] == 1

    def test_verify_unknown_record(self, client):
        """Verifying a record that does not exist is a 404."""
        response = client.post(
            "/records/00000000-0000-0000-0000-000000000000/verify", json={"status": "verified"}
        )
        assert response.status_code == 404

    def test_negative_amount_rejected(self, client):
        """A negative earnings amount fails request validation."""
        a = create_rider(client, "a")
        response = client.post("/records", json={
            "user_id": a["id"], "platform": "coupang_eats", "amount": -1, "delivery_count": 1,
        })
        assert response.status_code == 422

    def test_retrieval_error_is_generic(self):
        """A storage read failure is a 503 that does not leak storage details."""
        client = TestClient(create_app(build_services(BrokenReadStorage(), SETTINGS), SETTINGS))

        response = client.get("/rankings")

        assert response.status_code == 503
        assert "db.internal" not in response.text


class TestPointsEndpoints:
    """Tests for points and referral endpoints."""

    def test_add_points_and_balance(self, client):
        """Points-add moves the balance and shows up in ledger and audit."""
        a = create_rider(client, "a")

        response = client.post("/points", json={
            "user_id": a["id"], "amount": 250,
            "reason": "manual_admin_adjustment", "description": "Event prize",
        })

        assert response.status_code == 201
        assert response.json()["balance"]["points"] == 250
        assert client.get(f"/users/{a['id']}/balance").json()["points"] == 250
        assert client.get(f"/users/{a['id']}/ledger").json()["total_count"] == 1
        assert client.get(f"/users/{a['id']}/balance/audit").json()["consistent"] is True

    def test_referral_flow_and_conflict(self, client):
        """A code redeems once; the second attempt is a conflict with no extra points."""
        inviter, invitee = create_rider(client, "inviter"), create_rider(client, "invitee")
        body = {"code": inviter["referral_code"], "invitee_id": invitee["id"]}

        first = client.post("/referrals/redeem", json=body)
        second = client.post("/referrals/redeem", json=body)

        assert first.status_code == 201
        assert first.json()["inviter_points"] == 500
        assert second.status_code == 409
        assert client.get(f"/users/{invitee['id']}/balance").json()["points"] == 300
        assert client.get(f"/riders/{inviter['id']}/invites").json()["total_invites"] == 1

    def test_self_referral_conflict(self, client):
        """Redeeming your own code is a conflict."""
        a = create_rider(client, "a")

        response = client.post("/referrals/redeem", json={"code": a["referral_code"], "invitee_id": a["id"]})

        assert response.status_code == 409

    def test_invalid_code(self, client):
        """An unknown code is a bad request."""
        a = create_rider(client, "a")

        response = client.post("/referrals/redeem", json={"code": "ZZZZZZ", "invitee_id": a["id"]})

        assert response.status_code == 400


class TestCronEndpoint:
    """Tests for the scheduled settlement endpoint."""

    def test_rejects_missing_secret(self, client):
        """The cron endpoint requires the bearer secret."""
        assert client.get("/cron/daily-ranking-rewards").status_code == 401
        assert client.get(
            "/cron/daily-ranking-rewards", headers={"Authorization": "Bearer wrong"}
        ).status_code == 401

    def test_settles_yesterday_once(self, client):
        """The cron endpoint settles the previous business day exactly once."""
        yesterday = previous_business_date(settings=SETTINGS)
        when = datetime.combine(yesterday, datetime.min.time()) + timedelta(hours=12)
        a, b = create_rider(client, "a"), create_rider(client, "b")
        verified_record(client, a, 10000, when)
        verified_record(client, b, 20000, when)

        first = client.get("/cron/daily-ranking-rewards", headers=AUTH)
        second = client.post("/cron/daily-ranking-rewards", headers=AUTH)

        assert first.status_code == 200
        assert first.json()["credited_count"] == 2
        assert first.json()["failed_count"] == 0
        assert second.json()["already_settled"] is True
        assert second.json()["credited_count"] == 0
        assert client.get(f"/users/{b['id']}/balance").json()["points"] == 500
        assert client.get(f"/users/{a['id']}/balance").json()["points"] == 400

    def test_retry_unknown_day(self, client):
        """Retrying a day with no settlement is a 404."""
        response = client.post(
            f"/cron/daily-ranking-rewards/{date(2020, 1, 1).isoformat()}/retry", headers=AUTH, json={}
        )
        assert response.status_code == 404
