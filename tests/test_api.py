import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from softpoints.containers import Container
from softpoints.core.security import create_access_token
from softpoints.database.session import get_db
from softpoints.main import create_app
from softpoints.models.user import UserRole
from softpoints.services.event_publisher import NOTIFICATION


@pytest.fixture
def client(session_factory, publisher, gateway, test_settings):
    container = Container()
    container.config.config.override(providers.Object(test_settings))
    container.infra.event_publisher.override(providers.Object(publisher))
    container.infra.payout_gateway.override(providers.Object(gateway))
    app = create_app(container)

    async def override_get_db():
        async with session_factory() as db:
            yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth(user_id):
    token = create_access_token({"user_id": user_id})
    return {"Authorization": f"Bearer {token}"}


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["database"] == "connected"

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"
        assert client.get("/health").headers["X-Request-ID"]


class TestRewardRoutes:
    def test_unauthenticated_is_not_an_error(self, client):
        response = client.post("/api/v1/rewards/track/tip", json={"tip_id": "tip-1"})

        assert response.status_code == 200
        body = response.json()
        assert body["result"]["status"] == "not_authenticated"
        assert body["result"]["success"] is False

    def test_invalid_token_is_treated_as_anonymous(self, client):
        response = client.post(
            "/api/v1/rewards/track/tip",
            json={"tip_id": "tip-1"},
            headers={"Authorization": "Bearer not-a-token"},
        )
        assert response.status_code == 200
        assert response.json()["result"]["status"] == "not_authenticated"

    def test_award_then_balance(self, client, make_user, publisher):
        # Given
        make_user(1)

        # When
        awarded = client.post(
            "/api/v1/rewards/track/subscription",
            json={"subscription_id": "sub-1"},
            headers=auth(1),
        )
        balance = client.get("/api/v1/points/balance", headers=auth(1))

        # Then
        assert awarded.status_code == 200
        assert awarded.json()["result"]["soft_points"] == 10
        assert balance.status_code == 200
        assert balance.json()["balance"] == 10
        assert len(publisher.on(NOTIFICATION)) == 1

    def test_batch(self, client, make_user):
        make_user(1)
        response = client.post(
            "/api/v1/rewards/track/batch",
            json={
                "activities": [
                    {"kind": "tip", "tip": {"tip_id": "t1"}},
                    {"kind": "daily_login"},
                ]
            },
            headers=auth(1),
        )
        assert response.status_code == 200
        assert response.json()["total_points"] == 6


class TestPointRoutes:
    def test_balance_requires_auth(self, client):
        response = client.get("/api/v1/points/balance")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "SP_HTTP"

    def test_admin_routes_need_admin_role(self, client, make_user):
        make_user(1)
        response = client.post(
            "/api/v1/points/admin/adjust",
            json={"user_id": 1, "amount": 10, "reason": "gift"},
            headers=auth(1),
        )
        assert response.status_code == 403

    def test_admin_adjust_and_integrity(self, client, make_user):
        make_user(1)
        make_user(9, role=UserRole.ADMIN.value)

        adjusted = client.post(
            "/api/v1/points/admin/adjust",
            json={"user_id": 1, "amount": 10, "reason": "gift"},
            headers=auth(9),
        )
        integrity = client.get("/api/v1/points/admin/integrity", headers=auth(9))

        assert adjusted.status_code == 200
        assert adjusted.json()["balance_after"] == 10
        assert integrity.json()["status"] == "OK"

    def test_transfer_insufficient_balance(self, client, make_user):
        make_user(1)
        make_user(2)
        response = client.post(
            "/api/v1/points/transfer",
            json={"to_user_id": 2, "amount": 5, "transfer_id": "t-1"},
            headers=auth(1),
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "SP_INSUFFICIENT_BALANCE"


class TestWithdrawalRoutes:
    def test_validate_reports_errors(self, client, make_user):
        make_user(1)
        response = client.post(
            "/api/v1/withdrawals/validate",
            json={"amount": "3", "payout_method": "bank_transfer", "payment_details": {"a": 1}},
            headers=auth(1),
        )
        body = response.json()
        assert response.status_code == 200
        assert body["valid"] is False
        assert "Minimum withdrawal amount is 5.00" in body["errors"]

    def test_request_withdrawal(self, client, make_user, with_services, gateway):
        # Given
        from softpoints.models.points import SourceType, TransactionType

        make_user(1)
        with_services(
            lambda s: s.points.append_transaction(
                user_id=1,
                transaction_type=TransactionType.EARNED,
                source_type=SourceType.SALES,
                amount=1000,
                source_id="order-1",
            )
        )

        # When
        response = client.post(
            "/api/v1/withdrawals",
            json={"amount": "5", "payout_method": "bank_transfer", "payment_details": {"a": 1}},
            headers={**auth(1), "cf-ipcountry": "NG"},
        )
        history = client.get("/api/v1/withdrawals", headers=auth(1))

        # Then
        body = response.json()
        assert body["status"] == "processing"
        assert body["points_debited"] == 500
        assert body["balance_after"] == 500
        assert gateway.initiated == [body["withdrawal_id"]]
        assert history.json()["total_count"] == 1


class TestFraudRoutes:
    def test_pioneer_slots(self, client, make_user):
        make_user(1)
        response = client.get("/api/v1/fraud/pioneer/slots", headers=auth(1))
        assert response.status_code == 200
        assert response.json()["remaining_slots"] == 500

    def test_my_badge_not_found(self, client, make_user):
        make_user(1)
        response = client.get("/api/v1/fraud/pioneer/badge", headers=auth(1))
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "SP_NOT_FOUND"

    def test_leaderboard_is_public(self, client):
        response = client.get("/api/v1/fraud/pioneer/leaderboard", params={"limit": 10})
        assert response.status_code == 200
        assert response.json() == {"badges": [], "total_count": 0}

    def test_record_event_then_assess(self, client, make_user):
        make_user(1)
        for _ in range(3):
            created = client.post(
                "/api/v1/fraud/events",
                json={"event_type": "failed_verification"},
                headers=auth(1),
            )
            assert created.status_code == 201

        response = client.post("/api/v1/fraud/assess", json={}, headers=auth(1))

        assert response.json()["risk_score"] == 25
        assert response.json()["risk_level"] == "low"
