"""Test HTTP API routes with in-memory services."""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from domain_verifier.api.container import (
    get_domain_repository,
    get_ledger,
    get_scheduler,
)
from domain_verifier.api.main import app
from domain_verifier.core.models import EventType, Severity
from domain_verifier.verification.authority_client import AuthorityStatus


@pytest.fixture
def client(scheduler, ledger, domains):
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_domain_repository] = lambda: domains

    yield TestClient(app)

    app.dependency_overrides.clear()


class TestHealth:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestDomainRoutes:

    def test_register_and_get(self, client):
        response = client.post("/domains", json={"hostname": "Shop.Example.com"})

        assert response.status_code == 201
        body = response.json()
        assert body["hostname"] == "shop.example.com"
        assert body["status"] == "pending"

        fetched = client.get(f"/domains/{body['domain_id']}")
        assert fetched.status_code == 200
        assert fetched.json()["domain_id"] == body["domain_id"]

    def test_duplicate_hostname(self, client):
        client.post("/domains", json={"hostname": "dup.example.com"})

        assert client.post("/domains", json={"hostname": "dup.example.com"}).status_code == 409

    def test_unknown_domain(self, client):
        assert client.get(f"/domains/{uuid4()}").status_code == 404


class TestVerificationRoutes:

    def test_start_and_status(self, client, domain):
        response = client.post(f"/domains/{domain.domain_id}/verification")

        assert response.status_code == 201
        assert response.json()["status"] == "pending"
        assert response.json()["attempt"] == 1

        status = client.get(f"/domains/{domain.domain_id}/verification").json()
        assert status["status"] == "pending"
        assert status["next_retry_at"] is not None

    def test_start_with_overrides(self, client, domain):
        response = client.post(
            f"/domains/{domain.domain_id}/verification",
            json={"max_attempts": 5},
        )

        assert response.status_code == 201
        assert response.json()["max_attempts"] == 5

    def test_start_with_invalid_overrides(self, client, domain):
        response = client.post(
            f"/domains/{domain.domain_id}/verification",
            json={"initial_delay_seconds": 10000},
        )

        assert response.status_code == 400

    def test_start_twice_conflicts(self, client, domain):
        client.post(f"/domains/{domain.domain_id}/verification")

        assert client.post(f"/domains/{domain.domain_id}/verification").status_code == 409

    def test_start_unknown_domain(self, client):
        assert client.post(f"/domains/{uuid4()}/verification").status_code == 404

    def test_status_not_started(self, client, domain):
        body = client.get(f"/domains/{domain.domain_id}/verification").json()

        assert body["status"] == "not_started"
        assert body["attempt"] is None

    def test_cancel(self, client, domain):
        client.post(f"/domains/{domain.domain_id}/verification")

        first = client.delete(f"/domains/{domain.domain_id}/verification").json()
        second = client.delete(f"/domains/{domain.domain_id}/verification").json()

        assert first["cancelled"] is True
        assert second == {"cancelled": False}
        status = client.get(f"/domains/{domain.domain_id}/verification").json()
        assert status["status"] == "failed"
        assert status["error"] == "Cancelled by user"

    def test_active_and_sweep(self, client, domain, authority, clock):
        client.post(f"/domains/{domain.domain_id}/verification")
        assert len(client.get("/verification/active").json()) == 1

        authority.default = AuthorityStatus(verified=True)
        clock.advance(30)
        sweep = client.post("/verification/sweep").json()

        assert sweep == {"processed": 1, "verified": 1, "failed": 0, "retried": 0, "errors": 0}
        assert client.get("/verification/active").json() == []
        assert client.get(f"/domains/{domain.domain_id}").json()["status"] == "active"


class TestTelemetryRoutes:

    def test_events_and_summary(self, client, domain, ledger):
        ledger.record(domain.domain_id, EventType.DNS_ERROR, Severity.WARNING, "dns")

        events = client.get(f"/telemetry/domains/{domain.domain_id}/events").json()
        summary = client.get(f"/telemetry/domains/{domain.domain_id}/summary").json()

        assert len(events) == 1
        assert events[0]["details"] == {"kind": "generic", "data": {}}
        assert summary["total_failures"] == 1
        assert summary["failure_types"] == {"dns_error": 1}

    def test_summary_unknown_domain(self, client):
        assert client.get(f"/telemetry/domains/{uuid4()}/summary").status_code == 404

    def test_resolve_event(self, client, domain, ledger):
        event = ledger.record(domain.domain_id, EventType.AUTHORITY_ERROR, Severity.ERROR, "down")

        response = client.post(f"/telemetry/events/{event.event_id}/resolve", json={"actor": "ops"})

        assert response.status_code == 200
        assert response.json()["resolved_by"] == "ops"
        assert client.post(f"/telemetry/events/{uuid4()}/resolve",
                           json={"actor": "ops"}).status_code == 404

    def test_resolve_domain_and_stats(self, client, domain, ledger):
        ledger.record(domain.domain_id, EventType.DNS_ERROR, Severity.WARNING, "a")
        ledger.record(domain.domain_id, EventType.DNS_ERROR, Severity.WARNING, "b")

        stats = client.get("/telemetry/stats").json()
        assert stats["total_events"] == 2
        assert len(stats["recent_failures"]) == 2

        resolved = client.post(f"/telemetry/domains/{domain.domain_id}/resolve",
                               json={"actor": "ops"}).json()

        assert resolved["resolved"] == 2
        assert client.get("/telemetry/stats").json()["recent_failures"] == []

    def test_resolve_requires_actor(self, client, domain):
        response = client.post(f"/telemetry/domains/{domain.domain_id}/resolve", json={})

        assert response.status_code == 422
