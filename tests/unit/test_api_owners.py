"""Unit tests for the owner, grace-period and journal endpoints."""

import time

import pytest

from lifesignal_relay.domain.errors import RpcError

from tests.helpers.scenario import CONTACT_1, CONTACT_2, OWNER, SEVEN_DAYS

PROBLEM_JSON = "application/problem+json"
UNKNOWN = "0x00000000000000000000000000000000000000ee"


def poll(client, path, predicate, timeout=5.0):
    """GET ``path`` until ``predicate(json)`` holds."""
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(path).json()
        if predicate(body):
            return body
        if time.monotonic() > deadline:
            raise AssertionError(f"{path} never satisfied the condition; last body: {body}")
        time.sleep(0.01)


@pytest.mark.unit
class TestOwnerEndpoint:
    """Test GET /owner/{address}."""

    def test_registered_owner(self, registered_owner, client):
        response = client.get(f"/owner/{OWNER}")

        assert response.status_code == 200
        data = response.json()
        assert data["owner"] == OWNER
        assert data["phase"] == "active"
        assert data["registry"]["first_name"] == "John"
        assert data["registry"]["exists"] is True
        assert data["contacts"] == [CONTACT_1, CONTACT_2]
        assert data["automation"]["exists"] is False
        assert data["grace_period"]["is_running"] is False
        assert data["cached"] is None

    def test_integers_are_decimal_strings(self, registered_owner, client):
        data = client.get(f"/owner/{OWNER}").json()

        assert data["registry"]["grace_interval"] == str(SEVEN_DAYS)
        assert isinstance(data["registry"]["last_heartbeat"], str)
        assert data["declaration"]["votes_for"] == "0"
        assert data["grace_period"]["start_time"] == "0"

    def test_checksummed_address_is_accepted(self, registered_owner, client):
        response = client.get(f"/owner/{OWNER.replace('a', 'A')}")

        assert response.status_code == 200
        assert response.json()["owner"] == OWNER

    def test_death_voting_phase(self, registry, client):
        registry.register_owner(OWNER, "John", "Doe", SEVEN_DAYS)
        registry.add_contact(OWNER, CONTACT_1)
        registry.verify_contact(OWNER, CONTACT_1)
        registry.add_contact(OWNER, CONTACT_2)
        registry.verify_contact(OWNER, CONTACT_2)
        registry.declare_death(OWNER, CONTACT_1)

        data = client.get(f"/owner/{OWNER}").json()

        assert data["phase"] == "death_voting"
        assert data["declaration"]["is_active"] is True
        assert data["declaration"]["votes_for"] == "1"

    def test_unknown_owner_is_404(self, client):
        response = client.get(f"/owner/{UNKNOWN}")

        assert response.status_code == 404
        assert response.headers["content-type"].startswith(PROBLEM_JSON)
        body = response.json()
        assert body["error_type"] == "OwnerNotFoundError"
        assert UNKNOWN in body["detail"]

    def test_invalid_address_is_422(self, client):
        response = client.get("/owner/0x1234")

        assert response.status_code == 422
        assert response.headers["content-type"].startswith(PROBLEM_JSON)
        assert response.json()["title"] == "Invalid Address"

    def test_ledger_failure_is_502(self, registered_owner, registry, client):
        registry.fail_next("get_owner_info", RpcError("node down", ledger="registry"))

        response = client.get(f"/owner/{OWNER}")

        assert response.status_code == 502
        assert response.json()["error_type"] == "RpcError"


@pytest.mark.unit
class TestGracePeriodEndpoint:
    """Test GET /grace-period/{address}."""

    def test_no_grace_period(self, client):
        response = client.get(f"/grace-period/{UNKNOWN}")

        assert response.status_code == 200
        data = response.json()
        assert data["owner"] == UNKNOWN
        assert data["start_time"] == "0"
        assert data["is_running"] is False

    def test_invalid_address_is_422(self, client):
        assert client.get("/grace-period/not-an-address").status_code == 422


@pytest.mark.unit
class TestRelayThroughApi:
    """Drive a running relay and watch it through the control surface."""

    def test_grace_period_lifecycle(self, registry, automation, clock, client):
        assert client.post("/start").status_code == 200
        try:
            registry.register_owner(OWNER, "John", "Doe", SEVEN_DAYS)
            for contact in (CONTACT_1, CONTACT_2):
                registry.add_contact(OWNER, contact)
                registry.verify_contact(OWNER, contact)
            registry.declare_death(OWNER, CONTACT_1)
            registry.cast_vote(OWNER, CONTACT_2, True)

            grace = poll(client, f"/grace-period/{OWNER}", lambda body: body["is_running"])
            assert grace["grace_interval"] == str(SEVEN_DAYS)
            assert grace["is_deceased"] is True

            owner = client.get(f"/owner/{OWNER}").json()
            assert owner["phase"] == "grace_period_running"
            assert owner["automation"]["is_deceased"] is True
            assert owner["cached"]["is_deceased"] is True

            clock.advance(SEVEN_DAYS)
            automation.process_grace_periods()
            outcomes = poll(client, "/outcomes", lambda body: len(body) == 1)
            assert outcomes[0]["owner"] == OWNER
            assert outcomes[0]["is_dead"] is True
            assert outcomes[0]["block_number"].isdigit()

            owner = client.get(f"/owner/{OWNER}").json()
            assert owner["phase"] == "grace_period_processed_dead"
        finally:
            client.post("/stop")

        events = client.get("/events", params={"owner": OWNER, "limit": 100}).json()
        kinds = {entry["kind"] for entry in events}
        assert {"OwnerRegistered", "ConsensusReached", "GracePeriodStarted", "GracePeriodProcessed"} <= kinds
        assert all(entry["status"] in ("ok", "ignored") for entry in events)

        consensus = client.get("/events", params={"kind": "ConsensusReached"}).json()
        assert len(consensus) == 1
        assert consensus[0]["status"] == "ok"

    def test_failed_reconciliation_is_listed(self, registry, automation, client):
        automation.set_relay_address("0x00000000000000000000000000000000000000ff")
        client.post("/start")
        try:
            registry.register_owner(OWNER, "John", "Doe", SEVEN_DAYS)
            failed = poll(client, "/events?status=error", lambda body: len(body) == 1)
        finally:
            client.post("/stop")

        assert failed[0]["kind"] == "OwnerRegistered"
        assert "Only relay" in failed[0]["error"]

    def test_events_rejects_unknown_status(self, client):
        response = client.get("/events", params={"status": "exploded"})

        assert response.status_code == 422
        assert response.headers["content-type"].startswith(PROBLEM_JSON)
        body = response.json()
        assert body["title"] == "Validation Error"
        assert body["errors"]
