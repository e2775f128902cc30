"""Tests for the capsule planner web API."""

import unittest
from datetime import datetime, timezone
from decimal import Decimal

try:
    from fastapi.testclient import TestClient
except ImportError:  # pragma: no cover - optional dependency
    TestClient = None

try:
    from web import app as web_app
except ImportError:  # pragma: no cover - optional dependency
    web_app = None
from capsule_engine.models import Token
from contract_adapter.ethereum.simulator import SimulatedContractGateway, SimulatedPriceOracle
from token_registry.registry import StaticTokenRegistry

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)
BENEFICIARY = "0x" + "1" * 40
TOKEN_A = "0x" + "a" * 40


@unittest.skipIf(TestClient is None or web_app is None, "FastAPI not available")
class WebApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.gateway = SimulatedContractGateway()
        self.oracle = SimulatedPriceOracle({"ETH": Decimal("2500.40"), TOKEN_A: Decimal("1")})
        web_app._reset_state(
            gateway=self.gateway,
            registry=StaticTokenRegistry([Token(address=TOKEN_A, symbol="AAA", decimals=6)]),
            oracle=self.oracle,
            clock=lambda: NOW,
        )
        self.client = TestClient(web_app.app)

    def _fill_draft(self) -> dict:
        response = self.client.post(
            "/api/draft",
            json={
                "period_type": "staggered",
                "frequency": "monthly",
                "period_count": "4",
                "distribution_date": "07/01/2026",
                "beneficiary": BENEFICIARY,
            },
        )
        self.assertEqual(response.status_code, 200)
        return response.json()

    def test_fresh_draft(self) -> None:
        response = self.client.get("/api/draft")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["phase"], "DRAFTING")
        self.assertEqual(payload["draft"]["period_type"], "immediate")
        self.assertEqual(payload["approvals"][0]["status"], "APPROVED")
        self.assertFalse(payload["can_create"])
        self.assertIn("date", payload["errors"])

    def test_draft_update_reports_schedule(self) -> None:
        payload = self._fill_draft()
        self.assertEqual(payload["phase"], "READY")
        self.assertEqual(payload["errors"], {})
        self.assertEqual(payload["schedule"]["period_count"], 4)
        self.assertEqual(
            payload["release_dates"],
            [
                "2026-07-01T00:00:00+00:00",
                "2026-08-01T00:00:00+00:00",
                "2026-09-01T00:00:00+00:00",
                "2026-10-01T00:00:00+00:00",
            ],
        )
        self.assertTrue(payload["can_create"])

    def test_invalid_period_type_maps_to_400(self) -> None:
        response = self.client.post("/api/draft", json={"period_type": "sometimes"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("Unsupported period type", response.json()["error"])

    def test_approve_then_create(self) -> None:
        self._fill_draft()
        response = self.client.put(
            "/api/draft/assets",
            json={"assets": [{"token": TOKEN_A, "amount": "5"}, {"token": "ETH", "amount": "1"}]},
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["phase"], "AWAITING_APPROVAL")
        self.assertEqual(payload["action_label"], "Approve AAA")

        blocked = self.client.post("/api/capsules")
        self.assertEqual(blocked.status_code, 400)

        response = self.client.post("/api/approvals", json={"token": TOKEN_A})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["approval"]["status"], "APPROVED")
        self.assertEqual(response.json()["state"]["action_label"], "Create")

        response = self.client.post("/api/capsules")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["request"]["value_wei"], "1000000000000000000")
        self.assertTrue(payload["state"]["complete"])
        self.assertIsNone(payload["state"]["draft"])
        self.assertEqual(len(self.gateway.created), 1)

        again = self.client.post("/api/draft", json={"beneficiary": BENEFICIARY})
        self.assertEqual(again.status_code, 400)

        reset = self.client.post("/api/draft/reset")
        self.assertEqual(reset.status_code, 200)
        self.assertEqual(reset.json()["phase"], "DRAFTING")

    def test_out_of_order_approval_is_rejected(self) -> None:
        self.client.put(
            "/api/draft/assets",
            json={"assets": [{"token": TOKEN_A, "amount": "5"}]},
        )
        response = self.client.post("/api/approvals", json={"token": "ETH"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("Approve", response.json()["error"])

    def test_failed_allowance_check_can_be_rechecked(self) -> None:
        self.gateway.fail_next_query("rpc timeout")
        response = self.client.put(
            "/api/draft/assets",
            json={"assets": [{"token": TOKEN_A, "amount": "5"}]},
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["approvals"][0]["status"], "UNKNOWN")
        self.assertEqual(payload["action_label"], "Check AAA")
        self.assertIn("rpc timeout", payload["last_error"])

        response = self.client.post("/api/approvals/recheck")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["approvals"][0]["status"], "UNAPPROVED")
        self.assertEqual(payload["action_label"], "Approve AAA")
        self.assertIsNone(payload["last_error"])

    def test_failed_creation_keeps_draft(self) -> None:
        self._fill_draft()
        self.gateway.fail_next_creation("Transaction reverted.")
        response = self.client.post("/api/capsules")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Transaction reverted.")

        state = self.client.get("/api/draft").json()
        self.assertEqual(state["last_error"], "Transaction reverted.")
        self.assertEqual(state["draft"]["beneficiary"], BENEFICIARY)

    def test_inspect_locked_capsule(self) -> None:
        response = self.client.post(
            "/api/capsules/inspect",
            json={
                "capsule_id": 7,
                "distribution_date": "2026-06-15T12:01:30+00:00",
                "assets": [{"token": "ETH", "amount": "2"}],
            },
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["capsule_id"], 7)
        self.assertEqual(payload["countdown"]["text"], "1 minute and 30 seconds")
        self.assertEqual(payload["visual"], "locked")
        self.assertEqual(payload["valuation"], {"display": "$5,001", "error": None})

    def test_inspect_valuation_failure_uses_placeholder(self) -> None:
        self.oracle.failing = True
        response = self.client.post(
            "/api/capsules/inspect",
            json={"distribution_date": "2026-01-01T00:00:00", "empty": True},
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["countdown"]["is_open"])
        self.assertEqual(payload["visual"], "open")
        self.assertEqual(payload["valuation"]["display"], "----")
        self.assertEqual(payload["valuation"]["error"], "Price oracle unavailable.")


if __name__ == "__main__":
    unittest.main()
