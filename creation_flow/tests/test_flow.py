"""Creation session tests covering validation, approvals and creation."""

import asyncio
import unittest
from datetime import datetime, timezone

from capsule_config.settings import load_settings
from capsule_engine.models import Asset, Frequency, PeriodType, Token
from contract_adapter.ethereum.simulator import SimulatedContractGateway
from token_registry.registry import StaticTokenRegistry

from approval_controller.states import ApprovalStatus
from creation_flow.flow import (
    CapsuleCreationFlow,
    CreationBlockedError,
    CreationFailedError,
    FlowPhase,
)

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)
BENEFICIARY = "0x" + "1" * 40
TOKEN_A = "0x" + "a" * 40
TOKEN_B = "0x" + "b" * 40


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class CapsuleCreationFlowTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.gateway = SimulatedContractGateway()
        self.registry = StaticTokenRegistry(
            [
                Token(address=TOKEN_A, symbol="AAA", decimals=6),
                Token(address=TOKEN_B, symbol="BBB", decimals=18),
            ]
        )
        self.flow = CapsuleCreationFlow(self.gateway, self.registry, clock=lambda: NOW)

    def _fill_staggered(self) -> None:
        self.flow.set_period_type(PeriodType.STAGGERED)
        self.flow.set_frequency(Frequency.MONTHLY)
        self.flow.set_period_count("4")
        self.flow.set_distribution_date("07/01/2026")
        self.flow.set_beneficiary(BENEFICIARY)

    async def test_fresh_session_defaults(self) -> None:
        state = self.flow.state
        self.assertEqual(state.phase, FlowPhase.DRAFTING)
        self.assertEqual(state.draft.period_type, PeriodType.IMMEDIATE)
        self.assertEqual(state.draft.assets, (Asset(token="ETH", amount="0"),))
        self.assertEqual([record.status for record in state.approvals], [ApprovalStatus.APPROVED])
        self.assertFalse(state.can_create)
        self.assertEqual(state.action_label, "Create")
        self.assertIsNone(state.schedule)
        self.assertEqual(state.release_dates, ())

    async def test_staggered_monthly_scenario(self) -> None:
        self._fill_staggered()
        await self.flow.set_assets([Asset(token="ETH", amount="1.5")])

        state = self.flow.state
        self.assertFalse(state.errors)
        self.assertEqual(state.phase, FlowPhase.READY)
        self.assertTrue(state.can_create)
        self.assertEqual(
            state.release_dates,
            (
                _utc(2026, 7, 1),
                _utc(2026, 8, 1),
                _utc(2026, 9, 1),
                _utc(2026, 10, 1),
            ),
        )

        request = await self.flow.primary_action()
        self.assertEqual(request.period_count, 4)
        self.assertEqual(request.period_size, 30 * 86400)
        self.assertEqual(request.start_timestamp, int(_utc(2026, 7, 1).timestamp()))
        self.assertEqual(request.value_wei, 1500000000000000000)
        self.assertTrue(self.flow.complete)
        self.assertEqual(self.gateway.created, [request])
        self.assertIsNone(self.flow.state.draft)
        self.assertEqual(self.flow.state.phase, FlowPhase.COMPLETE)

    async def test_invalid_fields_block_creation(self) -> None:
        self.flow.set_distribution_date("06/01/2026")
        self.flow.set_beneficiary("0x123")

        errors = self.flow.errors
        self.assertEqual(errors.date, "Date must be in future")
        self.assertEqual(errors.beneficiary, "Invalid Address")
        self.assertFalse(self.flow.can_create)
        with self.assertRaises(CreationBlockedError):
            await self.flow.create_capsule()
        self.assertEqual(self.gateway.creation_requests, [])

    async def test_single_staggered_period_reported(self) -> None:
        self._fill_staggered()
        self.flow.set_period_count("1")
        self.assertEqual(
            self.flow.errors.periods, "For only one period, use an Immediate Capsule"
        )
        self.assertIsNone(self.flow.schedule)

    async def test_immediate_ignores_period_input(self) -> None:
        self.flow.set_period_type("immediate")
        self.flow.set_period_count("abc")
        self.flow.set_distribution_date("07/01/2026")
        self.flow.set_beneficiary(BENEFICIARY)

        self.assertFalse(self.flow.errors)
        self.assertEqual(self.flow.schedule.period_count, 1)
        self.assertEqual(self.flow.state.release_dates, (_utc(2026, 7, 1),))

    async def test_approvals_gate_creation_in_order(self) -> None:
        self._fill_staggered()
        await self.flow.set_assets(
            [
                Asset(token=TOKEN_A, amount="10"),
                Asset(token=TOKEN_B, amount="2"),
                Asset(token="ETH", amount="1"),
            ]
        )
        self.assertEqual(self.flow.phase, FlowPhase.AWAITING_APPROVAL)
        self.assertEqual(self.flow.action_label, "Approve AAA")
        with self.assertRaises(CreationBlockedError):
            await self.flow.create_capsule()

        record = await self.flow.primary_action()
        self.assertEqual(record.token, TOKEN_A)
        self.assertEqual(record.status, ApprovalStatus.APPROVED)
        self.assertEqual(self.flow.action_label, "Approve BBB")

        await self.flow.primary_action()
        self.assertTrue(self.flow.can_create)
        self.assertEqual(self.flow.action_label, "Create")

        request = await self.flow.primary_action()
        self.assertEqual(
            [(item.token, item.base_units) for item in request.assets],
            [(TOKEN_A, 10000000), (TOKEN_B, 2000000000000000000), ("ETH", 10**18)],
        )

    async def test_failed_approval_keeps_session_usable(self) -> None:
        self._fill_staggered()
        await self.flow.set_assets([Asset(token=TOKEN_A, amount="10")])
        self.gateway.fail_next_approval("User denied transaction signature.")

        record = await self.flow.request_approval()
        self.assertEqual(record.status, ApprovalStatus.FAILED)
        self.assertEqual(self.flow.last_error, "User denied transaction signature.")
        self.assertFalse(self.flow.loading)
        self.assertEqual(self.flow.action_label, "Approve AAA")

        record = await self.flow.request_approval()
        self.assertEqual(record.status, ApprovalStatus.APPROVED)
        self.assertIsNone(self.flow.last_error)
        self.assertTrue(self.flow.can_create)

    async def test_failed_creation_preserves_draft(self) -> None:
        self._fill_staggered()
        self.gateway.fail_next_creation("Transaction reverted.")

        with self.assertRaises(CreationFailedError):
            await self.flow.create_capsule()
        self.assertFalse(self.flow.complete)
        self.assertFalse(self.flow.loading)
        self.assertEqual(self.flow.last_error, "Transaction reverted.")
        self.assertEqual(self.flow.draft.beneficiary, BENEFICIARY)

        await self.flow.create_capsule()
        self.assertTrue(self.flow.complete)
        self.assertEqual(len(self.gateway.creation_requests), 2)

    async def test_rejected_creation_submission(self) -> None:
        self._fill_staggered()
        self.gateway.reject_next_submission()

        with self.assertRaises(CreationFailedError):
            await self.flow.create_capsule()
        self.assertEqual(self.flow.phase, FlowPhase.READY)

    async def test_completed_session_is_read_only(self) -> None:
        self._fill_staggered()
        await self.flow.create_capsule()

        with self.assertRaises(CreationBlockedError):
            self.flow.set_beneficiary("0x" + "2" * 40)
        with self.assertRaises(CreationBlockedError):
            await self.flow.create_capsule()

    async def test_broken_approval_stream_can_be_retried(self) -> None:
        self._fill_staggered()
        await self.flow.set_assets([Asset(token=TOKEN_A, amount="10")])
        self.gateway.drop_next_stream("dropped")

        record = await self.flow.request_approval()
        self.assertEqual(record.status, ApprovalStatus.FAILED)
        self.assertEqual(self.flow.last_error, "dropped")
        self.assertFalse(self.flow.loading)
        self.assertEqual(self.flow.action_label, "Approve AAA")

        record = await self.flow.primary_action()
        self.assertEqual(record.status, ApprovalStatus.APPROVED)
        self.assertTrue(self.flow.can_create)

    async def test_failed_allowance_check_is_rechecked(self) -> None:
        self._fill_staggered()
        self.gateway.fail_next_query("rpc timeout")

        records = await self.flow.set_assets([Asset(token=TOKEN_A, amount="10")])
        self.assertEqual(records[0].status, ApprovalStatus.UNKNOWN)
        self.assertIn("rpc timeout", self.flow.last_error)
        self.assertEqual(self.flow.action_label, "Check AAA")
        self.assertFalse(self.flow.can_create)

        records = await self.flow.primary_action()
        self.assertEqual(records[0].status, ApprovalStatus.UNAPPROVED)
        self.assertIsNone(self.flow.last_error)
        self.assertEqual(self.flow.action_label, "Approve AAA")

    async def test_assets_locked_while_approval_in_flight(self) -> None:
        self._fill_staggered()
        await self.flow.set_assets([Asset(token=TOKEN_A, amount="10")])
        self.gateway.hold_confirmations()

        approval = asyncio.create_task(self.flow.request_approval())
        for _ in range(5):
            await asyncio.sleep(0)
        self.assertTrue(self.flow.loading)
        with self.assertRaises(CreationBlockedError):
            await self.flow.set_assets([Asset(token="ETH", amount="1")])

        self.gateway.release_confirmations()
        record = await approval
        self.assertEqual(record.status, ApprovalStatus.APPROVED)
        self.assertEqual(self.flow.draft.assets, (Asset(token=TOKEN_A, amount="10"),))

    async def test_native_asset_ignores_environment_override(self) -> None:
        settings = load_settings({"CAPSULE_PLANNER_NATIVE_TOKEN": "WETH"})
        flow = CapsuleCreationFlow(
            self.gateway, self.registry, settings=settings, clock=lambda: NOW
        )
        flow.set_period_type(PeriodType.IMMEDIATE)
        flow.set_distribution_date("07/01/2026")
        flow.set_beneficiary(BENEFICIARY)
        await flow.set_assets([Asset(token="ETH", amount="1")])

        request = await flow.create_capsule()
        self.assertEqual(request.value_wei, 10 ** 18)
        self.assertEqual(self.gateway.allowance_queries, [])

    async def test_rejected_payload_becomes_creation_failure(self) -> None:
        self._fill_staggered()
        self.flow.set_beneficiary("1" * 42)

        with self.assertRaises(CreationFailedError):
            await self.flow.create_capsule()
        self.assertEqual(self.flow.last_error, "Beneficiary must be hex-prefixed.")
        self.assertFalse(self.flow.loading)
        self.assertEqual(self.flow.phase, FlowPhase.READY)

    async def test_unknown_frequency_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.flow.set_frequency("hourly")


if __name__ == "__main__":
    unittest.main()
