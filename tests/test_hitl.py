"""Tests for the human approval gateway and its transports."""

import asyncio

import pytest

from contract_workflow.error_handling import ApprovalError
from contract_workflow.hitl import (
    CallbackApprovalTransport,
    ConsoleApprovalTransport,
    HumanApprovalGateway,
    StaticApprovalTransport,
)
from contract_workflow.risk import placeholder_assessment


class SilentTransport:
    """Never answers."""

    async def request_approval(self, request):
        await asyncio.Event().wait()


class BrokenTransport:
    async def request_approval(self, request):
        raise ConnectionError("approval service down")


RISK = placeholder_assessment(50, "test")


def test_timeout_fails_closed(contract):
    gateway = HumanApprovalGateway(SilentTransport(), timeout_seconds=0.05)

    approved = asyncio.run(gateway.request("final_approval", contract, RISK, "Approve?"))

    assert approved is False
    assert gateway.pending_request is None
    assert gateway.last_response is None


def test_transport_error_fails_closed(contract):
    gateway = HumanApprovalGateway(BrokenTransport(), timeout_seconds=1)
    assert asyncio.run(gateway.request("escalation", contract, RISK, "Escalate?")) is False


def test_static_transport_answers_and_records(contract):
    transport = StaticApprovalTransport(approved=True, comment="fine")
    gateway = HumanApprovalGateway(transport, timeout_seconds=1)

    assert asyncio.run(gateway.request("final_approval", contract, RISK, "Approve?")) is True
    assert gateway.last_response.approver_comment == "fine"
    assert transport.requests[0].request_type == "final_approval"
    assert transport.requests[0].prompt_message == "Approve?"


def test_second_concurrent_request_is_rejected(contract):
    gateway = HumanApprovalGateway(SilentTransport(), timeout_seconds=0.2)

    async def scenario():
        first = asyncio.create_task(gateway.request("final_approval", contract, RISK, "one"))
        await asyncio.sleep(0.01)
        with pytest.raises(ApprovalError):
            await gateway.request("escalation", contract, RISK, "two")
        return await first

    assert asyncio.run(scenario()) is False


def test_callback_transport_resolves_pending_request(contract):
    transport = CallbackApprovalTransport()
    gateway = HumanApprovalGateway(transport, timeout_seconds=1)

    async def scenario():
        task = asyncio.create_task(gateway.request("rejection_confirm", contract, RISK, "Reject?"))
        await asyncio.sleep(0.01)

        pending = transport.get_pending()
        assert len(pending) == 1
        assert not transport.respond("unknown-id", True)
        assert transport.respond(pending[0].request_id, True, "confirmed")
        return await task

    assert asyncio.run(scenario()) is True
    assert gateway.last_response.approver_comment == "confirmed"
    assert transport.get_pending() == []


def test_cancellation_propagates_out_of_the_wait(contract):
    gateway = HumanApprovalGateway(SilentTransport(), timeout_seconds=5)

    async def scenario():
        task = asyncio.create_task(gateway.request("final_approval", contract, RISK, "Approve?"))
        await asyncio.sleep(0.01)
        task.cancel()
        await task

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(scenario())
    assert gateway.pending_request is None


@pytest.mark.parametrize("answer,expected", [("y", True), ("YES", True), ("n", False), ("", False)])
def test_console_transport_parses_answers(contract, answer, expected):
    printed = []
    transport = ConsoleApprovalTransport(input_func=lambda prompt: answer, output_func=printed.append)
    gateway = HumanApprovalGateway(transport, timeout_seconds=1)

    assert asyncio.run(gateway.request("final_approval", contract, RISK, "Approve?")) is expected
    assert "Approve?" in printed
