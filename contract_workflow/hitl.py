"""
Human-in-the-loop approval gateway.

``HumanApprovalGateway.request`` suspends the calling stage until a human
answers through the configured transport or the timeout expires. Every
failure mode short of cancellation resolves to "not approved":

- timeout: warning, returns False
- transport error: error log, returns False
- cancellation: propagates out of the wait
"""

import asyncio
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from loguru import logger

from contract_workflow.error_handling import ApprovalError
from contract_workflow.models import (
    ApprovalKind,
    ApprovalRequest,
    ApprovalResponse,
    ContractInfo,
    RiskAssessment,
)


DEFAULT_APPROVAL_TIMEOUT_SECONDS = 300.0

APPROVE_ANSWERS = ("Y", "YES")


class ApprovalTransport(Protocol):
    async def request_approval(self, request: ApprovalRequest) -> ApprovalResponse:
        ...


class HumanApprovalGateway:
    """Single-outstanding-request approval gate with a hard timeout."""

    def __init__(
        self,
        transport: ApprovalTransport,
        timeout_seconds: float = DEFAULT_APPROVAL_TIMEOUT_SECONDS
    ):
        """Initialize the gateway.

        Args:
            transport: Delivers requests to a human and returns the answer
            timeout_seconds: Seconds to wait before failing closed
        """
        self.transport = transport
        self.timeout_seconds = timeout_seconds
        self._active: Optional[ApprovalRequest] = None
        self.last_response: Optional[ApprovalResponse] = None

    @property
    def pending_request(self) -> Optional[ApprovalRequest]:
        return self._active

    async def request(
        self,
        kind: ApprovalKind,
        contract: ContractInfo,
        risk: RiskAssessment,
        prompt_text: str,
        run_id: str = "unknown"
    ) -> bool:
        """Ask a human to approve.

        Args:
            kind: Which decision is being asked for
            contract: Contract under decision
            risk: Current risk assessment
            prompt_text: Question shown to the approver
            run_id: Run identifier for logging

        Returns:
            True only if a human explicitly approved in time

        Raises:
            ApprovalError: If another request is still outstanding
        """
        if self._active is not None:
            raise ApprovalError(
                f"Approval request {self._active.request_id} is still pending; "
                "concurrent approval requests are not supported"
            )

        request = ApprovalRequest(
            request_id=uuid.uuid4().hex,
            request_type=kind,
            contract_info=contract,
            risk_assessment=risk,
            prompt_message=prompt_text,
            created_at=datetime.now()
        )
        self._active = request
        self.last_response = None
        hitl_logger = logger.bind(run_id=run_id, request_id=request.request_id)
        hitl_logger.info(
            f"Waiting for human approval ({kind})",
            supplier=contract.supplier_name,
            risk_score=risk.overall_risk_score,
            timeout_seconds=self.timeout_seconds
        )

        try:
            response = await asyncio.wait_for(
                self.transport.request_approval(request),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            hitl_logger.warning(
                f"No approval response within {self.timeout_seconds}s, treating as rejected",
                kind=kind
            )
            return False
        except asyncio.CancelledError:
            hitl_logger.warning("Approval wait cancelled", kind=kind)
            raise
        except Exception as e:
            hitl_logger.error(
                "Approval transport failed, treating as rejected",
                kind=kind,
                error=str(e),
                error_type=type(e).__name__
            )
            return False
        finally:
            self._active = None

        self.last_response = response
        hitl_logger.info(
            f"Approval response received: {'approved' if response.approved else 'rejected'}",
            kind=kind,
            comment=response.approver_comment
        )
        return bool(response.approved)


class ConsoleApprovalTransport:
    """Prompts on the terminal. ``Y`` or ``YES`` (any case) approves."""

    def __init__(
        self,
        input_func: Callable[[str], str] = input,
        output_func: Callable[[str], None] = print
    ):
        self._input = input_func
        self._output = output_func

    async def request_approval(self, request: ApprovalRequest) -> ApprovalResponse:
        # input() cannot be interrupted; on timeout the thread stays blocked
        # until the next line arrives and its answer is ignored.
        answer = await asyncio.to_thread(self._prompt, request)
        approved = answer.strip().upper() in APPROVE_ANSWERS
        return ApprovalResponse(approved=approved, approver_comment=answer.strip() or None)

    def _prompt(self, request: ApprovalRequest) -> str:
        risk = request.risk_assessment
        self._output("")
        self._output("=" * 60)
        self._output(f"APPROVAL REQUIRED ({request.request_type})")
        self._output("=" * 60)
        self._output(f"Supplier:   {request.contract_info.supplier_name}")
        self._output(f"Value:      {request.contract_info.contract_value:,.0f}")
        self._output(f"Risk score: {risk.overall_risk_score} ({risk.risk_level})")
        self._output("")
        self._output(request.prompt_message)
        return self._input("Approve? [y/N]: ")


class CallbackApprovalTransport:
    """Host-managed transport.

    Requests stay pending until the host calls ``respond``, typically from
    an HTTP handler. ``on_request`` is invoked when a request arrives.
    """

    def __init__(self, on_request: Optional[Callable[[ApprovalRequest], None]] = None):
        self._pending: Dict[str, Tuple[ApprovalRequest, asyncio.Future]] = {}
        self._on_request = on_request

    async def request_approval(self, request: ApprovalRequest) -> ApprovalResponse:
        future = asyncio.get_running_loop().create_future()
        self._pending[request.request_id] = (request, future)
        if self._on_request is not None:
            self._on_request(request)
        try:
            return await future
        finally:
            self._pending.pop(request.request_id, None)

    def get_pending(self) -> List[ApprovalRequest]:
        return [request for request, _ in self._pending.values()]

    def respond(self, request_id: str, approved: bool, comment: Optional[str] = None) -> bool:
        """Answer a pending request.

        Safe to call from any thread.

        Args:
            request_id: Id of the pending request
            approved: Whether the human approved
            comment: Optional approver comment

        Returns:
            False if no such request is pending
        """
        entry = self._pending.get(request_id)
        if entry is None:
            return False

        _, future = entry
        response = ApprovalResponse(approved=approved, approver_comment=comment)

        def _resolve():
            if not future.done():
                future.set_result(response)

        future.get_loop().call_soon_threadsafe(_resolve)
        return True


class StaticApprovalTransport:
    """Answers every request the same way, optionally after a delay."""

    def __init__(self, approved: bool, comment: Optional[str] = None, delay_seconds: float = 0.0):
        self.approved = approved
        self.comment = comment
        self.delay_seconds = delay_seconds
        self.requests: List[ApprovalRequest] = []

    async def request_approval(self, request: ApprovalRequest) -> ApprovalResponse:
        self.requests.append(request)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        return ApprovalResponse(approved=self.approved, approver_comment=self.comment)
