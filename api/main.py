"""
FastAPI host for the contract review workflow.

Runs execute as background tasks on the server's event loop. Each run gets
its own approval gateway backed by a ``CallbackApprovalTransport``, so
pending human approvals are answered over HTTP:

    POST /runs                   start a run
    GET  /runs/{run_id}          status, progress and final decision
    POST /runs/{run_id}/cancel   cancel a running run
    GET  /approvals              pending approval requests
    POST /approvals/{request_id} answer an approval request
"""

import asyncio
import os
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import msgspec
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel

from contract_workflow.capabilities import create_capabilities
from contract_workflow.communication import CollectingOutputSink, describe_output
from contract_workflow.config import WorkflowConfig, load_config
from contract_workflow.engine import CancellationToken
from contract_workflow.error_handling import ContractWorkflowError, WorkflowCancelledError
from contract_workflow.hitl import CallbackApprovalTransport
from contract_workflow.logging_config import setup_logging
from contract_workflow.models import ContractInfo
from contract_workflow.pipeline import build_contract_workflow, run_contract_workflow
from tools.contract_loader import parse_contract_text
from tools.sample_contracts import get_sample_contract, list_sample_contracts

load_dotenv()

setup_logging(
    log_dir=os.getenv("LOG_DIR", "logs"),
    level=os.getenv("LOG_LEVEL", "INFO"),
    rotation="100 MB",
    retention="30 days",
)


# =============================================================================
# FastAPI Application Setup
# =============================================================================

app = FastAPI(
    title="Contract Review Workflow",
    description="Multi-stage contract review with negotiation and human approval",
    version="0.1.0",
)

cors_origins = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:8000"
).split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# In-memory run registry keyed by run id
runs: Dict[str, Dict[str, Any]] = {}

config: Optional[WorkflowConfig] = None


def get_config() -> WorkflowConfig:
    """Lazy initialization of the runtime configuration."""
    global config
    if config is None:
        config = load_config()
        logger.info("Configuration loaded", reviewer_mode=config.reviewer_mode)
    return config


# =============================================================================
# Request/Response Models
# =============================================================================


class RunRequest(BaseModel):
    """Contract to review: a sample name, a JSON object or free text."""

    sample: Optional[str] = None
    contract: Optional[Dict[str, Any]] = None
    contract_text: Optional[str] = None


class RunResponse(BaseModel):
    run_id: str
    status: str
    supplier_name: str


class RunStatusResponse(BaseModel):
    """Polling response for a run."""

    run_id: str
    status: str
    progress: List[str] = []
    pending_approval: Optional[Dict[str, Any]] = None
    decision: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    supersteps: Optional[int] = None
    processing_time_seconds: Optional[float] = None


class ApprovalAnswer(BaseModel):
    approved: bool
    comment: Optional[str] = None


# =============================================================================
# Run Execution
# =============================================================================


def _resolve_contract(request: RunRequest) -> ContractInfo:
    if request.sample:
        try:
            return get_sample_contract(request.sample)
        except KeyError:
            raise HTTPException(
                status_code=400,
                detail=f"Unknown sample '{request.sample}'. Available: {', '.join(list_sample_contracts())}",
            )
    if request.contract is not None:
        return parse_contract_text(msgspec.json.encode(request.contract).decode())
    if request.contract_text:
        return parse_contract_text(request.contract_text)
    raise HTTPException(status_code=400, detail="Provide one of: sample, contract, contract_text")


async def execute_run(run_id: str, contract: ContractInfo) -> None:
    """Run the workflow for a registered run and record the outcome.

    Args:
        run_id: Run identifier
        contract: Contract to review
    """
    record = runs[run_id]
    try:
        result = await run_contract_workflow(
            contract,
            record["capabilities"],
            run_id=run_id,
            cancellation=record["cancellation"],
            max_supersteps=get_config().max_supersteps,
        )
        record.update(
            {
                "status": "completed",
                "decision": msgspec.to_builtins(result.output),
                "supersteps": result.supersteps,
                "completed_at": time.time(),
            }
        )
        logger.info(f"Run {run_id} completed", decision=result.output.decision)

    except WorkflowCancelledError as e:
        logger.warning(f"Run {run_id} cancelled: {e}")
        record.update({"status": "cancelled", "error": str(e), "completed_at": time.time()})

    except ContractWorkflowError as e:
        logger.error(f"Run {run_id} failed: {e}")
        record.update({"status": "failed", "error": str(e), "completed_at": time.time()})

    except Exception as e:
        logger.exception(f"Unexpected error in run {run_id}: {e}")
        record.update(
            {"status": "failed", "error": f"Unexpected error: {str(e)}", "completed_at": time.time()}
        )


def _find_transport(request_id: str) -> Optional[CallbackApprovalTransport]:
    for record in runs.values():
        transport = record["transport"]
        if any(r.request_id == request_id for r in transport.get_pending()):
            return transport
    return None


# =============================================================================
# API Endpoints
# =============================================================================


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Contract Review Workflow API",
        "version": "0.1.0",
        "status": "running",
        "endpoints": {
            "runs": "/runs",
            "status": "/runs/{run_id}",
            "approvals": "/approvals",
            "graph": "/graph",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


@app.get("/graph")
async def get_graph():
    """Mermaid rendering of the workflow graph."""
    capabilities = create_capabilities(get_config(), approval_transport=CallbackApprovalTransport())
    return {"mermaid": build_contract_workflow(capabilities).to_mermaid()}


@app.post("/runs", response_model=RunResponse)
async def start_run(request: RunRequest):
    """Start a workflow run in the background.

    Raises:
        HTTPException: If the request names no contract or an unknown sample
    """
    contract = _resolve_contract(request)

    run_id = str(uuid.uuid4())
    transport = CallbackApprovalTransport(
        on_request=lambda r: logger.info(f"Approval {r.request_id} waiting for run {run_id}")
    )
    sink = CollectingOutputSink()

    try:
        capabilities = create_capabilities(get_config(), approval_transport=transport, output_sink=sink)
    except ContractWorkflowError as e:
        raise HTTPException(status_code=500, detail=f"Run could not be configured: {e}")

    runs[run_id] = {
        "status": "running",
        "supplier_name": contract.supplier_name,
        "started_at": time.time(),
        "transport": transport,
        "sink": sink,
        "capabilities": capabilities,
        "cancellation": CancellationToken(),
    }
    runs[run_id]["task"] = asyncio.create_task(execute_run(run_id, contract))

    logger.info(f"Run {run_id} started", supplier=contract.supplier_name)
    return RunResponse(run_id=run_id, status="running", supplier_name=contract.supplier_name)


@app.get("/runs/{run_id}", response_model=RunStatusResponse)
async def get_run(run_id: str):
    """Get status, progress and decision of a run.

    Raises:
        HTTPException: If the run is unknown
    """
    if run_id not in runs:
        raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")

    record = runs[run_id]
    pending = record["capabilities"].approval_gateway.pending_request
    finished_at = record.get("completed_at", time.time())

    return RunStatusResponse(
        run_id=run_id,
        status=record["status"],
        progress=[describe_output(value) for value in record["sink"].outputs],
        pending_approval=msgspec.to_builtins(pending) if pending is not None else None,
        decision=record.get("decision"),
        error=record.get("error"),
        supersteps=record.get("supersteps"),
        processing_time_seconds=round(finished_at - record["started_at"], 3),
    )


@app.post("/runs/{run_id}/cancel")
async def cancel_run(run_id: str):
    """Request cancellation of a running run."""
    if run_id not in runs:
        raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")

    record = runs[run_id]
    if record["status"] != "running":
        raise HTTPException(status_code=409, detail=f"Run {run_id} is already {record['status']}")

    record["cancellation"].cancel("Cancelled via API")
    return {"run_id": run_id, "status": "cancelling"}


@app.get("/approvals")
async def list_approvals():
    """Pending approval requests of all runs."""
    pending = []
    for run_id, record in runs.items():
        for request in record["transport"].get_pending():
            item = msgspec.to_builtins(request)
            item["run_id"] = run_id
            pending.append(item)
    return {"pending": pending}


@app.post("/approvals/{request_id}")
async def answer_approval(request_id: str, answer: ApprovalAnswer):
    """Answer a pending approval request.

    Raises:
        HTTPException: If no such request is pending
    """
    transport = _find_transport(request_id)
    if transport is None or not transport.respond(request_id, answer.approved, answer.comment):
        raise HTTPException(status_code=404, detail=f"No pending approval request: {request_id}")

    logger.info(f"Approval {request_id} answered", approved=answer.approved)
    return {"request_id": request_id, "approved": answer.approved}


@app.on_event("shutdown")
async def shutdown_event():
    """Cancel runs that are still in progress."""
    for record in runs.values():
        if record["status"] == "running":
            record["cancellation"].cancel("Server shutdown")
    logger.info("API shutdown complete")
