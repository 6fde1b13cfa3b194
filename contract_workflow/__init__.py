"""Contract Review Workflow - graph-based review, negotiation and approval."""

from contract_workflow.models import (
    ApprovalRequest,
    ApprovalResponse,
    ContractChange,
    ContractInfo,
    EvaluationResult,
    FinalDecision,
    NegotiationProposal,
    ReviewResult,
    RiskAssessment,
    StageTrace,
)

from contract_workflow.logging_config import (
    setup_logging,
    get_run_logger,
    log_stage_execution,
)

from contract_workflow.error_handling import (
    ContractWorkflowError,
    WorkflowFatalError,
    GraphValidationError,
    ConditionalEdgeConflictError,
    StageExecutionError,
    WorkflowStalledError,
    WorkflowCancelledError,
    ReviewError,
    NegotiationError,
    LLMError,
    ApprovalError,
    ConfigurationError,
    RetryConfig,
    GEMINI_RETRY_CONFIG,
    retry_with_backoff,
    handle_errors,
)

from contract_workflow.config import WorkflowConfig, load_config
from contract_workflow.engine import CancellationToken, WorkflowEngine, WorkflowResult
from contract_workflow.graph import WorkflowBuilder, WorkflowGraph

# The stage wiring (contract_workflow.pipeline, contract_workflow.capabilities)
# depends on tools/, which depends on this package. Import those modules directly.

__version__ = "0.1.0"

__all__ = [
    # Models
    "ApprovalRequest",
    "ApprovalResponse",
    "ContractChange",
    "ContractInfo",
    "EvaluationResult",
    "FinalDecision",
    "NegotiationProposal",
    "ReviewResult",
    "RiskAssessment",
    "StageTrace",
    # Logging
    "setup_logging",
    "get_run_logger",
    "log_stage_execution",
    # Error Handling
    "ContractWorkflowError",
    "WorkflowFatalError",
    "GraphValidationError",
    "ConditionalEdgeConflictError",
    "StageExecutionError",
    "WorkflowStalledError",
    "WorkflowCancelledError",
    "ReviewError",
    "NegotiationError",
    "LLMError",
    "ApprovalError",
    "ConfigurationError",
    "RetryConfig",
    "GEMINI_RETRY_CONFIG",
    "retry_with_backoff",
    "handle_errors",
    # Engine
    "CancellationToken",
    "WorkflowBuilder",
    "WorkflowEngine",
    "WorkflowGraph",
    "WorkflowResult",
    # Configuration
    "WorkflowConfig",
    "load_config",
]
