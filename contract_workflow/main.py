#!/usr/bin/env python3
"""Command line entry point for the contract review workflow.

Runs one contract (a bundled sample or a JSON/text file) through the review,
negotiation and approval graph. Human approvals are asked on the console
unless ``--auto-approve``/``--auto-reject`` is given.
"""

import argparse
import asyncio
import sys
from typing import Optional

import msgspec
from dotenv import load_dotenv
from loguru import logger

from contract_workflow.capabilities import create_capabilities
from contract_workflow.config import WorkflowConfig, load_config
from contract_workflow.engine import CancellationToken
from contract_workflow.error_handling import ContractWorkflowError
from contract_workflow.hitl import ApprovalTransport, StaticApprovalTransport
from contract_workflow.logging_config import setup_logging
from contract_workflow.models import FinalDecision
from contract_workflow.pipeline import build_contract_workflow, run_contract_workflow
from tools.contract_loader import load_contract_file
from tools.sample_contracts import get_sample_contract, list_sample_contracts


def parse_arguments(argv: Optional[list] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Contract review, negotiation and approval workflow",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Review the medium-risk sample with rule-based reviewers
  python -m contract_workflow.main --sample medium --reviewer-mode rules

  # Review a contract stored as JSON
  python -m contract_workflow.main --file contract.json

  # Print the workflow graph as a Mermaid diagram
  python -m contract_workflow.main --print-graph
        """
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--sample",
        type=str,
        choices=list_sample_contracts(),
        help="Bundled sample contract to review"
    )
    source.add_argument(
        "--file",
        type=str,
        help="Contract file (JSON object or free text)"
    )

    parser.add_argument(
        "--reviewer-mode",
        type=str,
        choices=["gemini", "rules"],
        default=None,
        help="Reviewer backend (default: REVIEWER_MODE env var, gemini when GOOGLE_API_KEY is set)"
    )
    parser.add_argument(
        "--hitl-timeout",
        type=float,
        default=None,
        help="Seconds to wait for a human approval (default: HITL_TIMEOUT_SECONDS or 300)"
    )

    decision = parser.add_mutually_exclusive_group()
    decision.add_argument(
        "--auto-approve",
        action="store_true",
        help="Answer every approval request with yes"
    )
    decision.add_argument(
        "--auto-reject",
        action="store_true",
        help="Answer every approval request with no"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: LOG_LEVEL env var or INFO)"
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Directory for log files (default: LOG_DIR env var or logs)"
    )
    parser.add_argument(
        "--print-graph",
        action="store_true",
        help="Print the workflow graph as Mermaid and exit"
    )

    return parser.parse_args(argv)


def print_decision(decision: FinalDecision) -> None:
    """Write a human-readable summary of the final decision to stdout."""
    print("=" * 80)
    print(f"Decision: {decision.decision}")
    print(f"Supplier: {decision.contract_info.supplier_name}")
    if decision.original_risk_score is not None and decision.original_risk_score != decision.final_risk_score:
        print(f"Risk score: {decision.original_risk_score} -> {decision.final_risk_score}")
    else:
        print(f"Risk score: {decision.final_risk_score}")
    print("-" * 80)
    print(decision.decision_summary)
    if decision.next_actions:
        print("\nNext actions:")
        for action in decision.next_actions:
            print(f"  - {action}")
    if decision.negotiation_history:
        print(f"\nNegotiation iterations: {len(decision.negotiation_history)}")
        for evaluation in decision.evaluation_history or []:
            print(f"  [{evaluation.iteration}] {evaluation.evaluation_comment}")
    print("=" * 80)


async def _run(args: argparse.Namespace, config: WorkflowConfig) -> int:
    if args.reviewer_mode:
        config.reviewer_mode = args.reviewer_mode
    if args.hitl_timeout is not None:
        config.hitl_timeout_seconds = args.hitl_timeout
    config.validate()

    transport: Optional[ApprovalTransport] = None
    if args.auto_approve or args.auto_reject:
        transport = StaticApprovalTransport(approved=args.auto_approve, comment="Answered from the command line")

    capabilities = create_capabilities(config, approval_transport=transport)

    if args.print_graph:
        print(build_contract_workflow(capabilities).to_mermaid())
        return 0

    if args.file:
        contract = load_contract_file(args.file)
    else:
        contract = get_sample_contract(args.sample or "medium")

    logger.info(
        f"Reviewing contract with {contract.supplier_name}",
        reviewer_mode=config.reviewer_mode,
        hitl_timeout_seconds=config.hitl_timeout_seconds
    )

    result = await run_contract_workflow(
        contract,
        capabilities,
        cancellation=CancellationToken(),
        max_supersteps=config.max_supersteps
    )

    print_decision(result.output)
    logger.debug("Final decision", decision=msgspec.to_builtins(result.output))
    logger.info(
        "Run finished",
        run_id=result.run_id,
        supersteps=result.supersteps,
        duration_seconds=result.duration_seconds
    )
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    load_dotenv()
    args = parse_arguments(argv)

    try:
        config = load_config()
        setup_logging(
            log_dir=args.log_dir or config.log_dir,
            level=args.log_level or config.log_level
        )
        return asyncio.run(_run(args, config))

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    except ContractWorkflowError as e:
        logger.error(f"Workflow error: {e}")
        return 1

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
