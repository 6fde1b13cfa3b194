"""Tests for contract loading, rule-based capabilities and response parsing."""

import subprocess
import sys
from pathlib import Path

import msgspec
import pytest

from contract_workflow.agents import RuleBasedNegotiationProposer, RuleBasedReviewer
from contract_workflow.agents.amendments import apply_contract_changes
from contract_workflow.agents.response_parsing import decode_json_response, extract_json
from contract_workflow.error_handling import ContractWorkflowError
from contract_workflow.models import ReviewResult
from contract_workflow.risk import aggregate_reviews
from tools.contract_loader import load_contract_file, parse_contract_text
from tools.risk_rule_lookup import RiskRuleLookup
from tools.sample_contracts import get_sample_contract, list_sample_contracts


def test_parse_snake_case_json():
    contract = parse_contract_text(
        '{"supplier_name": "Acme", "contract_value": 1000, "contract_term_months": 6, '
        '"payment_terms": "Net 30", "delivery_terms": "FOB Origin", "penalty_clause": true}'
    )
    assert contract.supplier_name == "Acme"
    assert contract.contract_value == 1000.0
    assert contract.has_penalty_clause is True
    assert contract.has_auto_renewal is False


def test_parse_pascal_case_json_in_envelope():
    inner = '{"SupplierName": "Beta", "ContractValue": 5, "ContractTermMonths": 3, "HasAutoRenewal": true}'
    contract = parse_contract_text(msgspec.json.encode({"input": inner}).decode())
    assert contract.supplier_name == "Beta"
    assert contract.contract_term_months == 3
    assert contract.has_auto_renewal is True


def test_free_text_becomes_default_contract():
    contract = parse_contract_text("Please review the cleaning services deal")
    assert contract.supplier_name == "Sample Supplier"
    assert contract.description == "Please review the cleaning services deal"


def test_json_without_supplier_falls_back_to_default():
    assert parse_contract_text('{"contract_value": 10}').supplier_name == "Sample Supplier"


def test_load_contract_file(tmp_path):
    path = tmp_path / "contract.json"
    path.write_text('{"supplier_name": "Gamma", "contract_value": 42}', encoding="utf-8")
    assert load_contract_file(path).supplier_name == "Gamma"

    with pytest.raises(ContractWorkflowError):
        load_contract_file(tmp_path / "missing.json")


def test_samples():
    assert list_sample_contracts() == ["low", "medium", "high"]
    with pytest.raises(KeyError):
        get_sample_contract("unknown")


@pytest.mark.parametrize("sample,scores,overall,level", [
    ("low", [10, 10, 10], 10, "Low"),
    ("medium", [30, 40, 35], 35, "Medium"),
    ("high", [90, 90, 55], 78, "High"),
])
def test_rule_based_reviewer_scores_samples(sample, scores, overall, level):
    reviewer = RuleBasedReviewer()
    contract = get_sample_contract(sample)

    reviews = [reviewer.review(contract, s) for s in ("Legal", "Finance", "Procurement")]
    risk = aggregate_reviews(reviews)

    assert [r.risk_score for r in reviews] == scores
    assert risk.overall_risk_score == overall
    assert risk.risk_level == level


def test_rule_lookup_filters_by_specialty():
    lookup = RiskRuleLookup()
    legal = lookup.get_rules_by_specialty("Legal")
    assert legal
    assert all(rule["specialty"] == "Legal" for rule in legal.values())

    matches = lookup.match_contract(get_sample_contract("high"), "Procurement")
    assert {m["rule_name"] for m in matches} == {"procurement_long_term", "procurement_auto_renewal"}


def test_rule_based_proposer_amends_risky_terms():
    contract = get_sample_contract("high")
    risk = aggregate_reviews([ReviewResult(reviewer="Legal", opinion="x", risk_score=78)])

    proposal, amended = RuleBasedNegotiationProposer().propose(contract, risk, 1)

    assert proposal.iteration == 1
    assert len(proposal.proposals) == 3
    assert amended.has_penalty_clause is True
    assert amended.has_auto_renewal is False
    assert amended.contract_term_months == 12
    assert proposal.contract_changes["penalty_clause"].before is False
    assert contract.has_penalty_clause is False


def test_rule_based_proposer_pads_with_generic_items():
    contract = get_sample_contract("low")
    risk = aggregate_reviews([])

    proposal, amended = RuleBasedNegotiationProposer().propose(contract, risk, 2)

    assert proposal.proposals[0] == "Extend payment terms to Net 60"
    assert len(proposal.proposals) == 3
    assert set(proposal.contract_changes) == {"payment_terms"}
    assert amended.payment_terms == "Net 60"


def test_apply_contract_changes_skips_invalid_values():
    contract = get_sample_contract("medium")
    amended, changes = apply_contract_changes(contract, {
        "payment_terms": "Net 60",
        "contract_value": 250000,
        "warranty_period_months": "long",
        "supplier_name": "Other",
        "auto_renewal": True,
    })

    assert set(changes) == {"payment_terms", "contract_value"}
    assert amended.payment_terms == "Net 60"
    assert amended.contract_value == 250000.0
    assert amended.supplier_name == contract.supplier_name


def test_extract_and_decode_fenced_json():
    text = 'Here you go:\n```json\n{"reviewer": "Legal", "opinion": "ok", "risk_score": 12}\n```'
    assert extract_json(text).startswith("{")
    review = decode_json_response(text, ReviewResult)
    assert review.risk_score == 12

    with pytest.raises(msgspec.DecodeError):
        decode_json_response("no json here", ReviewResult)


@pytest.mark.parametrize("module", [
    "tools.contract_loader",
    "tools.risk_rule_lookup",
    "tools.sample_contracts",
    "contract_workflow.pipeline",
])
def test_module_imports_in_fresh_interpreter(module):
    result = subprocess.run(
        [sys.executable, "-c", f"import {module}"],
        cwd=Path(__file__).resolve().parent.parent,
        capture_output=True,
        text=True
    )
    assert result.returncode == 0, result.stderr
