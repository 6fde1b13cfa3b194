"""Shared fixtures for the workflow tests."""

import pytest

from contract_workflow.models import ContractInfo


@pytest.fixture
def contract() -> ContractInfo:
    return ContractInfo(
        supplier_name="Test Supplier",
        contract_value=200000,
        contract_term_months=12,
        payment_terms="Net 30",
        delivery_terms="FOB Destination",
        warranty_period_months=12,
        has_penalty_clause=True,
        has_auto_renewal=False
    )
