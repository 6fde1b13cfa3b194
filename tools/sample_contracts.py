"""Sample contracts covering each branch of the review pipeline."""

from typing import Dict, List

from contract_workflow.models import ContractInfo


SAMPLE_CONTRACTS: Dict[str, ContractInfo] = {
    "low": ContractInfo(
        supplier_name="Reliable Goods Co.",
        contract_value=100000,
        contract_term_months=12,
        payment_terms="Net 30",
        delivery_terms="FOB Destination",
        warranty_period_months=24,
        has_penalty_clause=True,
        has_auto_renewal=False,
        description="Standard goods supply agreement with a penalty clause and no automatic renewal."
    ),
    "medium": ContractInfo(
        supplier_name="Standard Services Ltd.",
        contract_value=300000,
        contract_term_months=18,
        payment_terms="Net 45",
        delivery_terms="FOB Destination",
        warranty_period_months=12,
        has_penalty_clause=True,
        has_auto_renewal=True,
        description="Service agreement on standard terms."
    ),
    "high": ContractInfo(
        supplier_name="Global Tech Solutions Inc.",
        contract_value=500000,
        contract_term_months=24,
        payment_terms="Net 30",
        delivery_terms="FOB Destination",
        warranty_period_months=12,
        has_penalty_clause=False,
        has_auto_renewal=True,
        description="Cloud infrastructure services over a 24-month term with automatic renewal."
    ),
}


def get_sample_contract(name: str) -> ContractInfo:
    """Get a sample contract by name.

    Args:
        name: One of ``low``, ``medium``, ``high``

    Returns:
        The sample ContractInfo

    Raises:
        KeyError: If no sample has that name
    """
    try:
        return SAMPLE_CONTRACTS[name]
    except KeyError:
        raise KeyError(f"Unknown sample contract '{name}'. Available: {', '.join(SAMPLE_CONTRACTS)}") from None


def list_sample_contracts() -> List[str]:
    return list(SAMPLE_CONTRACTS)
