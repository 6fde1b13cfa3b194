"""Applying negotiated amendments to a contract."""

from typing import Any, Dict, Tuple

from loguru import logger
from msgspec import structs

from contract_workflow.models import ContractChange, ContractInfo


# JSON field name -> ContractInfo attribute
AMENDABLE_FIELDS = {
    "contract_value": "contract_value",
    "contract_term_months": "contract_term_months",
    "payment_terms": "payment_terms",
    "delivery_terms": "delivery_terms",
    "warranty_period_months": "warranty_period_months",
    "penalty_clause": "has_penalty_clause",
    "auto_renewal": "has_auto_renewal",
}

FIELD_TYPES = {
    "contract_value": float,
    "contract_term_months": int,
    "payment_terms": str,
    "delivery_terms": str,
    "warranty_period_months": int,
    "penalty_clause": bool,
    "auto_renewal": bool,
}


def apply_contract_changes(
    contract: ContractInfo,
    proposed: Dict[str, Any]
) -> Tuple[ContractInfo, Dict[str, ContractChange]]:
    """Apply proposed field values to a copy of ``contract``.

    Unknown fields, values of the wrong type and values equal to the current
    one are skipped.

    Args:
        contract: Contract before the amendment
        proposed: JSON field name -> new value

    Returns:
        Tuple of (amended contract, changes actually applied)
    """
    updates = {}
    applied: Dict[str, ContractChange] = {}

    for field_name, new_value in proposed.items():
        attribute = AMENDABLE_FIELDS.get(field_name)
        if attribute is None:
            logger.debug(f"Ignoring change to non-amendable field '{field_name}'")
            continue

        expected = FIELD_TYPES[field_name]
        if expected is float and isinstance(new_value, int) and not isinstance(new_value, bool):
            new_value = float(new_value)
        if not isinstance(new_value, expected) or (expected is int and isinstance(new_value, bool)):
            logger.debug(f"Ignoring change to '{field_name}' with value of type {type(new_value).__name__}")
            continue

        old_value = getattr(contract, attribute)
        if old_value == new_value:
            continue

        updates[attribute] = new_value
        applied[field_name] = ContractChange(before=old_value, after=new_value)

    if not updates:
        return contract, {}
    return structs.replace(contract, **updates), applied
