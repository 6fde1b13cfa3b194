"""Contract loader for free-form input.

Turns user input into a ``ContractInfo``. Accepted forms:

- JSON with snake_case keys (``supplier_name``, ``penalty_clause``, ...)
- JSON with PascalCase keys (``SupplierName``, ``HasPenaltyClause``, ...)
- an ``{"input": "..."}`` envelope whose string holds either of the above
- anything else, which becomes a default contract described by the text
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import msgspec
from loguru import logger

from contract_workflow.error_handling import ContractWorkflowError
from contract_workflow.models import ContractInfo


# Wire name -> accepted aliases, first match wins
FIELD_ALIASES = {
    "supplier_name": ("SupplierName", "supplier_name"),
    "contract_value": ("ContractValue", "contract_value"),
    "contract_term_months": ("ContractTermMonths", "contract_term_months"),
    "payment_terms": ("PaymentTerms", "payment_terms"),
    "delivery_terms": ("DeliveryTerms", "delivery_terms"),
    "warranty_period_months": ("WarrantyPeriodMonths", "warranty_period_months"),
    "penalty_clause": ("HasPenaltyClause", "penalty_clause", "has_penalty_clause"),
    "auto_renewal": ("HasAutoRenewal", "auto_renewal", "has_auto_renewal"),
    "description": ("Description", "description"),
}

FIELD_DEFAULTS = {
    "supplier_name": "",
    "contract_value": 0,
    "contract_term_months": 0,
    "payment_terms": "",
    "delivery_terms": "",
    "warranty_period_months": 0,
    "penalty_clause": False,
    "auto_renewal": False,
    "description": None,
}


def default_contract(description: Optional[str] = None) -> ContractInfo:
    """Contract used when the input carries no structured terms."""
    return ContractInfo(
        supplier_name="Sample Supplier",
        contract_value=100000,
        contract_term_months=12,
        payment_terms="Net 30",
        delivery_terms="FOB Destination",
        warranty_period_months=12,
        has_penalty_clause=True,
        has_auto_renewal=False,
        description=description
    )


def _normalize_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    normalized = {}
    for wire_name, aliases in FIELD_ALIASES.items():
        value = FIELD_DEFAULTS[wire_name]
        for alias in aliases:
            if alias in data:
                value = data[alias]
                break
        normalized[wire_name] = value
    return normalized


def parse_contract_text(text: str) -> ContractInfo:
    """Parse user input into a contract.

    Args:
        text: Raw input (JSON or free text)

    Returns:
        Parsed contract, or the default contract described by ``text``
    """
    stripped = (text or "").strip()

    if stripped.startswith("{"):
        try:
            data = msgspec.json.decode(stripped)
            inner = data.get("input") if isinstance(data, dict) else None
            if isinstance(inner, str) and inner.strip():
                logger.debug("Detected input envelope, parsing inner JSON")
                data = msgspec.json.decode(inner.strip())

            if isinstance(data, dict):
                contract = msgspec.convert(_normalize_fields(data), ContractInfo)
                if contract.supplier_name:
                    logger.info(f"Parsed contract JSON for {contract.supplier_name}")
                    return contract
                logger.warning("Contract JSON has no supplier name, using default contract")

        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            logger.warning(f"Contract JSON could not be parsed: {e}")

    logger.info("Creating default contract from text input", length=len(stripped))
    return default_contract(description=stripped or None)


def load_contract_file(path: Union[str, Path]) -> ContractInfo:
    """Read a contract from a JSON or text file.

    Args:
        path: File path

    Returns:
        Parsed contract

    Raises:
        ContractWorkflowError: If the file cannot be read
    """
    file_path = Path(path)
    if not file_path.exists():
        raise ContractWorkflowError(f"Contract file not found: {file_path}")

    try:
        text = file_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ContractWorkflowError(f"Contract file could not be read: {e}") from e

    logger.info(f"Loading contract from {file_path}")
    return parse_contract_text(text)
