"""Tools package for contract loading and rule-based risk lookup."""

from tools.contract_loader import default_contract, load_contract_file, parse_contract_text
from tools.risk_rule_lookup import RiskRuleLookup
from tools.sample_contracts import SAMPLE_CONTRACTS, get_sample_contract, list_sample_contracts

__all__ = [
    "default_contract",
    "load_contract_file",
    "parse_contract_text",
    "RiskRuleLookup",
    "SAMPLE_CONTRACTS",
    "get_sample_contract",
    "list_sample_contracts",
]
