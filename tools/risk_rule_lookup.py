"""Risk Rule Lookup Tool for contract term assessment.

This tool provides access to the contract risk rules database. Each rule
tests one contract field against a value and belongs to one reviewer
specialty (Legal, Finance, Procurement).
"""

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import msgspec
from loguru import logger

from contract_workflow.models import ContractInfo


def _matches(actual: Any, pattern: Any) -> bool:
    return re.search(str(pattern), str(actual or ""), re.IGNORECASE) is not None


OPERATORS = {
    "eq": lambda actual, expected: actual == expected,
    "ne": lambda actual, expected: actual != expected,
    "gt": lambda actual, expected: actual is not None and actual > expected,
    "gte": lambda actual, expected: actual is not None and actual >= expected,
    "lt": lambda actual, expected: actual is not None and actual < expected,
    "lte": lambda actual, expected: actual is not None and actual <= expected,
    "matches": _matches,
    "not_matches": lambda actual, pattern: not _matches(actual, pattern),
}


class RiskRuleLookup:
    """Tool for looking up risk rules and matching them against contracts."""

    def __init__(self, rules_path: Optional[str] = None):
        """Initialize the risk rule lookup tool.

        Args:
            rules_path: Path to a rules JSON file (defaults to tools/contract_risk_rules.json)
        """
        if rules_path is None:
            rules_path = Path(__file__).parent / "contract_risk_rules.json"

        self.rules_path = Path(rules_path)
        self.rules = self._load_rules()

        logger.info("Risk rules loaded", rule_count=len(self.rules))

    def _load_rules(self) -> Dict:
        """Load risk rules from JSON file.

        Returns:
            Dictionary of risk rules

        Raises:
            FileNotFoundError: If rules file doesn't exist
            json.JSONDecodeError: If rules file is invalid JSON
            ValueError: If a rule uses an unknown operator
        """
        if not self.rules_path.exists():
            raise FileNotFoundError(f"Risk rules file not found: {self.rules_path}")

        with open(self.rules_path, 'r', encoding='utf-8') as f:
            rules = json.load(f)

        for rule_name, rule_data in rules.items():
            if rule_data.get("operator") not in OPERATORS:
                raise ValueError(f"Rule '{rule_name}' uses unknown operator '{rule_data.get('operator')}'")

        return rules

    def get_rule(self, rule_name: str) -> Optional[Dict]:
        return self.rules.get(rule_name)

    def get_all_rules(self) -> Dict:
        return self.rules.copy()

    def get_rules_by_specialty(self, specialty: str) -> Dict:
        """Get all rules owned by one reviewer specialty.

        Args:
            specialty: Legal, Finance or Procurement

        Returns:
            Dictionary of rules for that specialty
        """
        return {
            name: rule
            for name, rule in self.rules.items()
            if rule["specialty"] == specialty
        }

    def match_contract(self, contract: ContractInfo, specialty: Optional[str] = None) -> List[Dict]:
        """Match a contract against the rules.

        Fields are addressed by their JSON names (``penalty_clause``,
        ``contract_value``, ...).

        Args:
            contract: Contract to test
            specialty: Restrict matching to one specialty's rules

        Returns:
            List of matched rules with the field value that triggered them
        """
        fields = msgspec.to_builtins(contract)
        rules = self.get_rules_by_specialty(specialty) if specialty else self.rules
        matches = []

        for rule_name, rule_data in rules.items():
            actual = fields.get(rule_data["field"])
            try:
                matched = OPERATORS[rule_data["operator"]](actual, rule_data["value"])
            except (TypeError, re.error) as e:
                logger.warning(f"Rule '{rule_name}' could not be evaluated: {e}")
                continue

            if matched:
                matches.append({
                    "rule_name": rule_name,
                    "specialty": rule_data["specialty"],
                    "field": rule_data["field"],
                    "actual_value": actual,
                    "weight": rule_data["weight"],
                    "concern": rule_data["concern"],
                    "recommendation": rule_data["recommendation"]
                })

        return matches

    def reload_rules(self):
        """Reload rules from the JSON file."""
        self.rules = self._load_rules()
        logger.info("Risk rules reloaded", rule_count=len(self.rules))
