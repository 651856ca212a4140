"""
Drug Interaction Rules

Looks up known interactions between one medication and the other
medications in a harmonized plan.

Design principles:
  - The rule table sits behind ``InteractionRuleProvider`` so a formulary
    service can replace the built-in table without touching harmonization.
  - Lookup fails open: a drug with no rule returns no interactions. Callers
    must use ``has_rules_for`` to tell "no known interaction" apart from
    "never checked".
  - A rule matches when any other drug name contains one of its patterns
    (case-insensitive substring).
"""
from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from mdt_engine import config
from mdt_engine.utils import get_logger
from .base import ContraindicationCheck, DrugInteraction, InteractionSeverity

logger = get_logger(__name__)


@dataclass(frozen=True)
class InteractionRule:
    match_patterns: Tuple[str, ...]
    severity: InteractionSeverity
    management: str


# ── Built-in table ───────────────────────────────────────────────────────────
# Keys are canonical drug names (lower case, underscores for spaces).
DEFAULT_INTERACTION_RULES: Dict[str, Tuple[InteractionRule, ...]] = {
    "warfarin": (
        InteractionRule(("aspirin", "nsaid", "ibuprofen"), InteractionSeverity.MAJOR,
                        "Monitor INR closely, consider alternatives"),
        InteractionRule(("amiodarone",), InteractionSeverity.MAJOR,
                        "Reduce warfarin dose by 30-50%"),
    ),
    "metformin": (
        InteractionRule(("contrast",), InteractionSeverity.MAJOR,
                        "Hold metformin 48h before/after contrast"),
    ),
    "ace_inhibitor": (
        InteractionRule(("potassium", "spironolactone"), InteractionSeverity.MODERATE,
                        "Monitor potassium levels"),
    ),
}


def canonical_drug_key(drug_name: str) -> str:
    """``"ACE Inhibitor "`` -> ``"ace_inhibitor"``."""
    return "_".join(drug_name.strip().lower().split())


class InteractionRuleProvider(ABC):
    """Source of interaction rules used during medication reconciliation."""

    @abstractmethod
    def rules_for(self, drug_name: str) -> Optional[Sequence[InteractionRule]]:
        """Rules for ``drug_name``, or ``None`` when the drug is unmapped."""

    def has_rules_for(self, drug_name: str) -> bool:
        return self.rules_for(drug_name) is not None

    def check_interactions(
        self,
        drug_name: str,
        other_drug_names: Iterable[str],
    ) -> List[DrugInteraction]:
        """
        Return every interaction between ``drug_name`` and ``other_drug_names``.

        One entry is produced per (rule, other drug) match, in rule order then
        in the order the other drugs were given.
        """
        rules = self.rules_for(drug_name)
        if not rules:
            return []

        others = list(other_drug_names)
        interactions: List[DrugInteraction] = []
        for rule in rules:
            patterns = [p.lower() for p in rule.match_patterns]
            for other in others:
                other_lower = other.lower()
                if any(p in other_lower for p in patterns):
                    interactions.append(DrugInteraction(
                        interacting_drug=other,
                        severity=rule.severity,
                        description=f"{drug_name} interacts with {other}",
                        management=rule.management,
                    ))
        return interactions

    def assess(
        self,
        drug_name: str,
        other_drug_names: Iterable[str],
    ) -> Tuple[List[DrugInteraction], ContraindicationCheck]:
        """Interactions plus the tri-state outcome of the check."""
        if not self.has_rules_for(drug_name):
            return [], ContraindicationCheck.NOT_CHECKED
        interactions = self.check_interactions(drug_name, other_drug_names)
        if interactions:
            return interactions, ContraindicationCheck.CHECKED_FLAGGED
        return interactions, ContraindicationCheck.CHECKED_CLEAR


class StaticInteractionRuleProvider(InteractionRuleProvider):
    """In-memory rule table keyed by canonical drug name."""

    def __init__(self, rules: Optional[Mapping[str, Sequence[InteractionRule]]] = None):
        table = DEFAULT_INTERACTION_RULES if rules is None else rules
        self._rules: Dict[str, Tuple[InteractionRule, ...]] = {
            canonical_drug_key(name): tuple(entries) for name, entries in table.items()
        }

    def rules_for(self, drug_name: str) -> Optional[Sequence[InteractionRule]]:
        return self._rules.get(canonical_drug_key(drug_name))

    @property
    def mapped_drugs(self) -> List[str]:
        return list(self._rules.keys())

    @classmethod
    def from_json(cls, path: Path) -> "StaticInteractionRuleProvider":
        """
        Load a rule table from JSON.

        Expected shape::

            {"warfarin": [{"match_patterns": ["aspirin"],
                           "severity": "major",
                           "management": "Monitor INR"}]}
        """
        with open(path, "r", encoding="utf-8") as fh:
            raw = json.load(fh)

        rules: Dict[str, List[InteractionRule]] = {}
        for drug, entries in raw.items():
            rules[drug] = [
                InteractionRule(
                    match_patterns=tuple(entry["match_patterns"]),
                    severity=InteractionSeverity(entry["severity"]),
                    management=entry.get("management", ""),
                )
                for entry in entries
            ]
        logger.info(f"Loaded interaction rules for {len(rules)} drug(s) from {path}")
        return cls(rules)


def default_provider() -> InteractionRuleProvider:
    """Provider for the configured rule file, else the built-in table."""
    if config.INTERACTION_RULES_FILE:
        return StaticInteractionRuleProvider.from_json(Path(config.INTERACTION_RULES_FILE))
    return StaticInteractionRuleProvider()


def check_interactions(drug_name: str, other_drug_names: Iterable[str]) -> List[DrugInteraction]:
    """Module-level convenience over the built-in table."""
    return StaticInteractionRuleProvider().check_interactions(drug_name, other_drug_names)
