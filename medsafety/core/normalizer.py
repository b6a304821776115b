"""
Medication Safety Review Engine - Medication Normalizer
Turns free-text or structured medication inputs into canonical records
"""
import logging
import re
from typing import List, Dict, Optional, Any, Mapping, Sequence

from medsafety.core.exceptions import RequestValidationError
from medsafety.core.knowledge_base import ReferenceKnowledgeBase, get_knowledge_base
from medsafety.core.models import Medication

logger = logging.getLogger(__name__)

_UNIT = r"(?P<unit>mcg|mg|ml|g|units?)"
_AMOUNT = r"(?P<amount>\d+(?:\.\d+)?)"

# Applied in order to "<name> <dose><unit> <frequency>" style strings
TEXT_PATTERNS = [
    # "warfarin 5mg daily", "metformin 1000 mg twice daily"
    re.compile(rf"^(?P<name>[a-z\s]+?)\s+{_AMOUNT}\s*{_UNIT}\s+(?P<frequency>[\w\s\-/]+)$"),
    # "warfarin 5mg"
    re.compile(rf"^(?P<name>[a-z\s]+?)\s+{_AMOUNT}\s*{_UNIT}$"),
    # "warfarin"
    re.compile(r"^(?P<name>[a-z\s]+)$"),
]

DEFAULT_FREQUENCY = "as directed"
DEFAULT_ROUTE = "oral"

# Alias precedence for structured inputs
NAME_ALIASES = ("drug_name", "name", "medication")
DOSE_ALIASES = ("dose", "dosage")
FREQUENCY_ALIASES = ("frequency", "freq")
INDICATION_ALIASES = ("indication", "purpose")


class MedicationNormalizer:
    """Normalize heterogeneous medication inputs"""

    def __init__(self, knowledge_base: Optional[ReferenceKnowledgeBase] = None):
        self.knowledge_base = knowledge_base or get_knowledge_base()

    def normalize_list(self, medications: Any) -> List[Medication]:
        """Normalize a full medication list.

        Raises:
            RequestValidationError: the list is missing, not a sequence, or empty
        """
        if not isinstance(medications, (list, tuple)) or len(medications) == 0:
            raise RequestValidationError("Medication list is required and must be non-empty")

        return [self.normalize(med, index) for index, med in enumerate(medications)]

    def normalize(self, med: Any, index: int) -> Medication:
        """Normalize a single input at ``index`` (0-based) in its list"""
        if isinstance(med, Mapping):
            fields = self.parse_structured(med)
        elif isinstance(med, str):
            fields = self.parse_text(med)
        else:
            logger.warning(f"Medication entry is neither text nor a record: {med!r}")
            fields = {
                "drug_name": "unknown" if med is None else str(med).strip().lower(),
                "dose": None,
                "frequency": DEFAULT_FREQUENCY,
                "route": DEFAULT_ROUTE,
                "parsed": False,
            }

        drug_name = fields["drug_name"]
        return Medication(
            id=f"med_{index + 1}",
            drug_name=drug_name,
            dose=fields["dose"],
            frequency=fields["frequency"],
            route=fields["route"],
            indication=fields.get("indication"),
            drug_class=self.knowledge_base.classify_drug(drug_name),
            interaction_potential=self.knowledge_base.assess_interaction_potential(drug_name),
            parsed=fields["parsed"],
            original_input=med,
        )

    def parse_text(self, text: str) -> Dict[str, Any]:
        """Parse "<name> <dose><unit> <frequency>" style strings"""
        clean = text.strip().lower()

        for pattern in TEXT_PATTERNS:
            match = pattern.match(clean)
            if not match:
                continue
            groups = match.groupdict()
            dose = None
            if groups.get("amount"):
                dose = f"{groups['amount']}{groups['unit']}"
            frequency = (groups.get("frequency") or "").strip() or DEFAULT_FREQUENCY
            return {
                "drug_name": " ".join(groups["name"].split()),
                "dose": dose,
                "frequency": frequency,
                "route": DEFAULT_ROUTE,
                "parsed": True,
            }

        logger.warning(f"Could not parse medication string, using it as drug name: {clean!r}")
        return {
            "drug_name": clean,
            "dose": None,
            "frequency": DEFAULT_FREQUENCY,
            "route": DEFAULT_ROUTE,
            "parsed": False,
        }

    def parse_structured(self, med: Mapping[str, Any]) -> Dict[str, Any]:
        """Read a structured record through its field aliases"""
        name = _first_alias(med, NAME_ALIASES)
        dose = _first_alias(med, DOSE_ALIASES)
        frequency = _first_alias(med, FREQUENCY_ALIASES)

        if name is None:
            logger.warning(f"Structured medication without a name: {dict(med)!r}")

        return {
            "drug_name": str(name).strip().lower() if name is not None else "unknown",
            "dose": str(dose) if dose is not None else None,
            "frequency": str(frequency) if frequency is not None else None,
            "route": med.get("route") or DEFAULT_ROUTE,
            "indication": _first_alias(med, INDICATION_ALIASES),
            "parsed": name is not None,
        }


def _first_alias(record: Mapping[str, Any], aliases: Sequence[str]) -> Optional[Any]:
    """First truthy value among ``aliases`` in precedence order"""
    for alias in aliases:
        value = record.get(alias)
        if value:
            return value
    return None
