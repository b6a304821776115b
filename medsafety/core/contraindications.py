"""
Medication Safety Review Engine - Contraindication Screener
Drug vs. patient-factor conflicts for a medication list
"""
import logging
from typing import Callable, Dict, List, Optional

from config.settings import CONTRAINDICATION_EGFR
from medsafety.core.knowledge_base import ReferenceKnowledgeBase, get_knowledge_base
from medsafety.core.models import ContraindicationFinding, Medication, PatientContext

logger = logging.getLogger(__name__)


def _renal_impairment(patient: PatientContext) -> bool:
    egfr = patient.lab_value("eGFR")
    return egfr is not None and egfr < CONTRAINDICATION_EGFR


def _not_assessable(patient: PatientContext) -> bool:
    # Needs patient data (procedures, bleeding history) the context does not carry yet
    return False


# Contraindication type -> predicate over the patient context.
# Types missing from this table never fire.
CONTRAINDICATION_PREDICATES: Dict[str, Callable[[PatientContext], bool]] = {
    "renal_impairment": _renal_impairment,
    "bleeding_risk": _not_assessable,
}


class ContraindicationScreener:
    """Screen normalized medications against patient context"""

    def __init__(
        self,
        knowledge_base: Optional[ReferenceKnowledgeBase] = None,
        predicates: Optional[Dict[str, Callable[[PatientContext], bool]]] = None,
    ):
        self.knowledge_base = knowledge_base or get_knowledge_base()
        self.predicates = dict(CONTRAINDICATION_PREDICATES if predicates is None else predicates)

    def is_contraindicated(self, contraindication_type: str, patient: PatientContext) -> bool:
        predicate = self.predicates.get(contraindication_type)
        return bool(predicate and predicate(patient))

    def screen(
        self,
        medications: List[Medication],
        patient: Optional[PatientContext],
    ) -> List[ContraindicationFinding]:
        if patient is None:
            return []

        findings = []
        for med in medications:
            for rule in self.knowledge_base.get_contraindications(med.drug_name):
                if self.is_contraindicated(rule.type, patient):
                    logger.debug(f"{med.drug_name} contraindicated: {rule.type}")
                    findings.append(ContraindicationFinding(
                        medication=med,
                        contraindication_type=rule.type,
                        reason=rule.reason,
                        severity=rule.severity,
                        patient_factor=rule.patient_factor,
                        recommendation=rule.recommendation,
                    ))

        return findings
