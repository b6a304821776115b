"""
Medication Safety Review Engine - Interaction Matrix Generator
Pairwise drug-drug and drug-class interaction detection
"""
import logging
from typing import List, Optional

from medsafety.core.knowledge_base import ReferenceKnowledgeBase, get_knowledge_base
from medsafety.core.models import InteractionFinding, Medication, Severity

logger = logging.getLogger(__name__)


class InteractionMatrixGenerator:
    """Drug-Drug Interaction detection over a normalized medication list"""

    def __init__(self, knowledge_base: Optional[ReferenceKnowledgeBase] = None):
        self.knowledge_base = knowledge_base or get_knowledge_base()

    def check_pair(self, med1: Medication, med2: Medication) -> Optional[InteractionFinding]:
        """Check two medications; None when the pair has no significant interaction"""
        rule = self.knowledge_base.get_interaction(med1.drug_name, med2.drug_name)
        if rule is None:
            rule = self.knowledge_base.get_class_interaction(med1.drug_class, med2.drug_class)
        if rule is None or rule.severity == Severity.NONE:
            return None

        return InteractionFinding(
            medication_a=med1,
            medication_b=med2,
            interaction_type=rule.interaction_type,
            severity=rule.severity,
            mechanism=rule.mechanism,
            clinical_significance=rule.clinical_significance,
            management=rule.management,
            confidence=rule.confidence,
        )

    def generate_matrix(self, medications: List[Medication]) -> List[InteractionFinding]:
        """Check all unordered pairs, most severe first.

        The sort is stable, so equal severities keep pair-enumeration order.
        """
        findings = []

        for i, med1 in enumerate(medications):
            for med2 in medications[i + 1:]:
                finding = self.check_pair(med1, med2)
                if finding:
                    logger.debug(
                        f"{finding.severity.value} interaction: "
                        f"{med1.drug_name} + {med2.drug_name}"
                    )
                    findings.append(finding)

        findings.sort(key=lambda f: f.severity.rank, reverse=True)
        return findings
