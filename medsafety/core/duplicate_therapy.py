"""
Medication Safety Review Engine - Duplicate Therapy Detector
"""
import logging
from collections import defaultdict
from typing import List, Optional

from medsafety.core.knowledge_base import ReferenceKnowledgeBase, get_knowledge_base
from medsafety.core.models import DuplicateFinding, Medication, Severity

logger = logging.getLogger(__name__)

# Class-name fragments that raise duplication to major
HIGH_RISK_CLASS_MARKERS = ("anticoagulant", "antiplatelet")


class DuplicateTherapyDetector:
    """Flag therapeutic classes represented more than once"""

    def __init__(self, knowledge_base: Optional[ReferenceKnowledgeBase] = None):
        self.knowledge_base = knowledge_base or get_knowledge_base()

    def detect(self, medications: List[Medication]) -> List[DuplicateFinding]:
        """Group by therapeutic class; findings follow each class's first appearance"""
        groups = defaultdict(list)
        for med in medications:
            groups[self.knowledge_base.get_therapeutic_class(med.drug_name)].append(med)

        duplicates = []
        for class_name, meds in groups.items():
            if len(meds) > 1 and class_name != "other":
                duplicates.append(DuplicateFinding(
                    therapeutic_class=class_name,
                    medications=meds,
                    severity=self.assess_severity(class_name),
                    recommendation=self.get_recommendation(class_name),
                ))

        if duplicates:
            logger.info(f"Detected {len(duplicates)} duplicate therapy cluster(s)")
        return duplicates

    @staticmethod
    def assess_severity(class_name: str) -> Severity:
        if any(marker in class_name for marker in HIGH_RISK_CLASS_MARKERS):
            return Severity.MAJOR
        return Severity.MODERATE

    @staticmethod
    def get_recommendation(class_name: str) -> str:
        return (
            f"Review necessity of multiple {class_name}. "
            f"Consider consolidation or discontinuation."
        )
