"""
Medication Safety Review Engine - Batch Prescription Review Service
Complete medication-list review pipeline
"""
import logging
import time
from typing import Any, Mapping, Optional, Union

from medsafety.core.knowledge_base import ReferenceKnowledgeBase, get_knowledge_base
from medsafety.core.normalizer import MedicationNormalizer
from medsafety.core.interaction_engine import InteractionMatrixGenerator
from medsafety.core.duplicate_therapy import DuplicateTherapyDetector
from medsafety.core.contraindications import ContraindicationScreener
from medsafety.core.risk_prioritizer import RiskPrioritizer, RecommendationSynthesizer
from medsafety.core.models import BatchReviewResult, PatientContext

logger = logging.getLogger(__name__)


class BatchReviewService:
    """
    Reviews a full medication list for:
    - Drug-drug and drug-class interactions
    - Duplicate therapies
    - Patient contraindications
    and ranks the findings into a prioritized risk report.
    """

    def __init__(self, knowledge_base: Optional[ReferenceKnowledgeBase] = None):
        self.knowledge_base = knowledge_base or get_knowledge_base()
        self.normalizer = MedicationNormalizer(self.knowledge_base)
        self.interaction_generator = InteractionMatrixGenerator(self.knowledge_base)
        self.duplicate_detector = DuplicateTherapyDetector(self.knowledge_base)
        self.contraindication_screener = ContraindicationScreener(self.knowledge_base)
        self.prioritizer = RiskPrioritizer()
        self.synthesizer = RecommendationSynthesizer()
        logger.info("Batch review service initialized")

    def review(
        self,
        medications: Any,
        patient_context: Optional[Union[PatientContext, Mapping[str, Any]]] = None,
    ) -> BatchReviewResult:
        """
        Review a medication list.

        Args:
            medications: free-text strings and/or structured records
            patient_context: optional PatientContext or its request-dict shape

        Returns:
            BatchReviewResult with findings, ranked risks and recommendations

        Raises:
            RequestValidationError: medication list missing, not a list, or empty
        """
        start_time = time.time()

        patient = self._resolve_patient(patient_context)
        normalized = self.normalizer.normalize_list(medications)

        # Independent screens over the same normalized list
        interactions = self.interaction_generator.generate_matrix(normalized)
        duplicates = self.duplicate_detector.detect(normalized)
        contraindications = self.contraindication_screener.screen(normalized, patient)

        risks = self.prioritizer.prioritize(interactions, duplicates, contraindications)
        recommendations = self.synthesizer.synthesize(risks, patient)
        summary = self.synthesizer.summarize(normalized, risks)

        processing_time = (time.time() - start_time) * 1000
        logger.info(
            f"Reviewed {len(normalized)} medications: {len(risks)} risk(s), "
            f"status={summary.review_status}"
        )

        return BatchReviewResult(
            medications=normalized,
            interactions=interactions,
            duplicates=duplicates,
            contraindications=contraindications,
            risks=risks,
            recommendations=recommendations,
            summary=summary,
            confidence=self.prioritizer.calculate_confidence(risks),
            processing_time_ms=processing_time,
        )

    @staticmethod
    def _resolve_patient(
        patient_context: Optional[Union[PatientContext, Mapping[str, Any]]]
    ) -> Optional[PatientContext]:
        if patient_context is None or isinstance(patient_context, PatientContext):
            return patient_context
        return PatientContext.from_dict(patient_context)


# Singleton instance
_review_service: Optional[BatchReviewService] = None

def get_review_service() -> BatchReviewService:
    """Get or create batch review service singleton"""
    global _review_service
    if _review_service is None:
        _review_service = BatchReviewService()
    return _review_service
