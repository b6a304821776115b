"""
Medication Safety Review Engine - Risk Prioritizer & Recommendation Synthesizer
Merges screening findings into a ranked risk list with recommendations
"""
import logging
import math
from typing import List, Optional

from config.settings import ELDERLY_AGE
from medsafety.core.models import (
    InteractionFinding, DuplicateFinding, ContraindicationFinding,
    RiskItem, RiskKind, Severity, Medication, PatientContext,
    ClinicalRecommendations, ReviewSummary
)

logger = logging.getLogger(__name__)


BASE_PRIORITY = {
    Severity.CRITICAL: 95,
    Severity.MAJOR: 80,
    Severity.MODERATE: 60,
    Severity.MINOR: 30,
    Severity.NONE: 0,
}

KIND_MULTIPLIER = {
    RiskKind.CONTRAINDICATION: 1.1,
    RiskKind.INTERACTION: 1.0,
    RiskKind.DUPLICATE_THERAPY: 0.8,
}

# Fixed confidences for finding kinds without their own
DUPLICATE_CONFIDENCE = 0.80
CONTRAINDICATION_CONFIDENCE = 0.90
NO_RISK_CONFIDENCE = 0.7

IMMEDIATE_ACTION_PRIORITY = 80


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_priority(kind: RiskKind, severity: Severity) -> int:
    """Ranking key, a pure function of (kind, severity)"""
    return round_half_up(BASE_PRIORITY[severity] * KIND_MULTIPLIER[kind])


class RiskPrioritizer:
    """Flatten findings into RiskItems ranked by priority"""

    def prioritize(
        self,
        interactions: List[InteractionFinding],
        duplicates: List[DuplicateFinding],
        contraindications: List[ContraindicationFinding],
    ) -> List[RiskItem]:
        risks = []

        for interaction in interactions:
            risks.append(RiskItem(
                kind=RiskKind.INTERACTION,
                priority=calculate_priority(RiskKind.INTERACTION, interaction.severity),
                severity=interaction.severity,
                description=(
                    f"{interaction.medication_a.drug_name} + {interaction.medication_b.drug_name}"
                ),
                clinical_impact=interaction.clinical_significance,
                action_required=interaction.management,
                confidence=interaction.confidence,
            ))

        for duplicate in duplicates:
            risks.append(RiskItem(
                kind=RiskKind.DUPLICATE_THERAPY,
                priority=calculate_priority(RiskKind.DUPLICATE_THERAPY, duplicate.severity),
                severity=duplicate.severity,
                description=f"Multiple {duplicate.therapeutic_class} medications",
                clinical_impact="Potential additive effects or redundancy",
                action_required=duplicate.recommendation,
                confidence=DUPLICATE_CONFIDENCE,
            ))

        for contra in contraindications:
            risks.append(RiskItem(
                kind=RiskKind.CONTRAINDICATION,
                priority=calculate_priority(RiskKind.CONTRAINDICATION, contra.severity),
                severity=contra.severity,
                description=f"{contra.medication.drug_name} contraindicated",
                clinical_impact=contra.reason,
                action_required=contra.recommendation,
                confidence=CONTRAINDICATION_CONFIDENCE,
            ))

        # Stable: equal priorities keep interaction/duplicate/contraindication order
        risks.sort(key=lambda r: r.priority, reverse=True)
        return risks

    @staticmethod
    def calculate_confidence(risks: List[RiskItem]) -> float:
        if not risks:
            return NO_RISK_CONFIDENCE
        return round(sum(r.confidence for r in risks) / len(risks), 2)


class RecommendationSynthesizer:
    """Structured clinical recommendations and summary statistics"""

    def synthesize(
        self,
        risks: List[RiskItem],
        patient: Optional[PatientContext] = None,
    ) -> ClinicalRecommendations:
        recommendations = ClinicalRecommendations()

        for risk in risks:
            if (risk.priority >= IMMEDIATE_ACTION_PRIORITY
                    and risk.severity in (Severity.CRITICAL, Severity.MAJOR)):
                recommendations.immediate_actions.append({
                    "action": risk.action_required,
                    "urgency": "immediate",
                    "rationale": risk.clinical_impact,
                })
            if risk.kind == RiskKind.DUPLICATE_THERAPY:
                recommendations.optimization_opportunities.append({
                    "opportunity": risk.description,
                    "action": risk.action_required,
                    "rationale": risk.clinical_impact,
                })

        if patient is not None:
            self._add_patient_specific(recommendations, patient)

        return recommendations

    def _add_patient_specific(
        self,
        recommendations: ClinicalRecommendations,
        patient: PatientContext,
    ) -> None:
        if patient.age is not None and patient.age >= ELDERLY_AGE:
            recommendations.monitoring_requirements.append({
                "parameter": "renal_function",
                "frequency": "every_6_months",
                "rationale": "Elderly patient at increased risk for medication accumulation",
            })

        if patient.has_condition("kidney"):
            recommendations.monitoring_requirements.append({
                "parameter": "medication_dosing",
                "frequency": "ongoing",
                "rationale": "Renal impairment requires dose adjustments",
            })

    def summarize(self, medications: List[Medication], risks: List[RiskItem]) -> ReviewSummary:
        critical = sum(1 for r in risks if r.severity == Severity.CRITICAL)
        major = sum(1 for r in risks if r.severity == Severity.MAJOR)
        moderate = sum(1 for r in risks if r.severity == Severity.MODERATE)

        return ReviewSummary(
            total_medications=len(medications),
            total_risks_identified=len(risks),
            risk_breakdown={
                "critical": critical,
                "major": major,
                "moderate": moderate,
                "minor": len(risks) - critical - major - moderate,
            },
            overall_risk_score=self.calculate_overall_risk_score(risks),
            review_status=self.determine_review_status(risks),
            requires_physician_review=critical > 0 or major > 2,
        )

    @staticmethod
    def calculate_overall_risk_score(risks: List[RiskItem]) -> int:
        if not risks:
            return 0
        return round_half_up(sum(r.priority for r in risks) / len(risks))

    @staticmethod
    def determine_review_status(risks: List[RiskItem]) -> str:
        critical = sum(1 for r in risks if r.severity == Severity.CRITICAL)
        major = sum(1 for r in risks if r.severity == Severity.MAJOR)

        if critical > 0:
            return "urgent"
        if major > 1:
            return "high_priority"
        if risks:
            return "routine_review"
        return "low_risk"
