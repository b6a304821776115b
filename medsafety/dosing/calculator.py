"""
Medication Safety Review Engine - Dosage Adjustment Calculator
Patient-adjusted dose ranges and validation of a proposed dose
"""
import logging
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from config.settings import (
    ELDERLY_AGE, RENAL_SEVERE_EGFR, RENAL_MODERATE_EGFR, HEPATIC_ALT_THRESHOLD,
    SEVERE_RENAL_EGFR, SEVERE_HEPATIC_ALT, WEIGHT_BASED_TOLERANCE
)
from medsafety.core.knowledge_base import ReferenceKnowledgeBase, get_knowledge_base
from medsafety.core.models import (
    DosingGuideline, DoseAdjustment, DosageValidationResult, FrequencyPattern,
    PatientContext, ProposedDose, RecommendedDoseRange, ValidationStatus
)

logger = logging.getLogger(__name__)

DOSE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(mcg|µg|mg|g|units?)", re.IGNORECASE)

# Per-status confidence of the range/daily-cap validation
STATUS_CONFIDENCE = {
    ValidationStatus.APPROPRIATE: 0.9,
    ValidationStatus.SUBOPTIMAL: 0.8,
    ValidationStatus.EXCESSIVE: 0.95,
    ValidationStatus.INAPPROPRIATE: 0.9,
    ValidationStatus.UNPARSEABLE: 0.2,
    ValidationStatus.UNKNOWN: 0.3,
    ValidationStatus.CONTRAINDICATED: 1.0,
}


def parse_dosage(
    dosage_string: Optional[str],
    frequency_patterns: Mapping[str, FrequencyPattern],
) -> ProposedDose:
    """Parse "500mg q6h" style text into dose, unit and frequency.

    When several frequency keywords occur in the text the longest one wins,
    so "twice daily" is not read as "daily".
    """
    if not dosage_string:
        return ProposedDose(original_string=dosage_string)

    cleaned = str(dosage_string).lower().strip()

    dose = unit = None
    dose_match = DOSE_PATTERN.search(cleaned)
    if dose_match:
        dose = float(dose_match.group(1))
        unit = dose_match.group(2).lower()

    frequency = None
    for keyword in frequency_patterns:
        if keyword in cleaned and (frequency is None or len(keyword) > len(frequency)):
            frequency = keyword

    return ProposedDose(
        dose=dose,
        unit=unit,
        frequency=frequency,
        frequency_data=frequency_patterns[frequency] if frequency else None,
        original_string=str(dosage_string),
    )


def _format_amount(value: Optional[float]) -> str:
    if value is None:
        return "unknown"
    if float(value).is_integer():
        return str(int(value))
    return str(round(value, 2))


# Guideline contraindication text -> (predicate, finding label).
# Entries missing here need patient data the context does not carry.
DOSAGE_CONTRAINDICATION_CHECKS: Dict[str, Tuple[Callable[[PatientContext], bool], str]] = {
    "severe renal impairment": (
        lambda p: p.lab_value("eGFR") is not None and p.lab_value("eGFR") < SEVERE_RENAL_EGFR,
        f"Severe renal impairment (eGFR < {SEVERE_RENAL_EGFR})",
    ),
    "severe hepatic impairment": (
        lambda p: p.lab_value("ALT") is not None and p.lab_value("ALT") > SEVERE_HEPATIC_ALT,
        "Severe hepatic impairment",
    ),
    "active liver disease": (
        lambda p: p.lab_value("ALT") is not None and p.lab_value("ALT") > SEVERE_HEPATIC_ALT,
        "Severe hepatic impairment",
    ),
    "seizure disorder": (
        lambda p: p.has_condition("seizure", "epilepsy"),
        "History of seizure disorder",
    ),
}


class DosageAdjustmentCalculator:
    """Dosing adjustment calculation engine"""

    def __init__(self, knowledge_base: Optional[ReferenceKnowledgeBase] = None):
        self.knowledge_base = knowledge_base or get_knowledge_base()
        logger.info(
            f"Dosage calculator initialized with "
            f"{len(self.knowledge_base.dosing_guidelines)} drug guidelines"
        )

    def validate(
        self,
        drug: Union[str, Mapping[str, Any]],
        patient_context: Union[PatientContext, Mapping[str, Any]],
    ) -> DosageValidationResult:
        """
        Validate a proposed dose for one drug and one patient.

        Args:
            drug: record with generic_name/drug_name/name and dose/dosage,
                or a free-text "<name> <dose> <frequency>" string
            patient_context: PatientContext or its request-dict shape

        Returns:
            DosageValidationResult; unknown drugs and unparseable doses are
            result states, not errors
        """
        if isinstance(patient_context, PatientContext):
            patient = patient_context
        else:
            patient = PatientContext.from_dict(patient_context)

        drug_name, dose_text = self._read_drug(drug)
        proposed = parse_dosage(dose_text, self.knowledge_base.frequency_patterns)

        decisions = [
            f"Validating dosage for: {drug_name}",
            f"Proposed dose: {proposed.to_dict()}",
        ]
        warnings: List[str] = []
        limitations: List[str] = []

        resolved = self.knowledge_base.find_dosing_guideline(drug_name)
        if resolved is None:
            logger.warning(f"No dosing guideline for {drug_name!r}")
            limitations.append(f"No dosing guidelines available for {drug_name}")
            return DosageValidationResult(
                drug_name=drug_name,
                validation_status=ValidationStatus.UNKNOWN,
                explanation=(
                    f"Dosing guidelines not available for {drug_name}. "
                    f"Manual verification required."
                ),
                proposed_dose=proposed,
                confidence=STATUS_CONFIDENCE[ValidationStatus.UNKNOWN],
                recommendations=["Consult drug reference for dosing guidance"],
                decisions=decisions,
                warnings=["Dosing validation unavailable"],
                limitations=limitations,
                follow_up=["Manual dosage verification required"],
            )

        guideline_key, guideline = resolved
        if guideline_key != drug_name:
            decisions.append(f"Matched guideline '{guideline_key}' for '{drug_name}'")
        decisions.append("Retrieved clinical dosing guidelines")

        adjustments = self.calculate_patient_adjustments(guideline, patient, decisions)
        recommended = self.calculate_recommended_dose(guideline, adjustments, patient)
        status, explanation, recommendations = self.validate_proposed_dose(proposed, recommended)
        confidence = STATUS_CONFIDENCE[status]
        follow_up: List[str] = []
        if status == ValidationStatus.UNPARSEABLE:
            follow_up.append("Manual dosage verification required")

        contraindications = self.check_contraindications(guideline, patient)
        if contraindications:
            status = ValidationStatus.CONTRAINDICATED
            explanation = f"CONTRAINDICATION: {', '.join(contraindications)}. Do not administer."
            recommendations = [
                "Do not administer this medication",
                "Consult physician for alternatives",
            ]
            warnings.append("Absolute contraindication detected")
            confidence = STATUS_CONFIDENCE[ValidationStatus.CONTRAINDICATED]

        if guideline.monitoring_required:
            recommendations.append(f"Monitor: {', '.join(guideline.monitoring_required)}")

        logger.info(f"Dosage validation for {drug_name}: {status.value}")

        return DosageValidationResult(
            drug_name=drug_name,
            validation_status=status,
            explanation=explanation,
            proposed_dose=proposed,
            confidence=confidence,
            recommended_dose_range=recommended,
            patient_adjustments=adjustments,
            recommendations=recommendations,
            contraindications=contraindications,
            monitoring_required=list(guideline.monitoring_required),
            decisions=decisions,
            warnings=warnings,
            limitations=limitations,
            follow_up=follow_up,
        )

    @staticmethod
    def _read_drug(drug: Union[str, Mapping[str, Any]]) -> Tuple[str, Optional[str]]:
        if isinstance(drug, Mapping):
            name = drug.get("generic_name") or drug.get("drug_name") or drug.get("name") or ""
            dose = drug.get("dose") or drug.get("dosage")
            return str(name).strip().lower(), (str(dose) if dose is not None else None)
        text = str(drug).strip()
        return text.lower(), text

    def calculate_patient_adjustments(
        self,
        guideline: DosingGuideline,
        patient: PatientContext,
        decisions: List[str],
    ) -> DoseAdjustment:
        """Compute age, weight, renal and hepatic factors for a patient"""
        adjustments = DoseAdjustment()

        # Age
        if patient.age is not None and patient.age >= ELDERLY_AGE and guideline.elderly_adjustment:
            adjustments.age_factor = guideline.elderly_adjustment
            if guideline.elderly_adjustment < 1.0:
                adjustments.reasons.append(
                    f"Elderly patient (age {_format_amount(patient.age)}): dose reduced by "
                    f"{round((1 - guideline.elderly_adjustment) * 100)}%"
                )
            decisions.append("Applied elderly dose adjustment")

        # Weight-based dosing
        if guideline.weight_based and guideline.weight_dose_mg_kg and patient.weight_kg:
            weight_based_dose = patient.weight_kg * guideline.weight_dose_mg_kg
            adjustments.weight_based_dose = weight_based_dose
            adjustments.reasons.append(
                f"Weight-based dosing: {_format_amount(guideline.weight_dose_mg_kg)} mg/kg × "
                f"{_format_amount(patient.weight_kg)} kg = {_format_amount(weight_based_dose)} mg"
            )
            decisions.append("Applied weight-based dosing calculation")

        # Renal
        egfr = patient.lab_value("eGFR")
        if guideline.renal_adjustment and egfr is not None:
            if egfr < RENAL_SEVERE_EGFR:
                category = "severe"
            elif egfr < RENAL_MODERATE_EGFR:
                category = "moderate"
            else:
                category = "mild"

            adjustments.renal_factor = guideline.renal_adjustment.get(category, 1.0)
            if adjustments.renal_factor < 1.0:
                adjustments.reasons.append(
                    f"Renal impairment (eGFR {_format_amount(egfr)}): dose reduced by "
                    f"{round((1 - adjustments.renal_factor) * 100)}%"
                )
                decisions.append(f"Applied renal dose adjustment for eGFR {_format_amount(egfr)}")

        # Hepatic
        alt = patient.lab_value("ALT")
        if guideline.hepatic_adjustment and alt is not None and alt > HEPATIC_ALT_THRESHOLD:
            adjustments.hepatic_factor = guideline.hepatic_adjustment
            adjustments.reasons.append(
                f"Hepatic impairment (ALT {_format_amount(alt)}): dose reduced by "
                f"{round((1 - guideline.hepatic_adjustment) * 100)}%"
            )
            decisions.append("Applied hepatic dose adjustment")

        adjustments.overall_factor = (
            adjustments.age_factor * adjustments.renal_factor * adjustments.hepatic_factor
        )
        return adjustments

    def calculate_recommended_dose(
        self,
        guideline: DosingGuideline,
        adjustments: DoseAdjustment,
        patient: PatientContext,
    ) -> RecommendedDoseRange:
        """Per-dose window plus daily ceiling for this patient.

        Weight-based drugs never take the overall factor: with a known weight
        they use the computed mg dose ±20%, without one the plain adult range.
        Other drugs scale the adult range by the overall factor.
        """
        if guideline.weight_based and adjustments.weight_based_dose is not None:
            min_dose = adjustments.weight_based_dose * (1 - WEIGHT_BASED_TOLERANCE)
            max_dose = adjustments.weight_based_dose * (1 + WEIGHT_BASED_TOLERANCE)
        elif guideline.weight_based:
            min_dose = guideline.adult_dose_range.min
            max_dose = guideline.adult_dose_range.max
        else:
            min_dose = guideline.adult_dose_range.min * adjustments.overall_factor
            max_dose = guideline.adult_dose_range.max * adjustments.overall_factor

        max_daily_dose = guideline.max_daily_dose
        if (patient.age is not None and patient.age >= ELDERLY_AGE
                and guideline.max_daily_dose_elderly):
            max_daily_dose = guideline.max_daily_dose_elderly

        return RecommendedDoseRange(
            min_dose=round(min_dose, 2),
            max_dose=round(max_dose, 2),
            unit=guideline.adult_dose_range.unit,
            frequency=guideline.adult_dose_range.frequency,
            max_daily_dose=max_daily_dose,
            weight_based=guideline.weight_based,
        )

    def validate_proposed_dose(
        self,
        proposed: ProposedDose,
        recommended: RecommendedDoseRange,
    ) -> Tuple[ValidationStatus, str, List[str]]:
        """Classify a proposed dose against the per-dose window and daily cap"""
        if not proposed.parsed:
            return (
                ValidationStatus.UNPARSEABLE,
                f'Unable to parse dosage "{proposed.original_string}". Please verify format.',
                ["Clarify dosage format", "Use standard dosing notation"],
            )

        daily_dose = proposed.dose
        if proposed.frequency_data and proposed.frequency_data.times_per_day:
            daily_dose = proposed.dose * proposed.frequency_data.times_per_day

        within_range = recommended.min_dose <= proposed.dose <= recommended.max_dose
        within_daily_limit = (
            recommended.max_daily_dose is None or daily_dose <= recommended.max_daily_dose
        )

        dose = f"{_format_amount(proposed.dose)}{proposed.unit}"
        window = (
            f"{_format_amount(recommended.min_dose)}-{_format_amount(recommended.max_dose)}"
            f"{recommended.unit}"
        )
        daily_cap = f"{_format_amount(recommended.max_daily_dose)}{recommended.unit}"

        if not within_range and not within_daily_limit:
            return (
                ValidationStatus.INAPPROPRIATE,
                f"Dose {dose} is outside recommended range ({window}) "
                f"and exceeds maximum daily dose ({daily_cap}).",
                [
                    "Adjust dose to within recommended range",
                    "Consider dose reduction or frequency change",
                ],
            )

        if not within_range:
            if proposed.dose < recommended.min_dose:
                return (
                    ValidationStatus.SUBOPTIMAL,
                    f"Dose {dose} is below recommended range ({window}). May be subtherapeutic.",
                    ["Consider dose increase for optimal efficacy"],
                )
            return (
                ValidationStatus.SUBOPTIMAL,
                f"Dose {dose} exceeds recommended range ({window}). "
                f"Increased risk of adverse effects.",
                ["Consider dose reduction to minimize side effects"],
            )

        if not within_daily_limit:
            return (
                ValidationStatus.EXCESSIVE,
                f"Daily dose ({_format_amount(daily_dose)}{proposed.unit}) exceeds maximum "
                f"recommended ({daily_cap}). High risk of toxicity.",
                ["Reduce frequency or individual dose", "Monitor for signs of toxicity"],
            )

        frequency = f" {proposed.frequency}" if proposed.frequency else ""
        return (
            ValidationStatus.APPROPRIATE,
            f"Dose {dose}{frequency} is appropriate for this patient.",
            ["Dose is within recommended range", "Continue with standard monitoring"],
        )

    def check_contraindications(
        self,
        guideline: DosingGuideline,
        patient: PatientContext,
    ) -> List[str]:
        """Absolute contraindications from the guideline that apply to this patient"""
        found = []
        for contraindication in guideline.contraindications:
            check = DOSAGE_CONTRAINDICATION_CHECKS.get(contraindication)
            if check is None:
                continue
            predicate, label = check
            if predicate(patient) and label not in found:
                found.append(label)
        return found


# Singleton instance
_dosage_calculator: Optional[DosageAdjustmentCalculator] = None

def get_dosage_calculator() -> DosageAdjustmentCalculator:
    """Get or create dosage calculator singleton"""
    global _dosage_calculator
    if _dosage_calculator is None:
        _dosage_calculator = DosageAdjustmentCalculator()
    return _dosage_calculator
