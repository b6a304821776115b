"""
Medication Safety Review Engine - Data Models
Normalized medications, patient context, findings and dosing records
"""
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Mapping, Tuple
from enum import Enum
from types import MappingProxyType

from config.settings import BATCH_REVIEW_TASK_TYPE
from medsafety.core.exceptions import RequestValidationError


class Severity(Enum):
    NONE = "none"
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


# Sorting scale shared by the interaction matrix and the risk prioritizer
SEVERITY_RANK = {
    Severity.NONE: 0,
    Severity.MINOR: 1,
    Severity.MODERATE: 2,
    Severity.MAJOR: 3,
    Severity.CRITICAL: 4,
}


class RiskKind(Enum):
    INTERACTION = "interaction"
    DUPLICATE_THERAPY = "duplicate_therapy"
    CONTRAINDICATION = "contraindication"


class ValidationStatus(Enum):
    APPROPRIATE = "APPROPRIATE"
    SUBOPTIMAL = "SUBOPTIMAL"
    EXCESSIVE = "EXCESSIVE"
    INAPPROPRIATE = "INAPPROPRIATE"
    UNPARSEABLE = "UNPARSEABLE"
    UNKNOWN = "UNKNOWN"
    CONTRAINDICATED = "CONTRAINDICATED"


def to_number(value: Any) -> Optional[float]:
    """Coerce a lab/demographic value to float, None when absent or malformed"""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# ==================== Reference records ====================

@dataclass(frozen=True)
class InteractionRule:
    """Drug-pair interaction record"""
    interaction_type: str
    severity: Severity
    mechanism: str
    clinical_significance: str
    management: str
    confidence: float


@dataclass(frozen=True)
class ClassInteractionRule:
    """Drug-class pair interaction record"""
    severity: Severity
    mechanism: str
    clinical_significance: str = "Monitor for additive effects"
    management: str = "Use with caution and monitor closely"
    confidence: float = 0.65
    interaction_type: str = "pharmacodynamic"


@dataclass(frozen=True)
class ContraindicationRule:
    type: str
    reason: str
    severity: Severity
    patient_factor: str
    recommendation: str


@dataclass(frozen=True)
class DoseRange:
    min: float
    max: float
    unit: str
    frequency: str


@dataclass(frozen=True)
class DosingGuideline:
    """Static dosing reference for one drug"""
    adult_dose_range: DoseRange
    elderly_adjustment: Optional[float] = None
    weight_based: bool = False
    weight_dose_mg_kg: Optional[float] = None
    max_daily_dose: Optional[float] = None
    max_daily_dose_elderly: Optional[float] = None
    max_weekly_dose: Optional[float] = None
    renal_adjustment: Optional[Mapping[str, float]] = None
    hepatic_adjustment: Optional[float] = None
    monitoring_required: Tuple[str, ...] = ()
    contraindications: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.renal_adjustment is not None:
            object.__setattr__(self, "renal_adjustment", MappingProxyType(dict(self.renal_adjustment)))


@dataclass(frozen=True)
class FrequencyPattern:
    times_per_day: Optional[float]
    interval_hours: Optional[float]
    as_needed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {"times_per_day": self.times_per_day, "interval_hours": self.interval_hours}
        if self.as_needed:
            data["as_needed"] = True
        return data


# ==================== Patient context ====================

@dataclass
class LabValue:
    value: Optional[float]
    unit: Optional[str] = None


@dataclass
class PatientContext:
    """Patient information for personalized screening and dosing.

    Every field is optional; a missing value skips the adjustment or screen
    that depends on it.
    """
    age: Optional[float] = None
    weight_kg: Optional[float] = None
    lab_values: Dict[str, LabValue] = field(default_factory=dict)
    conditions: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "PatientContext":
        """Build a context from the request shape.

        Accepts ``demographics {age, weight_kg}``, ``lab_values {name: {value, unit}}``
        and ``conditions [{condition}]``; camelCase keys are tolerated.

        Raises:
            RequestValidationError: the context or one of its sections has the wrong shape
        """
        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise RequestValidationError("patient_context must be an object")

        demographics = data.get("demographics") or {}
        if not isinstance(demographics, Mapping):
            raise RequestValidationError("patient_context.demographics must be an object")
        age = demographics.get("age", data.get("age"))
        weight = _first_present(demographics, "weight_kg", "weightKg", "weight")
        if weight is None:
            weight = _first_present(data, "weight_kg", "weightKg")

        raw_labs = data.get("lab_values") or data.get("labValues") or {}
        if not isinstance(raw_labs, Mapping):
            raise RequestValidationError("patient_context.lab_values must be an object")
        lab_values = {}
        for name, raw in raw_labs.items():
            if isinstance(raw, Mapping):
                lab_values[str(name).lower()] = LabValue(to_number(raw.get("value")), raw.get("unit"))
            else:
                lab_values[str(name).lower()] = LabValue(to_number(raw))

        raw_conditions = data.get("conditions") or []
        if not isinstance(raw_conditions, (list, tuple)):
            raise RequestValidationError("patient_context.conditions must be a list")
        conditions = []
        for entry in raw_conditions:
            if isinstance(entry, Mapping):
                condition = entry.get("condition")
            else:
                condition = entry
            if condition:
                conditions.append(str(condition))

        return cls(
            age=to_number(age),
            weight_kg=to_number(weight),
            lab_values=lab_values,
            conditions=conditions,
        )

    def lab_value(self, name: str) -> Optional[float]:
        lab = self.lab_values.get(name.lower())
        return lab.value if lab else None

    def has_condition(self, *keywords: str) -> bool:
        """Case-insensitive substring match against recorded conditions"""
        for condition in self.conditions:
            condition_lower = condition.lower()
            if any(keyword.lower() in condition_lower for keyword in keywords):
                return True
        return False


def _first_present(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


# ==================== Normalized medication ====================

@dataclass(frozen=True)
class Medication:
    """Canonical medication record; identity is its list position (med_<n>)"""
    id: str
    drug_name: str
    dose: Optional[str] = None
    frequency: Optional[str] = None
    route: str = "oral"
    indication: Optional[str] = None
    drug_class: str = "other"
    interaction_potential: str = "moderate"
    parsed: bool = False
    original_input: Any = field(default=None, compare=False, hash=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "original_input": self.original_input,
            "drug_name": self.drug_name,
            "dose": self.dose,
            "frequency": self.frequency,
            "route": self.route,
            "indication": self.indication,
            "drug_class": self.drug_class,
            "interaction_potential": self.interaction_potential,
            "parsed": self.parsed,
        }


# ==================== Findings ====================

@dataclass
class InteractionFinding:
    medication_a: Medication
    medication_b: Medication
    interaction_type: str
    severity: Severity
    mechanism: str
    clinical_significance: str
    management: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "medication_1": self.medication_a.to_dict(),
            "medication_2": self.medication_b.to_dict(),
            "interaction_type": self.interaction_type,
            "severity": self.severity.value,
            "mechanism": self.mechanism,
            "clinical_significance": self.clinical_significance,
            "management": self.management,
            "confidence": self.confidence,
        }


@dataclass
class DuplicateFinding:
    therapeutic_class: str
    medications: List[Medication]
    severity: Severity
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "therapeutic_class": self.therapeutic_class,
            "medications": [med.to_dict() for med in self.medications],
            "severity": self.severity.value,
            "recommendation": self.recommendation,
        }


@dataclass
class ContraindicationFinding:
    medication: Medication
    contraindication_type: str
    reason: str
    severity: Severity
    patient_factor: str
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "medication": self.medication.to_dict(),
            "contraindication_type": self.contraindication_type,
            "reason": self.reason,
            "severity": self.severity.value,
            "patient_factor": self.patient_factor,
            "recommendation": self.recommendation,
        }


@dataclass
class RiskItem:
    """Unified, ranked view over interaction/duplicate/contraindication findings"""
    kind: RiskKind
    priority: int
    severity: Severity
    description: str
    clinical_impact: str
    action_required: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "priority": self.priority,
            "severity": self.severity.value,
            "description": self.description,
            "clinical_impact": self.clinical_impact,
            "action_required": self.action_required,
            "confidence": self.confidence,
        }


@dataclass
class ClinicalRecommendations:
    immediate_actions: List[Dict[str, str]] = field(default_factory=list)
    monitoring_requirements: List[Dict[str, str]] = field(default_factory=list)
    optimization_opportunities: List[Dict[str, str]] = field(default_factory=list)
    patient_education: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "immediate_actions": list(self.immediate_actions),
            "monitoring_requirements": list(self.monitoring_requirements),
            "optimization_opportunities": list(self.optimization_opportunities),
            "patient_education": list(self.patient_education),
        }


@dataclass
class ReviewSummary:
    total_medications: int
    total_risks_identified: int
    risk_breakdown: Dict[str, int]
    overall_risk_score: int
    review_status: str
    requires_physician_review: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_medications": self.total_medications,
            "total_risks_identified": self.total_risks_identified,
            "risk_breakdown": dict(self.risk_breakdown),
            "overall_risk_score": self.overall_risk_score,
            "review_status": self.review_status,
            "requires_physician_review": self.requires_physician_review,
        }


@dataclass
class BatchReviewResult:
    """Result of a full medication-list review"""
    medications: List[Medication]
    interactions: List[InteractionFinding]
    duplicates: List[DuplicateFinding]
    contraindications: List[ContraindicationFinding]
    risks: List[RiskItem]
    recommendations: ClinicalRecommendations
    summary: ReviewSummary
    confidence: float
    processing_time_ms: float = 0

    @property
    def has_critical_risks(self) -> bool:
        return any(r.severity == Severity.CRITICAL for r in self.risks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "medications_reviewed": [med.to_dict() for med in self.medications],
            "interaction_matrix": [i.to_dict() for i in self.interactions],
            "duplicate_analysis": [d.to_dict() for d in self.duplicates],
            "contraindications": [c.to_dict() for c in self.contraindications],
            "risk_analysis": [r.to_dict() for r in self.risks],
            "clinical_recommendations": self.recommendations.to_dict(),
            "processing_time_ms": self.processing_time_ms,
            "confidence": self.confidence,
            "workflow": BATCH_REVIEW_TASK_TYPE,
        }


# ==================== Dosing ====================

@dataclass
class ProposedDose:
    dose: Optional[float] = None
    unit: Optional[str] = None
    frequency: Optional[str] = None
    frequency_data: Optional[FrequencyPattern] = None
    original_string: Optional[str] = None

    @property
    def parsed(self) -> bool:
        return self.dose is not None and self.unit is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dose": self.dose,
            "unit": self.unit,
            "frequency": self.frequency,
            "frequency_data": self.frequency_data.to_dict() if self.frequency_data else None,
            "original_string": self.original_string,
            "parsed": self.parsed,
        }


@dataclass
class DoseAdjustment:
    """Per-patient multiplicative dose factors"""
    age_factor: float = 1.0
    weight_factor: float = 1.0
    renal_factor: float = 1.0
    hepatic_factor: float = 1.0
    overall_factor: float = 1.0
    weight_based_dose: Optional[float] = None
    reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "age_factor": self.age_factor,
            "weight_factor": self.weight_factor,
            "renal_factor": self.renal_factor,
            "hepatic_factor": self.hepatic_factor,
            "overall_factor": self.overall_factor,
            "reasons": list(self.reasons),
        }
        if self.weight_based_dose is not None:
            data["weight_based_dose"] = self.weight_based_dose
        return data


@dataclass
class RecommendedDoseRange:
    min_dose: float
    max_dose: float
    unit: str
    frequency: str
    max_daily_dose: Optional[float] = None
    weight_based: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_dose": self.min_dose,
            "max_dose": self.max_dose,
            "unit": self.unit,
            "frequency": self.frequency,
            "max_daily_dose": self.max_daily_dose,
            "weight_based": self.weight_based,
        }


@dataclass
class DosageValidationResult:
    """Outcome of validating one proposed dose for one patient"""
    drug_name: str
    validation_status: ValidationStatus
    explanation: str
    proposed_dose: ProposedDose
    confidence: float
    recommended_dose_range: Optional[RecommendedDoseRange] = None
    patient_adjustments: Optional[DoseAdjustment] = None
    recommendations: List[str] = field(default_factory=list)
    contraindications: List[str] = field(default_factory=list)
    monitoring_required: List[str] = field(default_factory=list)
    decisions: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    limitations: List[str] = field(default_factory=list)
    follow_up: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "drug_name": self.drug_name,
            "validation_status": self.validation_status.value,
            "explanation": self.explanation,
            "proposed_dose": self.proposed_dose.to_dict(),
            "recommended_dose_range": (
                self.recommended_dose_range.to_dict() if self.recommended_dose_range else None
            ),
            "patient_adjustments": (
                self.patient_adjustments.to_dict() if self.patient_adjustments else None
            ),
            "recommendations": list(self.recommendations),
            "contraindications": list(self.contraindications),
            "monitoring_required": list(self.monitoring_required),
            "decisions": list(self.decisions),
            "warnings": list(self.warnings),
            "limitations": list(self.limitations),
            "confidence": self.confidence,
        }
