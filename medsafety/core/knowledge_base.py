"""
Medication Safety Review Engine - Reference Knowledge Base
Static, read-only clinical lookup tables shared by every component
"""
import logging
from types import MappingProxyType
from typing import Dict, List, Optional, Tuple, Mapping, Any

from medsafety.core.models import (
    Severity, InteractionRule, ClassInteractionRule, ContraindicationRule,
    DoseRange, DosingGuideline, FrequencyPattern
)

logger = logging.getLogger(__name__)


# Specific drug-pair interactions, looked up in both orders
DRUG_INTERACTIONS = {
    # Critical interactions
    ("warfarin", "aspirin"): InteractionRule(
        interaction_type="pharmacodynamic",
        severity=Severity.CRITICAL,
        mechanism="Additive anticoagulant effects",
        clinical_significance="Major bleeding risk - potentially life-threatening",
        management="Avoid combination. Use acetaminophen for pain relief.",
        confidence=0.95,
    ),
    ("methotrexate", "trimethoprim"): InteractionRule(
        interaction_type="pharmacokinetic",
        severity=Severity.CRITICAL,
        mechanism="Trimethoprim inhibits methotrexate elimination",
        clinical_significance="Bone marrow suppression, mucositis, hepatotoxicity",
        management="Avoid combination. Use alternative antibiotic.",
        confidence=0.92,
    ),

    # Major interactions
    ("sertraline", "tramadol"): InteractionRule(
        interaction_type="pharmacodynamic",
        severity=Severity.MAJOR,
        mechanism="Increased serotonin levels",
        clinical_significance="Serotonin syndrome risk",
        management="Use with caution. Monitor for serotonin syndrome symptoms.",
        confidence=0.80,
    ),
    ("simvastatin", "clarithromycin"): InteractionRule(
        interaction_type="pharmacokinetic",
        severity=Severity.MAJOR,
        mechanism="Strong CYP3A4 inhibition raises simvastatin exposure",
        clinical_significance="Rhabdomyolysis risk",
        management="Use alternative statin (pravastatin, rosuvastatin) or antibiotic.",
        confidence=0.85,
    ),
    ("digoxin", "amiodarone"): InteractionRule(
        interaction_type="pharmacokinetic",
        severity=Severity.MAJOR,
        mechanism="Amiodarone increases digoxin levels by 70-100%",
        clinical_significance="Digoxin toxicity - bradycardia, arrhythmia",
        management="Reduce digoxin dose by 50%. Monitor levels.",
        confidence=0.85,
    ),
    ("warfarin", "fluconazole"): InteractionRule(
        interaction_type="pharmacokinetic",
        severity=Severity.MAJOR,
        mechanism="Fluconazole inhibits CYP2C9, increasing warfarin effect",
        clinical_significance="Elevated INR and bleeding risk",
        management="Reduce warfarin dose by 25-50%. Monitor INR frequently.",
        confidence=0.85,
    ),

    # Moderate interactions
    ("atorvastatin", "clarithromycin"): InteractionRule(
        interaction_type="pharmacokinetic",
        severity=Severity.MODERATE,
        mechanism="CYP3A4 inhibition increases statin levels",
        clinical_significance="Increased risk of myopathy",
        management="Consider statin interruption during antibiotic course.",
        confidence=0.75,
    ),
    ("digoxin", "furosemide"): InteractionRule(
        interaction_type="pharmacodynamic",
        severity=Severity.MODERATE,
        mechanism="Furosemide-induced hypokalemia increases digoxin toxicity",
        clinical_significance="Increased digoxin toxicity risk",
        management="Monitor potassium and digoxin levels.",
        confidence=0.70,
    ),
    ("clopidogrel", "omeprazole"): InteractionRule(
        interaction_type="pharmacokinetic",
        severity=Severity.MODERATE,
        mechanism="CYP2C19 inhibition reduces clopidogrel activation",
        clinical_significance="Reduced antiplatelet effect",
        management="Prefer pantoprazole if gastroprotection is needed.",
        confidence=0.70,
    ),
}

# Drug-class pair interactions, consulted when no specific pair matches
CLASS_INTERACTIONS = {
    ("anticoagulant", "antiplatelet"): ClassInteractionRule(
        severity=Severity.MAJOR,
        mechanism="Additive bleeding risk",
    ),
    ("anticoagulant", "nsaid"): ClassInteractionRule(
        severity=Severity.CRITICAL,
        mechanism="Increased bleeding risk via multiple pathways",
        clinical_significance="Severe GI bleeding risk",
        management="Contraindicated. Monitor INR closely if unavoidable.",
        confidence=0.90,
    ),
    ("ace_inhibitor", "potassium_sparing_diuretic"): ClassInteractionRule(
        severity=Severity.MAJOR,
        mechanism="Additive hyperkalemia risk",
        clinical_significance="Potentially dangerous hyperkalemia",
        management="Monitor potassium closely. Consider dose reduction.",
        confidence=0.85,
    ),
    ("ace_inhibitor", "arb"): ClassInteractionRule(
        severity=Severity.MODERATE,
        mechanism="Additive hypotension and hyperkalemia risk",
    ),
    ("beta_blocker", "calcium_channel_blocker"): ClassInteractionRule(
        severity=Severity.MODERATE,
        mechanism="Additive cardiac depression",
    ),
    ("ssri", "nsaid"): ClassInteractionRule(
        severity=Severity.MODERATE,
        mechanism="Impaired platelet serotonin uptake plus mucosal injury",
        clinical_significance="Increased GI bleeding risk",
        management="Consider gastroprotection or an alternative analgesic.",
    ),
}

# Exact drug name -> drug class (interaction class-matching)
DRUG_CLASSES = {
    "warfarin": "anticoagulant",
    "apixaban": "anticoagulant",
    "rivaroxaban": "anticoagulant",
    "aspirin": "antiplatelet",
    "clopidogrel": "antiplatelet",
    "metformin": "antidiabetic",
    "lisinopril": "ace_inhibitor",
    "enalapril": "ace_inhibitor",
    "ramipril": "ace_inhibitor",
    "losartan": "arb",
    "valsartan": "arb",
    "amlodipine": "calcium_channel_blocker",
    "diltiazem": "calcium_channel_blocker",
    "verapamil": "calcium_channel_blocker",
    "metoprolol": "beta_blocker",
    "propranolol": "beta_blocker",
    "atenolol": "beta_blocker",
    "atorvastatin": "statin",
    "simvastatin": "statin",
    "furosemide": "diuretic",
    "spironolactone": "potassium_sparing_diuretic",
    "digoxin": "cardiac_glycoside",
    "ibuprofen": "nsaid",
    "naproxen": "nsaid",
    "diclofenac": "nsaid",
    "sertraline": "ssri",
    "fluoxetine": "ssri",
}

# Exact drug name -> coarse therapeutic class (duplicate-therapy grouping).
# Table order fixes the order duplicate findings are reported in.
THERAPEUTIC_CLASSES = {
    "warfarin": "anticoagulants",
    "apixaban": "anticoagulants",
    "rivaroxaban": "anticoagulants",
    "aspirin": "antiplatelets",
    "clopidogrel": "antiplatelets",
    "lisinopril": "ace_inhibitors",
    "enalapril": "ace_inhibitors",
    "ramipril": "ace_inhibitors",
    "losartan": "ace_inhibitors",
    "metoprolol": "beta_blockers",
    "propranolol": "beta_blockers",
    "atenolol": "beta_blockers",
    "amlodipine": "calcium_channel_blockers",
    "diltiazem": "calcium_channel_blockers",
    "atorvastatin": "statins",
    "simvastatin": "statins",
    "ibuprofen": "nsaids",
    "naproxen": "nsaids",
    "diclofenac": "nsaids",
    "sertraline": "ssris",
    "fluoxetine": "ssris",
    "omeprazole": "proton_pump_inhibitors",
    "pantoprazole": "proton_pump_inhibitors",
}

HIGH_RISK_DRUGS = frozenset({"warfarin", "digoxin", "phenytoin", "lithium"})

# Drug name -> contraindications screened against patient context
CONTRAINDICATIONS = {
    "metformin": (
        ContraindicationRule(
            type="renal_impairment",
            reason="Risk of lactic acidosis",
            severity=Severity.MAJOR,
            patient_factor="eGFR < 30",
            recommendation="Discontinue or use alternative",
        ),
    ),
    "warfarin": (
        ContraindicationRule(
            type="bleeding_risk",
            reason="Active bleeding or high bleeding risk",
            severity=Severity.CRITICAL,
            patient_factor="recent_surgery",
            recommendation="Evaluate bleeding risk vs thrombotic benefit",
        ),
    ),
    "ibuprofen": (
        ContraindicationRule(
            type="renal_impairment",
            reason="NSAIDs reduce renal perfusion and may precipitate acute kidney injury",
            severity=Severity.MAJOR,
            patient_factor="eGFR < 30",
            recommendation="Avoid NSAIDs; use acetaminophen for analgesia",
        ),
    ),
    "naproxen": (
        ContraindicationRule(
            type="renal_impairment",
            reason="NSAIDs reduce renal perfusion and may precipitate acute kidney injury",
            severity=Severity.MAJOR,
            patient_factor="eGFR < 30",
            recommendation="Avoid NSAIDs; use acetaminophen for analgesia",
        ),
    ),
}

# Per-drug dosing references
DOSING_GUIDELINES = {
    "warfarin": DosingGuideline(
        adult_dose_range=DoseRange(min=2.5, max=10, unit="mg", frequency="daily"),
        elderly_adjustment=0.75,
        max_daily_dose=10,
        renal_adjustment={"mild": 1.0, "moderate": 0.8, "severe": 0.6},
        hepatic_adjustment=0.5,
        monitoring_required=("INR", "bleeding signs"),
        contraindications=("active bleeding", "pregnancy"),
    ),
    "methotrexate": DosingGuideline(
        adult_dose_range=DoseRange(min=7.5, max=25, unit="mg", frequency="weekly"),
        elderly_adjustment=0.8,
        max_weekly_dose=25,
        renal_adjustment={"mild": 1.0, "moderate": 0.75, "severe": 0.5},
        hepatic_adjustment=0.3,
        monitoring_required=("CBC", "LFTs", "creatinine"),
        contraindications=("pregnancy", "severe renal impairment"),
    ),
    "aspirin": DosingGuideline(
        adult_dose_range=DoseRange(min=75, max=325, unit="mg", frequency="daily"),
        elderly_adjustment=1.0,
        max_daily_dose=4000,
        renal_adjustment={"mild": 1.0, "moderate": 1.0, "severe": 0.5},
        contraindications=("active GI bleeding", "severe asthma"),
    ),
    "sertraline": DosingGuideline(
        adult_dose_range=DoseRange(min=25, max=200, unit="mg", frequency="daily"),
        elderly_adjustment=0.75,
        max_daily_dose=200,
        renal_adjustment={"mild": 1.0, "moderate": 1.0, "severe": 0.75},
        hepatic_adjustment=0.5,
        monitoring_required=("mood changes", "suicidal ideation"),
    ),
    "tramadol": DosingGuideline(
        adult_dose_range=DoseRange(min=25, max=100, unit="mg", frequency="q4-6h"),
        elderly_adjustment=0.75,
        max_daily_dose=400,
        renal_adjustment={"mild": 1.0, "moderate": 0.75, "severe": 0.5},
        contraindications=("seizure disorder", "MAOIs"),
    ),
    "atorvastatin": DosingGuideline(
        adult_dose_range=DoseRange(min=10, max=80, unit="mg", frequency="daily"),
        elderly_adjustment=1.0,
        max_daily_dose=80,
        hepatic_adjustment=0.5,
        monitoring_required=("LFTs", "CK"),
        contraindications=("active liver disease",),
    ),
    "acetaminophen": DosingGuideline(
        adult_dose_range=DoseRange(min=325, max=1000, unit="mg", frequency="q4-6h"),
        elderly_adjustment=1.0,
        weight_based=True,
        weight_dose_mg_kg=15,
        max_daily_dose=4000,
        max_daily_dose_elderly=3000,
        hepatic_adjustment=0.5,
        contraindications=("severe hepatic impairment",),
    ),
    "ibuprofen": DosingGuideline(
        adult_dose_range=DoseRange(min=200, max=800, unit="mg", frequency="q6-8h"),
        elderly_adjustment=0.75,
        max_daily_dose=3200,
        renal_adjustment={"mild": 1.0, "moderate": 0.75, "severe": 0.5},
        contraindications=("active GI bleeding", "severe heart failure"),
    ),
}

# Frequency keyword -> administration pattern
FREQUENCY_PATTERNS = {
    "daily": FrequencyPattern(times_per_day=1, interval_hours=24),
    "once daily": FrequencyPattern(times_per_day=1, interval_hours=24),
    "bid": FrequencyPattern(times_per_day=2, interval_hours=12),
    "twice daily": FrequencyPattern(times_per_day=2, interval_hours=12),
    "tid": FrequencyPattern(times_per_day=3, interval_hours=8),
    "three times daily": FrequencyPattern(times_per_day=3, interval_hours=8),
    "qid": FrequencyPattern(times_per_day=4, interval_hours=6),
    "four times daily": FrequencyPattern(times_per_day=4, interval_hours=6),
    "q4h": FrequencyPattern(times_per_day=6, interval_hours=4),
    "q6h": FrequencyPattern(times_per_day=4, interval_hours=6),
    "q8h": FrequencyPattern(times_per_day=3, interval_hours=8),
    "q12h": FrequencyPattern(times_per_day=2, interval_hours=12),
    "weekly": FrequencyPattern(times_per_day=1 / 7, interval_hours=168),
    "prn": FrequencyPattern(times_per_day=None, interval_hours=None, as_needed=True),
}

# Common brand names -> generic names
BRAND_TO_GENERIC = {
    "coumadin": "warfarin",
    "advil": "ibuprofen",
    "motrin": "ibuprofen",
    "tylenol": "acetaminophen",
    "zoloft": "sertraline",
    "lipitor": "atorvastatin",
    "prilosec": "omeprazole",
    "ultram": "tramadol",
    "baby aspirin": "aspirin",
    "asa": "aspirin",
}


class ReferenceKnowledgeBase:
    """Read-only clinical reference tables.

    Built once and handed to every component. Each table can be replaced
    through the constructor to extend or narrow the rule set; the tables are
    exposed as read-only mappings.
    """

    def __init__(
        self,
        drug_interactions: Optional[Mapping[Tuple[str, str], InteractionRule]] = None,
        class_interactions: Optional[Mapping[Tuple[str, str], ClassInteractionRule]] = None,
        drug_classes: Optional[Mapping[str, str]] = None,
        therapeutic_classes: Optional[Mapping[str, str]] = None,
        high_risk_drugs: Optional[frozenset] = None,
        contraindications: Optional[Mapping[str, Tuple[ContraindicationRule, ...]]] = None,
        dosing_guidelines: Optional[Mapping[str, DosingGuideline]] = None,
        frequency_patterns: Optional[Mapping[str, FrequencyPattern]] = None,
        brand_to_generic: Optional[Mapping[str, str]] = None,
    ):
        self.drug_interactions = MappingProxyType(dict(
            DRUG_INTERACTIONS if drug_interactions is None else drug_interactions
        ))
        self.class_interactions = MappingProxyType(dict(
            CLASS_INTERACTIONS if class_interactions is None else class_interactions
        ))
        self.drug_classes = MappingProxyType(dict(
            DRUG_CLASSES if drug_classes is None else drug_classes
        ))
        self.therapeutic_classes = MappingProxyType(dict(
            THERAPEUTIC_CLASSES if therapeutic_classes is None else therapeutic_classes
        ))
        self.high_risk_drugs = frozenset(
            HIGH_RISK_DRUGS if high_risk_drugs is None else high_risk_drugs
        )
        self.contraindications = MappingProxyType({
            name: tuple(rules) for name, rules in
            (CONTRAINDICATIONS if contraindications is None else contraindications).items()
        })
        self.dosing_guidelines = MappingProxyType(dict(
            DOSING_GUIDELINES if dosing_guidelines is None else dosing_guidelines
        ))
        self.frequency_patterns = MappingProxyType(dict(
            FREQUENCY_PATTERNS if frequency_patterns is None else frequency_patterns
        ))
        self.brand_to_generic = MappingProxyType(dict(
            BRAND_TO_GENERIC if brand_to_generic is None else brand_to_generic
        ))
        logger.info(
            f"Knowledge base initialized with {len(self.drug_interactions)} drug-pair rules, "
            f"{len(self.class_interactions)} class rules, "
            f"{len(self.dosing_guidelines)} dosing guidelines"
        )

    # ---------- Classification ----------

    def classify_drug(self, drug_name: str) -> str:
        """Exact-name drug class lookup, 'other' when unknown"""
        return self.drug_classes.get(drug_name.lower(), "other")

    def get_therapeutic_class(self, drug_name: str) -> str:
        return self.therapeutic_classes.get(drug_name.lower(), "other")

    def therapeutic_class_order(self) -> List[str]:
        """Distinct therapeutic classes in table order"""
        return list(dict.fromkeys(self.therapeutic_classes.values()))

    def assess_interaction_potential(self, drug_name: str) -> str:
        return "high" if drug_name.lower() in self.high_risk_drugs else "moderate"

    # ---------- Interactions ----------

    def get_interaction(self, drug1: str, drug2: str) -> Optional[InteractionRule]:
        """Specific pair lookup, forward key first then reverse"""
        rule = self.drug_interactions.get((drug1, drug2))
        if rule is None:
            rule = self.drug_interactions.get((drug2, drug1))
        return rule

    def get_class_interaction(self, class1: str, class2: str) -> Optional[ClassInteractionRule]:
        rule = self.class_interactions.get((class1, class2))
        if rule is None:
            rule = self.class_interactions.get((class2, class1))
        return rule

    # ---------- Contraindications ----------

    def get_contraindications(self, drug_name: str) -> Tuple[ContraindicationRule, ...]:
        return self.contraindications.get(drug_name.lower(), ())

    # ---------- Dosing ----------

    def resolve_brand(self, drug_name: str) -> str:
        return self.brand_to_generic.get(drug_name, drug_name)

    def find_dosing_guideline(self, drug_name: str) -> Optional[Tuple[str, DosingGuideline]]:
        """Resolve a guideline by exact name, then brand mapping, then substring match.

        The substring match runs in both directions (``name in key`` or
        ``key in name``). When several keys match, the longest key wins and
        ties keep table order.
        """
        name = drug_name.strip().lower()
        if not name:
            return None

        if name in self.dosing_guidelines:
            return name, self.dosing_guidelines[name]

        generic = self.resolve_brand(name)
        if generic in self.dosing_guidelines:
            return generic, self.dosing_guidelines[generic]

        matches = [
            key for key in self.dosing_guidelines
            if name in key or key in name
        ]
        if not matches:
            return None
        best = max(matches, key=len)
        return best, self.dosing_guidelines[best]

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "drug_interactions": len(self.drug_interactions),
            "class_interactions": len(self.class_interactions),
            "drug_classes": len(self.drug_classes),
            "therapeutic_classes": len(self.therapeutic_class_order()),
            "high_risk_drugs": len(self.high_risk_drugs),
            "contraindication_drugs": len(self.contraindications),
            "dosing_guidelines": len(self.dosing_guidelines),
            "frequency_patterns": len(self.frequency_patterns),
            "brand_mappings": len(self.brand_to_generic),
        }


# Singleton instance
_knowledge_base: Optional[ReferenceKnowledgeBase] = None

def get_knowledge_base() -> ReferenceKnowledgeBase:
    """Get or create knowledge base singleton"""
    global _knowledge_base
    if _knowledge_base is None:
        _knowledge_base = ReferenceKnowledgeBase()
    return _knowledge_base
