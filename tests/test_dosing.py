"""
Medication Safety Review Engine - Dosage Validation Tests
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from medsafety.core.knowledge_base import FREQUENCY_PATTERNS, DOSING_GUIDELINES
from medsafety.core.models import ValidationStatus
from medsafety.dosing.calculator import DosageAdjustmentCalculator, parse_dosage


ADULT = {"demographics": {"age": 40, "weight_kg": 70}}
ELDERLY = {"demographics": {"age": 70, "weight_kg": 70}}


@pytest.fixture(scope="module")
def calculator():
    return DosageAdjustmentCalculator()


class TestParseDosage:
    """Test dose string parsing"""

    def test_dose_and_frequency(self):
        proposed = parse_dosage("500mg q6h", FREQUENCY_PATTERNS)
        assert proposed.dose == 500
        assert proposed.unit == "mg"
        assert proposed.frequency == "q6h"
        assert proposed.frequency_data.times_per_day == 4
        assert proposed.parsed

    def test_longest_frequency_keyword_wins(self):
        proposed = parse_dosage("1 g twice daily", FREQUENCY_PATTERNS)
        assert proposed.dose == 1
        assert proposed.unit == "g"
        assert proposed.frequency == "twice daily"
        assert proposed.frequency_data.times_per_day == 2

    def test_unknown_frequency(self):
        proposed = parse_dosage("500mg q4-6h", FREQUENCY_PATTERNS)
        assert proposed.dose == 500
        assert proposed.frequency is None
        assert proposed.parsed

    def test_decimal_dose(self):
        proposed = parse_dosage("Warfarin 2.5 MG daily", FREQUENCY_PATTERNS)
        assert proposed.dose == 2.5
        assert proposed.unit == "mg"

    @pytest.mark.parametrize("text", [None, "", "take as needed", "five tablets"])
    def test_unparseable(self, text):
        assert not parse_dosage(text, FREQUENCY_PATTERNS).parsed


class TestPatientAdjustments:
    """Test age, renal and hepatic factors"""

    def test_adult_has_no_adjustment(self, calculator):
        result = calculator.validate({"drug_name": "warfarin", "dose": "5mg daily"}, ADULT)
        assert result.patient_adjustments.overall_factor == 1.0
        assert result.patient_adjustments.reasons == []
        assert result.recommended_dose_range.min_dose == 2.5
        assert result.recommended_dose_range.max_dose == 10

    def test_elderly_reduction(self, calculator):
        result = calculator.validate({"drug_name": "warfarin", "dose": "5mg daily"}, ELDERLY)
        adjustments = result.patient_adjustments
        assert adjustments.age_factor == 0.75
        assert adjustments.reasons == ["Elderly patient (age 70): dose reduced by 25%"]
        assert result.recommended_dose_range.min_dose == pytest.approx(1.875, abs=0.01)
        assert result.recommended_dose_range.max_dose == pytest.approx(7.5)
        assert "Applied elderly dose adjustment" in result.decisions

    def test_elderly_without_reduction_has_no_reason(self, calculator):
        result = calculator.validate({"drug_name": "aspirin", "dose": "81mg daily"},
                                     {"demographics": {"age": 80}})
        assert result.patient_adjustments.age_factor == 1.0
        assert result.patient_adjustments.reasons == []

    def test_renal_categories(self, calculator):
        moderate = calculator.validate(
            {"drug_name": "warfarin", "dose": "5mg daily"},
            {"demographics": {"age": 40}, "lab_values": {"eGFR": {"value": 45}}},
        )
        assert moderate.patient_adjustments.renal_factor == 0.8
        assert moderate.patient_adjustments.reasons == [
            "Renal impairment (eGFR 45): dose reduced by 20%"
        ]

        mild = calculator.validate(
            {"drug_name": "warfarin", "dose": "5mg daily"},
            {"demographics": {"age": 40}, "lab_values": {"eGFR": {"value": 75}}},
        )
        assert mild.patient_adjustments.renal_factor == 1.0
        assert mild.patient_adjustments.reasons == []

    def test_combined_factors(self, calculator):
        result = calculator.validate(
            {"drug_name": "warfarin", "dose": "5mg daily"},
            {
                "demographics": {"age": 75},
                "lab_values": {"eGFR": {"value": 25}, "ALT": {"value": 100}},
            },
        )
        adjustments = result.patient_adjustments
        assert adjustments.overall_factor == pytest.approx(0.75 * 0.6 * 0.5)
        assert len(adjustments.reasons) == 3
        assert result.recommended_dose_range.max_dose == pytest.approx(2.25)
        assert result.validation_status == ValidationStatus.SUBOPTIMAL
        assert "exceeds recommended range" in result.explanation

    def test_hepatic_below_threshold_ignored(self, calculator):
        result = calculator.validate(
            {"drug_name": "sertraline", "dose": "50mg daily"},
            {"demographics": {"age": 40}, "lab_values": {"ALT": {"value": 80}}},
        )
        assert result.patient_adjustments.hepatic_factor == 1.0


class TestWeightBasedDosing:
    """Test weight-based window and elderly daily cap"""

    def test_acetaminophen_elderly(self, calculator):
        result = calculator.validate(
            {"drug_name": "acetaminophen", "dose": "500mg q4-6h"}, ELDERLY
        )
        recommended = result.recommended_dose_range
        assert result.patient_adjustments.weight_based_dose == pytest.approx(1050)
        assert recommended.min_dose == pytest.approx(840)
        assert recommended.max_dose == pytest.approx(1260)
        assert recommended.max_daily_dose == 3000
        assert recommended.weight_based
        assert result.validation_status == ValidationStatus.SUBOPTIMAL
        assert "below recommended range" in result.explanation
        assert "Applied weight-based dosing calculation" in result.decisions

    def test_adult_full_daily_cap(self, calculator):
        result = calculator.validate(
            {"drug_name": "acetaminophen", "dose": "1000mg q6h"}, ADULT
        )
        assert result.recommended_dose_range.max_daily_dose == 4000
        assert result.validation_status == ValidationStatus.APPROPRIATE
        assert result.confidence == 0.9

    def test_elderly_daily_cap_exceeded(self, calculator):
        result = calculator.validate(
            {"drug_name": "acetaminophen", "dose": "1000mg q6h"}, ELDERLY
        )
        assert result.validation_status == ValidationStatus.EXCESSIVE
        assert result.confidence == 0.95

    def test_unknown_weight_uses_adult_range(self, calculator):
        result = calculator.validate(
            {"drug_name": "acetaminophen", "dose": "500mg q6h"}, {"demographics": {"age": 40}}
        )
        assert result.patient_adjustments.weight_based_dose is None
        assert result.recommended_dose_range.min_dose == 325
        assert result.recommended_dose_range.max_dose == 1000

    def test_unknown_weight_ignores_patient_factors(self, calculator):
        result = calculator.validate(
            {"drug_name": "acetaminophen", "dose": "500mg q6h"},
            {"demographics": {"age": 40}, "lab_values": {"ALT": {"value": 100}}},
        )
        assert result.patient_adjustments.hepatic_factor == 0.5
        assert result.recommended_dose_range.min_dose == 325
        assert result.recommended_dose_range.max_dose == 1000
        assert result.validation_status == ValidationStatus.APPROPRIATE


class TestDoseClassification:
    """Test proposed dose against window and daily cap"""

    @pytest.mark.parametrize("dose,expected", [
        ("800mg q6h", ValidationStatus.APPROPRIATE),
        ("800mg q4h", ValidationStatus.EXCESSIVE),
        ("1200mg q4h", ValidationStatus.INAPPROPRIATE),
        ("100mg daily", ValidationStatus.SUBOPTIMAL),
        ("1000mg daily", ValidationStatus.SUBOPTIMAL),
        ("ibuprofen as needed", ValidationStatus.UNPARSEABLE),
    ])
    def test_ibuprofen(self, calculator, dose, expected):
        result = calculator.validate({"drug_name": "ibuprofen", "dose": dose}, ADULT)
        assert result.validation_status == expected

    def test_unparseable_requests_manual_check(self, calculator):
        result = calculator.validate({"drug_name": "warfarin", "dose": "five tablets"}, ADULT)
        assert result.validation_status == ValidationStatus.UNPARSEABLE
        assert result.confidence == 0.2
        assert "Manual dosage verification required" in result.follow_up

    def test_monitoring_recommendation(self, calculator):
        result = calculator.validate({"drug_name": "warfarin", "dose": "5mg daily"}, ADULT)
        assert result.validation_status == ValidationStatus.APPROPRIATE
        assert result.recommendations[-1] == "Monitor: INR, bleeding signs"
        assert result.monitoring_required == ["INR", "bleeding signs"]

    def test_free_text_drug(self, calculator):
        result = calculator.validate("Warfarin 5mg daily", ADULT)
        assert result.validation_status == ValidationStatus.APPROPRIATE
        assert result.proposed_dose.dose == 5


class TestGuidelineLookup:
    """Test guideline resolution"""

    def test_unknown_drug(self, calculator):
        result = calculator.validate({"drug_name": "unobtainium", "dose": "5mg daily"}, ADULT)
        assert result.validation_status == ValidationStatus.UNKNOWN
        assert result.confidence == 0.3
        assert result.recommended_dose_range is None
        assert result.follow_up == ["Manual dosage verification required"]
        assert result.limitations == ["No dosing guidelines available for unobtainium"]

    def test_empty_name_is_unknown(self, calculator):
        result = calculator.validate({"dose": "5mg daily"}, ADULT)
        assert result.validation_status == ValidationStatus.UNKNOWN

    def test_brand_name(self, calculator):
        result = calculator.validate({"name": "Tylenol", "dose": "1000mg q6h"}, ADULT)
        assert result.validation_status == ValidationStatus.APPROPRIATE
        assert "Matched guideline 'acetaminophen' for 'tylenol'" in result.decisions

    def test_guideline_tables_are_read_only(self, calculator):
        guideline = calculator.knowledge_base.dosing_guidelines["warfarin"]
        with pytest.raises(TypeError):
            guideline.renal_adjustment["severe"] = 1.0
        with pytest.raises(TypeError):
            calculator.knowledge_base.dosing_guidelines["warfarin"] = guideline
        assert guideline.renal_adjustment["severe"] == 0.6

    def test_substring_match(self, calculator):
        result = calculator.validate(
            {"generic_name": "acetaminophen extra strength", "dosage": "500mg q6h"}, ADULT
        )
        assert result.recommended_dose_range.weight_based


class TestDosageContraindications:
    """Test absolute contraindications overriding dose status"""

    def test_severe_hepatic(self, calculator):
        result = calculator.validate(
            {"drug_name": "atorvastatin", "dose": "20mg daily"},
            {"demographics": {"age": 50}, "lab_values": {"ALT": {"value": 150}}},
        )
        assert result.validation_status == ValidationStatus.CONTRAINDICATED
        assert result.confidence == 1.0
        assert result.contraindications == ["Severe hepatic impairment"]
        assert result.recommendations[:2] == [
            "Do not administer this medication",
            "Consult physician for alternatives",
        ]
        assert "Absolute contraindication detected" in result.warnings

    def test_seizure_disorder_overrides_unparseable(self, calculator):
        result = calculator.validate(
            {"drug_name": "tramadol", "dose": "as needed"},
            {"demographics": {"age": 50}, "conditions": [{"condition": "Epilepsy"}]},
        )
        assert result.validation_status == ValidationStatus.CONTRAINDICATED
        assert result.contraindications == ["History of seizure disorder"]

    @pytest.mark.parametrize("egfr", [0, 10, 14.9])
    def test_severe_renal(self, calculator, egfr):
        result = calculator.validate(
            {"drug_name": "methotrexate", "dose": "10mg weekly"},
            {"demographics": {"age": 50}, "lab_values": {"eGFR": {"value": egfr}}},
        )
        assert result.validation_status == ValidationStatus.CONTRAINDICATED
        assert result.contraindications == ["Severe renal impairment (eGFR < 15)"]

    def test_borderline_renal_not_contraindicated(self, calculator):
        result = calculator.validate(
            {"drug_name": "methotrexate", "dose": "5mg weekly"},
            {"demographics": {"age": 50}, "lab_values": {"eGFR": {"value": 15}}},
        )
        assert result.validation_status != ValidationStatus.CONTRAINDICATED
        assert result.contraindications == []


class TestAdjustmentMonotonicity:
    """Adjusted upper bound never exceeds the unadjusted one"""

    PATIENTS = [
        {"demographics": {"age": 80, "weight_kg": 70}},
        {"demographics": {"age": 40, "weight_kg": 70}, "lab_values": {"eGFR": {"value": 45}}},
        {"demographics": {"age": 40, "weight_kg": 70}, "lab_values": {"eGFR": {"value": 20}}},
        {"demographics": {"age": 40, "weight_kg": 70}, "lab_values": {"ALT": {"value": 100}}},
        {
            "demographics": {"age": 85, "weight_kg": 70},
            "lab_values": {"eGFR": {"value": 18}, "ALT": {"value": 110}},
        },
    ]

    @pytest.mark.parametrize("drug_name", sorted(DOSING_GUIDELINES))
    def test_upper_bound(self, calculator, drug_name):
        drug = {"drug_name": drug_name, "dose": "100mg daily"}
        baseline = calculator.validate(drug, ADULT).recommended_dose_range

        for patient in self.PATIENTS:
            adjusted = calculator.validate(drug, patient).recommended_dose_range
            assert adjusted.max_dose <= baseline.max_dose
            if baseline.max_daily_dose is not None:
                assert adjusted.max_daily_dose <= baseline.max_daily_dose


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
