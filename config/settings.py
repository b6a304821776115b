"""
Medication Safety Review Engine - Configuration Settings
"""
import os

# API Settings
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
API_TITLE = "Medication Safety Review Engine"
API_VERSION = "1.0.0"
ENGINE_VERSION = "3.0.0"

# Task envelope settings
DOSAGE_TASK_TYPE = "dosage_validation"
BATCH_REVIEW_TASK_TYPE = "batch_prescription_review"
DEFAULT_TIMEOUT_MS = int(os.getenv("DOSAGE_TIMEOUT_MS", "2000"))

# Response metadata sources
DOSAGE_SOURCE = "clinical_dosing_guidelines"
BATCH_REVIEW_SOURCE = "clinical_rule_engine"

# Patient adjustment thresholds
ELDERLY_AGE = 65
RENAL_SEVERE_EGFR = 30       # eGFR < 30 -> severe
RENAL_MODERATE_EGFR = 60     # eGFR < 60 -> moderate
HEPATIC_ALT_THRESHOLD = 80   # ALT > 80 -> hepatic adjustment
CONTRAINDICATION_EGFR = 30   # batch screen: renal_impairment contraindication
SEVERE_RENAL_EGFR = 15       # dosage screen: severe renal impairment
SEVERE_HEPATIC_ALT = 120     # dosage screen: severe hepatic impairment

# Weight-based window (fraction of the computed mg dose)
WEIGHT_BASED_TOLERANCE = 0.2

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
