"""
Medication Safety Review Engine - API Tests
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import logging

import pytest
from fastapi.testclient import TestClient

from medsafety.api.main import app


@pytest.fixture(scope="module")
def client():
    return TestClient(app)


class TestHealthEndpoints:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "operational"
        assert response.json()["engine_version"] == "3.0.0"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["dosing_guidelines_loaded"] == 8

    def test_statistics(self, client):
        response = client.get("/knowledge-base/statistics")
        assert response.status_code == 200
        stats = response.json()
        assert stats["dosing_guidelines"] == 8
        assert stats["frequency_patterns"] == 14


class TestTaskEndpoints:

    def test_batch_review(self, client):
        response = client.post("/tasks/batch-review", json={
            "task_id": "http-1",
            "task_type": "batch_prescription_review",
            "input": {"medications": ["warfarin 5mg daily", "aspirin 325mg daily"]},
        })
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "complete"
        assert body["result"]["summary"]["review_status"] == "urgent"

    def test_batch_review_empty_list(self, client):
        response = client.post("/tasks/batch-review", json={
            "task_id": "http-2",
            "input": {"medications": []},
        })
        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_dosage_validation(self, client):
        response = client.post("/tasks/dosage-validation", json={
            "taskId": "http-3",
            "taskType": "dosage_validation",
            "input": {
                "drug": {"drug_name": "ibuprofen", "dose": "800mg q4h"},
                "patientContext": {"demographics": {"age": 50}},
            },
        })
        assert response.status_code == 200
        body = response.json()
        assert body["task_id"] == "http-3"
        assert body["result"]["validation_status"] == "EXCESSIVE"

    def test_failure_status_is_logged(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="medsafety.api.task_routes"):
            response = client.post("/tasks/batch-review", json={
                "task_id": "http-6",
                "input": {"medications": []},
            })
        assert response.status_code == 400
        assert any(
            "http-6" in record.getMessage() and "HTTP 400" in record.getMessage()
            for record in caplog.records
        )

    def test_dosage_validation_malformed_patient(self, client):
        response = client.post("/tasks/dosage-validation", json={
            "task_id": "http-5",
            "task_type": "dosage_validation",
            "input": {
                "drug": {"drug_name": "warfarin", "dose": "5mg daily"},
                "patient_context": {"lab_values": ["eGFR"]},
            },
        })
        assert response.status_code == 400
        body = response.json()
        assert body["status"] == "failed"
        assert body["recommendations"]["follow_up"] == ["Manual dosage verification required"]

    def test_dosage_validation_wrong_type(self, client):
        response = client.post("/tasks/dosage-validation", json={
            "task_id": "http-4",
            "task_type": "batch_prescription_review",
            "input": {},
        })
        assert response.status_code == 400
        body = response.json()
        assert body["status"] == "failed"
        assert body["error"] == "Invalid task type: batch_prescription_review"


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
