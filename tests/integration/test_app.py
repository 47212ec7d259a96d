"""
Integration tests for the FastAPI wrapper.
"""

import pytest
from fastapi.testclient import TestClient

from app import app


GAP = {"type": "coverage", "severity": "high", "recommendedArchetype": "trail_shoe"}


@pytest.fixture
def client():
    """Test client for the app."""
    return TestClient(app)


class TestHealth:
    """Tests for health endpoints."""

    def test_root(self, client):
        """Root reports healthy."""
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health_alias(self, client):
        """/health mirrors the root."""
        assert client.get("/health").json() == client.get("/").json()


class TestExtract:
    """Tests for POST /extract."""

    def test_extract_applies_proposal(self, client):
        """Signals are proposed and applied to the submitted profile."""
        response = client.post("/extract", json={"text": "I have wide feet and overpronate"})

        assert response.status_code == 200
        body = response.json()
        names = [u["name"] for u in body["proposal"]["updates"]]
        assert names == ["foot_width_volume", "stability_need"]
        assert body["applied"] == names
        assert body["profile"]["signals"]["foot_width_volume"]["value"] == "wide"

    def test_extract_respects_stored_profile(self, client):
        """Explicit experience from the wizard is not overwritten."""
        response = client.post("/extract", json={
            "text": "I'm new to running",
            "profile": {"firstName": "Sam", "experience": "advanced"},
        })
        body = response.json()

        assert "experience_level" not in body["applied"]
        assert body["profile"]["signals"]["experience_level"]["value"] == "advanced"

    def test_extract_requires_text(self, client):
        """A missing text field is a validation error."""
        assert client.post("/extract", json={}).status_code == 422


class TestRoute:
    """Tests for POST /route."""

    def test_nothing_stored_is_conflict(self, client):
        """No requests and no gap restarts the wizard."""
        response = client.post("/route", json={"profile": {"firstName": "Sam"}})

        assert response.status_code == 409
        assert response.json()["detail"]["restartStep"] == "basics"

    def test_discovery(self, client):
        """Shoe requests route to discovery."""
        response = client.post("/route", json={
            "profile": {"firstName": "Sam"},
            "shoes": [{"shoeId": "a", "runTypes": ["all_runs"]}],
            "shoeRequests": [{"archetype": "race_shoe"}],
            "gap": GAP,
        })
        body = response.json()

        assert body["mode"] == "discovery"
        assert body["payload"]["shoeRequests"][0]["archetype"] == "race_shoe"
        assert body["payload"]["currentShoes"][0]["sentiment"] == "neutral"

    def test_analysis(self, client):
        """A gap alone routes to analysis."""
        body = client.post("/route", json={"profile": {}, "gap": GAP}).json()

        assert body["mode"] == "analysis"
        assert body["payload"]["gap"]["type"] == "coverage"

    def test_malformed_artifacts_are_conflict(self, client):
        """Unusable requests and a shapeless gap restart the wizard."""
        response = client.post("/route", json={
            "profile": {},
            "shoeRequests": [{"archetype": "bogus"}],
            "gap": {"foo": "bar"},
        })

        assert response.status_code == 409
