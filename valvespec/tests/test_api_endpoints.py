"""API endpoint tests: status codes, fail-closed mapping and payload shapes.

Engine components are swapped on the module with unittest.mock.patch;
the real norm pack is used unless a test injects a broken store.
"""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

import valvespec.main as main
from valvespec.logic.decision_log import DecisionLog
from valvespec.logic.norm_resolver import NormResolver
from valvespec.logic.publication import PublicationValidator


def _patched_engine(store, resolver, validator):
    return patch.multiple(
        main,
        store=store,
        resolver=resolver,
        validator=validator,
        decision_log=DecisionLog(),
    )


@pytest.fixture
def client(store, resolver, validator):
    """App wired to the real pack through the shared test store."""
    with _patched_engine(store, resolver, validator):
        yield TestClient(main.app)


@pytest.fixture
def broken_client(broken_store):
    """App whose norm pack can never be loaded."""
    resolver = NormResolver(broken_store)
    with _patched_engine(broken_store, resolver, PublicationValidator(broken_store, resolver)):
        yield TestClient(main.app)


# =============================================================================
# SYSTEM
# =============================================================================

class TestSystem:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "version" in response.json()

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_system_health(self, client):
        data = client.get("/system/health").json()
        assert data["status"] == "HEALTHY"
        assert any(p["id"] == "imex" for p in data["packs"])

    def test_system_health_blocked(self, broken_client):
        data = broken_client.get("/system/health").json()
        assert data["status"] == "BLOCKED"
        assert data["is_healthy"] is False

    def test_catalog(self, client):
        data = client.get("/catalog/valve_models").json()
        assert data["category"] == "valve_models"
        assert any(item["code"] == "ESFERA_FLOAT" for item in data["items"])

    def test_unknown_catalog(self, client):
        assert client.get("/catalog/flavours").status_code == 404

    def test_catalog_unavailable(self, broken_client):
        assert broken_client.get("/catalog/valve_models").status_code == 503


# =============================================================================
# NORMS / MATERIALS / RULES
# =============================================================================

class TestNorms:
    def test_resolve(self, client):
        response = client.post("/norms/resolve", json={"valve_type": "ESFERA", "service_type": "PIPELINE"})
        assert response.status_code == 200
        data = response.json()
        assert data["primary_standard"] == "API_6D"
        assert data["is_valid"] is True
        assert len(main.decision_log.entries()) == 1

    def test_resolve_unavailable_fails_closed(self, broken_client):
        data = broken_client.post("/norms/resolve", json={"valve_type": "ESFERA", "service_type": "PIPELINE"}).json()
        assert data["is_valid"] is False
        assert data["error"]

    def test_unexpected_failure_is_500(self, client):
        failing = MagicMock()
        failing.resolve.side_effect = RuntimeError("store exploded")
        with patch.object(main, "resolver", failing):
            response = client.post("/norms/resolve", json={"valve_type": "ESFERA", "service_type": "PIPELINE"})
        assert response.status_code == 500
        assert response.json()["detail"] == "store exploded"

    def test_constraints(self, client, scenario_dict):
        response = client.post("/norms/constraints", json={"configuration": scenario_dict, "primary_norm": "API_6D"})
        assert response.status_code == 200
        assert "is_valid" in response.json()

    def test_numeric_diameter_inside_domain(self, client, scenario_dict):
        scenario_dict["diameter_nps"] = 8
        data = client.post("/norms/constraints", json={"configuration": scenario_dict}).json()
        assert not any(e["field"] == "diameter_nps" for e in data["errors"])

    def test_bad_enum_is_400(self, client, scenario_dict):
        scenario_dict["valve_type"] = "FAUCET"
        response = client.post("/norms/constraints", json={"configuration": scenario_dict})
        assert response.status_code == 400

    def test_fire_test_polymer_seat(self, client):
        response = client.post("/norms/fire-test", json={
            "valve_type": "ESFERA", "body_material": "ASTM_A216_WCB", "seat_material": "PTFE", "pressure_class": 600,
        })
        assert response.json()["is_valid"] is False

    def test_fire_test_metal_seat(self, client):
        data = client.post("/norms/fire-test", json={
            "valve_type": "ESFERA", "body_material": "ASTM_A216_WCB", "seat_material": "METAL", "pressure_class": "600",
        }).json()
        assert data["is_valid"] is True
        assert data["applicable_norms"] == ["API_607_2016"]


class TestMaterials:
    def test_filter(self, client, scenario_dict):
        data = client.post("/materials/filter", json={"configuration": scenario_dict}).json()
        assert data["primary_standard"] == "API_6D"
        assert set(data["candidates"]) >= {"body", "seat"}

    def test_filter_unavailable(self, broken_client, scenario_dict):
        response = broken_client.post("/materials/filter", json={"configuration": scenario_dict})
        assert response.status_code == 503


class TestRulesAndCode:
    def test_evaluate(self, client, scenario_dict):
        data = client.post("/rules/evaluate", json=scenario_dict).json()
        assert data["is_valid"] is True
        assert data["errors"] == {}

    def test_evaluate_unavailable(self, broken_client, scenario_dict):
        assert broken_client.post("/rules/evaluate", json=scenario_dict).status_code == 503

    def test_build_code(self, client, scenario_dict):
        data = client.post("/imex/build", json=scenario_dict).json()
        assert data["value"] == "TRUF.0806.FRF.WCB.PT.0L0000-NEW"

    def test_build_code_unavailable(self, broken_client, scenario_dict):
        assert broken_client.post("/imex/build", json=scenario_dict).status_code == 503


# =============================================================================
# PUBLICATION / DRAFTS
# =============================================================================

class TestPublication:
    def test_validate(self, client, scenario_dict):
        data = client.post("/publication/validate", json={"configuration": scenario_dict}).json()
        assert data["can_publish"] is True
        assert data["coverage_percent"] == 100.0

    def test_validate_sil_with_calculation(self, client, scenario_dict):
        scenario_dict["sil_certification"] = "SIL2"
        data = client.post("/publication/validate", json={
            "configuration": scenario_dict, "sil": {"lambda_du": 5e-7},
        }).json()
        assert data["can_publish"] is True

    def test_validate_sil_without_calculation(self, client, scenario_dict):
        scenario_dict["sil_certification"] = "SIL2"
        data = client.post("/publication/validate", json={"configuration": scenario_dict}).json()
        assert data["blocked_by"] == ["SIL_001"]

    def test_submit(self, client, scenario_dict):
        data = client.post("/publication/submit", json={"configuration": scenario_dict}).json()
        assert data["success"] is True
        assert data["spec_code"].startswith("IMEX-ESFERA-")

    def test_submit_blocked_is_409(self, client, scenario_dict):
        scenario_dict["fire_test"] = "TESTADA_A_FOGO"
        response = client.post("/publication/submit", json={"configuration": scenario_dict})
        assert response.status_code == 409
        assert response.json()["detail"]["success"] is False

    def test_submit_unavailable_is_409(self, broken_client, scenario_dict):
        response = broken_client.post("/publication/submit", json={"configuration": scenario_dict})
        assert response.status_code == 409


class TestDrafts:
    def test_create(self, client, scenario_dict):
        data = client.post("/drafts", json=scenario_dict).json()
        assert data["status"] == "DRAFT"

    def test_create_refused_when_blocked(self, broken_client, scenario_dict):
        assert broken_client.post("/drafts", json=scenario_dict).status_code == 503

    def test_submit_transition(self, client, scenario_dict):
        response = client.post("/drafts/transition", json={
            "current_status": "DRAFT", "target_status": "SUBMITTED", "configuration": scenario_dict,
        })
        assert response.json() == {"status": "SUBMITTED"}

    def test_submit_transition_without_configuration(self, client):
        response = client.post("/drafts/transition", json={"current_status": "DRAFT", "target_status": "SUBMITTED"})
        assert response.status_code == 409

    def test_incompleto_cannot_be_promoted(self, client):
        response = client.post("/drafts/transition", json={"current_status": "INCOMPLETO", "target_status": "DRAFT"})
        assert response.status_code == 409

    def test_published_is_final(self, client):
        response = client.post("/drafts/transition", json={"current_status": "PUBLISHED", "target_status": "DRAFT"})
        assert response.status_code == 409

    def test_unknown_status(self, client):
        response = client.post("/drafts/transition", json={"current_status": "DRAFT", "target_status": "ARCHIVED"})
        assert response.status_code == 400


# =============================================================================
# CALCULATORS / DECISIONS
# =============================================================================

class TestCalculators:
    def test_torque(self, client):
        data = client.post("/calculate/torque", json={"diameter": "4", "pressure_class": 300, "seat_material": "PTFE"}).json()
        assert data["coefficient"] == 0.12
        assert data["unit"] == "Nm"

    def test_torque_invalid_diameter(self, client):
        response = client.post("/calculate/torque", json={"diameter": "abc", "pressure_class": 300})
        assert response.status_code == 400

    def test_sil_defaults(self, client):
        data = client.post("/calculate/sil", json={}).json()
        assert data["achieved"] == "SIL1"

    def test_sil_negative_input(self, client):
        assert client.post("/calculate/sil", json={"lambda_du": -1}).status_code == 400


class TestDecisions:
    def test_filter_by_type(self, client):
        client.post("/calculate/sil", json={})
        client.post("/norms/resolve", json={"valve_type": "ESFERA", "service_type": "PIPELINE"})
        data = client.get("/decisions", params={"decision_type": "CALCULATION"}).json()
        assert len(data["entries"]) == 1
        assert data["entries"][0]["decision_type"] == "CALCULATION"

    def test_unknown_type(self, client):
        assert client.get("/decisions", params={"decision_type": "GUESS"}).status_code == 400
