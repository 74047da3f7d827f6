"""Pin material filtering by special requirements and seat/obturator compatibility."""

import pytest

from valvespec.config_loader import MaterialRole
from valvespec.logic.material_filter import MaterialRequirements, filter_candidates, filter_materials
from valvespec.logic.state import FireTestOption, ValveConfiguration


@pytest.fixture
def api_6d_materials(store):
    return store.get_material_compatibility("API_6D")


def codes(result, role):
    return [m.code for m in result.candidates[role]]


class TestRequirementFilters:
    def test_no_requirements_keeps_everything(self, api_6d_materials):
        result = filter_materials(api_6d_materials, MaterialRequirements())
        assert not result.is_blocked
        assert len(result.candidates["body"]) == 5
        assert len(result.candidates["seat"]) == 6

    def test_nace_drops_unqualified_bodies(self, api_6d_materials):
        result = filter_materials(api_6d_materials, MaterialRequirements(nace_required=True))
        assert codes(result, "body") == ["ASTM_A352_LCC", "ASTM_A351_CF8M", "ASTM_A995_4A"]
        assert "ASTM_A182_F6A" not in codes(result, "stem")

    def test_fire_test_keeps_only_metal_seats(self, api_6d_materials):
        result = filter_materials(api_6d_materials, MaterialRequirements(fire_test_required=True))
        assert codes(result, "seat") == ["METAL", "STELLITE"]

    def test_low_emission(self, api_6d_materials):
        result = filter_materials(api_6d_materials, MaterialRequirements(low_emission_required=True))
        assert "ASTM_A105" not in codes(result, "body")
        assert "NYLON" not in codes(result, "seat")

    def test_requirements_combine(self, api_6d_materials):
        requirements = MaterialRequirements(nace_required=True, fire_test_required=True, low_emission_required=True)
        result = filter_materials(api_6d_materials, requirements)
        assert codes(result, "body") == ["ASTM_A352_LCC", "ASTM_A351_CF8M", "ASTM_A995_4A"]
        assert codes(result, "seat") == ["METAL", "STELLITE"]
        assert codes(result, "obturator") == ["ASTM_A182_F316", "ASTM_A182_F51", "INCONEL_625"]


class TestSeatCompatibility:
    def test_either_side_declares_compatibility(self, api_6d_materials):
        result = filter_materials(api_6d_materials, MaterialRequirements(), obturator_code="ASTM_A182_F316")
        # PTFE lists the ball; the ball lists RPTFE and PEEK
        assert codes(result, "seat") == ["PTFE", "RPTFE", "PEEK"]

    def test_seat_side_only(self, api_6d_materials):
        result = filter_materials(api_6d_materials, MaterialRequirements(), obturator_code="INCONEL_625")
        assert codes(result, "seat") == ["METAL"]

    def test_empty_result_blocks_role(self, api_6d_materials):
        requirements = MaterialRequirements(fire_test_required=True)
        result = filter_materials(api_6d_materials, requirements, obturator_code="ASTM_A182_F316")
        assert result.candidates["seat"] == []
        assert result.blocked_roles == ["seat"]
        assert result.is_blocked

    def test_obturator_only_affects_seats(self, api_6d_materials):
        result = filter_materials(api_6d_materials, MaterialRequirements(), obturator_code="ASTM_A182_F316")
        assert len(result.candidates["body"]) == 5


class TestHelpers:
    def test_requirements_from_configuration(self):
        config = ValveConfiguration(
            nace_compliant=True,
            fire_test=FireTestOption.TESTADA_A_FOGO,
            low_fugitive_emission=False,
        )
        requirements = MaterialRequirements.from_configuration(config)
        assert requirements.nace_required
        assert requirements.fire_test_required
        assert not requirements.low_emission_required

    def test_filter_candidates_single_role(self, api_6d_materials):
        stems = filter_candidates(MaterialRole.STEM, api_6d_materials, MaterialRequirements(nace_required=True))
        assert [m.code for m in stems] == ["ASTM_A182_F316", "ASTM_A182_F51", "INCONEL_625"]

    def test_roles_subset(self, api_6d_materials):
        result = filter_materials(api_6d_materials, MaterialRequirements(), roles=[MaterialRole.BODY])
        assert list(result.candidates) == ["body"]

    def test_no_materials_blocks_every_role(self):
        result = filter_materials([], MaterialRequirements())
        assert result.blocked_roles == ["body", "obturator", "seat", "stem"]

    def test_to_dict(self, api_6d_materials):
        data = filter_materials(api_6d_materials, MaterialRequirements(fire_test_required=True)).to_dict()
        assert [m["code"] for m in data["candidates"]["seat"]] == ["METAL", "STELLITE"]
        assert data["blocked_roles"] == []
