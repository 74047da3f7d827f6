"""Pin norm pack loading and helper behavior."""

import pytest
from pydantic import ValidationError

from valvespec.config_loader import (
    CatalogStatus,
    MaterialRole,
    NormConstraint,
    NormPack,
    NormType,
    TorqueConstants,
    get_available_packs,
    get_norm_pack_summary,
    load_norm_pack,
)


class TestPackLoading:
    def test_load_returns_norm_pack(self, pack):
        assert isinstance(pack, NormPack)

    def test_pack_metadata(self, pack):
        assert pack.pack_id == "imex"
        assert pack.version == "2.0.0"
        assert pack.status == CatalogStatus.ACTIVE

    def test_exactly_one_active_catalog_version(self, pack):
        active = [v for v in pack.catalog_versions if v.status == CatalogStatus.ACTIVE]
        assert len(active) == 1
        assert active[0].version == "2.0.0"

    def test_standards_keep_catalog_order(self, pack):
        codes = [n.code for n in pack.standards]
        assert codes.index("API_6D") < codes.index("ISO_14313")
        assert codes[0] == "API_6D"

    def test_domain_anchors_are_expanded(self, pack):
        api_6d = pack.get_norm("API_6D")
        assert api_6d.type == NormType.CONSTRUCTION
        assert "600" in api_6d.domains["pressure_class"]
        assert api_6d.domains["flange_face"] == ["RF", "RTJ"]

    def test_constraint_if_alias(self, pack):
        constraint = pack.get_norm("API_6D").constraints[0]
        assert constraint.condition == {"end_type": "FLANGEADO"}
        assert constraint.block == {"flange_face": ["FF"]}

    def test_pressure_class_codes_are_strings(self, pack):
        codes = {i.code: i.imex_code for i in pack.get_catalog("pressure_classes")}
        assert codes["2500"] == "Y"
        assert codes["900"] == "A"
        assert codes["150"] == "1"

    def test_material_records_have_roles(self, pack):
        materials = pack.material_compatibility["API_6D"]
        roles = {m.role for m in materials}
        assert roles == set(MaterialRole)

    def test_nace_qualifications(self, pack):
        nace = pack.get_norm("NACE_MR0175_2015")
        assert nace.material_qualifications["ASTM_A216_WCB"].qualified is False
        assert nace.material_qualifications["ASTM_A351_CF8M"].qualified is True

    def test_torque_constants(self, pack):
        assert pack.torque.safety_margin == 1.15
        assert pack.torque.coefficient_for("METAL") == 0.25
        assert pack.torque.coefficient_for("unknown") == 0.15

    def test_rules_loaded(self, pack):
        ids = [r.id for r in pack.rules]
        assert ids[0] == "R001"
        assert len(ids) == 12

    def test_rule_allowed_list_splits_on_semicolon(self, pack):
        r003 = next(r for r in pack.rules if r.id == "R003")
        assert r003.allowed_list() == ["WAFER", "LUG", "FLANGEADO", "FLANGEADO_RF"]


class TestWildcards:
    def test_wildcard_norm_applies_to_any_valve(self, pack):
        flange = pack.get_norm("ASME_B16.5")
        assert flange.applies_to_valve("CONTROLE")
        assert flange.applies_to_service("WELLHEAD")

    def test_scoped_norm(self, pack):
        api_6d = pack.get_norm("API_6D")
        assert api_6d.applies_to_valve("ESFERA")
        assert not api_6d.applies_to_valve("BORBOLETA")
        assert not api_6d.applies_to_service("PROCESS")


class TestCatalogLookup:
    def test_find_by_code(self, pack):
        assert pack.find_catalog_item("valve_models", "ESFERA").imex_code == "TRUF"

    def test_find_falls_back_to_imex_code(self, pack):
        assert pack.find_catalog_item("valve_models", "TRUF").code == "ESFERA"

    def test_unknown_returns_none(self, pack):
        assert pack.find_catalog_item("valve_models", "NOPE") is None
        assert pack.find_catalog_item("valve_models", None) is None

    def test_get_norm_unknown(self, pack):
        assert pack.get_norm("API_999") is None
        assert pack.get_norm(None) is None


class TestPackDiscovery:
    def test_imex_pack_discovered(self):
        packs = get_available_packs()
        assert "imex" in [p["id"] for p in packs]

    def test_pack_has_metadata(self):
        imex = next(p for p in get_available_packs() if p["id"] == "imex")
        assert imex["company"] == "IMEX Solutions"
        assert imex["status"] == "ACTIVE"

    def test_summary(self, pack):
        summary = get_norm_pack_summary(pack)
        assert summary["pack"]["id"] == "imex"
        assert summary["rules_count"] == 12
        assert summary["catalog_counts"]["valve_models"] == 11


class TestLoaderErrors:
    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_norm_pack(config_path=str(tmp_path / "missing.yaml"))

    def test_malformed_standard_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("standards:\n  - code: X\n    type: NOT_A_TYPE\n", encoding="utf-8")
        with pytest.raises(ValidationError):
            load_norm_pack(config_path=str(path))

    def test_minimal_pack_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("pack:\n  id: tiny\n", encoding="utf-8")
        tiny = load_norm_pack(config_path=str(path))
        assert tiny.pack_id == "tiny"
        assert tiny.status == CatalogStatus.DRAFT
        assert tiny.standards == []
        assert tiny.torque == TorqueConstants()

    def test_env_path_override(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("pack:\n  id: from_env\n", encoding="utf-8")
        monkeypatch.setenv("NORM_PACK_PATH", str(path))
        assert load_norm_pack().pack_id == "from_env"


class TestConstraintModel:
    def test_populate_by_field_name(self):
        constraint = NormConstraint(condition={"pressure_class": "2500"}, block={"flange_face": ["RF"]})
        assert constraint.severity == "BLOCK"
        assert constraint.condition == {"pressure_class": "2500"}
