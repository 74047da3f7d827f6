"""Pin draft records and the specification status lifecycle."""

import pytest

from valvespec.errors import InvalidStatusTransition, PublicationBlockedError
from valvespec.logic.lifecycle import ALLOWED_TRANSITIONS, build_draft_record, transition_status
from valvespec.logic.state import FireTestOption, SpecStatus


class TestDraftRecord:
    def test_complete_configuration_is_draft(self, pack, scenario_config):
        record = build_draft_record(scenario_config, pack)
        assert record.status == SpecStatus.DRAFT
        assert record.is_complete
        assert record.missing_fields == []
        assert record.imex_code == "TRUF.0806.FRF.WCB.PT.0L0000-NEW"

    def test_partial_configuration_is_incompleto(self, pack, scenario_config):
        scenario_config.seat_material = None
        record = build_draft_record(scenario_config, pack)
        assert record.status == SpecStatus.INCOMPLETO
        assert record.missing_fields == ["seat_material"]
        assert "???" in record.imex_code

    def test_empty_configuration_still_gets_a_code(self, pack, empty_config):
        record = build_draft_record(empty_config, pack)
        assert record.status == SpecStatus.INCOMPLETO
        assert record.imex_code.endswith("-NEW")

    def test_to_dict(self, pack, scenario_config):
        data = build_draft_record(scenario_config, pack).to_dict()
        assert data["status"] == "DRAFT"
        assert data["is_complete"] is True


class TestTransitions:
    def test_submit_with_publishable_result(self, validator, scenario_config):
        publication = validator.validate(scenario_config)
        assert transition_status(SpecStatus.DRAFT, SpecStatus.SUBMITTED, publication) == SpecStatus.SUBMITTED

    def test_submit_without_validation_refused(self):
        with pytest.raises(InvalidStatusTransition) as excinfo:
            transition_status("DRAFT", "SUBMITTED")
        assert excinfo.value.reason == "publication validation required"

    def test_submit_blocked_publication(self, validator, scenario_config):
        scenario_config.fire_test = FireTestOption.TESTADA_A_FOGO
        publication = validator.validate(scenario_config)
        with pytest.raises(PublicationBlockedError) as excinfo:
            transition_status(SpecStatus.DRAFT, SpecStatus.SUBMITTED, publication)
        assert excinfo.value.blocked_by == ["FIRE_001"]

    def test_approve_and_publish(self):
        assert transition_status("SUBMITTED", "APPROVED") == SpecStatus.APPROVED
        assert transition_status("APPROVED", "PUBLISHED") == SpecStatus.PUBLISHED

    def test_rejected_reopens_as_draft(self):
        assert transition_status("SUBMITTED", "REJECTED") == SpecStatus.REJECTED
        assert transition_status("REJECTED", "DRAFT") == SpecStatus.DRAFT

    def test_incompleto_cannot_be_promoted_by_hand(self, empty_config):
        assert empty_config.missing_fields()
        with pytest.raises(InvalidStatusTransition):
            transition_status("INCOMPLETO", "DRAFT")

    def test_completing_fields_makes_the_draft(self, pack, scenario_config):
        scenario_config.stem_material = None
        assert build_draft_record(scenario_config, pack).status == SpecStatus.INCOMPLETO
        scenario_config.stem_material = "ASTM_A182_F6A"
        assert build_draft_record(scenario_config, pack).status == SpecStatus.DRAFT

    @pytest.mark.parametrize("target", list(SpecStatus))
    def test_published_is_final(self, target):
        with pytest.raises(InvalidStatusTransition):
            transition_status(SpecStatus.PUBLISHED, target)

    @pytest.mark.parametrize("current,target", [
        ("DRAFT", "PUBLISHED"),
        ("DRAFT", "APPROVED"),
        ("INCOMPLETO", "SUBMITTED"),
        ("APPROVED", "DRAFT"),
        ("REJECTED", "PUBLISHED"),
    ])
    def test_skipping_steps_refused(self, current, target):
        with pytest.raises(InvalidStatusTransition):
            transition_status(current, target)

    def test_unknown_status(self):
        with pytest.raises(ValueError):
            transition_status("DRAFT", "ARCHIVED")

    def test_every_status_has_an_entry(self):
        assert set(ALLOWED_TRANSITIONS) == set(SpecStatus)
