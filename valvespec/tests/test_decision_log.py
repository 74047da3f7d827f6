"""Pin the decision audit trail."""

from valvespec.logic.decision_log import DecisionEntry, DecisionLog, DecisionType


class TestDecisionLog:
    def test_record_and_list(self):
        log = DecisionLog()
        entry = log.record(DecisionType.NORM_SELECTION, "API_6D", "Primary construction norm", source_norm="API_6D")
        assert len(log) == 1
        assert log.entries() == [entry]
        assert entry.source_norm == "API_6D"

    def test_details_kept(self):
        log = DecisionLog()
        entry = log.record("VALIDATION", "BLOCKED", "Coverage 80%", blocked_by=["ACT_001"])
        assert entry.decision_type == DecisionType.VALIDATION
        assert entry.details == {"blocked_by": ["ACT_001"]}

    def test_filter_by_type_and_spec_code(self):
        log = DecisionLog()
        log.record(DecisionType.CALCULATION, "120.0 Nm", "torque")
        log.record(DecisionType.VALIDATION, "PUBLISHED", "passed", spec_code="IMEX-ESFERA-1")
        log.record(DecisionType.VALIDATION, "PUBLISHED", "passed", spec_code="IMEX-ESFERA-2")
        assert len(log.entries(DecisionType.VALIDATION)) == 2
        assert [e.spec_code for e in log.entries(spec_code="IMEX-ESFERA-2")] == ["IMEX-ESFERA-2"]
        assert log.entries(DecisionType.MATERIAL_CHOICE) == []

    def test_oldest_entries_dropped(self):
        log = DecisionLog(max_entries=3)
        for i in range(5):
            log.record(DecisionType.CALCULATION, str(i), "run")
        assert [e.decision for e in log.entries()] == ["2", "3", "4"]

    def test_entries_returns_a_copy(self):
        log = DecisionLog()
        log.record(DecisionType.CALCULATION, "x", "y")
        log.entries().clear()
        assert len(log) == 1

    def test_clear(self):
        log = DecisionLog()
        log.record(DecisionType.CALCULATION, "x", "y")
        log.clear()
        assert len(log) == 0


class TestDecisionEntry:
    def test_dict_roundtrip(self):
        entry = DecisionEntry(DecisionType.MATERIAL_CHOICE, "ASTM_A351_CF8M", "Only admissible body material",
                              source_norm="API_6D", details={"role": "body"})
        restored = DecisionEntry.from_dict(entry.to_dict())
        assert restored == entry

    def test_to_dict_serializes_type_and_time(self):
        data = DecisionEntry(DecisionType.TEST_REQUIREMENT, "API_607", "Fire tested").to_dict()
        assert data["decision_type"] == "TEST_REQUIREMENT"
        assert "T" in data["created_at"]
