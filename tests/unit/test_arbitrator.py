"""Tests for priority arbitration between sources."""

from plurules.core.types import (
    PersistedExtraction,
    ResolutionInputs,
    UserOverrideValues,
)
from plurules.pipeline.arbitrator import (
    arbitrate,
    find_zone_record,
    is_record_meaningful,
    is_ruleset_meaningful,
)
from plurules.pipeline.cache import SnapshotCache
from plurules.pipeline.merge import MERGED_SOURCE
from plurules.pipeline.overrides import build_override_entry, override_key
from plurules.pipeline.resolver import empty_ruleset, resolve_structured_record


def _inputs(**kwargs) -> ResolutionInputs:
    defaults = {"document_id": "docA", "commune_insee": "75056", "zone_code": "UA"}
    return ResolutionInputs(**{**defaults, **kwargs})


class TestPriorityOrder:
    def test_canonical_wins_over_everything(self, canonical_row, structured_record, persisted_extraction):
        active = resolve_structured_record({"zone_code": "UA", "retrait_voirie_min_m": 1})
        outcome = arbitrate(_inputs(
            canonical_summary=canonical_row,
            active_ruleset=active,
            structured_records=[structured_record],
            extraction=persisted_extraction,
        ))
        assert outcome.origin == "canonical"
        assert outcome.ruleset.source == "SQL_CANON"
        assert outcome.ruleset.document_id == "docA"

    def test_canonical_for_other_zone_ignored(self, canonical_row, structured_record):
        canonical_row["zone_code"] = "UB"
        outcome = arbitrate(_inputs(canonical_summary=canonical_row, structured_records=[structured_record]))
        assert outcome.origin == "structured"

    def test_active_before_merge(self, structured_record, persisted_extraction):
        active = resolve_structured_record({"zone_code": "ua", "retrait_voirie_min_m": 1})
        outcome = arbitrate(_inputs(
            active_ruleset=active,
            structured_records=[structured_record],
            extraction=persisted_extraction,
        ))
        assert outcome.origin == "active"
        assert outcome.ruleset is active

    def test_merge_when_both_present(self, structured_record, persisted_extraction):
        outcome = arbitrate(_inputs(structured_records=[structured_record], extraction=persisted_extraction))
        assert outcome.origin == "merged"
        assert outcome.ruleset.source == MERGED_SOURCE
        assert outcome.ruleset.reculs.voirie.value == 6.0

    def test_extraction_only(self, persisted_extraction):
        outcome = arbitrate(_inputs(extraction=persisted_extraction))
        assert outcome.origin == "extraction"
        assert outcome.ruleset.source == "AI_EXTRACTION"

    def test_extraction_for_other_document_ignored(self, persisted_extraction, structured_record):
        persisted_extraction.document_id = "docB"
        outcome = arbitrate(_inputs(extraction=persisted_extraction, structured_records=[structured_record]))
        assert outcome.origin == "structured"

    def test_structured_picks_matching_zone(self, structured_record):
        other = {"zone_code": "UB", "retrait_voirie_min_m": 99}
        outcome = arbitrate(_inputs(zone_code=" ua", structured_records=[other, structured_record]))
        assert outcome.origin == "structured"
        assert outcome.ruleset.reculs.voirie.value == 5.0

    def test_empty_when_nothing_matches(self):
        outcome = arbitrate(_inputs(structured_records=[{"zone_code": "UB"}]))
        assert outcome.origin == "empty"
        assert outcome.ruleset.zone_code == "UA"
        assert outcome.ruleset.completeness.ok is False
        assert len(outcome.ruleset.completeness.missing) == 3


class TestOverridesApplied:
    def test_override_on_top_of_canonical(self, canonical_row):
        cache = SnapshotCache()
        cache.set(override_key("docA", "UA"), build_override_entry(UserOverrideValues(voirie_min_m=9)))
        outcome = arbitrate(_inputs(canonical_summary=canonical_row, overrides=cache))
        assert outcome.origin == "canonical"
        assert outcome.overridden is True
        assert outcome.ruleset.reculs.voirie.value == 9
        assert outcome.ruleset.reculs.facades.avant.value == 9
        assert outcome.ruleset.source == "SQL_CANON+USER"

    def test_override_on_empty_base(self):
        overrides = {override_key("docA", "UA"): build_override_entry(UserOverrideValues(hauteur_max_m=10))}
        outcome = arbitrate(_inputs(overrides=overrides))
        assert outcome.origin == "empty"
        assert outcome.ruleset.hauteur.max_m == 10
        assert outcome.ruleset.source == "USER_OVERRIDDEN"

    def test_key_isolation(self, structured_record):
        cache = SnapshotCache()
        cache.set(override_key("docA", "ZoneX"), build_override_entry(UserOverrideValues(voirie_min_m=42)))
        record_y = {**structured_record, "zone_code": "ZoneY"}
        record_x = {**structured_record, "zone_code": "ZoneX"}

        other_zone = arbitrate(_inputs(zone_code="ZoneY", structured_records=[record_y], overrides=cache))
        other_doc = arbitrate(_inputs(
            document_id="docB", zone_code="ZoneX", structured_records=[record_x], overrides=cache,
        ))
        same = arbitrate(_inputs(zone_code="zonex", structured_records=[record_x], overrides=cache))

        assert other_zone.ruleset.reculs.voirie.value == 5.0
        assert other_zone.overridden is False
        assert other_doc.ruleset.reculs.voirie.value == 5.0
        assert same.ruleset.reculs.voirie.value == 42


class TestHelpers:
    def test_find_zone_record(self, structured_record):
        assert find_zone_record([{"zone_code": "UB"}, structured_record], "ua") is structured_record
        assert find_zone_record([], "UA") is None
        assert find_zone_record(["junk", None], "UA") is None

    def test_meaningful(self, structured_record):
        assert is_record_meaningful(structured_record)
        assert not is_record_meaningful({"zone_code": "UA", "rules": {}})
        assert not is_ruleset_meaningful(empty_ruleset("d", "c", "UA"))

    def test_extraction_without_data_ignored(self):
        extraction = PersistedExtraction(
            document_id="docA", zone_code="UA", commune_insee="75056", extracted_at="", data={},
        )
        assert arbitrate(_inputs(extraction=extraction)).origin == "empty"
