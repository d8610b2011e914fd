"""Tests for the three resolvers and the shared finalize pipeline."""

from dataclasses import asdict

import pytest

from plurules.core.types import CORE_SETBACK_FIELDS, PartialRuleset, SetbackRule, ValueWithNote
from plurules.pipeline.resolver import (
    AMBIGUOUS_CES_NOTE,
    derive_facade,
    empty_ruleset,
    finalize_ruleset,
    normalize_footprint_ratio,
    resolve_canonical_summary,
    resolve_extraction_result,
    resolve_structured_record,
)


# ---------------------------------------------------------------------------
# Footprint ratio
# ---------------------------------------------------------------------------

class TestNormalizeFootprintRatio:
    def test_percentage(self):
        assert normalize_footprint_ratio(40) == (pytest.approx(0.4), None)

    def test_already_ratio(self):
        assert normalize_footprint_ratio(0.4) == (0.4, None)

    def test_hundred_percent(self):
        assert normalize_footprint_ratio(100) == (1.0, None)

    def test_suspicious_above_hundred(self):
        ratio, note = normalize_footprint_ratio(150)
        assert ratio is None
        assert "Suspicious value" in note
        assert "150" in note

    def test_negative(self):
        ratio, note = normalize_footprint_ratio(-5)
        assert ratio is None
        assert note is not None

    def test_boundary_one_is_flagged(self):
        assert normalize_footprint_ratio(1) == (1.0, AMBIGUOUS_CES_NOTE)

    def test_zero(self):
        assert normalize_footprint_ratio(0) == (0, None)

    def test_missing(self):
        assert normalize_footprint_ratio(None) == (None, None)


# ---------------------------------------------------------------------------
# Facade derivation
# ---------------------------------------------------------------------------

class TestDeriveFacade:
    def test_derived_from_known_setback(self):
        facade = derive_facade(SetbackRule(value=5, type="FIXED"), "street setback")
        assert facade.value == 5
        assert facade.type == "DERIVED"
        assert facade.derived is True
        assert facade.note == "Derived from street setback"

    def test_unknown_setback(self):
        facade = derive_facade(SetbackRule(), "street setback")
        assert facade.value is None
        assert facade.type == "UNKNOWN"
        assert facade.derived is True


class TestFinalizeRuleset:
    def test_facade_derived_when_absent(self):
        partial = PartialRuleset(voirie=ValueWithNote(5))
        ruleset = finalize_ruleset(partial, document_id="d", commune_insee="c", zone_code="UA")
        assert ruleset.reculs.facades.avant.value == 5
        assert ruleset.reculs.facades.avant.derived is True

    def test_explicit_facade_is_fixed(self):
        partial = PartialRuleset(voirie=ValueWithNote(5), facade_avant=ValueWithNote(8, "Main facade"))
        ruleset = finalize_ruleset(partial, document_id="d", commune_insee="c", zone_code="UA")
        avant = ruleset.reculs.facades.avant
        assert (avant.value, avant.type, avant.derived, avant.note) == (8, "FIXED", False, "Main facade")

    def test_force_derivation_ignores_explicit_facade(self):
        partial = PartialRuleset(
            voirie=ValueWithNote(5), facade_avant=ValueWithNote(8), derive_all_facades=True,
        )
        ruleset = finalize_ruleset(partial, document_id="d", commune_insee="c", zone_code="UA")
        assert ruleset.reculs.facades.avant.value == 5
        assert ruleset.reculs.facades.avant.derived is True

    def test_not_found_notes(self):
        ruleset = finalize_ruleset(PartialRuleset(), document_id="d", commune_insee="c", zone_code="UA")
        assert ruleset.ces.note == "Not found in the ruleset"
        assert ruleset.hauteur.note == "Not found in the ruleset"
        assert ruleset.stationnement.note == "Not found in the ruleset"

    def test_ambiguous_ces_logged(self, caplog):
        partial = PartialRuleset(ces_raw=1)
        with caplog.at_level("WARNING"):
            ruleset = finalize_ruleset(partial, document_id="d", commune_insee="c", zone_code="UA")
        assert ruleset.ces.max_ratio == 1.0
        assert ruleset.ces.note == AMBIGUOUS_CES_NOTE
        assert "Ambiguous footprint" in caplog.text

    def test_does_not_mutate_partial(self):
        partial = PartialRuleset(voirie=ValueWithNote(5), notes=["a"])
        ruleset = finalize_ruleset(partial, document_id="d", commune_insee="c", zone_code="UA")
        ruleset.notes.append("b")
        assert partial.notes == ["a"]


# ---------------------------------------------------------------------------
# Structured-record resolver
# ---------------------------------------------------------------------------

class TestResolveStructuredRecord:
    def test_end_to_end_scenario(self):
        record = {
            "retrait_voirie_min_m": "5",
            "rules": {
                "reculs": {"limites_separatives": {"min_m": 3}},
                "emprise": {"ces_max_percent": 40},
            },
        }
        ruleset = resolve_structured_record(record, document_id="docA", commune_insee="75056")
        reculs = ruleset.reculs
        assert (reculs.voirie.value, reculs.voirie.type) == (5.0, "FIXED")
        assert (reculs.limites_separatives.value, reculs.limites_separatives.type) == (3.0, "FIXED")
        assert (reculs.fond_parcelle.value, reculs.fond_parcelle.type) == (None, "UNKNOWN")
        assert ruleset.ces.max_ratio == pytest.approx(0.4)
        assert ruleset.completeness.ok is False
        assert ruleset.completeness.missing == ["reculs.fond_parcelle.min_m"]

    def test_idempotent(self, structured_record):
        first = resolve_structured_record(structured_record, document_id="docA")
        second = resolve_structured_record(structured_record, document_id="docA")
        assert asdict(first) == asdict(second)

    def test_input_not_mutated(self, structured_record):
        before = repr(structured_record)
        resolve_structured_record(structured_record)
        assert repr(structured_record) == before

    def test_full_record(self, structured_record):
        ruleset = resolve_structured_record(structured_record, document_id="docA", commune_insee="75056")
        assert ruleset.document_id == "docA"
        assert ruleset.zone_code == "UA"
        assert ruleset.zone_libelle == "Zone urbaine dense"
        assert ruleset.source == "PLU_RULES_STORE"
        assert ruleset.completeness.ok is True
        assert ruleset.completeness.missing == []
        assert ruleset.completeness.optional_missing == []
        assert ruleset.ces.max_ratio == pytest.approx(0.6)
        assert ruleset.reculs.fond_parcelle.note == "Rear setback from art. UA7"
        assert ruleset.reculs.facades.fond.value == 4.0
        assert ruleset.reculs.facades.fond.note == "Derived from rear-boundary setback"

    def test_completeness_invariant(self, structured_record):
        structured_record.pop("retrait_voirie_min_m")
        ruleset = resolve_structured_record(structured_record)
        reculs = ruleset.reculs
        expected = all(v is not None for v in (
            reculs.voirie.value, reculs.limites_separatives.value, reculs.fond_parcelle.value,
        ))
        assert ruleset.completeness.ok is expected
        assert ruleset.completeness.missing == ["reculs.voirie.min_m"]

    def test_suspicious_ces_dropped(self):
        ruleset = resolve_structured_record({"rules": {"emprise": {"ces_max_percent": 150}}})
        assert ruleset.ces.max_ratio is None
        assert "Suspicious value (150%) ignored" == ruleset.ces.note

    def test_oversized_integer_is_unknown(self):
        ruleset = resolve_structured_record({"zone_code": "UA", "retrait_voirie_min_m": 10**400})
        assert ruleset.reculs.voirie.value is None
        assert ruleset.reculs.voirie.type == "UNKNOWN"
        assert "reculs.voirie.min_m" in ruleset.completeness.missing


# ---------------------------------------------------------------------------
# Extraction and canonical resolvers
# ---------------------------------------------------------------------------

class TestResolveExtractionResult:
    def test_rich_payload(self, rich_extraction):
        ruleset = resolve_extraction_result(rich_extraction, "docA", "75056", "UA")
        assert ruleset.reculs.voirie.value == 6.0
        assert ruleset.reculs.facades.avant.value == 6.0
        assert ruleset.reculs.facades.avant.derived is True
        assert ruleset.ces.max_ratio == pytest.approx(0.4)
        assert ruleset.confidence_score == 0.7
        assert ruleset.notes == ["Extracted from pages 12-14"]
        assert ruleset.completeness.missing == [
            "reculs.limites_separatives.min_m",
            "reculs.fond_parcelle.min_m",
        ]


class TestResolveCanonicalSummary:
    def test_all_facades_derived(self, canonical_row):
        ruleset = resolve_canonical_summary(canonical_row, document_id="docA")
        facades = ruleset.reculs.facades
        assert facades.avant.value == 4.0
        assert facades.laterales.value == 2.5
        assert facades.fond.value == 6.0
        assert all(f.derived for f in (facades.avant, facades.laterales, facades.fond))
        assert ruleset.source == "SQL_CANON"
        assert ruleset.confidence_score == 1.0
        assert ruleset.ces.max_ratio == 0.5
        assert ruleset.stationnement.note == "1 place per dwelling"
        assert ruleset.completeness.ok is True

    def test_default_document_id(self, canonical_row):
        assert resolve_canonical_summary(canonical_row).document_id == "SQL_CANON"


class TestEmptyRuleset:
    def test_all_null(self):
        ruleset = empty_ruleset("docA", "75056", "UA")
        assert ruleset.completeness.ok is False
        assert ruleset.completeness.missing == list(CORE_SETBACK_FIELDS)
        assert ruleset.reculs.voirie.type == "UNKNOWN"
        assert ruleset.source is None
