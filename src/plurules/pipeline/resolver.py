"""Source resolvers and the shared derive / normalize / completeness pipeline.

Pure functions, no I/O. Each resolver is a thin adapter call
(``plurules.pipeline.sources``) followed by ``finalize_ruleset``, which is
the only place where facades are derived, the footprint ratio is
normalized and completeness is evaluated.
"""

import logging
from collections.abc import Mapping

import mlflow
from mlflow.entities import SpanType

from plurules.core.types import (
    BoundaryAdjacency,
    FacadeRule,
    Facades,
    FootprintRule,
    HeightRule,
    ParkingRule,
    PartialRuleset,
    ResolvedRuleset,
    SetbackRule,
    Setbacks,
    ValueWithNote,
)
from plurules.pipeline.coerce import safe_string
from plurules.pipeline.completeness import evaluate_completeness
from plurules.pipeline.sources import (
    parse_canonical_summary,
    parse_extraction_result,
    parse_structured_record,
)

logger = logging.getLogger(__name__)

# facade -> (core setback it derives from, human label of that setback)
FACADE_DERIVATION = {
    "avant": ("voirie", "street setback"),
    "laterales": ("limites_separatives", "side-boundary setback"),
    "fond": ("fond_parcelle", "rear-boundary setback"),
}

AMBIGUOUS_CES_NOTE = (
    "Ambiguous footprint value 1: read as ratio 1.0 (100% coverage), "
    "could have been meant as 1%"
)


def normalize_footprint_ratio(raw: float | None) -> tuple[float | None, str | None]:
    """Normalize a footprint (CES) figure to a ratio in [0, 1].

    ``(1, 100]`` is a percentage, ``[0, 1]`` is already a ratio, anything
    else is dropped. Returns ``(ratio, note)``; the note explains a
    rejection or flags the ambiguous boundary value ``1``.
    """
    if raw is None:
        return None, None
    if raw > 100:
        return None, f"Suspicious value ({raw:g}%) ignored"
    if raw < 0:
        return None, f"Invalid value ({raw:g}) ignored"
    if raw > 1:
        return raw / 100, None
    if raw == 1:
        return 1.0, AMBIGUOUS_CES_NOTE
    return raw, None


def _setback(source: ValueWithNote) -> SetbackRule:
    return SetbackRule(
        value=source.value,
        type="FIXED" if source.value is not None else "UNKNOWN",
        note=source.note,
    )


def derive_facade(generic: SetbackRule, label: str, suffix: str = "") -> FacadeRule:
    """Facade rule derived from its core setback (``derived=True`` even when unknown)."""
    if generic.value is None:
        return FacadeRule(value=None, type="UNKNOWN", note=None, derived=True)
    return FacadeRule(
        value=generic.value,
        type="DERIVED",
        note=f"Derived from {label}{suffix}",
        derived=True,
    )


def _facade(explicit: ValueWithNote, generic: SetbackRule, label: str, force_derive: bool) -> FacadeRule:
    if explicit.value is not None and not force_derive:
        return FacadeRule(value=explicit.value, type="FIXED", note=explicit.note, derived=False)
    return derive_facade(generic, label)


def finalize_ruleset(
    partial: PartialRuleset,
    *,
    document_id: str,
    commune_insee: str,
    zone_code: str,
) -> ResolvedRuleset:
    """Turn a ``PartialRuleset`` into a complete, invariant-respecting ruleset."""
    voirie = _setback(partial.voirie)
    limites = _setback(partial.limites_separatives)
    fond = _setback(partial.fond_parcelle)
    generic = {"voirie": voirie, "limites_separatives": limites, "fond_parcelle": fond}
    explicit = {
        "avant": partial.facade_avant,
        "laterales": partial.facade_laterales,
        "fond": partial.facade_fond,
    }
    facades = {
        facade: _facade(explicit[facade], generic[core], label, partial.derive_all_facades)
        for facade, (core, label) in FACADE_DERIVATION.items()
    }

    not_found = f"Not found {partial.missing_label}"

    ces_ratio, ces_flag = normalize_footprint_ratio(partial.ces_raw)
    if ces_flag == AMBIGUOUS_CES_NOTE:
        logger.warning(
            "Ambiguous footprint value 1 for zone %s read as ratio 1.0",
            zone_code, extra={"zone_code": zone_code, "document_id": document_id},
        )
    if ces_ratio is None:
        ces_note = ces_flag or partial.ces_note or not_found
    else:
        ces_note = ces_flag or partial.ces_note

    parking_known = partial.par_logement is not None or partial.par_100m2 is not None

    ruleset = ResolvedRuleset(
        document_id=document_id,
        commune_insee=commune_insee,
        zone_code=zone_code,
        zone_libelle=partial.zone_libelle,
        confidence_score=partial.confidence_score,
        source=partial.source,
        reculs=Setbacks(
            voirie=voirie,
            limites_separatives=limites,
            fond_parcelle=fond,
            implantation_en_limite=BoundaryAdjacency(
                autorisee=partial.implantation_en_limite,
                note=partial.implantation_en_limite_note,
            ),
            facades=Facades(**facades),
        ),
        ces=FootprintRule(max_ratio=ces_ratio, note=ces_note),
        hauteur=HeightRule(
            max_m=partial.hauteur_max_m,
            note=None if partial.hauteur_max_m is not None else partial.hauteur_note or not_found,
        ),
        stationnement=ParkingRule(
            par_logement=partial.par_logement,
            par_100m2=partial.par_100m2,
            note=partial.stationnement_note or (None if parking_known else not_found),
        ),
        notes=list(partial.notes),
    )
    ruleset.completeness = evaluate_completeness(ruleset)
    return ruleset


# ---------------------------------------------------------------------------
# The three resolvers
# ---------------------------------------------------------------------------

@mlflow.trace(name="resolve_structured_record", span_type=SpanType.PARSER)
def resolve_structured_record(
    record: Mapping,
    document_id: str | None = None,
    commune_insee: str | None = None,
) -> ResolvedRuleset:
    """Resolve a structured-store zone row.

    Identity fields fall back to the row's own ``document_id`` /
    ``commune_insee`` when not given by the caller.
    """
    partial = parse_structured_record(record)
    return finalize_ruleset(
        partial,
        document_id=document_id or safe_string(record.get("document_id")) or "",
        commune_insee=commune_insee or safe_string(record.get("commune_insee")) or "",
        zone_code=safe_string(record.get("zone_code")) or "",
    )


@mlflow.trace(name="resolve_extraction_result", span_type=SpanType.PARSER)
def resolve_extraction_result(
    data: Mapping,
    document_id: str,
    commune_insee: str,
    zone_code: str,
) -> ResolvedRuleset:
    """Resolve an automated-extraction payload (rich or flat legacy shape)."""
    partial = parse_extraction_result(data)
    return finalize_ruleset(
        partial,
        document_id=document_id,
        commune_insee=commune_insee,
        zone_code=zone_code,
    )


@mlflow.trace(name="resolve_canonical_summary", span_type=SpanType.PARSER)
def resolve_canonical_summary(row: Mapping, document_id: str | None = None) -> ResolvedRuleset:
    """Resolve a canonical summary row, the highest-trust source."""
    partial = parse_canonical_summary(row)
    return finalize_ruleset(
        partial,
        document_id=document_id or "SQL_CANON",
        commune_insee=safe_string(row.get("commune_insee")) or "",
        zone_code=safe_string(row.get("zone_code")) or "",
    )


def empty_ruleset(document_id: str, commune_insee: str, zone_code: str) -> ResolvedRuleset:
    """All-null ruleset for a zone no source knows about."""
    return finalize_ruleset(
        PartialRuleset(missing_label="in any source"),
        document_id=document_id,
        commune_insee=commune_insee,
        zone_code=zone_code,
    )
