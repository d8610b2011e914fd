"""Priority arbitration between resolved sources.

Order: canonical summary > active ruleset > merge(structured, extraction)
> extraction > structured > empty. A stored user override for the
selected (document, zone) is applied on top of whichever base wins.
"""

import logging
from collections.abc import Iterable, Mapping

import mlflow
from mlflow.entities import SpanType

from plurules.core.types import (
    ResolutionInputs,
    ResolutionOrigin,
    ResolutionOutcome,
    ResolvedRuleset,
)
from plurules.pipeline.coerce import zones_match
from plurules.pipeline.merge import merge_rulesets
from plurules.pipeline.overrides import apply_user_overrides, override_key
from plurules.pipeline.resolver import (
    empty_ruleset,
    resolve_canonical_summary,
    resolve_extraction_result,
    resolve_structured_record,
)

logger = logging.getLogger(__name__)


def find_zone_record(records: Iterable[Mapping], zone_code: str) -> Mapping | None:
    """First structured record whose zone matches ``zone_code``."""
    for record in records:
        if isinstance(record, Mapping) and zones_match(record.get("zone_code"), zone_code):
            return record
    return None


def is_ruleset_meaningful(ruleset: ResolvedRuleset) -> bool:
    """True when at least one rule value is known."""
    reculs = ruleset.reculs
    values = (
        reculs.voirie.value,
        reculs.limites_separatives.value,
        reculs.fond_parcelle.value,
        reculs.implantation_en_limite.autorisee,
        reculs.facades.avant.value,
        reculs.facades.laterales.value,
        reculs.facades.fond.value,
        ruleset.stationnement.par_logement,
        ruleset.stationnement.par_100m2,
        ruleset.hauteur.max_m,
        ruleset.ces.max_ratio,
    )
    return any(v is not None for v in values)


def is_record_meaningful(record: Mapping) -> bool:
    """True when a structured record yields at least one rule value."""
    return is_ruleset_meaningful(resolve_structured_record(record))


def _structured(inputs: ResolutionInputs) -> ResolvedRuleset | None:
    record = find_zone_record(inputs.structured_records, inputs.zone_code)
    if record is None:
        return None
    return resolve_structured_record(
        record,
        document_id=inputs.document_id,
        commune_insee=inputs.commune_insee,
    )


def _extraction(inputs: ResolutionInputs) -> ResolvedRuleset | None:
    extraction = inputs.extraction
    if extraction is None or not extraction.data:
        return None
    if extraction.document_id != inputs.document_id:
        return None
    if not zones_match(extraction.zone_code, inputs.zone_code):
        return None
    return resolve_extraction_result(
        extraction.data,
        document_id=extraction.document_id,
        commune_insee=extraction.commune_insee,
        zone_code=extraction.zone_code,
    )


def _base(inputs: ResolutionInputs) -> tuple[ResolutionOrigin, ResolvedRuleset]:
    summary = inputs.canonical_summary
    if summary is not None and zones_match(summary.get("zone_code"), inputs.zone_code):
        return "canonical", resolve_canonical_summary(summary, document_id=inputs.document_id)

    active = inputs.active_ruleset
    if active is not None and zones_match(active.zone_code, inputs.zone_code):
        return "active", active

    structured = _structured(inputs)
    extracted = _extraction(inputs)
    if structured is not None and extracted is not None:
        return "merged", merge_rulesets(structured, extracted)
    if extracted is not None:
        return "extraction", extracted
    if structured is not None:
        return "structured", structured

    return "empty", empty_ruleset(inputs.document_id, inputs.commune_insee, inputs.zone_code)


@mlflow.trace(name="arbitrate", span_type=SpanType.CHAIN)
def arbitrate(inputs: ResolutionInputs) -> ResolutionOutcome:
    """Pick the authoritative ruleset for the selected (document, zone)."""
    origin, ruleset = _base(inputs)

    overridden = False
    if inputs.overrides is not None:
        entry = inputs.overrides.get(override_key(inputs.document_id, inputs.zone_code))
        if entry is not None:
            ruleset = apply_user_overrides(ruleset, entry.overrides)
            overridden = True

    logger.info(
        "Resolved zone %s from %s (ok=%s, overridden=%s)",
        inputs.zone_code, origin, ruleset.completeness.ok, overridden,
        extra={
            "document_id": inputs.document_id,
            "zone_code": inputs.zone_code,
            "origin": origin,
            "source": ruleset.source,
            "step": "arbitrate",
        },
    )
    return ResolutionOutcome(origin=origin, ruleset=ruleset, overridden=overridden)
