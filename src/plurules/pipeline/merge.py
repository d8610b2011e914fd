"""Merge a structured-record ruleset with an automated-extraction ruleset.

Extraction wins field by field whenever it has a value; the base fills
the gaps. Setback and facade rules move as a whole (value, type, note,
derived flag) so a derived facade always travels with the setback it was
derived from.
"""

import copy
import logging
from typing import TypeVar

import mlflow
from mlflow.entities import SpanType

from plurules.core.types import (
    BoundaryAdjacency,
    FacadeRule,
    Facades,
    FootprintRule,
    HeightRule,
    ParkingRule,
    ResolvedRuleset,
    SetbackRule,
    Setbacks,
)
from plurules.pipeline.coerce import unique_strings
from plurules.pipeline.completeness import evaluate_completeness

logger = logging.getLogger(__name__)

MERGED_SOURCE = "AI_MERGED"

RuleT = TypeVar("RuleT", SetbackRule, FacadeRule)


def _pick_rule(ai: RuleT, base: RuleT) -> RuleT:
    return copy.copy(ai if ai.value is not None else base)


@mlflow.trace(name="merge_rulesets", span_type=SpanType.CHAIN)
def merge_rulesets(base: ResolvedRuleset, ai: ResolvedRuleset) -> ResolvedRuleset:
    """Return a new ruleset: ``ai`` values where present, ``base`` otherwise."""
    boundary = (
        ai.reculs.implantation_en_limite
        if ai.reculs.implantation_en_limite.autorisee is not None
        else base.reculs.implantation_en_limite
    )

    ces = ai.ces if ai.ces.max_ratio is not None else base.ces
    hauteur = ai.hauteur if ai.hauteur.max_m is not None else base.hauteur

    par_logement = (
        ai.stationnement.par_logement
        if ai.stationnement.par_logement is not None
        else base.stationnement.par_logement
    )
    par_100m2 = (
        ai.stationnement.par_100m2
        if ai.stationnement.par_100m2 is not None
        else base.stationnement.par_100m2
    )
    ai_has_parking = ai.stationnement.par_logement is not None or ai.stationnement.par_100m2 is not None
    parking_note = ai.stationnement.note if ai_has_parking else base.stationnement.note

    merged = ResolvedRuleset(
        document_id=ai.document_id,
        commune_insee=ai.commune_insee,
        zone_code=ai.zone_code,
        zone_libelle=ai.zone_libelle or base.zone_libelle,
        confidence_score=ai.confidence_score if ai.confidence_score is not None else base.confidence_score,
        source=MERGED_SOURCE,
        reculs=Setbacks(
            voirie=_pick_rule(ai.reculs.voirie, base.reculs.voirie),
            limites_separatives=_pick_rule(ai.reculs.limites_separatives, base.reculs.limites_separatives),
            fond_parcelle=_pick_rule(ai.reculs.fond_parcelle, base.reculs.fond_parcelle),
            implantation_en_limite=BoundaryAdjacency(autorisee=boundary.autorisee, note=boundary.note),
            facades=Facades(
                avant=_pick_rule(ai.reculs.facades.avant, base.reculs.facades.avant),
                laterales=_pick_rule(ai.reculs.facades.laterales, base.reculs.facades.laterales),
                fond=_pick_rule(ai.reculs.facades.fond, base.reculs.facades.fond),
            ),
        ),
        ces=FootprintRule(max_ratio=ces.max_ratio, note=ces.note),
        hauteur=HeightRule(max_m=hauteur.max_m, note=hauteur.note),
        stationnement=ParkingRule(par_logement=par_logement, par_100m2=par_100m2, note=parking_note),
        notes=unique_strings([*base.notes, *ai.notes]),
    )
    merged.completeness = evaluate_completeness(merged)

    logger.debug(
        "Merged rulesets for zone %s (ok=%s)", merged.zone_code, merged.completeness.ok,
        extra={"zone_code": merged.zone_code, "document_id": merged.document_id, "step": "merge"},
    )
    return merged
