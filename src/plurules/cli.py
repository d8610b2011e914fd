"""plurules CLI: resolve a zoning ruleset from a JSON bundle of sources."""

import json
import logging
import sys
from dataclasses import asdict

from pydantic import ValidationError

from plurules.api.schemas import ResolveRequest
from plurules.core.types import ResolutionInputs, ResolvedRuleset
from plurules.observability.tracing import init_tracing
from plurules.pipeline.arbitrator import arbitrate
from plurules.pipeline.overrides import build_override_entry, override_key


def main() -> None:
    """Resolve a bundle: plurules <bundle.json> [--json]"""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    args = [a for a in sys.argv[1:] if a != "--json"]
    as_json = "--json" in sys.argv[1:]
    if len(args) != 1:
        print("Usage: plurules <bundle.json> [--json]")
        print("  The bundle holds document_id, commune_insee, zone_code and any of")
        print("  structured_records, extraction, canonical_summary, active_ruleset, override.")
        sys.exit(1)

    try:
        with open(args[0], encoding="utf-8") as fh:
            request = ResolveRequest.model_validate(json.load(fh))
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        print(f"Could not read bundle {args[0]}: {e}")
        sys.exit(1)

    init_tracing()

    key = override_key(request.document_id, request.zone_code)
    overrides = {key: build_override_entry(request.override.to_domain())} if request.override else {}
    outcome = arbitrate(ResolutionInputs(
        document_id=request.document_id,
        commune_insee=request.commune_insee,
        zone_code=request.zone_code,
        structured_records=request.structured_records,
        extraction=request.extraction.to_domain() if request.extraction else None,
        canonical_summary=request.canonical_summary,
        active_ruleset=request.active_ruleset.to_domain() if request.active_ruleset else None,
        overrides=overrides,
    ))

    if as_json:
        print(json.dumps({"origin": outcome.origin, "ruleset": asdict(outcome.ruleset)}, indent=2))
        return
    _print_report(outcome.origin, outcome.ruleset)


def _fmt(value: float | None, unit: str = "") -> str:
    return "?" if value is None else f"{value:g}{unit}"


def _print_report(origin: str, ruleset: ResolvedRuleset) -> None:
    reculs = ruleset.reculs

    print("\nplurules Ruleset Resolution")
    print(f"{'=' * 50}")
    print(f"Document:  {ruleset.document_id}")
    print(f"Commune:   {ruleset.commune_insee or '?'}")
    print(f"Zone:      {ruleset.zone_code}" + (f" ({ruleset.zone_libelle})" if ruleset.zone_libelle else ""))
    print(f"Origin:    {origin}")
    print(f"Source:    {ruleset.source or '?'}")
    print()

    print("Setbacks:")
    for label, rule in (
        ("Street", reculs.voirie),
        ("Side", reculs.limites_separatives),
        ("Rear", reculs.fond_parcelle),
    ):
        print(f"  {label + ':':<8} {_fmt(rule.value, ' m'):<8} [{rule.type}]" + (f"  {rule.note}" if rule.note else ""))
    allowed = reculs.implantation_en_limite.autorisee
    print(f"  On boundary: {'?' if allowed is None else ('allowed' if allowed else 'not allowed')}")
    print()

    print("Facades:")
    for label, rule in (
        ("Front", reculs.facades.avant),
        ("Sides", reculs.facades.laterales),
        ("Rear", reculs.facades.fond),
    ):
        derived = " (derived)" if rule.derived else ""
        print(f"  {label + ':':<8} {_fmt(rule.value, ' m'):<8} [{rule.type}]{derived}")
    print()

    ratio = ruleset.ces.max_ratio
    print(f"Footprint: {'?' if ratio is None else f'{ratio:.0%}'}" + (f"  {ruleset.ces.note}" if ruleset.ces.note else ""))
    print(f"Height:    {_fmt(ruleset.hauteur.max_m, ' m')}")
    print(
        f"Parking:   {_fmt(ruleset.stationnement.par_logement)} per dwelling, "
        f"{_fmt(ruleset.stationnement.par_100m2)} per 100 m2"
    )
    print()

    if ruleset.notes:
        print("Notes:")
        for note in ruleset.notes:
            print(f"  - {note}")
        print()

    completeness = ruleset.completeness
    print(f"{'─' * 50}")
    if completeness.ok:
        print("Complete: all core setbacks known")
    else:
        print(f"INCOMPLETE: missing {', '.join(completeness.missing)}")
    if completeness.optional_missing:
        print(f"Optional gaps: {', '.join(completeness.optional_missing)}")
