"""Shared test fixtures."""

import mlflow
import pytest

from plurules.core.types import PersistedExtraction


@pytest.fixture(autouse=True)
def _disable_mlflow_tracing():
    """Disable MLflow tracing during tests: no side effects, no mlruns/ writes."""
    mlflow.tracing.disable()
    yield
    mlflow.tracing.enable()


@pytest.fixture
def structured_record() -> dict:
    """A zone row with the three core setbacks spread over the fallback locations."""
    return {
        "zone_code": "UA",
        "zone_libelle": "Zone urbaine dense",
        "confidence_score": 0.8,
        "source": "PLU_RULES_STORE",
        "retrait_voirie_min_m": "5",
        "rules": {
            "reculs": {
                "limites_separatives": {"min_m": 3},
                "fond_parcelle": {"min_m": 4, "note": "Rear setback from art. UA7"},
            },
            "emprise": {"ces_max_percent": 60},
            "hauteur": {"hauteur_max_m": 12},
            "implantation": {"implantation_en_limite_autorisee": True},
        },
        "places_par_logement": 1,
    }


@pytest.fixture
def rich_extraction() -> dict:
    """An automated-extraction payload in the rich ``{value, ...}`` shape."""
    return {
        "implantation": {
            "recul_voirie": {"value": 6, "unit": "m", "confidence": 0.9},
            "recul_limites_separatives": {"value": None},
            "implantation_en_limite": {"value": False},
        },
        "emprise": {"ces_max": {"value": 40, "unit": "%"}},
        "hauteur": {"hauteur_max": {"value": 9}},
        "stationnement": {"places_par_logement": {"value": 2}},
        "completeness_ok": False,
        "missing": ["reculs.limites_separatives.min_m"],
        "confidence_score": 0.7,
        "zone_libelle": "UA extracted",
        "notes": ["Extracted from pages 12-14"],
    }


@pytest.fixture
def persisted_extraction(rich_extraction) -> PersistedExtraction:
    return PersistedExtraction(
        document_id="docA",
        zone_code="ua",
        commune_insee="75056",
        extracted_at="2024-05-01T10:00:00+00:00",
        data=rich_extraction,
    )


@pytest.fixture
def canonical_row() -> dict:
    return {
        "commune_insee": "75056",
        "zone_code": "UA",
        "zone_libelle": "Zone urbaine",
        "source": "CANON",
        "recul_voirie_min_m": 4,
        "recul_limites_min_m": 2.5,
        "recul_fond_min_m": 6,
        "implantation_en_limite_autorisee": True,
        "hauteur_max_m": 15,
        "ces_max_ratio": 0.5,
        "stationnement_par_logement": 1,
        "stationnement_par_100m2": None,
        "stationnement_note": "1 place per dwelling",
        "raw_rules_text": "UA: alignment or 4 m setback",
    }
