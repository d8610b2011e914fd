"""Pydantic request/response models for the plurules API.

These are the API contract, decoupled from the internal domain dataclasses.
Route handlers bridge them with dataclasses.asdict() on the way out and
``to_domain()`` on the way in.
"""

from typing import Literal

from pydantic import BaseModel, Field, StrictBool

from plurules.core.types import (
    BoundaryAdjacency,
    Completeness,
    FacadeRule,
    Facades,
    FootprintRule,
    HeightRule,
    ParkingRule,
    PersistedExtraction,
    ResolvedRuleset,
    SetbackRule,
    Setbacks,
    UserOverrideValues,
)

RuleTypeField = Literal["FIXED", "DERIVED", "UNKNOWN"]


# ---------------------------------------------------------------------------
# Resolved ruleset (plu_ruleset_v1)
# ---------------------------------------------------------------------------

class SetbackRuleModel(BaseModel):
    value: float | None = None
    type: RuleTypeField = "UNKNOWN"
    note: str | None = None


class FacadeRuleModel(SetbackRuleModel):
    derived: bool = False


class BoundaryAdjacencyModel(BaseModel):
    autorisee: bool | None = None
    note: str | None = None


class FacadesModel(BaseModel):
    avant: FacadeRuleModel = FacadeRuleModel()
    laterales: FacadeRuleModel = FacadeRuleModel()
    fond: FacadeRuleModel = FacadeRuleModel()


class SetbacksModel(BaseModel):
    voirie: SetbackRuleModel = SetbackRuleModel()
    limites_separatives: SetbackRuleModel = SetbackRuleModel()
    fond_parcelle: SetbackRuleModel = SetbackRuleModel()
    implantation_en_limite: BoundaryAdjacencyModel = BoundaryAdjacencyModel()
    facades: FacadesModel = FacadesModel()


class FootprintModel(BaseModel):
    max_ratio: float | None = Field(default=None, ge=0, le=1)
    note: str | None = None


class HeightModel(BaseModel):
    max_m: float | None = None
    note: str | None = None


class ParkingModel(BaseModel):
    par_logement: float | None = None
    par_100m2: float | None = None
    note: str | None = None


class CompletenessModel(BaseModel):
    ok: bool = False
    missing: list[str] = []
    optional_missing: list[str] = []


class RulesetModel(BaseModel):
    """A resolved ruleset as it travels over the wire."""

    document_id: str
    commune_insee: str = ""
    zone_code: str
    version: str = "plu_ruleset_v1"
    zone_libelle: str | None = None
    confidence_score: float | None = None
    source: str | None = None
    reculs: SetbacksModel = SetbacksModel()
    ces: FootprintModel = FootprintModel()
    hauteur: HeightModel = HeightModel()
    stationnement: ParkingModel = ParkingModel()
    notes: list[str] = []
    completeness: CompletenessModel = CompletenessModel()

    def to_domain(self) -> ResolvedRuleset:
        reculs = self.reculs
        return ResolvedRuleset(
            document_id=self.document_id,
            commune_insee=self.commune_insee,
            zone_code=self.zone_code,
            version=self.version,
            zone_libelle=self.zone_libelle,
            confidence_score=self.confidence_score,
            source=self.source,
            reculs=Setbacks(
                voirie=SetbackRule(**reculs.voirie.model_dump()),
                limites_separatives=SetbackRule(**reculs.limites_separatives.model_dump()),
                fond_parcelle=SetbackRule(**reculs.fond_parcelle.model_dump()),
                implantation_en_limite=BoundaryAdjacency(**reculs.implantation_en_limite.model_dump()),
                facades=Facades(
                    avant=FacadeRule(**reculs.facades.avant.model_dump()),
                    laterales=FacadeRule(**reculs.facades.laterales.model_dump()),
                    fond=FacadeRule(**reculs.facades.fond.model_dump()),
                ),
            ),
            ces=FootprintRule(**self.ces.model_dump()),
            hauteur=HeightRule(**self.hauteur.model_dump()),
            stationnement=ParkingRule(**self.stationnement.model_dump()),
            notes=list(self.notes),
            completeness=Completeness(**self.completeness.model_dump()),
        )


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

class OverrideSetbacksModel(BaseModel):
    voirie_min_m: float | str | None = None
    limites_separatives_min_m: float | str | None = None
    fond_parcelle_min_m: float | str | None = None
    implantation_en_limite_autorisee: StrictBool | None = None


class OverrideValuesModel(BaseModel):
    """Sparse user corrections; omitted fields are left untouched."""

    reculs: OverrideSetbacksModel = OverrideSetbacksModel()
    ces_max_ratio: float | str | None = None
    hauteur_max_m: float | str | None = None
    stationnement_par_logement: float | str | None = None
    stationnement_par_100m2: float | str | None = None
    notes_append: str | None = None

    def to_domain(self) -> UserOverrideValues:
        return UserOverrideValues.from_dict(self.model_dump(exclude_none=True))


class ExtractionModel(BaseModel):
    """An automated-extraction result pinned to its (document, zone)."""

    document_id: str
    zone_code: str
    commune_insee: str = ""
    extracted_at: str = ""
    data: dict = {}

    def to_domain(self) -> PersistedExtraction:
        return PersistedExtraction(**self.model_dump())


class ResolveRequest(BaseModel):
    """Request body for POST /api/v1/resolve."""

    document_id: str = Field(..., min_length=1, examples=["doc-plu-2024"])
    commune_insee: str = Field(default="", examples=["75056"])
    zone_code: str = Field(..., min_length=1, examples=["UA"])
    structured_records: list[dict] = []
    extraction: ExtractionModel | None = None
    canonical_summary: dict | None = None
    active_ruleset: RulesetModel | None = None
    override: OverrideValuesModel | None = Field(
        default=None,
        description="Corrections to apply instead of the stored ones",
    )
    use_stored_override: bool = True


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class ResolveResponse(BaseModel):
    origin: str
    overridden: bool = False
    ruleset: RulesetModel


class OverrideEntryResponse(BaseModel):
    key: str
    document_id: str
    zone_code: str
    updated_at: str
    overrides: OverrideValuesModel


class ErrorResponse(BaseModel):
    """Error response body."""

    detail: str
    error_type: str = "storage_error"
