"""Named convenience tools mapped onto generic operation calls."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import UnknownActionError


class ActionInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def params(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class NoInput(ActionInput):
    pass


class SuggestInput(ActionInput):
    q: str
    top: Optional[str] = None
    select: Optional[str] = None


class SearchFilters(ActionInput):
    domain: Optional[str] = None
    codelist: Optional[str] = None
    concept_id: Optional[str] = None
    product: Optional[str] = None
    version: Optional[str] = None
    dataset: Optional[str] = None
    variable: Optional[str] = None
    standard: Optional[str] = None


class SearchInput(ActionInput):
    q: str
    start: Optional[int] = None
    page_size: Optional[int] = None
    facets: Optional[bool] = None
    filters: SearchFilters = Field(default_factory=SearchFilters)


class CategoryInput(ActionInput):
    category: Optional[str] = None


class ConceptInput(ActionInput):
    concept_id: str


class PackageInput(ActionInput):
    package: str


class PackageConceptInput(ActionInput):
    package: str
    concept_id: str


class DomainInput(ActionInput):
    domain: Optional[str] = None


class SpecializationInput(ActionInput):
    dataset_specialization_id: str


class PackageSpecializationInput(ActionInput):
    package: str
    dataset_specialization: str


@dataclass(frozen=True)
class CallArguments:
    operation_id: str
    path_params: Dict[str, Any] = field(default_factory=dict)
    query: Dict[str, Any] = field(default_factory=dict)


Mapper = Callable[[Any], Tuple[Dict[str, Any], Dict[str, Any]]]


@dataclass(frozen=True)
class NamedAction:
    name: str
    description: str
    operation_id: str
    input_model: Type[ActionInput]
    mapper: Mapper

    def arguments(self, payload: Union[ActionInput, Mapping[str, Any], None]) -> CallArguments:
        if not isinstance(payload, self.input_model):
            payload = self.input_model.model_validate(dict(payload or {}))
        path_params, query = self.mapper(payload)
        return CallArguments(operation_id=self.operation_id, path_params=path_params, query=query)


def _no_params(_: ActionInput) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    return {}, {}


def _query_only(payload: ActionInput) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    return {}, payload.params()


def _search(payload: SearchInput) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    query = payload.model_dump(by_alias=True, exclude_none=True, exclude={"filters"})
    query.update(payload.filters.params())
    return {}, query


_ACTIONS = [
    NamedAction(
        "search.suggest",
        "Suggest search terms across CDISC Library.",
        "api-search-suggest",
        SuggestInput,
        _query_only,
    ),
    NamedAction(
        "search.query",
        "Search across CDISC Library with paging, facets, and filters.",
        "api-search-search",
        SearchInput,
        _search,
    ),
    NamedAction(
        "bc.list",
        "List latest Biomedical Concepts (optional category).",
        "get_latest_biomedical_concepts_mdr_bc_biomedicalconcepts_get",
        CategoryInput,
        _query_only,
    ),
    NamedAction(
        "bc.get",
        "Get latest Biomedical Concept by conceptId.",
        "get_latest_biomedicalconcept_mdr_bc_biomedicalconcepts__biomedicalconcept__g",
        ConceptInput,
        lambda p: ({"biomedicalconcept": p.concept_id}, {}),
    ),
    NamedAction(
        "bc.categories",
        "List Biomedical Concept categories.",
        "get_latest_biomedicalconcept_categories_mdr_bc_categories_get",
        NoInput,
        _no_params,
    ),
    NamedAction(
        "bc.packages.list",
        "List BC packages.",
        "get_biomedicalconcept_packages_mdr_bc_packages_get",
        NoInput,
        _no_params,
    ),
    NamedAction(
        "bc.packages.listConcepts",
        "List BCs within a package.",
        "get_biomedicalconcepts_mdr_bc_packages__package__biomedicalconcepts_get",
        PackageInput,
        lambda p: ({"package": p.package}, {}),
    ),
    NamedAction(
        "bc.packages.getConcept",
        "Get BC within a package.",
        "get_package_biomedicalconcept_mdr_bc_packages__package__biomedicalconcepts__",
        PackageConceptInput,
        lambda p: ({"package": p.package, "biomedicalconcept": p.concept_id}, {}),
    ),
    NamedAction(
        "sdtm.list",
        "List latest SDTM dataset specializations (optional domain).",
        "get_latest_sdtm_specializations_mdr_specializations_sdtm_datasetspecializati",
        DomainInput,
        _query_only,
    ),
    NamedAction(
        "sdtm.get",
        "Get latest SDTM specialization by datasetSpecializationId.",
        "get_latest_sdtm_specialization_mdr_specializations_sdtm_datasetspecializatio",
        SpecializationInput,
        lambda p: ({"dataset_specialization_id": p.dataset_specialization_id}, {}),
    ),
    NamedAction(
        "sdtm.domains",
        "List SDTM specialization domains.",
        "get_sdtm_dataset_specialization_domain_list_mdr_specializations_sdtm_domains",
        NoInput,
        _no_params,
    ),
    NamedAction(
        "sdtm.byBiomedicalConcept",
        "List dataset specializations specializing a given Biomedical Concept (latest).",
        "get_latest_bc_datasetspecializations_mdr_specializations_datasetspecializati",
        ConceptInput,
        lambda p: ({}, {"biomedicalconcept": p.concept_id}),
    ),
    NamedAction(
        "sdtm.packages.list",
        "List SDTM packages.",
        "get_sdtm_specialization_packages_mdr_specializations_sdtm_packages_get",
        NoInput,
        _no_params,
    ),
    NamedAction(
        "sdtm.packages.listSpecializations",
        "List SDTM specializations within a package.",
        "get_sdtm_specializations_mdr_specializations_sdtm_packages__package__dataset",
        PackageInput,
        lambda p: ({"package": p.package}, {}),
    ),
    NamedAction(
        "sdtm.packages.getSpecialization",
        "Get SDTM specialization within a package.",
        "get_sdtm_specialization_mdr_specializations_sdtm_packages__package__datasets",
        PackageSpecializationInput,
        lambda p: ({"package": p.package, "datasetspecialization": p.dataset_specialization}, {}),
    ),
]

NAMED_ACTIONS: Dict[str, NamedAction] = {action.name: action for action in _ACTIONS}


def get_action(name: str) -> NamedAction:
    action = NAMED_ACTIONS.get(name)
    if action is None:
        raise UnknownActionError(name)
    return action
