"""
Resource identities and their cache/bucket locations.

Identities are plain data; the mapping to folders, file names and bucket
paths is a set of pure functions so it can be tested without any I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .filter_lists import FilterList


class ResourceKind(Enum):
    GENERIC_FILTER_RULES = "generic_filter_rules"
    GENERIC_CONTENT_BLOCKING_BEHAVIORS = "generic_content_blocking_behaviors"
    FILTER_RULES = "filter_rules"
    CONTENT_BLOCKING_BEHAVIORS = "content_blocking_behaviors"
    DEBOUNCE_RULES = "debounce_rules"
    COSMETIC_FILTERS = "cosmetic_filters"
    SCRIPTLET_RESOURCES = "scriptlet_resources"

    @property
    def is_per_list(self) -> bool:
        return self in (ResourceKind.FILTER_RULES, ResourceKind.CONTENT_BLOCKING_BEHAVIORS)


@dataclass(frozen=True)
class Resource:
    """Identity of a downloadable resource: a kind plus, for per-list kinds, the list."""

    kind: ResourceKind
    uuid: str | None = None
    component_id: str | None = None

    def __post_init__(self) -> None:
        if self.kind.is_per_list and not (self.uuid and self.component_id):
            raise ValueError(f"{self.kind.value} requires a list uuid and component id")
        if not self.kind.is_per_list and (self.uuid or self.component_id):
            raise ValueError(f"{self.kind.value} is not tied to a filter list")

    @classmethod
    def filter_rules(cls, uuid: str, component_id: str) -> Resource:
        return cls(ResourceKind.FILTER_RULES, uuid, component_id)

    @classmethod
    def content_blocking_behaviors(cls, uuid: str, component_id: str) -> Resource:
        return cls(ResourceKind.CONTENT_BLOCKING_BEHAVIORS, uuid, component_id)


GENERIC_FILTER_RULES = Resource(ResourceKind.GENERIC_FILTER_RULES)
GENERIC_CONTENT_BLOCKING_BEHAVIORS = Resource(ResourceKind.GENERIC_CONTENT_BLOCKING_BEHAVIORS)
DEBOUNCE_RULES = Resource(ResourceKind.DEBOUNCE_RULES)
COSMETIC_FILTERS = Resource(ResourceKind.COSMETIC_FILTERS)
SCRIPTLET_RESOURCES = Resource(ResourceKind.SCRIPTLET_RESOURCES)


def cache_folder_name(resource: Resource) -> str:
    """Folder (relative to the cache root) the resource is stored in."""
    kind = resource.kind
    if kind is ResourceKind.DEBOUNCE_RULES:
        return "debounce-data"
    if kind.is_per_list:
        return f"filter-lists/{resource.component_id}"
    if kind in (ResourceKind.COSMETIC_FILTERS, ResourceKind.SCRIPTLET_RESOURCES):
        return "cmf-data"
    return "abp-data"


def cache_file_name(resource: Resource) -> str:
    kind = resource.kind
    if kind is ResourceKind.DEBOUNCE_RULES:
        return "ios-debouce.json"
    if kind is ResourceKind.FILTER_RULES:
        return f"rs-{resource.uuid}.dat"
    if kind is ResourceKind.CONTENT_BLOCKING_BEHAVIORS:
        return f"{resource.uuid}-latest.json"
    if kind is ResourceKind.GENERIC_FILTER_RULES:
        return "rs-ABPFilterParserData.dat"
    if kind is ResourceKind.GENERIC_CONTENT_BLOCKING_BEHAVIORS:
        return "latest.json"
    if kind is ResourceKind.COSMETIC_FILTERS:
        return "ios-cosmetic-filters.dat"
    return "scriptlet-resources.json"


def etag_file_name(resource: Resource) -> str:
    return f"{cache_file_name(resource)}.etag"


def last_modified_file_name(resource: Resource) -> str:
    return f"{cache_file_name(resource)}.lastmodified"


def resource_path(resource: Resource) -> str:
    """Path of the resource on the remote bucket."""
    kind = resource.kind
    if kind is ResourceKind.DEBOUNCE_RULES:
        return "/ios/debounce.json"
    if kind is ResourceKind.FILTER_RULES:
        return f"/4/rs-{resource.uuid}.dat"
    if kind is ResourceKind.CONTENT_BLOCKING_BEHAVIORS:
        return f"/ios/{resource.uuid}-latest.json"
    if kind is ResourceKind.GENERIC_FILTER_RULES:
        return "/4/rs-ABPFilterParserData.dat"
    if kind is ResourceKind.GENERIC_CONTENT_BLOCKING_BEHAVIORS:
        return "/ios/latest.json"
    return f"/ios/{cache_file_name(resource)}"


class ResourceType(Enum):
    """Per-list resource types that are synced and loaded independently."""

    FILTER_RULES = "filter_rules"
    CONTENT_BLOCKING_BEHAVIORS = "content_blocking_behaviors"

    def resource_for(self, filter_list: FilterList) -> Resource:
        if self is ResourceType.FILTER_RULES:
            return Resource.filter_rules(filter_list.uuid, filter_list.component_id)
        return Resource.content_blocking_behaviors(filter_list.uuid, filter_list.component_id)
