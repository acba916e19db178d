"""
Graph Data Models

This module defines Pydantic models for knowledge graph data:
- Entity: A named node with a type, free-text observations and tags
- Relation: A directed, typed link between two entity names
- KnowledgeGraph: A set of entities plus the relations among them

Request models for the mutation endpoints live here as well. The wire
format uses camelCase aliases (``entityType``, ``relationType``, ``from``,
``to``); Python code uses the snake_case attribute names.
"""

import re
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from kgraph.errors import InvalidInputError

PROJECT_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
PROJECT_NAME_MAX_LENGTH = 100


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def validate_project_name(project: str) -> str:
    """
    Check that a project name is safe to use as a namespace.

    Args:
        project: Candidate project name

    Returns:
        The project name, unchanged

    Raises:
        InvalidInputError: If the name is empty, too long or has characters
            outside letters, digits, hyphens and underscores
    """
    if not isinstance(project, str) or not project:
        raise InvalidInputError("project must be a non-empty string")
    if len(project) > PROJECT_NAME_MAX_LENGTH:
        raise InvalidInputError(
            f"project must be at most {PROJECT_NAME_MAX_LENGTH} characters, got {len(project)}"
        )
    if not PROJECT_NAME_PATTERN.match(project):
        raise InvalidInputError(
            f"project '{project}' may only contain letters, digits, hyphens and underscores"
        )
    return project


def resolve_project(project: Optional[str], default: str) -> str:
    """Return the validated project name, or the default when none is given."""
    if project is None or (isinstance(project, str) and not project.strip()):
        return validate_project_name(default)
    return validate_project_name(project.strip())


def _unique(values: list[str]) -> list[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


# =============================================================================
# Entities
# =============================================================================

class EntityBase(BaseModel):
    """
    Base model for Entity with common fields.

    Attributes:
        name: Unique key of the entity within its project
        entity_type: Free-form type label (e.g. "person", "service")
        observations: Ordered free-text facts about the entity
        tags: Exact-match labels, case-sensitive, without duplicates
    """
    name: str = Field(..., min_length=1, description="Entity name, unique per project")
    entity_type: str = Field(
        ...,
        alias="entityType",
        min_length=1,
        description="Entity type label"
    )
    observations: list[str] = Field(
        default_factory=list,
        description="Free-text observations about the entity"
    )
    tags: list[str] = Field(
        default_factory=list,
        description="Exact-match, case-sensitive tags"
    )

    @field_validator("observations", "tags", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        return [] if value is None else value

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        return _unique(value)

    class Config:
        populate_by_name = True


class EntityCreate(EntityBase):
    """
    Model for creating a new entity.

    Example:
        {
            "name": "payments-api",
            "entityType": "service",
            "observations": ["Owns the checkout flow"],
            "tags": ["backend", "critical"]
        }
    """


class Entity(EntityBase):
    """
    Complete Entity model as stored and returned by the API.

    Attributes:
        created_at: Timestamp when the entity was first stored
        updated_at: Timestamp of the last change to the entity
    """
    created_at: Optional[datetime] = Field(
        default=None,
        alias="createdAt",
        description="Timestamp when the entity was created"
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        alias="updatedAt",
        description="Timestamp of last update"
    )

    class Config:
        """Pydantic model configuration."""
        populate_by_name = True
        from_attributes = True
        json_schema_extra = {
            "example": {
                "name": "payments-api",
                "entityType": "service",
                "observations": ["Owns the checkout flow", "Written in Go"],
                "tags": ["backend", "critical"],
                "createdAt": "2024-01-15T10:30:00Z",
                "updatedAt": "2024-01-15T10:30:00Z"
            }
        }

    def touch(self) -> "Entity":
        """Return a copy stamped with the current time."""
        return self.model_copy(update={"updated_at": utcnow()})


# =============================================================================
# Relations
# =============================================================================

class Relation(BaseModel):
    """
    Directed relation between two entities of the same project.

    A relation has no identity beyond its (from, to, relationType) triple.
    """
    from_entity: str = Field(..., alias="from", min_length=1, description="Source entity name")
    to_entity: str = Field(..., alias="to", min_length=1, description="Target entity name")
    relation_type: str = Field(
        ...,
        alias="relationType",
        min_length=1,
        description="Relation type in active voice (e.g. 'depends_on')"
    )

    class Config:
        populate_by_name = True
        from_attributes = True
        json_schema_extra = {
            "example": {"from": "checkout-web", "to": "payments-api", "relationType": "calls"}
        }

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.from_entity, self.to_entity, self.relation_type)


class KnowledgeGraph(BaseModel):
    """Entities plus the relations among them."""
    entities: list[Entity] = Field(default_factory=list)
    relations: list[Relation] = Field(default_factory=list)

    def entity_names(self) -> set[str]:
        return {entity.name for entity in self.entities}


# =============================================================================
# Mutation Requests
# =============================================================================

class ObservationUpdate(BaseModel):
    """Observations to add to, or delete from, one entity."""
    entity_name: str = Field(..., alias="entityName", min_length=1)
    observations: list[str] = Field(..., description="Observation strings")

    class Config:
        populate_by_name = True


class TagUpdate(BaseModel):
    """Tags to add to, or remove from, one entity."""
    entity_name: str = Field(..., alias="entityName", min_length=1)
    tags: list[str] = Field(..., description="Tag strings (case-sensitive)")

    class Config:
        populate_by_name = True


class EntityNames(BaseModel):
    """A list of entity names, used by open and delete requests."""
    names: list[str] = Field(..., description="Entity names")


class UpdateResult(BaseModel):
    """What a bulk observation/tag update actually changed for one entity."""
    entity_name: str = Field(..., alias="entityName")
    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)

    class Config:
        populate_by_name = True
