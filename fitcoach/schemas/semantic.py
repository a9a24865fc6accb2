"""
Schemas for the compiled semantic layer artifacts.

Each definition keeps the fields the assembler and tools depend on as typed
attributes; any other authored key is collected into ``extensions`` so new
authoring fields load without breaking the loader. Models are frozen after load.
"""

from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    PrivateAttr,
    field_validator,
    model_validator,
)

DefinitionType = Literal["domain", "entity", "metric", "policy"]
DEFINITION_TYPES: tuple[str, ...] = ("domain", "entity", "metric", "policy")

# definition type -> CompiledSemantic attribute
SECTIONS: dict[str, str] = {
    "domain": "domains",
    "entity": "entities",
    "metric": "metrics",
    "policy": "policies",
}


class QueryPattern(BaseModel):
    """Named SQL template attached to a domain."""

    model_config = ConfigDict(frozen=True, extra="allow")

    description: str = ""
    sql: str


class QueryExample(BaseModel):
    """Worked question -> SQL example used for few-shot prompting."""

    model_config = ConfigDict(frozen=True, extra="allow")

    question: str
    sql: str


class IntentDefinition(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    description: str = ""
    examples: list[str] = Field(default_factory=list)


class FieldDefinition(BaseModel):
    """Entity field descriptor. Constraints (values, unit, min, max, default...) stay as extra keys."""

    model_config = ConfigDict(frozen=True, extra="allow")

    name: str
    type: str = "string"
    description: str = ""
    required: bool | None = None

    @property
    def constraints(self) -> dict[str, Any]:
        extra = dict(self.model_extra or {})
        if self.required is not None:
            extra["required"] = self.required
        return extra


class MetricDetail(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    description: str = ""
    formula: str | None = None
    unit: str | None = None
    target_range: list[float] | None = None
    thresholds: dict[str, float] | None = None
    interpretation: dict[str, str] | str | None = None


class SemanticDefinition(BaseModel):
    """Base for domain/entity/metric/policy records: typed fields plus one extension map."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    version: str | None = None
    description: str
    extensions: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_extensions(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known: set[str] = set()
        for name, info in cls.model_fields.items():
            known.add(name)
            if info.alias:
                known.add(info.alias)
        extensions = dict(data.get("extensions") or {})
        fields: dict[str, Any] = {}
        for key, value in data.items():
            if key in known:
                fields[key] = value
            else:
                extensions[key] = value
        fields["extensions"] = extensions
        return fields

    @field_validator("version", mode="before")
    @classmethod
    def _version_as_str(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    def to_document(self) -> dict[str, Any]:
        """Artifact-shaped dict (authored keys, extensions merged back). Token estimates measure this."""
        doc = self.model_dump(
            mode="json",
            by_alias=True,
            exclude_defaults=True,
            exclude={"id", "extensions"},
        )
        doc.update(self.extensions)
        return doc

    def summary(self) -> "Summary":
        return Summary(id=self.id, description=self.description)


class DomainDefinition(SemanticDefinition):
    name: str = Field(alias="domain")
    intents: dict[str, IntentDefinition] = Field(default_factory=dict)
    query_patterns: dict[str, QueryPattern] = Field(default_factory=dict)


class EntityDefinition(SemanticDefinition):
    name: str = Field(alias="entity")
    table: str
    primary_key: str | None = None
    fields: list[FieldDefinition] = Field(default_factory=list)
    examples: list[QueryExample] = Field(default_factory=list)
    synonyms: dict[str, list[str]] = Field(default_factory=dict)


class MetricDefinition(SemanticDefinition):
    name: str = Field(alias="metric")
    definitions: dict[str, MetricDetail] = Field(default_factory=dict)
    examples: list[QueryExample] = Field(default_factory=list)


class PolicyDefinition(SemanticDefinition):
    statement: str = Field(alias="policy")
    always_include: bool = False
    principles: list[str] = Field(default_factory=list)


class Summary(BaseModel):
    """Minimal {id, description} projection used when a full definition does not fit the budget."""

    model_config = ConfigDict(frozen=True)

    id: str
    description: str

    def to_document(self) -> dict[str, Any]:
        return {"id": self.id, "description": self.description}


class TokenBudgets(BaseModel):
    model_config = ConfigDict(frozen=True)

    semantic_context: NonNegativeInt
    user_state: NonNegativeInt
    policy: NonNegativeInt
    total: NonNegativeInt


class IntentCategory(BaseModel):
    """Bundle of ids scored together during intent classification."""

    model_config = ConfigDict(frozen=True)

    domains: list[str] = Field(default_factory=list)
    entities: list[str] = Field(default_factory=list)
    metrics: list[str] = Field(default_factory=list)


class CompiledSemantic(BaseModel):
    """Top-level compiled definitions artifact (semantic.compiled.json)."""

    model_config = ConfigDict(frozen=True)

    version: str | None = None
    compiled_at: str | None = None
    schema_version: int | None = None
    token_budgets: TokenBudgets
    domains: dict[str, DomainDefinition] = Field(default_factory=dict)
    entities: dict[str, EntityDefinition] = Field(default_factory=dict)
    metrics: dict[str, MetricDefinition] = Field(default_factory=dict)
    policies: dict[str, PolicyDefinition] = Field(default_factory=dict)
    intent_categories: dict[str, IntentCategory] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _inject_ids(cls, data: Any) -> Any:
        # Definitions are keyed by id in the artifact; copy the key onto each record.
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for section in SECTIONS.values():
            items = data.get(section)
            if isinstance(items, dict):
                data[section] = {
                    key: {**value, "id": key} if isinstance(value, dict) else value
                    for key, value in items.items()
                }
        return data

    def section(self, definition_type: str) -> dict[str, SemanticDefinition]:
        """Definitions map for a type ("domain", "entity", "metric", "policy")."""
        return getattr(self, SECTIONS[definition_type])

    def always_include_policies(self) -> dict[str, PolicyDefinition]:
        return {pid: p for pid, p in self.policies.items() if p.always_include}


class SearchIndexEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: DefinitionType
    keywords: list[str] = Field(default_factory=list)
    synonyms: list[str] = Field(default_factory=list)
    description: str = ""
    file: str = ""


class SearchIndex(BaseModel):
    """Search index artifact (semantic.index.json). Accepts a bare list of entries too."""

    model_config = ConfigDict(frozen=True)

    version: str | None = None
    entries: list[SearchIndexEntry] = Field(default_factory=list)
    keyword_map: dict[str, list[str]] = Field(default_factory=dict)

    _by_key: dict[tuple[str, str], SearchIndexEntry] = PrivateAttr(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _wrap_entry_list(cls, data: Any) -> Any:
        if isinstance(data, list):
            return {"entries": data}
        return data

    def model_post_init(self, __context: Any) -> None:
        for entry in self.entries:
            self._by_key.setdefault((entry.id, entry.type), entry)

    def lookup(self, entry_id: str, entry_type: str) -> SearchIndexEntry | None:
        """First entry with this id and type, or None."""
        return self._by_key.get((entry_id, entry_type))
