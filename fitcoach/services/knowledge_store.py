"""
Knowledge store: loads the compiled semantic artifacts once and serves them read-only.

Responsibility: Parse semantic.compiled.json and semantic.index.json on first use,
behind a lock so concurrent first requests parse each file exactly once. After that,
reads are lock-free. A missing or invalid artifact raises SemanticLayerUnavailableError;
the process cannot serve requests without its knowledge base.
"""

import logging
import threading
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from fitcoach.core.config import SEMANTIC_COMPILED_PATH, SEMANTIC_INDEX_PATH
from fitcoach.core.errors import SemanticLayerUnavailableError
from fitcoach.schemas.semantic import (
    DEFINITION_TYPES,
    CompiledSemantic,
    DomainDefinition,
    EntityDefinition,
    MetricDefinition,
    PolicyDefinition,
    QueryExample,
    QueryPattern,
    SearchIndex,
    SemanticDefinition,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _read_artifact(path: Path, model: type[ModelT]) -> ModelT:
    """Read and validate one artifact file. Any failure is fatal for the process."""
    logger.info("[knowledge_store:read_artifact] IN  path=%s model=%s", path, model.__name__)
    if not path.is_file():
        raise SemanticLayerUnavailableError(
            f"Semantic artifact not found: {path}. Run the semantic compile step first."
        )
    try:
        content = path.read_text(encoding="utf-8")
        artifact = model.model_validate_json(content)
    except OSError as e:
        raise SemanticLayerUnavailableError(f"Failed to read semantic artifact {path}: {e}") from e
    except ValidationError as e:
        raise SemanticLayerUnavailableError(f"Invalid semantic artifact {path}: {e}") from e
    logger.info("[knowledge_store:read_artifact] OUT path=%s bytes=%d", path, len(content))
    return artifact


class KnowledgeStore:
    """Process-lifetime cache of the compiled definitions and search index."""

    def __init__(
        self,
        compiled_path: Path | str = SEMANTIC_COMPILED_PATH,
        index_path: Path | str = SEMANTIC_INDEX_PATH,
    ) -> None:
        self.compiled_path = Path(compiled_path)
        self.index_path = Path(index_path)
        self._lock = threading.Lock()
        self._compiled: CompiledSemantic | None = None
        self._index: SearchIndex | None = None

    @property
    def is_loaded(self) -> bool:
        return self._compiled is not None and self._index is not None

    def load_definitions(self) -> CompiledSemantic:
        compiled = self._compiled
        if compiled is not None:
            return compiled
        with self._lock:
            if self._compiled is None:
                self._compiled = _read_artifact(self.compiled_path, CompiledSemantic)
                logger.info(
                    "[knowledge_store:load_definitions] loaded version=%s domains=%d entities=%d metrics=%d policies=%d",
                    self._compiled.version,
                    len(self._compiled.domains),
                    len(self._compiled.entities),
                    len(self._compiled.metrics),
                    len(self._compiled.policies),
                )
            return self._compiled

    def load_search_index(self) -> SearchIndex:
        index = self._index
        if index is not None:
            return index
        with self._lock:
            if self._index is None:
                self._index = _read_artifact(self.index_path, SearchIndex)
                logger.info("[knowledge_store:load_search_index] loaded entries=%d", len(self._index.entries))
            return self._index

    def warm(self) -> None:
        """Load both artifacts now (startup), so a broken build fails before serving."""
        self.load_definitions()
        self.load_search_index()

    def clear_cache(self) -> None:
        """Drop cached artifacts; the next load re-reads from disk."""
        with self._lock:
            self._compiled = None
            self._index = None
        logger.info("[knowledge_store:clear_cache] cleared")


_store = KnowledgeStore()
_store_lock = threading.Lock()


def get_knowledge_store() -> KnowledgeStore:
    return _store


def configure_knowledge_store(
    compiled_path: Path | str, index_path: Path | str
) -> KnowledgeStore:
    """Point the process-wide store at other artifact paths. Returns the new store."""
    global _store
    with _store_lock:
        _store = KnowledgeStore(compiled_path, index_path)
    return _store


def load_definitions() -> CompiledSemantic:
    return get_knowledge_store().load_definitions()


def load_search_index() -> SearchIndex:
    return get_knowledge_store().load_search_index()


def clear_cache() -> None:
    get_knowledge_store().clear_cache()


# --- Lookups ---

def get_definition(definition_id: str, definition_type: str) -> SemanticDefinition | None:
    """Definition by id and type, or None. Unknown types return None."""
    if definition_type not in DEFINITION_TYPES:
        return None
    return load_definitions().section(definition_type).get(definition_id)


def list_definition_ids(definition_type: str) -> list[str]:
    if definition_type not in DEFINITION_TYPES:
        return []
    return list(load_definitions().section(definition_type).keys())


def get_domain(domain_id: str) -> DomainDefinition | None:
    return load_definitions().domains.get(domain_id)


def get_entity(entity_id: str) -> EntityDefinition | None:
    return load_definitions().entities.get(entity_id)


def get_metric(metric_id: str) -> MetricDefinition | None:
    return load_definitions().metrics.get(metric_id)


def get_policy(policy_id: str) -> PolicyDefinition | None:
    return load_definitions().policies.get(policy_id)


def get_always_include_policies() -> dict[str, PolicyDefinition]:
    return load_definitions().always_include_policies()


def get_query_patterns(domain_id: str) -> dict[str, QueryPattern] | None:
    """SQL templates for a domain; None when the domain is unknown or has none."""
    domain = get_domain(domain_id)
    if domain is None or not domain.query_patterns:
        return None
    return domain.query_patterns


def get_entity_examples(entity_id: str) -> list[QueryExample] | None:
    entity = get_entity(entity_id)
    if entity is None or not entity.examples:
        return None
    return entity.examples
