"""
API route aggregator: system endpoints only; tools live on the MCP router.
"""

import logging

from fastapi import APIRouter

from fitcoach.services.knowledge_store import get_knowledge_store

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", tags=["system"])
def root():
    return {"status": "Fitness coaching semantic layer running"}


@router.get("/health", tags=["system"])
def health():
    store = get_knowledge_store()
    return {"ok": store.is_loaded, "semantic_layer_loaded": store.is_loaded}
