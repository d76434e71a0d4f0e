"""API routes for transformation rule inspection and cache management."""
from fastapi import APIRouter, Depends, HTTPException
from .dependencies import get_rule_store
from .schemas import RuleListResponse
from ..transform.store import RuleStore

router = APIRouter(prefix="/v1/rules", tags=["rules"])


@router.get("", response_model=RuleListResponse)
def list_rules(store: RuleStore = Depends(get_rule_store)):
    """List all loaded transformation rules."""
    rules = store.get_rules()
    return RuleListResponse(
        total=len(rules),
        rules=[rule.model_dump(by_alias=True, exclude_none=True) for rule in rules],
        errors=store.get_cache_stats()["lastErrors"],
    )


@router.get("/cache")
async def cache_stats(store: RuleStore = Depends(get_rule_store)):
    """Rule cache statistics."""
    return store.get_cache_stats()


@router.delete("/cache", status_code=204)
async def clear_cache(store: RuleStore = Depends(get_rule_store)):
    """Drop all cached rules; the next lookup reloads them."""
    store.clear_rule_cache()
    return None


@router.get("/{rule_name}")
def get_rule(rule_name: str, store: RuleStore = Depends(get_rule_store)):
    """Get a specific rule by name."""
    match = store.find_rule_by_name(rule_name)
    if not match.matched:
        raise HTTPException(404, detail=match.error)
    entry = store.get_entry(rule_name)
    return {
        "rule": match.rule.model_dump(by_alias=True, exclude_none=True),
        "loadedAt": entry.loaded_at if entry else None,
        "filePath": entry.file_path if entry else None,
    }
