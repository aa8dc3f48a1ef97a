from __future__ import annotations
from pathlib import Path
from typing import Optional
from src.apicontext.config import FilterSettings, load_settings
from src.apicontext.loader import load_collection, load_history
from src.apicontext.models import Collection
from src.apicontext.retrieval.analyzer import format_query_summary
from src.apicontext.retrieval.pipeline import ContextFilterService
from src.utils.logger import get_logger

logger = get_logger("cli")
DEFAULT_SETTINGS = Path.home() / ".config" / "apicontext" / "settings.yaml"


def _load(collection_path: Path) -> tuple[Optional[Collection], Optional[str]]:
    try:
        return load_collection(collection_path), None
    except FileNotFoundError:
        return None, f"Error: collection file not found: {collection_path}"
    except ValueError as e:
        return None, f"Error: {str(e).splitlines()[0]}"


def cmd_context(
    collection_path: Path,
    message: str,
    history_path: Optional[Path] = None,
    budget: Optional[str] = None,
    settings_path: Path = DEFAULT_SETTINGS,
    disable: bool = False,
    audit_dir: Optional[Path] = None,
) -> str:
    collection, error = _load(collection_path)
    if error:
        return error

    history = []
    if history_path is not None:
        try:
            history = load_history(history_path)
        except (FileNotFoundError, ValueError) as e:
            return f"Error: {str(e).splitlines()[0]}"

    settings = load_settings(settings_path)
    overrides = {}
    if budget:
        overrides["budget_mode"] = budget
    if disable:
        overrides["enabled"] = False
    if overrides:
        settings = FilterSettings(**{**settings.model_dump(), **overrides})

    context_logger = None
    if audit_dir is not None:
        from src.apicontext.utils.audit import ContextAuditLogger
        context_logger = ContextAuditLogger(log_dir=str(audit_dir))

    service = ContextFilterService(settings=settings, context_logger=context_logger)
    service.set_collection(collection)
    try:
        result = service.get_context_for_query(message, history)
    finally:
        if context_logger is not None:
            context_logger.close()

    stats = result.stats
    lines = [result.context_markdown or "(no context sent)", "", "─" * 40]
    lines.append(f"Gate:      {stats.gate_decision}")
    lines.append(f"Budget:    {stats.budget_mode}")
    lines.append(
        f"Endpoints: {stats.sent_full} full, {stats.sent_summary} summary, "
        f"{stats.excluded} excluded of {stats.total_endpoints}"
    )
    lines.append(
        f"Tokens:    ~{stats.estimated_input_tokens} "
        f"({stats.estimated_cost_saving_percent}% saved)"
    )
    lines.append(f"Time:      {stats.processing_time_ms:.1f}ms")
    return "\n".join(lines)


def cmd_debug(collection_path: Path, message: str) -> str:
    collection, error = _load(collection_path)
    if error:
        return error

    service = ContextFilterService()
    service.set_collection(collection)
    query, results = service.debug_query(message)

    lines = [f"Query: {format_query_summary(query)}", ""]
    if not results:
        lines.append("No matching endpoints.")
    for rank, r in enumerate(results, 1):
        lines.append(f"{rank:>2}. {r.score:7.3f}  {r.endpoint.signature}  ({r.endpoint.name})")
        lines.append(f"      terms: {', '.join(r.matched_terms)}  fields: {', '.join(r.matched_fields)}")
    return "\n".join(lines)


async def cmd_index(collection_path: Path) -> str:
    collection, error = _load(collection_path)
    if error:
        return error

    service = ContextFilterService()
    service.set_collection(collection)
    await service.warm_up()
    index = service.index_cache.get_or_build(collection)

    folders = {ep.folder or "Ungrouped" for ep in collection.endpoints}
    auth_related = sum(1 for ep in collection.endpoints if ep.is_auth_related)
    lines = [f"Index: {collection.title}", "=" * 40]
    lines.append(f"  Endpoints:    {index.document_count}")
    lines.append(f"  Folders:      {len(folders)}")
    lines.append(f"  Auth-related: {auth_related}")
    lines.append(f"  Vocabulary:   {index.vocabulary_size} terms")
    lines.append(f"  Avg length:   {index.avg_doc_length:.1f}")
    lines.append(f"  Fingerprint:  {index.fingerprint[:12]}")
    return "\n".join(lines)
