"""Markdown renderers for endpoints and collections."""

from __future__ import annotations

from collections import OrderedDict
from typing import Optional

from src.apicontext.models import Collection, Endpoint

MAX_BODY_CHARS = 300
MAX_SUMMARY_DESCRIPTION_CHARS = 80


def _group_by_folder(collection: Collection, default: str) -> "OrderedDict[str, list[Endpoint]]":
    groups: OrderedDict[str, list[Endpoint]] = OrderedDict()
    for ep in collection.endpoints:
        groups.setdefault(ep.folder or default, []).append(ep)
    return groups


def _auth_label(endpoint: Endpoint) -> str:
    if endpoint.requires_auth:
        return f"Yes ({endpoint.auth_type})" if endpoint.auth_type else "Yes"
    return "No"


def format_endpoint_full(endpoint: Endpoint) -> str:
    """Rich section: URL, description, params, enabled headers, body, responses, auth."""
    lines = [
        f"### {endpoint.method} {endpoint.name}",
        f"- **URL:** `{endpoint.url or endpoint.path}`",
        f"- **Description:** {endpoint.description or 'No description'}",
    ]

    if endpoint.parameters:
        lines.append("- **Parameters:**")
        for p in endpoint.parameters:
            req = ", required" if p.required else ""
            desc = f": {p.description}" if p.description else ""
            lines.append(f"  - `{p.name}` ({p.location}, {p.type}{req}){desc}")

    enabled = [h for h in endpoint.headers if h.enabled]
    if enabled:
        lines.append("- **Headers:** " + ", ".join(f"{h.key}: {h.value}" for h in enabled))

    if endpoint.request_body:
        body = endpoint.request_body
        if len(body) > MAX_BODY_CHARS:
            body = body[:MAX_BODY_CHARS] + "..."
        lines.append(f"- **Request Body** ({endpoint.request_content_type or 'application/json'}):")
        lines.extend(["```json", body, "```"])

    if endpoint.responses:
        lines.append(
            "- **Responses:** "
            + "; ".join(f"{r.status_code}: {r.description}" for r in endpoint.responses)
        )

    lines.append(f"- **Auth Required:** {_auth_label(endpoint)}")
    return "\n".join(lines)


def format_endpoint_summary(endpoint: Endpoint) -> str:
    """One line: signature, name and the start of the description."""
    line = f"`{endpoint.signature}` - {endpoint.name}"
    if endpoint.description:
        line += ": " + endpoint.description[:MAX_SUMMARY_DESCRIPTION_CHARS]
        if len(endpoint.description) > MAX_SUMMARY_DESCRIPTION_CHARS:
            line += "..."
    return line


def format_global_summary(collection: Collection) -> str:
    """Compact folder-grouped index of every endpoint."""
    groups = _group_by_folder(collection, "Ungrouped")
    lines = [
        f"# {collection.title} API",
        f"Base URL: `{collection.base_url}`",
        f"Total Endpoints: {len(collection.endpoints)} across {len(groups)} groups",
    ]
    if collection.auth_schemes:
        schemes = ", ".join(f"{a.type} ({a.name})" for a in collection.auth_schemes)
        lines.append(f"Authentication: {schemes}")
    else:
        lines.append("Authentication: None")

    lines.extend(["", "## Endpoint Index"])
    for folder, endpoints in groups.items():
        lines.append(f"### {folder} ({len(endpoints)} endpoints)")
        lines.extend(f"{ep.method} `{ep.path}` - {ep.name}" for ep in endpoints)
        lines.append("")

    lines.append("> This is a compact index. Ask about specific endpoints for full details.")
    return "\n".join(lines)


def _format_body(body: Optional[str]) -> str:
    if not body or not body.strip():
        return "None"
    return "`" + body.strip().replace("`", "\\`") + "`"


def format_collection_markdown(collection: Collection) -> str:
    """Every endpoint in full. Sent when filtering is off or the collection is small."""
    if collection.auth_schemes:
        parts = []
        for scheme in collection.auth_schemes:
            details = ", ".join(f"{k}={v}" for k, v in scheme.details.items())
            label = f"{scheme.name} ({scheme.type}; {details})" if details else f"{scheme.name} ({scheme.type})"
            parts.append(label)
        auth_summary = ", ".join(parts)
    else:
        auth_summary = "None"

    lines = [
        f"# {collection.title} API",
        f"Base URL: {collection.base_url or '(not specified)'}",
        f"Auth: {auth_summary}",
        "",
    ]

    for folder, endpoints in _group_by_folder(collection, "General").items():
        lines.extend([f"## {folder}", ""])
        for ep in endpoints:
            params = ", ".join(
                f"`{p.location}.{p.name}` ({p.type}, {'required' if p.required else 'optional'})"
                for p in ep.parameters
            ) or "None"
            headers = ", ".join(
                f"`{h.key}: {h.value}`" for h in ep.headers if h.enabled
            ) or "None"
            responses = []
            for r in ep.responses:
                body = r.body_schema or r.example or ""
                label = f"{r.status_code} ({r.description})"
                responses.append(f"{label}: {body}" if body else label)

            lines.extend([
                f"### {ep.method} {ep.name}",
                f"- **URL:** `{ep.url or ep.path}`",
                f"- **Description:** {ep.description or 'None'}",
                f"- **Parameters:** {params}",
                f"- **Headers:** {headers}",
                f"- **Request Body:** {_format_body(ep.request_body)}",
                f"- **Responses:** {', '.join(responses) or 'None'}",
                f"- **Auth Required:** {'yes' if ep.requires_auth else 'no'}",
                "",
            ])

    return "\n".join(lines).strip()
