"""Shared builders for context filter tests."""

from typing import Optional

from src.apicontext.models import (
    AuthScheme,
    ChatMessage,
    Collection,
    Endpoint,
    Header,
    Parameter,
    Response,
)
from src.apicontext.retrieval.models import AnalyzedQuery, SearchResult

BASE_URL = "https://api.example.com/v1"

# resource path segment -> singular display noun
RESOURCES = {
    "users": "user",
    "orders": "order",
    "products": "product",
    "invoices": "invoice",
    "payments": "payment",
    "teams": "team",
    "files": "file",
    "webhooks": "webhook",
    "reports": "report",
}

AUTH_HEADER = Header(key="Authorization", value="Bearer {{token}}")


def make_endpoint(
    method: str,
    path: str,
    name: str,
    endpoint_id: Optional[str] = None,
    folder: str = "",
    description: Optional[str] = None,
    **kwargs,
) -> Endpoint:
    return Endpoint(
        id=endpoint_id or f"{method.lower()}-{path.strip('/').replace('/', '-') or 'root'}",
        name=name,
        method=method,
        url=f"{BASE_URL}{path}",
        path=path,
        folder=folder,
        description=description,
        **kwargs,
    )


def _crud_endpoints(resource: str, noun: str) -> list[Endpoint]:
    folder = resource.capitalize()
    id_param = Parameter(name="id", location="path", required=True, description=f"The {noun} id")
    body = '{"name": "example", "metadata": {}}'
    return [
        make_endpoint(
            "GET", f"/{resource}", f"List {resource}", f"{resource}-list", folder,
            f"Returns a paginated list of {resource}.",
            parameters=[
                Parameter(name="page", type="integer", description="Page number"),
                Parameter(name="limit", type="integer", description="Page size"),
            ],
            headers=[AUTH_HEADER],
            responses=[Response(status_code="200", description=f"A page of {resource}")],
            requires_auth=True,
            auth_type="bearer",
        ),
        make_endpoint(
            "POST", f"/{resource}", f"Create {noun}", f"{resource}-create", folder,
            f"Creates a new {noun}.",
            headers=[AUTH_HEADER, Header(key="Content-Type", value="application/json")],
            request_body=body,
            request_content_type="application/json",
            responses=[
                Response(status_code="201", description=f"{noun.capitalize()} created"),
                Response(status_code="422", description="Validation failed"),
            ],
            requires_auth=True,
            auth_type="bearer",
        ),
        make_endpoint(
            "GET", f"/{resource}/{{id}}", f"Get {noun}", f"{resource}-get", folder,
            f"Returns a single {noun} by id.",
            parameters=[id_param],
            headers=[AUTH_HEADER],
            responses=[
                Response(status_code="200", description=f"The {noun}"),
                Response(status_code="404", description=f"{noun.capitalize()} not found"),
            ],
            requires_auth=True,
            auth_type="bearer",
        ),
        make_endpoint(
            "PUT", f"/{resource}/{{id}}", f"Update {noun}", f"{resource}-update", folder,
            f"Replaces an existing {noun}.",
            parameters=[id_param],
            headers=[AUTH_HEADER],
            request_body=body,
            responses=[
                Response(status_code="200", description=f"{noun.capitalize()} updated"),
                Response(status_code="404", description=f"{noun.capitalize()} not found"),
            ],
            requires_auth=True,
            auth_type="bearer",
        ),
        make_endpoint(
            "DELETE", f"/{resource}/{{id}}", f"Delete {noun}", f"{resource}-delete", folder,
            f"Permanently removes a {noun}.",
            parameters=[id_param],
            headers=[AUTH_HEADER],
            responses=[Response(status_code="204", description="Deleted")],
            requires_auth=True,
            auth_type="bearer",
        ),
    ]


def _auth_endpoints() -> list[Endpoint]:
    return [
        make_endpoint(
            "POST", "/auth/login", "Login", "auth-login", "Auth",
            "Exchanges email and password for an access token.",
            request_body='{"email": "dev@example.com", "password": "hunter22"}',
            responses=[
                Response(status_code="200", description="Access token issued"),
                Response(status_code="401", description="Invalid credentials"),
            ],
        ),
        make_endpoint(
            "POST", "/auth/refresh", "Refresh token", "auth-refresh", "Auth",
            "Issues a new access token from a refresh token.",
            responses=[Response(status_code="200", description="Token refreshed")],
            auth_type="bearer",
        ),
        make_endpoint(
            "POST", "/auth/logout", "Logout", "auth-logout", "Auth",
            "Revokes the current session.",
            headers=[AUTH_HEADER],
            responses=[Response(status_code="204", description="Logged out")],
            requires_auth=True,
            auth_type="bearer",
        ),
        make_endpoint(
            "GET", "/auth/me", "Current session", "auth-me", "Auth",
            "Returns the identity behind the bearer token.",
            headers=[AUTH_HEADER],
            responses=[Response(status_code="200", description="Session identity")],
            requires_auth=True,
            auth_type="bearer",
        ),
        make_endpoint(
            "POST", "/auth/api-keys", "Create API key", "auth-api-keys", "Auth",
            "Creates a long-lived API key for server-to-server calls.",
            headers=[AUTH_HEADER],
            responses=[Response(status_code="201", description="API key created")],
            requires_auth=True,
            auth_type="bearer",
        ),
    ]


def build_sample_collection(title: str = "Acme") -> Collection:
    """50 endpoints: 9 CRUD resources plus 5 auth endpoints."""
    endpoints: list[Endpoint] = []
    for resource, noun in RESOURCES.items():
        endpoints.extend(_crud_endpoints(resource, noun))
    endpoints.extend(_auth_endpoints())
    return Collection(
        title=title,
        base_url=BASE_URL,
        version="1.0",
        endpoints=endpoints,
        auth_schemes=[AuthScheme(type="bearer", name="BearerAuth", details={"scheme": "bearer"})],
    )


def build_small_collection(count: int = 5, title: str = "Tiny") -> Collection:
    endpoints = [
        make_endpoint("GET", f"/things{i}", f"Thing {i}", f"thing-{i}", "Things", f"Thing number {i}")
        for i in range(count)
    ]
    return Collection(title=title, base_url=BASE_URL, endpoints=endpoints)


def find_endpoint(collection: Collection, endpoint_id: str) -> Endpoint:
    return next(ep for ep in collection.endpoints if ep.id == endpoint_id)


def result(endpoint: Endpoint, score: float) -> SearchResult:
    return SearchResult(endpoint=endpoint, score=score, matched_terms=("term",))


def query(**kwargs) -> AnalyzedQuery:
    kwargs.setdefault("raw_text", "test query")
    return AnalyzedQuery(**kwargs)


def user(content: str) -> ChatMessage:
    return ChatMessage(role="user", content=content)


def assistant(content: str) -> ChatMessage:
    return ChatMessage(role="assistant", content=content)
