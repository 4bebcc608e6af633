"""Minimal deterministic OpenAPI document for the issue service.

Issue lifecycle metadata comes straight from ``ISSUE_TRANSITIONS`` so the published
document cannot drift from the engine.
"""
from typing import Any, Dict

from issuedesk.constants.statuses import ALL_STATUSES, LEGACY_ALIASES, display_name
from issuedesk.services.lifecycle import ISSUE_TRANSITIONS

__all__ = ["build_openapi_spec"]


def caching_headers() -> Dict[str, Any]:
    return {
        "ETag": {"schema": {"type": "string"}},
        "Last-Modified": {"schema": {"type": "string"}},
        "X-Last-Modified-ISO": {"schema": {"type": "string"}},
    }


def _transitions() -> list:
    return [
        {
            "intent": edge.intent,
            "roles": sorted(r.value for r in edge.roles),
            "from": sorted(s.value for s in edge.sources),
            "to": edge.target.value,
        }
        for edge in ISSUE_TRANSITIONS.edges.values()
    ]


def _list_op(summary: str, extra_params=()) -> Dict[str, Any]:
    params = [{"$ref": "#/components/parameters/LimitParam"}, {"$ref": "#/components/parameters/OffsetParam"},
              {"$ref": "#/components/parameters/SortParam"}] + list(extra_params)
    return {
        "summary": summary,
        "parameters": params,
        "responses": {
            "200": {"description": "OK", "headers": caching_headers()},
            "304": {"description": "Not Modified"},
            "403": {"$ref": "#/components/responses/Forbidden"},
        },
    }


def _query(name: str, desc: str) -> Dict[str, Any]:
    return {"name": name, "in": "query", "schema": {"type": "string"}, "description": desc}


def build_openapi_spec() -> Dict[str, Any]:
    error = {
        "type": "object",
        "properties": {
            "error": {
                "type": "object",
                "properties": {
                    "status": {"type": "integer"},
                    "title": {"type": "string"},
                    "code": {"type": "string"},
                    "detail": {"type": "string"},
                    "details": {"type": "object"},
                },
                "required": ["status", "title", "detail"],
            }
        },
        "required": ["error"],
    }
    issue = {
        "type": "object",
        "properties": {
            "id": {"type": "integer"},
            "status": {"type": "string", "enum": [s.value for s in ALL_STATUSES]},
            "status_display": {"type": "string"},
            "location": {"type": "string"},
            "assigned_to": {"type": "integer", "nullable": True},
            "audit_trail": {"type": "array", "items": {"$ref": "#/components/schemas/AuditEntry"}},
        },
        "required": ["id", "status", "status_display", "audit_trail"],
        "x-transitions": _transitions(),
        "x-status-display": {s.value: display_name(s) for s in ALL_STATUSES},
        "x-legacy-statuses": {alias: s.value for alias, s in sorted(LEGACY_ALIASES.items())},
    }
    audit_entry = {
        "type": "object",
        "properties": {
            "timestamp": {"type": "string", "format": "date-time"},
            "actor_label": {"type": "string"},
            "actor_id": {"type": "integer", "nullable": True},
            "action": {"type": "string", "nullable": True},
            "text": {"type": "string"},
            "formatted": {"type": "string"},
        },
        "required": ["timestamp", "actor_label", "text"],
    }
    components: Dict[str, Any] = {
        "schemas": {
            "Issue": issue,
            "AuditEntry": audit_entry,
            "Error": error,
            "Pagination": {
                "type": "object",
                "properties": {
                    "total": {"type": "integer"},
                    "limit": {"type": "integer"},
                    "offset": {"type": "integer"},
                    "returned": {"type": "integer"},
                },
                "required": ["total", "limit", "offset", "returned"],
            },
        },
        "responses": {
            "NotFound": {"description": "Not Found"},
            "BadRequest": {"description": "Bad Request"},
            "Forbidden": {"description": "Forbidden"},
            "Conflict": {"description": "Illegal transition, no change or not reviewable"},
        },
        "securitySchemes": {"BearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}},
        "parameters": {
            "LimitParam": {"name": "limit", "in": "query", "schema": {"type": "integer", "default": 50}},
            "OffsetParam": {"name": "offset", "in": "query", "schema": {"type": "integer", "default": 0}},
            "SortParam": _query("sort", "Comma separated fields, '-' prefix for descending"),
        },
    }
    conflict = {"$ref": "#/components/responses/Conflict"}
    paths: Dict[str, Any] = {
        "/iam/auth/login": {"post": {"summary": "Login", "responses": {"200": {"description": "JWT issued"}}}},
        "/iam/auth/me": {"get": {"summary": "Current user", "responses": {"200": {"description": "OK"}}}},
        "/iam/technicians": {"get": {"summary": "Technicians available for assignment",
                                     "responses": {"200": {"description": "OK"}}}},
        "/issues": {
            "get": _list_op("Visible issues", [
                _query("district", "Narrow to a district"), _query("branch", "Narrow to a head-office branch"),
                _query("status", "Comma separated statuses (legacy names accepted)"),
                _query("bucket", "active or archived"),
            ]),
            "post": {"summary": "Submit issue", "responses": {"201": {"description": "Created"},
                                                              "400": {"$ref": "#/components/responses/BadRequest"}}},
        },
        "/issues/review-queue": {"get": _list_op("Issues awaiting or past review")},
        "/issues/assigned": {"get": _list_op("Issues assigned to the calling technician")},
        "/issues/stats": {"get": {"summary": "Active/archived counts", "responses": {"200": {"description": "OK"}}}},
        "/issues/{issue_id}": {
            "get": {"summary": "Issue detail", "responses": {"200": {"description": "OK", "headers": caching_headers()},
                                                             "404": {"$ref": "#/components/responses/NotFound"}}},
            "delete": {"summary": "Delete pending issue", "responses": {"204": {"description": "Deleted"}, "409": conflict}},
        },
        "/issues/{issue_id}/transitions": {
            "post": {"summary": "Apply lifecycle intent", "x-intents": ISSUE_TRANSITIONS.intents(),
                     "responses": {"200": {"description": "Updated issue"}, "403": {"$ref": "#/components/responses/Forbidden"},
                                   "404": {"$ref": "#/components/responses/NotFound"}, "409": conflict}},
        },
        "/issues/{issue_id}/review": {
            "post": {"summary": "Confirm or return a resolution",
                     "responses": {"200": {"description": "Updated issue"}, "403": {"$ref": "#/components/responses/Forbidden"},
                                   "404": {"$ref": "#/components/responses/NotFound"}, "409": conflict}},
        },
        "/reports/issues": {"get": _list_op("Issue counts", [
            _query("type", "by_status, by_district or by_priority"),
            _query("start_date", "Submitted on or after"), _query("end_date", "Submitted on or before"),
        ])},
    }
    for path in paths:
        if "{issue_id}" in path:
            paths[path]["parameters"] = [{"name": "issue_id", "in": "path", "required": True, "schema": {"type": "integer"}}]

    tag_desc: Dict[str, str] = {}
    for path, ops in paths.items():
        tag = path.split("/")[1].capitalize()
        for method, od in ops.items():
            if method == "parameters":
                continue
            rid = path.strip("/").replace("/", "_").replace("{", "").replace("}", "").replace("-", "_")
            od["operationId"] = f"{method}_{rid}"
            od["tags"] = [tag]
        tag_desc[tag] = f"{tag} endpoints"

    return {
        "openapi": "3.0.3",
        "info": {"title": "IssueDesk API", "version": "0.1.0"},
        "paths": paths,
        "components": components,
        "security": [{"BearerAuth": []}],
        "tags": [{"name": n, "description": d} for n, d in sorted(tag_desc.items())],
    }
