"""OpenAPI / Swagger document resolver.

Turns OpenAPI 3.x and Swagger 2.0 documents into ApiEndpoint models whose
parameter and body schemas are fully resolved: every internal ``$ref`` is
followed until none remain, and JSON request bodies are flattened into one
body parameter per top-level property.
"""

import logging

from api_validator.errors import SchemaCycleError, UnresolvedReferenceError
from api_validator.parser.base import SCHEMA_TYPES, ApiEndpoint, Param, Schema

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "post", "put", "patch", "delete")

# Keys of a Swagger 2.0 parameter object that are not schema constraints
_PARAM_KEYS = ("name", "in", "required", "description", "schema", "allowEmptyValue", "collectionFormat")


def resolve(document: dict) -> list[ApiEndpoint]:
    """Resolve every supported operation of a document into ApiEndpoints.

    Raises SchemaCycleError or UnresolvedReferenceError if any reference in
    the document cannot be resolved; no partial list is returned.
    """
    endpoints: list[ApiEndpoint] = []
    seen_ids: set[str] = set()

    for path, path_item in (document.get("paths") or {}).items():
        path_item, _ = _follow(path_item, document, ())
        inherited = path_item.get("parameters") or []

        for method, operation in path_item.items():
            if method.lower() not in HTTP_METHODS:
                continue

            endpoint = _build_endpoint(path, method, operation, inherited, document)
            if endpoint.id in seen_ids:
                unique_id = _dedupe_id(endpoint.id, seen_ids)
                logger.warning("Endpoint id %s already used, %s %s gets %s", endpoint.id, endpoint.method, path, unique_id)
                endpoint = endpoint.model_copy(update={"id": unique_id})
            seen_ids.add(endpoint.id)
            endpoints.append(endpoint)

    logger.debug("Resolved %d endpoints", len(endpoints))
    return endpoints


def endpoint_id(method: str, path: str) -> str:
    """Derive the stable endpoint identity, e.g. GET /users/{id} -> GET__users_id."""
    return f"{method.upper()}_{path.replace('/', '_').replace('{', '').replace('}', '')}"


def extract_base_url(document: dict) -> str:
    """Return the API base URL declared by the document, or '' if none."""
    servers = document.get("servers") or []
    if servers and servers[0].get("url"):
        return servers[0]["url"]

    if document.get("host"):
        schemes = document.get("schemes") or ["https"]
        return f"{schemes[0]}://{document['host']}{document.get('basePath', '')}"

    return ""


def resolve_schema(schema, document: dict | None = None, trail: tuple[str, ...] = ()) -> Schema:
    """Resolve a raw schema object (possibly a $ref) into a normalized Schema.

    ``trail`` holds the references being resolved on the current path;
    meeting one of them again means the document is cyclic. An already
    normalized Schema is returned unchanged.
    """
    if isinstance(schema, Schema):
        return schema
    if not schema:
        return Schema()

    schema, trail = _follow(schema, document or {}, trail)
    if "allOf" in schema:
        schema = _merge_all_of(schema, document or {}, trail)

    schema_type = _schema_type(schema)
    fields = {
        "type": schema_type,
        "format": schema.get("format"),
        "description": schema.get("description") or "",
        "enum": schema.get("enum"),
    }

    if schema_type == "string":
        fields.update(
            min_length=schema.get("minLength"),
            max_length=schema.get("maxLength"),
            pattern=schema.get("pattern"),
        )
    elif schema_type in ("integer", "number"):
        fields.update(
            minimum=schema.get("minimum"),
            maximum=schema.get("maximum"),
            exclusive_minimum=schema.get("exclusiveMinimum"),
            exclusive_maximum=schema.get("exclusiveMaximum"),
        )
    elif schema_type == "array":
        fields.update(
            items=resolve_schema(schema["items"], document, trail) if schema.get("items") else None,
            min_items=schema.get("minItems"),
            max_items=schema.get("maxItems"),
        )
    elif schema_type == "object":
        required = schema.get("required")
        fields.update(
            required=list(required) if isinstance(required, list) else [],
            properties={
                name: resolve_schema(prop, document, trail)
                for name, prop in (schema.get("properties") or {}).items()
            },
        )

    return Schema(**fields)


# -- references ---------------------------------------------------------------


def _follow(node, document: dict, trail: tuple[str, ...]) -> tuple[dict, tuple[str, ...]]:
    """Follow a chain of $ref objects; return the target and the extended trail."""
    while isinstance(node, dict) and "$ref" in node:
        ref = node["$ref"]
        if ref in trail:
            raise SchemaCycleError([*trail[trail.index(ref):], ref])
        trail = (*trail, ref)
        node = _lookup(ref, document)
    return (node if isinstance(node, dict) else {}), trail


def _lookup(ref: str, document: dict):
    if not isinstance(ref, str) or not ref.startswith("#/"):
        raise UnresolvedReferenceError(str(ref))

    target = document
    for token in ref[2:].split("/"):
        key = token.replace("~1", "/").replace("~0", "~")
        if isinstance(target, dict) and key in target:
            target = target[key]
        elif isinstance(target, list) and key.isdigit() and int(key) < len(target):
            target = target[int(key)]
        else:
            raise UnresolvedReferenceError(ref)
    return target


def _merge_all_of(schema: dict, document: dict, trail: tuple[str, ...]) -> dict:
    """Merge an allOf composition into a single raw schema."""
    merged = {k: v for k, v in schema.items() if k != "allOf"}
    properties = dict(merged.get("properties") or {})
    required = list(merged.get("required") or [])

    for part in schema["allOf"]:
        part, part_trail = _follow(part, document, trail)
        if "allOf" in part:
            part = _merge_all_of(part, document, part_trail)
        properties.update(part.get("properties") or {})
        required.extend(r for r in part.get("required") or [] if r not in required)
        for key, value in part.items():
            if key not in ("properties", "required"):
                merged.setdefault(key, value)

    if properties:
        merged["properties"] = properties
    if required:
        merged["required"] = required
    return merged


def _schema_type(schema: dict) -> str:
    schema_type = schema.get("type")
    if isinstance(schema_type, list):
        # OpenAPI 3.1 style: ["string", "null"]
        schema_type = next((t for t in schema_type if t != "null"), None)
    if not schema_type:
        if "properties" in schema:
            return "object"
        if "items" in schema:
            return "array"
        return "unknown"
    return schema_type if schema_type in SCHEMA_TYPES else "unknown"


# -- operations ---------------------------------------------------------------


def _build_endpoint(path: str, method: str, operation: dict, inherited: list, document: dict) -> ApiEndpoint:
    params = _resolve_parameters(inherited, operation.get("parameters") or [], document)
    request_body = _resolve_request_body(operation.get("requestBody"), document)
    if request_body is not None:
        params.extend(_flatten_body(request_body))
    else:
        request_body = _swagger2_body(operation.get("parameters") or [], inherited, document)

    return ApiEndpoint(
        id=endpoint_id(method, path),
        method=method.upper(),
        path=path,
        summary=operation.get("summary") or "",
        description=operation.get("description") or "",
        parameters=params,
        request_body=request_body,
        responses=_parse_responses(operation.get("responses") or {}, document),
        tags=operation.get("tags") or [],
        auth_required=bool(operation.get("security", document.get("security"))),
    )


def _resolve_parameters(inherited: list, own: list, document: dict) -> list[Param]:
    # operation-level parameters override path-level ones with the same name+location
    merged: dict[tuple, tuple[dict, tuple[str, ...]]] = {}
    for raw in [*inherited, *own]:
        param, trail = _follow(raw, document, ())
        merged[(param.get("name"), param.get("in"))] = (param, trail)

    params: list[Param] = []
    for param, trail in merged.values():
        location = param.get("in")
        if location == "body":
            params.extend(_flatten_body(resolve_schema(param.get("schema"), document, trail)))
            continue
        if location == "formData":
            location = "body"
        if location not in ("path", "query", "header", "body"):
            logger.debug("Skipping %s parameter %s", location, param.get("name"))
            continue

        if "schema" in param:
            schema = resolve_schema(param["schema"], document, trail)
        else:
            # Swagger 2.0 declares constraints on the parameter itself
            schema = resolve_schema({k: v for k, v in param.items() if k not in _PARAM_KEYS}, document, trail)

        params.append(
            Param(
                name=param["name"],
                location=location,
                required=bool(param.get("required", False)),
                schema=schema,
                description=param.get("description") or "",
            )
        )
    return params


def _resolve_request_body(body: dict | None, document: dict) -> Schema | None:
    if not body:
        return None
    body, trail = _follow(body, document, ())
    for media_type, media in (body.get("content") or {}).items():
        if "json" in media_type:
            return resolve_schema((media or {}).get("schema"), document, trail)
    return None


def _swagger2_body(own: list, inherited: list, document: dict) -> Schema | None:
    for raw in [*own, *inherited]:
        param, trail = _follow(raw, document, ())
        if param.get("in") == "body":
            return resolve_schema(param.get("schema"), document, trail)
    return None


def _flatten_body(schema: Schema) -> list[Param]:
    """One body parameter per top-level property of an object schema."""
    if schema.type != "object":
        return []
    return [
        Param(
            name=name,
            location="body",
            required=name in schema.required,
            schema=prop,
            description=prop.description,
        )
        for name, prop in schema.properties.items()
    ]


def _parse_responses(responses: dict, document: dict) -> dict[str, str]:
    result = {}
    for status_code, resp in responses.items():
        resp, _ = _follow(resp, document, ())
        result[str(status_code)] = resp.get("description", "")
    return result


def _dedupe_id(base: str, seen: set[str]) -> str:
    n = 2
    while f"{base}_{n}" in seen:
        n += 1
    return f"{base}_{n}"
