"""Generate OpenAPI schema containing only checkout terminal endpoints.

Filters the full OpenAPI spec to the redemption endpoints and the credit
note lookup, keeps only the schemas they reference, then declares the
identity headers the gateway forwards as security schemes.
"""

import json
import re
import sys

TERMINAL_PATH_PREFIXES = ("/v1/redemptions", "/v1/credit_notes/lookup")


def collect_refs(obj: object) -> set[str]:
    """Recursively collect all $ref schema names from an OpenAPI object."""
    refs: set[str] = set()
    if isinstance(obj, dict):
        if "$ref" in obj:
            match = re.search(r"/([^/]+)$", obj["$ref"])
            if match:
                refs.add(match.group(1))
        for value in obj.values():
            refs |= collect_refs(value)
    elif isinstance(obj, list):
        for item in obj:
            refs |= collect_refs(item)
    return refs


def resolve_all_refs(schema_names: set[str], schemas: dict) -> set[str]:
    """Transitively resolve all schema references."""
    resolved: set[str] = set()
    queue = list(schema_names)
    while queue:
        name = queue.pop()
        if name in resolved or name not in schemas:
            continue
        resolved.add(name)
        queue.extend(collect_refs(schemas[name]) - resolved)
    return resolved


def generate_terminal_openapi(full_spec: dict) -> dict:
    """Filter the full OpenAPI spec to what a checkout terminal calls."""
    terminal_paths = {
        path: methods
        for path, methods in full_spec.get("paths", {}).items()
        if path.startswith(TERMINAL_PATH_PREFIXES)
    }
    if not terminal_paths:
        print("Warning: no terminal paths found in spec", file=sys.stderr)

    all_schemas = full_spec.get("components", {}).get("schemas", {})
    referenced = resolve_all_refs(collect_refs(terminal_paths), all_schemas)

    return {
        "openapi": full_spec.get("openapi", "3.1.0"),
        "info": {
            "title": "Credit Ledger Terminal API",
            "description": (
                "Redeem and pre-check credit notes from a checkout terminal. "
                "The gateway forwards the merchant and clerk identity as headers."
            ),
            "version": full_spec.get("info", {}).get("version", "0.1.0"),
        },
        "paths": terminal_paths,
        "components": {
            "schemas": {k: v for k, v in all_schemas.items() if k in referenced},
            "securitySchemes": {
                "MerchantId": {
                    "type": "apiKey",
                    "in": "header",
                    "name": "X-Merchant-Id",
                    "description": "Merchant the terminal belongs to.",
                },
                "ActorId": {
                    "type": "apiKey",
                    "in": "header",
                    "name": "X-Actor-Id",
                    "description": "Clerk operating the terminal; recorded on redemptions.",
                },
            },
        },
        "security": [{"MerchantId": [], "ActorId": []}, {"MerchantId": []}],
    }


if __name__ == "__main__":
    from creditledger.main import app

    print(json.dumps(generate_terminal_openapi(app.openapi()), indent=2))
