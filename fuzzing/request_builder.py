"""
Request Builder
===============
Renders a sampled Payload into a concrete HTTP request.

`build_request` depends only on what a FuzzResult stores (path template,
method, payload) plus the caller's base URL and fixed headers, so a recorded
finding rebuilds into exactly the bytes that were originally sent.
"""

import hashlib
import json
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, urlencode

from urllib3.filepost import encode_multipart_formdata

from generators.payload import Payload

from .models import BuiltRequest

PATH_PARAMETER = re.compile(r"\{([^{}]+)\}")

FORM_URLENCODED = "application/x-www-form-urlencoded"
MULTIPART_FORM = "multipart/form-data"
MULTIPART_BOUNDARY = "openapi-fuzzer-boundary"


def build_request(base_url: str, method: str, path: str, payload: Payload,
                  fixed_headers: Optional[Dict[str, str]] = None) -> BuiltRequest:
    """
    Build the request for one trial.

    Args:
        base_url: API root, normalized to end with a slash
        method: HTTP method (any case)
        path: path template, e.g. `/items/{id}`
        payload: sampled values
        fixed_headers: caller-supplied headers, winning over sampled ones

    Returns:
        BuiltRequest with lower-cased header keys
    """
    url = join_url(base_url, render_path(path, payload.path_params))
    query = encode_query(payload.query_params)
    if query:
        url = f"{url}?{query}"

    headers: Dict[str, str] = {}
    for name, value in payload.headers.items():
        headers[name.lower()] = header_value(value)
    if payload.cookies:
        headers["cookie"] = "; ".join(
            f"{name}={quote(stringify(value), safe='')}" for name, value in payload.cookies.items()
        )

    body = None
    if payload.body_present:
        content_type, body = encode_body(payload.body, payload.content_type)
        headers["content-type"] = content_type

    for name, value in (fixed_headers or {}).items():
        headers[name.lower()] = value

    return BuiltRequest(method=method.upper(), url=url, headers=headers, body=body)


def join_url(base_url: str, rendered_path: str) -> str:
    if not base_url.endswith("/"):
        base_url += "/"
    return base_url + rendered_path.lstrip("/")


def render_path(template: str, path_params: Dict[str, Any]) -> str:
    """Substitute percent-escaped path parameter values into `template`."""

    def substitute(match: "re.Match") -> str:
        name = match.group(1)
        if name not in path_params:
            return match.group(0)
        value = path_params[name]
        if isinstance(value, list):
            text = ",".join(stringify(item) for item in value)
        else:
            text = stringify(value)
        return quote(text, safe="")

    return PATH_PARAMETER.sub(substitute, template)


def stringify(value: Any) -> str:
    """Plain text form of a sampled value as used in URLs and headers."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def query_pairs(params: Dict[str, Any]) -> List[Tuple[str, str]]:
    pairs: List[Tuple[str, str]] = []
    for name, value in params.items():
        if isinstance(value, list):
            pairs.extend((name, stringify(item)) for item in value)
        elif isinstance(value, dict):
            pairs.extend((str(key), stringify(item)) for key, item in value.items())
        else:
            pairs.append((name, stringify(value)))
    return pairs


def encode_query(params: Dict[str, Any]) -> str:
    return urlencode(query_pairs(params), quote_via=quote, safe="")


def header_value(value: Any) -> str:
    """Header-safe text: non-printable characters are percent-encoded."""
    text = stringify(value)
    encoded = "".join(c if " " <= c <= "~" else quote(c, safe="") for c in text)
    # Surrounding whitespace would be stripped or rejected on the wire
    stripped = encoded.strip(" ")
    if stripped != encoded:
        leading = len(encoded) - len(encoded.lstrip(" "))
        trailing = len(encoded) - len(encoded.rstrip(" "))
        encoded = "%20" * leading + stripped + "%20" * trailing
    return encoded


def encode_body(body: Any, content_type: str) -> Tuple[str, bytes]:
    """Serialize a sampled body. Returns the content type header and bytes."""
    media = content_type.split(";")[0].strip().lower()

    if media == FORM_URLENCODED:
        if isinstance(body, dict):
            return content_type, encode_query(body).encode("utf-8")
        return content_type, stringify(body).encode("utf-8")

    if media == MULTIPART_FORM:
        fields = body if isinstance(body, dict) else {"value": body}
        pairs = [(str(name), stringify(value)) for name, value in fields.items()]
        data, header = encode_multipart_formdata(pairs, boundary=multipart_boundary(pairs))
        return header, data

    if media.startswith("text/") and isinstance(body, str):
        return content_type, body.encode("utf-8")

    return content_type, json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def multipart_boundary(pairs: List[Tuple[str, str]]) -> str:
    """Fixed boundary, re-derived from the field contents if any field contains it."""
    boundary = MULTIPART_BOUNDARY
    while any(boundary in name or boundary in value for name, value in pairs):
        digest = hashlib.sha256(boundary.encode("utf-8"))
        for name, value in pairs:
            digest.update(name.encode("utf-8", "surrogatepass"))
            digest.update(value.encode("utf-8", "surrogatepass"))
        boundary = f"{MULTIPART_BOUNDARY}-{digest.hexdigest()[:16]}"
    return boundary
