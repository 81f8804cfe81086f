"""FastAPI application exposing the Microsub endpoint."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse

from .auth import Authorizer, check_permission
from .endpoint import Endpoint, action_param
from .errors import InvalidRequest, MicrosubError, Unauthorized
from .templating import render_index

logger = logging.getLogger(__name__)

MICROSUB_PATH = "/microsub"


def collect_params(items: Iterable[Tuple[str, Any]]) -> Dict[str, Any]:
    """Merge request pairs into one mapping; ``name[]`` keys collect into lists."""
    params: Dict[str, Any] = {}
    for key, value in items:
        if key.endswith("[]"):
            name = key[:-2]
            existing = params.get(name)
            if not isinstance(existing, list):
                existing = [] if existing is None else [existing]
            existing.append(value)
            params[name] = existing
        else:
            params[key] = value
    return params


def bearer_token(request: Request, params: Dict[str, Any]) -> Optional[str]:
    """Return the access token from the Authorization header or parameters."""
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    token = params.pop("access_token", None)
    return str(token) if token else None


async def _read_params(request: Request) -> Dict[str, Any]:
    items = list(request.query_params.multi_items())

    if request.method == "POST":
        content_type = request.headers.get("Content-Type", "")
        if content_type.startswith("application/json"):
            try:
                payload = await request.json()
            except ValueError:
                raise InvalidRequest("Request body is not valid JSON.") from None
            if payload is not None and not isinstance(payload, dict):
                raise InvalidRequest("Request body must be a JSON object.")
            items.extend((payload or {}).items())
        elif content_type.startswith(
            ("application/x-www-form-urlencoded", "multipart/form-data")
        ):
            form = await request.form()
            items.extend(form.multi_items())

    return collect_params(items)


def create_app(
    endpoint: Endpoint, authorizer: Authorizer, endpoint_url: Optional[str] = None
) -> FastAPI:
    """Build the application around an endpoint and an authorizer."""
    app = FastAPI(title="Microsub server")

    def link_header(request: Request) -> Dict[str, str]:
        url = endpoint_url or str(request.url_for("microsub"))
        return {"Link": f'<{url}>; rel="microsub"'}

    def error_response(request: Request, exc: MicrosubError) -> JSONResponse:
        headers = link_header(request)
        if isinstance(exc, Unauthorized):
            headers["WWW-Authenticate"] = "Bearer"
        return JSONResponse(exc.to_dict(), status_code=exc.status, headers=headers)

    @app.get("/", response_class=HTMLResponse)
    async def index(request: Request):
        url = endpoint_url or str(request.url_for("microsub"))
        html = render_index(url, endpoint.registry.describe())
        return HTMLResponse(html, headers=link_header(request))

    @app.api_route(MICROSUB_PATH, methods=["GET", "POST"], name="microsub")
    async def microsub(request: Request):
        try:
            params = await _read_params(request)
            token = bearer_token(request, params)
            principal = authorizer.authenticate(token)
            action = action_param(params)
            if action is not None:
                params["action"] = action
            check_permission(action, principal)
        except MicrosubError as exc:
            logger.info(
                "%s %s rejected: %s", request.method, MICROSUB_PATH, exc.error
            )
            return error_response(request, exc)

        # Adapters block on network and database I/O.
        response = await run_in_threadpool(
            endpoint.handle, request.method, params, principal.user_id
        )
        return JSONResponse(
            response.body, status_code=response.status, headers=link_header(request)
        )

    return app
