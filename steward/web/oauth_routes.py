"""
Steward — OAuth callback HTTP surface.

GET /oauth/google/start     → 302 to Google's consent screen
GET /oauth/google/callback  → exchange code, notify the user in chat
"""

from __future__ import annotations

import html
import logging

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response

from steward.integrations.google_oauth import GoogleOAuthService, OAuthStateError
from steward.ports.transport_port import TransportClient

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("google",)


def _page(status_code: int, body: str) -> HTMLResponse:
    return HTMLResponse(f"<!doctype html><html><body>{body}</body></html>", status_code=status_code)


def build_oauth_router(oauth: GoogleOAuthService, transport: TransportClient) -> APIRouter:
    router = APIRouter(prefix="/oauth")

    @router.get("/{provider}/start")
    async def oauth_start(provider: str, request: Request) -> Response:
        if provider not in SUPPORTED_PROVIDERS:
            return PlainTextResponse("Not Found", status_code=404)

        state = request.query_params.get("state")
        if not state:
            return PlainTextResponse("Missing state", status_code=400)

        auth_url = await oauth.build_auth_url_for_state(state)
        if auth_url is None:
            return PlainTextResponse("Invalid or expired OAuth state", status_code=400)
        return RedirectResponse(auth_url, status_code=302)

    @router.get("/{provider}/callback")
    async def oauth_callback(provider: str, request: Request) -> Response:
        if provider not in SUPPORTED_PROVIDERS:
            return PlainTextResponse("Not Found", status_code=404)

        params = request.query_params
        error = params.get("error")
        if error:
            return _page(400, f"<h1>OAuth denied</h1><p>{html.escape(error)}</p>")

        state, code = params.get("state"), params.get("code")
        if not state or not code:
            return PlainTextResponse("Missing state or code", status_code=400)

        try:
            user_id, kind = await oauth.handle_oauth_callback(state, code)
        except OAuthStateError:
            return PlainTextResponse("Invalid or expired OAuth state", status_code=400)

        await transport.send_message(user_id, f"Google {kind} connected. You can now use it from chat.")
        return _page(
            200,
            f"<h1>Connected</h1><p>Google {html.escape(kind)} is now connected. "
            "You can return to Telegram.</p>",
        )

    return router


def create_oauth_app(oauth: GoogleOAuthService, transport: TransportClient) -> FastAPI:
    app = FastAPI(title="steward-oauth", docs_url=None, redoc_url=None, openapi_url=None)
    app.include_router(build_oauth_router(oauth, transport))

    @app.exception_handler(Exception)
    async def oauth_failure(request: Request, exc: Exception) -> HTMLResponse:
        logger.error("OAuth request %s failed: %s", request.url.path, exc, exc_info=exc)
        return _page(
            500,
            "<h1>OAuth failed</h1><p>Unexpected error occurred. Return to Telegram and try again.</p>",
        )

    return app
