from __future__ import annotations

import asyncio
import json
import logging
import queue
from typing import Any, Callable

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse


async def _json_object(request: Request) -> dict[str, Any]:
    raw_body = await request.body()
    if not raw_body:
        return {}
    try:
        payload = json.loads(raw_body.decode("utf-8", errors="ignore"))
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail="Invalid JSON payload.") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload.")
    return payload


def register_session_routes(
    app: FastAPI,
    *,
    hub: Any,
    logger: logging.Logger,
    iso_now: Callable[[], str],
    coerce_bool: Callable[..., bool],
    oauth_callback_page: Callable[..., str],
) -> None:
    @app.websocket("/api/events")
    async def ws_events(websocket: WebSocket) -> None:
        listener = hub.event_service.attach_events()
        await websocket.accept()
        logger.debug("Session events websocket connected.")
        await websocket.send_text(json.dumps(hub.event_service.events_snapshot()))

        async def stream_events() -> None:
            while True:
                try:
                    event = await asyncio.to_thread(listener.get, True, 0.5)
                except queue.Empty:
                    continue
                if event is None:
                    break
                await websocket.send_text(json.dumps(event))

        async def consume_input() -> None:
            while True:
                try:
                    message = await websocket.receive_text()
                except WebSocketDisconnect:
                    return
                try:
                    payload = json.loads(message) if message else None
                except json.JSONDecodeError:
                    continue
                if isinstance(payload, dict) and str(payload.get("type") or "") == "ping":
                    await websocket.send_text(
                        json.dumps({"type": "pong", "payload": {"at": iso_now()}, "sent_at": iso_now()})
                    )

        sender = asyncio.create_task(stream_events())
        receiver = asyncio.create_task(consume_input())
        try:
            done, pending = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for task in done:
                exc = task.exception()
                if exc and not isinstance(exc, WebSocketDisconnect):
                    raise exc
        except WebSocketDisconnect:
            pass
        finally:
            hub.event_service.queue_put(listener, None)
            hub.event_service.detach_events(listener)
            logger.debug("Session events websocket disconnected.")

    @app.get("/auth/callback", response_class=HTMLResponse)
    async def oauth_callback(request: Request) -> HTMLResponse:
        code = str(request.query_params.get("code") or "").strip()
        state_value = str(request.query_params.get("state") or "").strip()
        if not code:
            message = str(
                request.query_params.get("error_description") or request.query_params.get("error") or ""
            ).strip()
            return HTMLResponse(
                oauth_callback_page(success=False, message=message or "Missing authorisation code."),
                status_code=400,
            )
        logger.info("Obtained authorisation code from the identity provider.")
        closed = await hub.auth_service.forward_redirect(code, state_value)
        if closed:
            return HTMLResponse(oauth_callback_page(success=True, message="Signed in. You may close this window."))
        return HTMLResponse(
            oauth_callback_page(success=False, message="The sign-in window is no longer awaited. Close it and retry."),
            status_code=409,
        )

    @app.get("/api/auth/state")
    def api_auth_state() -> dict[str, Any]:
        return hub.context.payload()

    @app.post("/api/session")
    async def api_setup_session(request: Request) -> dict[str, Any]:
        payload = await _json_object(request)
        session_info = str(payload.get("session") or "").strip()
        if not session_info:
            raise HTTPException(status_code=400, detail="session is required.")
        return {"authorization_url": hub.session_service.setup_session(session_info)}

    @app.post("/api/auth/login")
    async def api_complete_login(request: Request) -> dict[str, Any]:
        payload = await _json_object(request)
        return await hub.session_service.complete_login_process(str(payload.get("login_id") or ""))

    @app.post("/api/auth/another-account")
    def api_another_account() -> dict[str, Any]:
        return {"authorization_url": hub.auth_service.log_into_another_account()}

    @app.post("/api/auth/shell-reply")
    async def api_shell_reply(request: Request) -> dict[str, Any]:
        payload = await _json_object(request)
        await hub.auth_service.handle_shell_reply(
            token=str(payload.get("token") or ""),
            error=str(payload.get("error") or ""),
            is_window_closed=coerce_bool(payload.get("is_window_closed"), False, "is_window_closed"),
        )
        return hub.context.payload()

    @app.post("/api/auth/logout")
    def api_logout() -> dict[str, Any]:
        hub.repo_confirmation.cancel()
        hub.auth_service.logout()
        return hub.context.payload()

    @app.get("/api/session/repo-confirmation")
    def api_repo_confirmation() -> dict[str, Any]:
        return hub.repo_confirmation.pending_payload()

    @app.post("/api/session/repo-confirmation")
    async def api_answer_repo_confirmation(request: Request) -> dict[str, Any]:
        payload = await _json_object(request)
        if "granted" not in payload:
            raise HTTPException(status_code=400, detail="granted is required.")
        granted = coerce_bool(payload.get("granted"), False, "granted")
        if not hub.repo_confirmation.answer(granted):
            raise HTTPException(status_code=409, detail="No repository creation confirmation is pending.")
        return {"granted": granted}
