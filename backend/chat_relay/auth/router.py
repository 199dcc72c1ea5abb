"""Auth router exposing the current session's linked identity.

Endpoints:
    GET  /auth/user    - Report whether the session cookie is linked, and to whom
    POST /auth/logout  - Drop the session and clear the cookie

The provider login exchange that creates sessions lives outside this service.
"""
import logging

from fastapi import APIRouter, Depends, Request, Response

from chat_relay.chat.service import ChatServer, get_chat_server

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/user")
async def current_user(
    request: Request,
    chat: ChatServer = Depends(get_chat_server),
) -> dict:
    """Return the linked profile for the request's session, if any."""
    session_id = request.cookies.get(chat.config.session.cookie_name)
    profile = await chat.sessions.get(session_id)
    if profile is None:
        return {"authenticated": False}
    return {"authenticated": True, "user": profile.model_dump()}


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    chat: ChatServer = Depends(get_chat_server),
) -> dict:
    """End the session.

    Connections already open keep the identity they were resolved with;
    the next connection from this browser comes up anonymous.
    """
    cookie_name = chat.config.session.cookie_name
    session_id = request.cookies.get(cookie_name)
    if session_id:
        await chat.sessions.delete(session_id)
        logger.info("Session logged out")
    response.delete_cookie(cookie_name)
    return {"status": "ok"}
