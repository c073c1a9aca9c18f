from fastapi import Header, Request

from vread.services.session import ReaderSession, SessionRegistry, require_user


def current_user(x_user_id: str | None = Header(None)) -> str:
    """User id asserted by the upstream auth gateway."""
    return require_user(x_user_id)


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_reader(request: Request, x_user_id: str | None = Header(None)) -> ReaderSession:
    return get_sessions(request).open(x_user_id)
