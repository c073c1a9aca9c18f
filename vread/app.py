import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import async_sessionmaker

from vread.database import async_session
from vread.errors import VreadError
from vread.routers import books, gamification, reading, session, validations
from vread.services.session import SessionRegistry

logger = logging.getLogger(__name__)


async def _handle_vread_error(request: Request, exc: VreadError) -> JSONResponse:
    logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app(session_factory: async_sessionmaker | None = None, **session_options) -> FastAPI:
    sessions = SessionRegistry(session_factory or async_session, **session_options)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await sessions.aclose()

    app = FastAPI(title="VREAD", version="0.1.0", lifespan=lifespan)
    app.state.sessions = sessions
    app.add_exception_handler(VreadError, _handle_vread_error)
    app.include_router(books.router)
    app.include_router(reading.router)
    app.include_router(validations.router)
    app.include_router(gamification.router)
    app.include_router(session.router)
    return app


app = create_app()
