"""FastAPI application for the ElderCare API."""
from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from eldercare import __version__
from eldercare.common.error_envelope import register_error_handlers
from eldercare.common.health import router as health_router
from eldercare.config import runtime_config
from eldercare.environments.routes import router as environments_router
from eldercare.users.routes import router as users_router

logger = logging.getLogger("eldercare.access")


async def _log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000.0
    logger.info("%s %s %d %.1f ms", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


def create_app() -> FastAPI:
    app = FastAPI(title="ElderCare API", version=__version__)

    register_error_handlers(app)
    app.middleware("http")(_log_requests)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=runtime_config.get_cors_allow_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", response_class=PlainTextResponse)
    def root():
        return "Benvingut a ElderCare API!"

    app.include_router(health_router)
    app.include_router(users_router)
    app.include_router(environments_router)
    return app


def main() -> None:
    from dotenv import load_dotenv
    import uvicorn

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = runtime_config.get_port()
    logger.info("Servidor escoltant a http://localhost:%d", port)
    uvicorn.run(create_app(), host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
