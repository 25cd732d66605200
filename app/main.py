"""
Name: ASGI Entrypoint (app.main)

Responsibilities:
  - Expose the gym auth FastAPI app as `app.main:app`
  - Offer a `python -m app.main` runner for local development

Collaborators:
  - app.api.main: builds the app (middleware, routers, lifespan)
  - uvicorn: ASGI server

Notes:
  - Importing this module only imports app.api.main; the pool is opened in
    the lifespan, not at import time
"""

from app.api.main import app

__all__ = ["app"]


def run() -> None:
    import uvicorn

    from app.crosscutting.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=not settings.is_production(),
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
