from prometheus_fastapi_instrumentator import Instrumentator

from toolcrib import create_app
from toolcrib.core.config import settings
from toolcrib.core.logging import configure_logging

configure_logging(settings.LOG_LEVEL, service=settings.APP_NAME.lower())
app = create_app(settings)
Instrumentator(excluded_handlers=["/health", "/metrics"]).instrument(app).expose(app, include_in_schema=False)


def run() -> None:
    import uvicorn

    uvicorn.run("toolcrib.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
