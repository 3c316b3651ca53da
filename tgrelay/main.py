# tgrelay/main.py
"""
Process entry point.

    uvicorn tgrelay.main:app            # ASGI server of your choice
    tgrelay                             # console script (uvicorn, HOST/PORT from env)
"""
from tgrelay.config import get_settings
from tgrelay.infra.logging_config import setup_logging
from tgrelay.transport.http_app import create_app

settings = get_settings()

# Initialize logging first
setup_logging(
    level=settings.log_level,
    use_json=settings.is_production,
)

app = create_app(settings)


def run() -> None:
    import uvicorn

    uvicorn.run(
        "tgrelay.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=not settings.is_production,  # Request logging middleware covers prod
        server_header=False,
        date_header=False,
    )


if __name__ == "__main__":
    run()
