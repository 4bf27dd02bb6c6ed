import uvicorn

from kanban.config import get_settings


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "kanban.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "dev",
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
