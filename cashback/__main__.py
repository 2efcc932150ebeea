"""
Run the API server: ``python -m cashback`` or ``cashback-server``.
"""
import uvicorn

from cashback.config import settings


def main():
    uvicorn.run(
        "cashback.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
