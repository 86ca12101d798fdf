import uvicorn

from godplan.core.config import get_settings


def main():
    settings = get_settings()
    uvicorn.run(
        "godplan.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.PORT,
        timeout_keep_alive=60,
        log_config=None,
    )


if __name__ == "__main__":
    main()
