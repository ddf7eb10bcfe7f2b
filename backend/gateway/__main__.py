import uvicorn

from gateway.core.config import settings


def main() -> None:
    uvicorn.run("gateway.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
