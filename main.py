"""Simple entrypoint to run the try-on studio API locally."""

import os

import uvicorn

from server.api import create_app


def main() -> None:
    uvicorn.run(create_app(), host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8080")))


if __name__ == "__main__":
    main()
