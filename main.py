"""Launch the powerline survey FastAPI server."""

import uvicorn

from powerline_survey.config import get_settings


def main():
    settings = get_settings()
    uvicorn.run(
        "powerline_survey.server:app",
        host=settings.uvicorn_host,
        port=settings.uvicorn_port,
        reload=settings.uvicorn_reload,
    )


if __name__ == "__main__":
    main()
