import uvicorn

from meetnotes.application import create_app
from meetnotes.config import Settings, configure_logging

settings = Settings.from_env()
configure_logging(settings.log_level)

app = create_app(settings)

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
