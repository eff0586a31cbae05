"""Local entry point: `python main.py` or `uvicorn main:app --reload`."""
import uvicorn

from palmjob.core.config import settings
from palmjob.main import app

__all__ = ["app"]


if __name__ == "__main__":
    uvicorn.run("palmjob.main:app", host="0.0.0.0", port=8000, log_level=settings.log_level.lower())
