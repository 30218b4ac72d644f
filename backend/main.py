"""Entry point for running the FastAPI application."""

import os

import uvicorn
from dotenv import load_dotenv

load_dotenv()

if __name__ == "__main__":
    # Run from the repository root so the ``backend`` package resolves:
    #   PORT=7860 python -m backend.main
    port = int(os.getenv("PORT", "8000"))

    uvicorn.run(
        "backend.src.api.main:app",
        host="0.0.0.0",
        port=port,
        reload=True,
    )
