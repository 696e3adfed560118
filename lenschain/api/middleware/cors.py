"""CORS middleware configuration."""

from typing import List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware


def setup_cors(app: FastAPI, allow_origins: Optional[List[str]] = None) -> None:
    """Set up CORS middleware for the FastAPI app.

    Args:
        app: FastAPI application instance.
        allow_origins: Allowed origins. Defaults to all origins.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
