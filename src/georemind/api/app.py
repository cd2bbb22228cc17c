# src/georemind/api/app.py
"""
FastAPI application wiring.

This file creates the `FastAPI` instance and configures logging and CORS.
Handlers live in `georemind.api.routes`; the geo core lives in
`georemind.proximity`, `georemind.history` and `georemind.suggestions`.
"""

from __future__ import annotations

import os

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from georemind.core.logging import configure_logging

from .routes import router

configure_logging()

app = FastAPI(title="GeoRemind API", version="0.1.0")

# Configure via env:
# - GEOREMIND_CORS_ORIGINS="http://localhost:8081,http://127.0.0.1:8081"
cors_origins = [s.strip() for s in os.getenv("GEOREMIND_CORS_ORIGINS", "").split(",") if s.strip()]
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(router)
