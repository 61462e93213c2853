from __future__ import annotations

import logging
import os

from fastapi import FastAPI, HTTPException

from orgtree.api.routers import bulk, directory, identity
from orgtree.infra.db import check_db_ready

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="orgtree",
    description="Department hierarchy and people directory with bulk mutations.",
    version="0.1.0",
)

app.include_router(identity.router, prefix="/api/identity", tags=["identity"])
app.include_router(directory.router, prefix="/api/organizations", tags=["directory"])
app.include_router(bulk.router, prefix="/api/organizations", tags=["bulk"])


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/readyz")
def readyz() -> dict[str, object]:
    db_ok = check_db_ready()
    checks = {"db": "ok" if db_ok else "fail"}
    if not db_ok:
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
