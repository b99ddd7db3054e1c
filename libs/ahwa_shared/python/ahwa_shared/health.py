import os

from fastapi import FastAPI
from sqlalchemy import text


def add_standard_health(app: FastAPI, env_key: str = "ENV", engine=None):
    @app.get("/health")
    def _health():
        out = {
            "status": "ok",
            "env": os.getenv(env_key, "dev"),
            "service": app.title,
            "version": getattr(app, "version", None),
        }
        if engine is not None:
            try:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                out["db"] = "ok"
            except Exception:
                out["status"] = "degraded"
                out["db"] = "unreachable"
        return out
