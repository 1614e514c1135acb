"""Diagnostics endpoint for checking system health."""
from fastapi import APIRouter
from shared.config import config
import psycopg2
from minio import Minio
import redis
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/diagnostics", tags=["diagnostics"])


@router.get("/")
def check_all_connections():
    """Check all system connections."""
    results = {
        "database": {"status": "unknown", "error": None},
        "redis": {"status": "unknown", "error": None},
        "minio": {"status": "unknown", "error": None},
    }

    try:
        conn = psycopg2.connect(config.DATABASE_URL)
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
        finally:
            conn.close()
        results["database"]["status"] = "connected"
    except Exception as e:
        results["database"]["status"] = "failed"
        results["database"]["error"] = str(e)

    # Counters may run in memory, in which case Redis is not required
    if config.COUNTER_BACKEND == "memory":
        results["redis"]["status"] = "disabled"
    else:
        try:
            redis.from_url(config.REDIS_URL).ping()
            results["redis"]["status"] = "connected"
        except Exception as e:
            results["redis"]["status"] = "failed"
            results["redis"]["error"] = str(e)

    try:
        client = Minio(
            config.MINIO_ENDPOINT,
            access_key=config.MINIO_ACCESS_KEY,
            secret_key=config.MINIO_SECRET_KEY,
            secure=config.MINIO_SECURE
        )
        client.bucket_exists(config.MINIO_BUCKET)
        results["minio"]["status"] = "connected"
    except Exception as e:
        results["minio"]["status"] = "failed"
        results["minio"]["error"] = str(e)

    all_healthy = all(r["status"] in ("connected", "disabled") for r in results.values())

    return {
        "status": "healthy" if all_healthy else "unhealthy",
        "connections": results
    }
