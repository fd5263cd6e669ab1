from fastapi import APIRouter, Depends
from sqlalchemy import text

from membership.db.session import Database, get_database
from membership.schemas.common import ok, fail, meta_now

router = APIRouter(prefix="/api/health", tags=["health"])

@router.get("")
def healthcheck():
    return ok(
        data={"status": "ok"}, 
        meta=meta_now()
    )

@router.get("/db")
def database_check(database: Database = Depends(get_database)):
    try:
        with database.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        return fail(code="DB_UNAVAILABLE", message="Database unreachable", status_code=503, details={"error": type(exc).__name__})
    return ok(data={"status": "ok"}, meta=meta_now(dialect=database.engine.dialect.name))
