from typing import Annotated
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from assistant_api.ai_query.errors import (
    AuthorizationDenied,
    ExecutionFailed,
    MalformedRequest,
)
from assistant_api.ai_query.service import run_ai_query
from assistant_api.core import schemas
from assistant_api.core.database import get_db
from assistant_api.core.security import get_current_principal

router = APIRouter(prefix="/api", tags=["AI Query"])

db_dep = Annotated[AsyncSession, Depends(get_db)]
principal_dep = Annotated[schemas.Principal, Depends(get_current_principal)]


def failure(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, **extra},
    )


@router.post("/execute-ai-query")
async def execute_ai_query(
    payload: schemas.QueryRequest, principal: principal_dep, db: db_dep
):
    try:
        outcome = await run_ai_query(payload, principal, db)
    except MalformedRequest as error:
        return failure(error.status_code, error.message)
    except AuthorizationDenied as error:
        return failure(error.status_code, error.message)
    except ExecutionFailed as error:
        return failure(status.HTTP_200_OK, error.message, sql_attempted=error.sql)

    return JSONResponse(content=outcome.model_dump(exclude_none=True))
