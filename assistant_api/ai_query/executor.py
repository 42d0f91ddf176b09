import logging

from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from assistant_api.ai_query.errors import ExecutionFailed
from assistant_api.core import schemas
from assistant_api.core.schemas import QueryIntent

INSERT_MESSAGE = "Registro creado exitosamente."
WRITE_MESSAGE = "Acción ejecutada exitosamente en la base de datos."


def _driver_message(error: SQLAlchemyError) -> str:
    # The driver's own message, without SQLAlchemy's statement dump
    cause = getattr(error, "orig", None) or error
    text = str(cause).strip()
    return text.splitlines()[0] if text else error.__class__.__name__


async def execute_statement(
    db: AsyncSession, sql: str, intent: QueryIntent
) -> schemas.ExecutionOutcome:
    """
    Run one already-authorized statement.

    The text goes to the driver untouched (no bind parameter parsing), reads
    come back as ordered column -> value mappings, writes are committed
    straight away. Failures are rolled back and never retried.
    """
    try:
        connection = await db.connection()
        result = await connection.exec_driver_sql(sql)

        if intent == QueryIntent.SELECT:
            rows = [dict(row) for row in result.mappings().all()]
            await db.commit()
            return schemas.ExecutionOutcome(
                success=True,
                data=jsonable_encoder(rows),
                type="read",
                executed_sql=sql,
                message=f"Consulta ({intent.value}) ejecutada correctamente.",
            )

        # -1 means the driver could not tell
        rowcount = result.rowcount
        affected = rowcount if rowcount is not None and rowcount >= 0 else None
        data = {"message": WRITE_MESSAGE}
        if intent == QueryIntent.INSERT:
            # lastrowid is not available on every backend
            data = {"id": result.lastrowid or None, "message": INSERT_MESSAGE}
        await db.commit()

    except IntegrityError as error:
        await db.rollback()
        logging.error(f"AI query violated a constraint: {_driver_message(error)}")
        raise ExecutionFailed(
            f"El registro ya existe o viola una restricción de la base de datos: {_driver_message(error)}",
            sql,
        )
    except SQLAlchemyError as error:
        await db.rollback()
        logging.error(f"AI query execution failed: {_driver_message(error)}")
        raise ExecutionFailed(f"Error de base de datos: {_driver_message(error)}", sql)

    return schemas.ExecutionOutcome(
        success=True,
        data=data,
        type="write",
        affected=affected,
        executed_sql=sql,
        message=f"Consulta ({intent.value}) ejecutada correctamente.",
    )
