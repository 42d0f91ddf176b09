"""Gateway pipeline for assistant-generated SQL.

Flow for one request:
1. validate_nip short-circuits before anything touches SQL
2. Resolve user placeholders into the caller's id
3. Profile the statement (verb, tables, owner predicates)
4. Authorize: admin gate and NIP for critical statements
5. Hash plaintext passwords written to users
6. Execute and shape the result
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from assistant_api.ai_query.errors import AuthorizationDenied
from assistant_api.ai_query.executor import execute_statement
from assistant_api.ai_query.interceptor import hash_sensitive_fields
from assistant_api.ai_query.lexer import analyze_statement
from assistant_api.ai_query.placeholders import resolve_placeholders
from assistant_api.ai_query.policy import authorize, validate_nip
from assistant_api.ai_query.registry import SAFE_TABLES, SafeTableRegistry
from assistant_api.core import schemas
from assistant_api.core.schemas import QueryIntent

NIP_CORRECT_MESSAGE = "NIP Correcto"


async def run_ai_query(
    request: schemas.QueryRequest,
    principal: schemas.Principal,
    db: AsyncSession,
    registry: SafeTableRegistry = SAFE_TABLES,
) -> schemas.ExecutionOutcome:
    if request.intent == QueryIntent.VALIDATE_NIP:
        try:
            validate_nip(principal, request.nip)
        except AuthorizationDenied as denial:
            logging.warning(
                f"NIP validation failed for user {principal.id}: {denial.reason.value}"
            )
            raise
        return schemas.ExecutionOutcome(success=True, message=NIP_CORRECT_MESSAGE)

    resolved = resolve_placeholders(request.sql.strip(), principal.id)
    profile = analyze_statement(resolved.sql)

    try:
        criticality = authorize(request.intent, profile, principal, request.nip, registry)
    except AuthorizationDenied as denial:
        logging.warning(
            f"AI query denied for user {principal.id}: {denial.reason.value} "
            f"(intent={request.intent.value}, tables={list(profile.tables)})"
        )
        raise

    logging.info(
        f"AI query from user {principal.id}: intent={request.intent.value} "
        f"tables={list(profile.tables)} critical={criticality.critical} "
        f"({criticality.reason}), placeholders={resolved.substitutions}"
    )

    sql = hash_sensitive_fields(resolved.sql, profile)
    return await execute_statement(db, sql, request.intent)
