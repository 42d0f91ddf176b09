"""
Authorization for assistant-generated SQL.

Every branch ends in either a return (the statement may run) or an
AuthorizationDenied / MalformedRequest. Nothing here touches the database.
"""

import secrets
from typing import NamedTuple, Optional

from assistant_api.ai_query.errors import (
    AuthorizationDenied,
    DenialReason,
    MalformedRequest,
)
from assistant_api.ai_query.lexer import StatementProfile
from assistant_api.ai_query.registry import SAFE_TABLES, SafeTableRegistry
from assistant_api.core.schemas import Principal, QueryIntent

# validate_nip answers with the bare phrase, the assistant matches on it
VALIDATE_NIP_INCORRECT = "NIP INCORRECTO"
VALIDATE_NIP_REQUIRED = "NIP REQUERIDO"

_DATA_READ_VERBS = {"select", "with"}

PROTECTED_TABLE = "users"
# Never readable without the admin gate and the NIP
SECRET_COLUMNS = {"security_nip", "password"}


class Criticality(NamedTuple):
    critical: bool
    reason: str


def nip_matches(principal: Principal, nip: Optional[str]) -> bool:
    # A user without a NIP can never pass the second factor
    if not nip or not principal.security_nip:
        return False
    return secrets.compare_digest(
        principal.security_nip.encode("utf-8"), nip.encode("utf-8")
    )


def validate_nip(principal: Principal, nip: Optional[str]) -> None:
    if not nip:
        raise AuthorizationDenied(DenialReason.NIP_REQUIRED, VALIDATE_NIP_REQUIRED)
    if not nip_matches(principal, nip):
        raise AuthorizationDenied(DenialReason.NIP_INCORRECT, VALIDATE_NIP_INCORRECT)


def check_intent(intent: QueryIntent, profile: StatementProfile) -> None:
    """The declared intent has to agree with what the statement actually does."""
    if profile.is_schema_change:
        if intent == QueryIntent.SELECT:
            raise MalformedRequest(
                f"SQL inválido: {profile.verb.upper()} no es una consulta de lectura."
            )
        return
    if profile.intent != intent:
        raise MalformedRequest(
            f"SQL inválido: la intención '{intent.value}' no coincide con una sentencia {profile.verb.upper()}."
        )


def is_own_profile_read(profile: StatementProfile, principal: Principal) -> bool:
    """
    `SELECT name, email FROM users WHERE id = <caller>`: the one read of
    `users` a caller may run without the second factor. The secret columns,
    `*` and whole-row references keep it critical.
    """
    if profile.verb != "select" or profile.tables != (PROTECTED_TABLE,):
        return False
    if not profile.is_row_scoped_to(principal.id):
        return False

    tokens = profile.tokens
    for i, tok in enumerate(tokens):
        if tok.is_op("*"):
            return False
        if not tok.is_identifier:
            continue
        name = tok.value.lower()
        if name in SECRET_COLUMNS:
            return False
        # `users` alone is the whole row on some backends, only `users.<column>` is fine
        if name == PROTECTED_TABLE:
            qualifies = i + 2 < len(tokens) and tokens[i + 1].is_op(".")
            named_in_from = i > 0 and tokens[i - 1].keyword == "from"
            if not (qualifies or named_in_from):
                return False

    # One plain `FROM users [WHERE ...]`: no subquery reading other rows, no
    # alias, since `FROM users u` makes `u` a whole-row reference too
    keywords = [t.keyword for t in tokens]
    if keywords.count("select") != 1 or keywords.count("from") != 1:
        return False
    from_index = keywords.index("from")
    named = tokens[from_index + 1] if from_index + 1 < len(tokens) else None
    following = tokens[from_index + 2] if from_index + 2 < len(tokens) else None
    if named is None or not named.is_identifier or named.value.lower() != PROTECTED_TABLE:
        return False
    return following is None or following.keyword == "where"


def classify_statement(
    profile: StatementProfile,
    principal: Principal,
    registry: SafeTableRegistry = SAFE_TABLES,
) -> Criticality:
    if profile.is_schema_change:
        return Criticality(True, f"schema statement {profile.verb.upper()}")

    if profile.intent == QueryIntent.SELECT and profile.verb not in _DATA_READ_VERBS:
        return Criticality(True, f"metadata statement {profile.verb.upper()}")

    if not profile.tables:
        return Criticality(False, "no table referenced")

    protected = [table for table in profile.tables if not registry.is_safe(table)]
    if protected and is_own_profile_read(profile, principal):
        return Criticality(False, "caller's own profile row")
    if protected:
        return Criticality(True, f"protected table {protected[0]}")

    if not profile.is_scoped_to(principal.id):
        return Criticality(True, "not scoped to the caller's own rows")

    return Criticality(False, "self-scoped statement on safe tables")


def authorize(
    intent: QueryIntent,
    profile: StatementProfile,
    principal: Principal,
    nip: Optional[str],
    registry: SafeTableRegistry = SAFE_TABLES,
) -> Criticality:
    """
    Decide whether `principal` may run the statement described by `profile`.
    Returns the classification when allowed, raises when denied.
    """
    check_intent(intent, profile)

    criticality = classify_statement(profile, principal, registry)
    if not criticality.critical:
        return criticality

    if not principal.is_admin:
        raise AuthorizationDenied(DenialReason.ADMIN_REQUIRED)

    if not nip:
        raise AuthorizationDenied(DenialReason.NIP_REQUIRED)

    if not nip_matches(principal, nip):
        raise AuthorizationDenied(DenialReason.NIP_INCORRECT)

    return criticality
