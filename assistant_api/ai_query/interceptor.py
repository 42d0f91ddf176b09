import logging
from typing import List

from assistant_api.ai_query.errors import MalformedRequest
from assistant_api.ai_query.lexer import (
    StatementProfile,
    Token,
    insert_layout,
    read_qualified_name,
)
from assistant_api.core.schemas import QueryIntent
from assistant_api.core.security import hash_password, identify_hash

SENSITIVE_TABLE = "users"
SENSITIVE_COLUMN = "password"

_LITERAL_KINDS = {"string", "dquote", "number"}
_ASSIGNMENT_END = {"where", "from", "returning", "limit", "order", "on"}


def _is_plain_literal(tokens: List[Token], index: int) -> bool:
    if index >= len(tokens) or tokens[index].kind not in _LITERAL_KINDS:
        return False
    # `'a' || 'b'` and friends are expressions, not a value we can hash
    following = tokens[index + 1] if index + 1 < len(tokens) else None
    return following is None or following.is_op(",") or following.keyword in _ASSIGNMENT_END


def _names_password(tok: Token) -> bool:
    return tok.is_identifier and tok.value.lower() == SENSITIVE_COLUMN


def _refuse_unhashable():
    raise MalformedRequest(
        "SQL inválido: la contraseña solo puede asignarse como un valor literal."
    )


def _assigned_password_literals(tokens: List[Token]) -> List[Token]:
    """
    Literals assigned to `password` in SET / ON DUPLICATE KEY UPDATE clauses.
    Any other mention of the column inside those clauses is refused.
    """
    found = []
    depth = 0
    in_assignments = False
    for i, tok in enumerate(tokens):
        if tok.is_op("("):
            depth += 1
            continue
        if tok.is_op(")"):
            depth -= 1
            continue

        if depth == 0:
            previous = tokens[i - 1].keyword if i else ""
            if tok.keyword == "set" or (tok.keyword == "update" and previous == "key"):
                in_assignments = True
                continue
            if tok.keyword in _ASSIGNMENT_END:
                in_assignments = False
                continue

        if not in_assignments or not _names_password(tok):
            continue
        # `SET password = 'x'` is the only shape that can be hashed; tuple
        # assignments, copies and expressions would store what they compute
        if (
            depth == 0
            and i + 1 < len(tokens)
            and tokens[i + 1].is_op("=")
            and _is_plain_literal(tokens, i + 2)
        ):
            found.append(tokens[i + 2])
            continue
        _refuse_unhashable()
    return found


def _is_set_form(tokens: List[Token]) -> bool:
    """MySQL `INSERT INTO t SET col = value, ...`"""
    into = next((i for i, t in enumerate(tokens) if t.keyword == "into"), None)
    if into is None:
        return False
    _, index = read_qualified_name(tokens, into + 1)
    return index < len(tokens) and tokens[index].keyword == "set"


def _inserted_password_literals(tokens: List[Token], writes_users: bool) -> List[Token]:
    layout = insert_layout(tokens)
    if layout is None:
        # The assignment scan covers the SET form
        if _is_set_form(tokens):
            return []
        # `INSERT ... SELECT`, no column list: the stored value is unknown
        if writes_users or any(_names_password(t) for t in tokens):
            _refuse_unhashable()
        return []
    columns, rows = layout
    if not writes_users or SENSITIVE_COLUMN not in columns:
        return []

    position = columns.index(SENSITIVE_COLUMN)
    found = []
    for row in rows:
        value = row[position] if position < len(row) else []
        if len(value) != 1 or value[0].kind not in _LITERAL_KINDS:
            _refuse_unhashable()
        found.append(value[0])
    return found


def hash_sensitive_fields(sql: str, profile: StatementProfile) -> str:
    """
    Replace plaintext passwords written to `users` with their bcrypt hash.
    `profile` must have been built from this exact `sql`.

    Raises MalformedRequest when a password reaches `users` in any shape
    other than a literal, since its stored value could not be hashed.
    """
    if SENSITIVE_TABLE not in profile.tables:
        return sql
    if profile.intent not in (QueryIntent.INSERT, QueryIntent.UPDATE):
        return sql

    tokens = list(profile.tokens)
    literals = _assigned_password_literals(tokens)
    if profile.intent == QueryIntent.INSERT:
        literals += _inserted_password_literals(
            tokens, profile.target == SENSITIVE_TABLE
        )

    # Splice from the end so earlier offsets stay valid
    rewritten = sql
    hashed = 0
    for literal in sorted(set(literals), key=lambda t: t.start, reverse=True):
        plain = literal.value
        if identify_hash(plain) is not None:
            continue
        rewritten = (
            rewritten[: literal.start]
            + f"'{hash_password(plain)}'"
            + rewritten[literal.end :]
        )
        hashed += 1

    if hashed:
        logging.info(f"Hashed {hashed} password value(s) before execution")
    return rewritten
