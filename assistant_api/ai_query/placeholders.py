import re
from typing import NamedTuple

from assistant_api.ai_query.errors import MalformedPlaceholder
from assistant_api.ai_query.lexer import tokenize

# Tokens the assistant uses for "the current user"
PLACEHOLDER_FORMS = ("[ID_USUARIO_ACTUAL]", "[USER_ID]", "@current_user_id", ":user_id")

_ANY_PLACEHOLDER = re.compile("|".join(re.escape(form) for form in PLACEHOLDER_FORMS))
_GLUED = re.compile(r"[\w.@:$]")


class ResolvedSql(NamedTuple):
    sql: str
    substitutions: int


def resolve_placeholders(sql: str, user_id: int) -> ResolvedSql:
    """
    Replace every user placeholder with the caller's id as an integer literal.

    Raises MalformedPlaceholder when a placeholder sits where an integer
    literal cannot: inside a quoted literal or identifier, or glued to
    identifier characters (e.g. `:user_ids`). Comments are left untouched.
    Running it again on its own output changes nothing.
    """
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        raise MalformedPlaceholder("El identificador del usuario no es un entero válido.")
    literal = str(user_id)

    pieces = []
    cursor = 0
    substitutions = 0
    for token in tokenize(sql):
        if token.kind in ("string", "dquote", "backtick", "bracket"):
            if _ANY_PLACEHOLDER.search(token.text[1:-1]):
                raise MalformedPlaceholder(
                    f"Marcador de usuario dentro de un literal: {token.text}"
                )
            continue
        if token.kind != "placeholder":
            continue

        before = sql[token.start - 1] if token.start > 0 else ""
        after = sql[token.end] if token.end < len(sql) else ""
        if _GLUED.match(before) or _GLUED.match(after):
            raise MalformedPlaceholder(
                f"Marcador de usuario en una posición no válida: {token.text}"
            )

        pieces.append(sql[cursor:token.start])
        pieces.append(literal)
        cursor = token.end
        substitutions += 1

    pieces.append(sql[cursor:])
    return ResolvedSql("".join(pieces), substitutions)
