"""
Minimal SQL lexer for assistant-generated statements.

This is not a parser. It tokenizes a single statement well enough to answer
the questions the gateway asks before running it:

- which verb starts the statement (and therefore which intent it implies),
- which tables it names after FROM / JOIN / INTO / UPDATE,
- which owner ids its `user_id` predicates pin it to.

String literals and comments are tokenized as a whole, so keywords or table
names hidden inside them never count. Anything the lexer cannot make sense of
is rejected with MalformedRequest instead of being guessed.
"""

import re
from dataclasses import dataclass, field
from typing import FrozenSet, List, NamedTuple, Optional, Set, Tuple

from assistant_api.ai_query.errors import MalformedRequest
from assistant_api.core.schemas import QueryIntent

OWNER_COLUMN = "user_id"
ROW_COLUMN = "id"

_TOKEN_PATTERN = re.compile(
    r"""
      (?P<space>\s+)
    | (?P<comment>--[^\n]*|\#[^\n]*|/\*.*?\*/)
    | (?P<string>'(?:[^']|'')*')
    | (?P<dquote>"(?:[^"]|"")*")
    | (?P<backtick>`(?:[^`]|``)*`)
    | (?P<placeholder>\[ID_USUARIO_ACTUAL\]|\[USER_ID\]|@current_user_id|:user_id)
    | (?P<bracket>\[[^\[\]]*\])
    | (?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
    | (?P<word>[^\W\d]\w*)
    | (?P<op><>|<=|>=|!=|==|\|\||::|[=<>+\-*/%,;().!~^&|?])
    | (?P<variable>@@?[^\W\d]\w*|:[^\W\d]\w*|\$\d+)
    | (?P<other>.)
    """,
    re.VERBOSE | re.DOTALL,
)

_IDENTIFIER_KINDS = {"word", "backtick", "bracket", "dquote"}
_INTEGER = re.compile(r"\d+")

READ_VERBS = {"select", "with", "show", "describe", "desc", "explain"}
VERB_INTENTS = {
    "insert": QueryIntent.INSERT,
    "replace": QueryIntent.INSERT,
    "update": QueryIntent.UPDATE,
    "delete": QueryIntent.DELETE,
}

# Keywords that turn a read into a write. REPLACE is left out on purpose:
# inside a SELECT it is the string function.
WRITE_KEYWORDS = {
    "insert",
    "update",
    "delete",
    "drop",
    "alter",
    "truncate",
    "create",
    "grant",
    "revoke",
    "merge",
}

# A read that names any of these stops being a plain read
_READ_ONLY_VIOLATIONS = WRITE_KEYWORDS | {"into"}

# Words after FROM/JOIN/INTO/UPDATE that are not table names
_NOT_TABLES = {"select", "set", "values", "dual"}
_TABLE_MODIFIERS = {"ignore", "low_priority", "only", "lateral"}

# Words that close a FROM / UPDATE table list at the same nesting depth
_TABLE_LIST_END = {
    "where",
    "group",
    "order",
    "having",
    "limit",
    "offset",
    "fetch",
    "union",
    "except",
    "intersect",
    "returning",
    "window",
    "for",
    "set",
    "values",
    "select",
}

# Functions whose argument list uses FROM without naming a table
_FROM_FUNCTIONS = {"extract", "substring", "trim", "overlay", "position"}

_COMPARISONS = {"=", "==", "<>", "!=", "<", ">", "<=", ">="}
_COMPARISON_WORDS = {"in", "is", "like", "ilike", "between", "not", "regexp", "rlike"}


class Token(NamedTuple):
    kind: str
    text: str
    start: int
    end: int

    @property
    def value(self) -> str:
        """Text with quoting removed."""
        if self.kind == "string":
            return self.text[1:-1].replace("''", "'")
        if self.kind == "dquote":
            return self.text[1:-1].replace('""', '"')
        if self.kind == "backtick":
            return self.text[1:-1].replace("``", "`")
        if self.kind == "bracket":
            return self.text[1:-1]
        return self.text

    @property
    def keyword(self) -> str:
        return self.text.lower() if self.kind == "word" else ""

    @property
    def is_identifier(self) -> bool:
        return self.kind in _IDENTIFIER_KINDS

    @property
    def is_integer(self) -> bool:
        return self.kind == "number" and _INTEGER.fullmatch(self.text) is not None

    def is_op(self, symbol: str) -> bool:
        return self.kind == "op" and self.text == symbol


def tokenize(sql: str) -> List[Token]:
    tokens = []
    for match in _TOKEN_PATTERN.finditer(sql):
        kind = match.lastgroup
        text = match.group()
        if kind == "other" and text in ("'", '"', "`"):
            raise MalformedRequest(
                f"SQL inválido: literal sin cerrar en la posición {match.start()}."
            )
        tokens.append(Token(kind, text, match.start(), match.end()))
    return tokens


def significant(tokens: List[Token]) -> List[Token]:
    return [t for t in tokens if t.kind not in ("space", "comment")]


@dataclass(frozen=True)
class StatementProfile:
    verb: str
    # None for schema statements (DROP, ALTER, CREATE, ...)
    intent: Optional[QueryIntent]
    tables: Tuple[str, ...] = ()
    owner_ids: Tuple[int, ...] = ()
    owner_unbounded: bool = False
    # table references, a self join counts twice
    table_refs: int = 0
    # owner pins on distinct table references
    owner_pins: int = 0
    # distinct `a.user_id = b.user_id` equalities tying one table to another
    owner_links: int = 0
    # ids pinned by `id = <int>`, only meaningful for single-table statements
    row_ids: Tuple[int, ...] = ()
    row_unbounded: bool = False
    tokens: Tuple[Token, ...] = field(default=(), repr=False, compare=False)

    @property
    def target(self) -> Optional[str]:
        return self.tables[0] if self.tables else None

    @property
    def is_schema_change(self) -> bool:
        return self.intent is None

    def is_scoped_to(self, user_id: int) -> bool:
        """
        True when every owner predicate pins the statement to `user_id` and
        each referenced table is covered by a pin or a user_id join.
        """
        if self.owner_unbounded or not self.owner_ids:
            return False
        if any(owner != user_id for owner in self.owner_ids):
            return False
        return self.owner_pins + self.owner_links >= self.table_refs

    def is_row_scoped_to(self, row_id: int) -> bool:
        if self.row_unbounded or not self.row_ids:
            return False
        return all(pinned == row_id for pinned in self.row_ids)


def analyze_statement(sql: str) -> StatementProfile:
    tokens = significant(tokenize(sql))

    # A single trailing semicolon is fine, anything else is a second statement
    while tokens and tokens[-1].is_op(";"):
        tokens.pop()
    if not tokens:
        raise MalformedRequest("SQL inválido: la consulta está vacía.")
    if any(t.is_op(";") for t in tokens):
        raise MalformedRequest(
            "SQL inválido: solo se permite una sentencia por solicitud."
        )

    verb_token = next((t for t in tokens if not t.is_op("(")), None)
    if verb_token is None or verb_token.kind != "word":
        raise MalformedRequest("SQL inválido: no se reconoce el tipo de sentencia.")
    verb = verb_token.keyword

    if verb in READ_VERBS:
        intent = QueryIntent.SELECT
        writes = sorted({t.keyword for t in tokens} & _READ_ONLY_VIOLATIONS)
        if writes:
            raise MalformedRequest(
                f"SQL inválido: una consulta de lectura no puede contener {writes[0].upper()}."
            )
    else:
        intent = VERB_INTENTS.get(verb)

    # CTE names are not tables, the tables inside their bodies are collected anyway
    cte_names = _cte_names(tokens)
    collected, unresolved = _collect_tables(tokens)
    if unresolved:
        raise MalformedRequest(
            "SQL inválido: no se pudo identificar una de las tablas de la consulta."
        )
    references = [table for table in collected if table not in cte_names]
    tables = list(dict.fromkeys(references))
    if intent in (QueryIntent.INSERT, QueryIntent.UPDATE, QueryIntent.DELETE) and not tables:
        raise MalformedRequest(
            "SQL inválido: no se pudo determinar la tabla afectada."
        )

    owners = _owner_predicates(tokens, OWNER_COLUMN)
    owner_ids, unbounded = owners.ids, owners.unbounded
    # n.user_id = 7 twice still pins one table
    qualified = {q for q in owners.pinned if q}
    pins = len(qualified) + owners.pinned.count("")
    if intent == QueryIntent.INSERT:
        insert_ids, insert_unbounded = _insert_owner_values(tokens)
        owner_ids += insert_ids
        pins += 1 if insert_ids else 0
        unbounded = unbounded or insert_unbounded
    rows = _owner_predicates(tokens, ROW_COLUMN)

    return StatementProfile(
        verb=verb,
        intent=intent,
        tables=tuple(tables),
        table_refs=len(references),
        owner_ids=tuple(owner_ids),
        owner_unbounded=unbounded,
        owner_pins=pins,
        owner_links=len(owners.links),
        row_ids=tuple(rows.ids),
        row_unbounded=rows.unbounded,
        tokens=tuple(tokens),
    )


def read_qualified_name(tokens: List[Token], index: int) -> Tuple[Optional[str], int]:
    """Read `name` or `schema.name` at index, returning the last part."""
    if index >= len(tokens) or not tokens[index].is_identifier:
        return None, index
    name = tokens[index].value
    index += 1
    while (
        index + 1 < len(tokens)
        and tokens[index].is_op(".")
        and tokens[index + 1].is_identifier
    ):
        name = tokens[index + 1].value
        index += 2
    return name, index


def _read_table(tokens: List[Token], index: int) -> Tuple[Optional[str], int]:
    while index < len(tokens) and tokens[index].keyword in _TABLE_MODIFIERS:
        index += 1
    if index < len(tokens) and tokens[index].keyword in _NOT_TABLES:
        return None, index
    name, index = read_qualified_name(tokens, index)
    return (name.lower() if name else None), index


def _opens_table_group(tokens: List[Token], index: int, lists: List[int], depth: int) -> bool:
    """True when the parenthesis at index wraps table references: `FROM (users)`."""
    if index == 0:
        return False
    previous = tokens[index - 1]
    if previous.keyword in ("from", "join", "straight_join"):
        return True
    # `FROM ((users))`, `FROM notes, (users)`
    return bool(lists) and lists[-1] == depth and (previous.is_op("(") or previous.is_op(","))


def _collect_tables(tokens: List[Token]) -> Tuple[List[str], bool]:
    """
    Table references in statement order, repeats included, and whether
    some FROM / JOIN / INTO position could not be resolved to one.
    """
    tables: List[str] = []
    unresolved = False
    depth = 0
    # keyword in front of each open parenthesis
    openers: List[str] = []
    # depths at which a FROM / UPDATE table list is still open
    lists: List[int] = []

    def record(name):
        if name:
            tables.append(name)

    i = 0
    while i < len(tokens):
        tok = tokens[i]
        kw = tok.keyword

        if tok.is_op("("):
            group = _opens_table_group(tokens, i, lists, depth)
            openers.append(tokens[i - 1].keyword if i else "")
            depth += 1
            i += 1
            if group:
                # the group is a table list of its own, a subquery closes it again
                lists.append(depth)
                name, next_index = _read_table(tokens, i)
                record(name)
                if name:
                    i = next_index
                elif i < len(tokens) and not (
                    tokens[i].is_op("(") or tokens[i].keyword in ("select", "with")
                ):
                    unresolved = True
            continue
        if tok.is_op(")"):
            depth -= 1
            if openers:
                openers.pop()
            while lists and lists[-1] > depth:
                lists.pop()
            i += 1
            continue

        if lists and lists[-1] == depth:
            if tok.is_op(","):
                name, next_index = _read_table(tokens, i + 1)
                record(name)
                if name is None and not _is_group_start(tokens, i + 1):
                    unresolved = True
                i = next_index if name else i + 1
                continue
            if kw in _TABLE_LIST_END:
                lists.pop()

        previous = tokens[i - 1].keyword if i else ""

        # EXTRACT(YEAR FROM x), a IS DISTINCT FROM b
        if kw == "from" and (
            (openers and openers[-1] in _FROM_FUNCTIONS and depth > 0)
            or previous == "distinct"
        ):
            i += 1
            continue

        names_table = kw in ("from", "join", "straight_join", "into") or (
            kw == "update" and previous not in ("key", "do")
        )
        if names_table:
            if kw in ("from", "update"):
                lists.append(depth)
            name, next_index = _read_table(tokens, i + 1)
            record(name)
            if name is None and kw != "update" and not _is_group_start(tokens, i + 1):
                following = tokens[i + 1].keyword if i + 1 < len(tokens) else ""
                if following != "dual":
                    unresolved = True
            i = next_index if name else i + 1
            continue

        i += 1

    return tables, unresolved


def _is_group_start(tokens: List[Token], index: int) -> bool:
    while index < len(tokens) and tokens[index].keyword in _TABLE_MODIFIERS:
        index += 1
    return index < len(tokens) and tokens[index].is_op("(")


def _cte_names(tokens: List[Token]) -> Set[str]:
    names = set()
    if not tokens or tokens[0].keyword != "with":
        return names
    i = 1
    if i < len(tokens) and tokens[i].keyword == "recursive":
        i += 1
    while i < len(tokens):
        name, i = read_qualified_name(tokens, i)
        if name is None:
            break
        names.add(name.lower())
        if i < len(tokens) and tokens[i].is_op("("):
            columns, i = _split_group(tokens, i)
            if columns is None:
                break
        if i >= len(tokens) or tokens[i].keyword != "as":
            break
        i += 1
        while i < len(tokens) and tokens[i].keyword in ("not", "materialized"):
            i += 1
        body, i = _split_group(tokens, i)
        if body is None:
            break
        if i < len(tokens) and tokens[i].is_op(","):
            i += 1
            continue
        break
    return names


_SET_OPERATORS = {"union", "intersect", "except"}


def _column_at(tokens: List[Token], index: int, column: str) -> bool:
    tok = tokens[index]
    return tok.is_identifier and tok.value.lower() == column


def _depths(tokens: List[Token]) -> List[int]:
    depths = []
    depth = 0
    for tok in tokens:
        if tok.is_op(")"):
            depth -= 1
        depths.append(depth)
        if tok.is_op("("):
            depth += 1
    return depths


class _Predicates(NamedTuple):
    ids: List[int]
    unbounded: bool
    # qualifier of each pin, `""` for unqualified ones
    pinned: List[str]
    # distinct pairs of qualifiers tied by an equality between two columns
    links: Set[FrozenSet[str]]


def _qualifier(tokens: List[Token], start: int, index: int) -> str:
    return tokens[start].value.lower() if start < index else ""


def _owner_predicates(tokens: List[Token], column: str) -> _Predicates:
    """
    Collect the ids in `<column> = <int>` comparisons.

    Any other comparison on the column makes the set unbounded, and so does
    a set operator or an OR at the nesting depth of a predicate (or above
    it), since either can add rows the pins never see. Equalities between
    two such columns of different tables (join conditions) are kept as links.
    """
    ids: List[int] = []
    unbounded = False
    pinned: List[str] = []
    links: Set[FrozenSet[str]] = set()
    count = len(tokens)
    depths = _depths(tokens)
    # deepest predicate seen, an OR at this depth or above can widen it
    deepest = -1

    for i in range(count):
        if not _column_at(tokens, i, column):
            continue
        # skip if this is the qualifier of something else, e.g. user_id.x
        if i + 1 < count and tokens[i + 1].is_op("."):
            continue

        # start of a qualified reference such as n.user_id
        start = i
        while start >= 2 and tokens[start - 1].is_op(".") and tokens[start - 2].is_identifier:
            start -= 2

        right = tokens[i + 1] if i + 1 < count else None
        left = tokens[start - 1] if start >= 1 else None

        if right is not None and right.kind == "op" and right.text in _COMPARISONS:
            deepest = max(deepest, depths[i])
            if right.text in ("=", "=="):
                operand = tokens[i + 2] if i + 2 < count else None
                if operand is not None and operand.is_integer:
                    ids.append(int(operand.text))
                    pinned.append(_qualifier(tokens, start, i))
                    continue
                name, end = read_qualified_name(tokens, i + 2)
                if name is not None and name.lower() == column:
                    pair = frozenset((_qualifier(tokens, start, i), _qualifier(tokens, i + 2, end - 1)))
                    if len(pair) == 2:
                        links.add(pair)
                    continue
            unbounded = True
            continue

        if right is not None and right.keyword in _COMPARISON_WORDS:
            unbounded = True
            continue

        if left is not None and left.kind == "op" and left.text in _COMPARISONS:
            deepest = max(deepest, depths[i])
            if left.text in ("=", "=="):
                operand_index = start - 2
                if operand_index >= 0 and tokens[operand_index].is_integer:
                    ids.append(int(tokens[operand_index].text))
                    pinned.append(_qualifier(tokens, start, i))
                    continue
                # the other side of a join equality, already counted
                if operand_index >= 0 and _column_at(tokens, operand_index, column):
                    continue
            unbounded = True

    if ids or links:
        for tok, depth in zip(tokens, depths):
            if tok.keyword in _SET_OPERATORS or (tok.keyword == "or" and depth <= deepest):
                unbounded = True
                break

    return _Predicates(ids, unbounded, pinned, links)


def _split_group(tokens: List[Token], index: int) -> Tuple[Optional[List[List[Token]]], int]:
    """Split a parenthesised, comma separated group starting at index."""
    if index >= len(tokens) or not tokens[index].is_op("("):
        return None, index
    items: List[List[Token]] = [[]]
    depth = 0
    i = index
    while i < len(tokens):
        tok = tokens[i]
        if tok.is_op("("):
            depth += 1
            if depth > 1:
                items[-1].append(tok)
        elif tok.is_op(")"):
            depth -= 1
            if depth == 0:
                return items, i + 1
            items[-1].append(tok)
        elif tok.is_op(",") and depth == 1:
            items.append([])
        else:
            items[-1].append(tok)
        i += 1
    return None, index


def insert_layout(tokens: List[Token]) -> Optional[Tuple[List[str], List[List[List[Token]]]]]:
    """
    Column names and VALUES rows of `INSERT INTO t (cols) VALUES (...), (...)`.
    Returns None for any other INSERT shape.
    """
    into = next((i for i, t in enumerate(tokens) if t.keyword == "into"), None)
    if into is None:
        return None
    _, index = read_qualified_name(tokens, into + 1)
    column_groups, index = _split_group(tokens, index)
    if column_groups is None:
        return None

    columns = []
    for group in column_groups:
        idents = [t for t in group if t.is_identifier]
        columns.append(idents[-1].value.lower() if idents else "")

    if index >= len(tokens) or tokens[index].keyword not in ("values", "value"):
        return None
    index += 1

    rows = []
    while True:
        row, index = _split_group(tokens, index)
        if row is None:
            return None
        rows.append(row)
        if index < len(tokens) and tokens[index].is_op(","):
            index += 1
            continue
        break
    return columns, rows


def _insert_owner_values(tokens: List[Token]) -> Tuple[List[int], bool]:
    if any(t.keyword == "select" for t in tokens):
        return [], True
    layout = insert_layout(tokens)
    if layout is None:
        return [], False
    columns, rows = layout
    if OWNER_COLUMN not in columns:
        return [], False

    position = columns.index(OWNER_COLUMN)
    ids: List[int] = []
    for row in rows:
        value = row[position] if position < len(row) else []
        if len(value) != 1 or not value[0].is_integer:
            return ids, True
        ids.append(int(value[0].text))
    return ids, False
