import pytest

from assistant_api.ai_query.errors import (
    ADMIN_REQUIRED_MESSAGE,
    AuthorizationDenied,
    DenialReason,
    MalformedRequest,
)
from assistant_api.ai_query.lexer import analyze_statement
from assistant_api.ai_query.policy import (
    authorize,
    classify_statement,
    nip_matches,
    validate_nip,
)
from assistant_api.ai_query.registry import SAFE_TABLES, SafeTableRegistry
from assistant_api.core.schemas import Principal, QueryIntent, UserRole

STANDARD = Principal(id=7, role=UserRole.STANDARD, security_nip="0000")
ADMIN = Principal(id=1, role=UserRole.ADMIN, security_nip="1234")
ADMIN_WITHOUT_NIP = Principal(id=2, role=UserRole.ADMIN)


# =========================
# Registry
# =========================
def test_registry_contents():
    assert "notes" in SAFE_TABLES
    assert "users" not in SAFE_TABLES
    assert list(SAFE_TABLES) == sorted(SAFE_TABLES)
    assert len(SAFE_TABLES) == 8


def test_registry_refuses_users():
    with pytest.raises(ValueError):
        SafeTableRegistry({"notes", "users"})


# =========================
# NIP
# =========================
def test_nip_matches():
    assert nip_matches(ADMIN, "1234")
    assert not nip_matches(ADMIN, "12345")
    assert not nip_matches(ADMIN, None)
    assert not nip_matches(ADMIN_WITHOUT_NIP, "")
    assert not nip_matches(ADMIN_WITHOUT_NIP, "1234")


def test_validate_nip():
    validate_nip(STANDARD, "0000")

    with pytest.raises(AuthorizationDenied) as missing:
        validate_nip(STANDARD, None)
    assert missing.value.reason == DenialReason.NIP_REQUIRED
    assert missing.value.message == "NIP REQUERIDO"

    with pytest.raises(AuthorizationDenied) as wrong:
        validate_nip(STANDARD, "1234")
    assert wrong.value.reason == DenialReason.NIP_INCORRECT
    assert wrong.value.message == "NIP INCORRECTO"


# =========================
# Criticality
# =========================
@pytest.mark.parametrize(
    "sql",
    [
        "SELECT * FROM notes WHERE user_id = 7",
        "UPDATE notes SET title = 'x' WHERE id = 3 AND user_id = 7",
        "DELETE FROM expenses WHERE user_id = 7",
        "INSERT INTO memories (user_id, \"key\", value) VALUES (7, 'k', 'v')",
        "SELECT name, email FROM users WHERE id = 7",
        "SELECT users.name FROM users WHERE users.id = 7",
        "SELECT 1",
    ],
)
def test_not_critical(sql):
    assert not classify_statement(analyze_statement(sql), STANDARD).critical


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT * FROM users WHERE id = 7",
        "SELECT * FROM palettes",
        "SELECT * FROM notes",
        "SELECT * FROM notes WHERE user_id = 8",
        "DELETE FROM notes WHERE id = 3",
        "UPDATE notes SET title = 'x' WHERE user_id = 7 OR 1 = 1 AND user_id > 0",
        "INSERT INTO notes (user_id, title) VALUES (8, 'x')",
        "SELECT * FROM notes n JOIN users u ON u.id = n.user_id WHERE n.user_id = 7",
        "TRUNCATE notes",
        "SELECT name FROM users WHERE id = 8",
        "SELECT name FROM users u WHERE id = 7",
        "SELECT users FROM users WHERE id = 7",
        "SELECT name, security_nip FROM users WHERE id = 7",
        "SELECT name FROM users WHERE id = 7 OR 1 = 1",
        "SELECT name FROM users",
        "SELECT name FROM users WHERE id = 7 AND email = (SELECT email FROM users WHERE id = 1)",
        "UPDATE users SET name = 'x' WHERE id = 7",
        "SELECT * FROM notes WHERE user_id = 7 OR user_id = 8",
        "SELECT title FROM notes WHERE user_id = 7 UNION SELECT name FROM contacts WHERE user_id = 7",
        "SELECT * FROM notes n JOIN contacts c ON 1 = 1 WHERE n.user_id = 7",
        "SHOW TABLES",
    ],
)
def test_critical(sql):
    assert classify_statement(analyze_statement(sql), STANDARD).critical


def test_custom_registry():
    registry = SafeTableRegistry({"notes"})
    profile = analyze_statement("SELECT * FROM contacts WHERE user_id = 7")

    assert not classify_statement(profile, STANDARD).critical
    assert classify_statement(profile, STANDARD, registry).critical


# =========================
# Gates
# =========================
def test_intent_mismatch_is_malformed():
    with pytest.raises(MalformedRequest):
        authorize(
            QueryIntent.UPDATE,
            analyze_statement("SELECT * FROM notes WHERE user_id = 7"),
            STANDARD,
            None,
        )


def test_schema_change_declared_as_select_is_malformed():
    with pytest.raises(MalformedRequest):
        authorize(QueryIntent.SELECT, analyze_statement("DROP TABLE notes"), ADMIN, "1234")


def test_non_admin_denied_even_with_nip():
    with pytest.raises(AuthorizationDenied) as denial:
        authorize(
            QueryIntent.DELETE,
            analyze_statement("DELETE FROM users WHERE id = 9"),
            STANDARD,
            "0000",
        )
    assert denial.value.reason == DenialReason.ADMIN_REQUIRED
    assert denial.value.message == ADMIN_REQUIRED_MESSAGE


@pytest.mark.parametrize(
    "principal, nip, reason",
    [
        (ADMIN, None, DenialReason.NIP_REQUIRED),
        (ADMIN, "", DenialReason.NIP_REQUIRED),
        (ADMIN, "0000", DenialReason.NIP_INCORRECT),
        (ADMIN_WITHOUT_NIP, "1234", DenialReason.NIP_INCORRECT),
    ],
)
def test_admin_second_factor(principal, nip, reason):
    with pytest.raises(AuthorizationDenied) as denial:
        authorize(
            QueryIntent.DELETE,
            analyze_statement("DELETE FROM users WHERE id = 9"),
            principal,
            nip,
        )
    assert denial.value.reason == reason


def test_admin_with_nip_passes():
    criticality = authorize(
        QueryIntent.DELETE,
        analyze_statement("DELETE FROM users WHERE id = 9"),
        ADMIN,
        "1234",
    )
    assert criticality.critical


def test_safe_statement_passes_without_nip():
    criticality = authorize(
        QueryIntent.SELECT,
        analyze_statement("SELECT * FROM notes WHERE user_id = 7"),
        STANDARD,
        None,
    )
    assert not criticality.critical
