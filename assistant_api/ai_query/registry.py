from typing import FrozenSet, Iterable

PROTECTED_TABLES = frozenset({"users"})


class SafeTableRegistry:
    """
    Tables holding the caller's personal data. Self-scoped statements on them
    run without the second factor. `users` can never be registered.
    """

    def __init__(self, tables: Iterable[str]):
        names = frozenset(name.lower() for name in tables)
        protected = names & PROTECTED_TABLES
        if protected:
            raise ValueError(f"Protected tables cannot be marked safe: {sorted(protected)}")
        self._tables: FrozenSet[str] = names

    def is_safe(self, table: str) -> bool:
        return table.lower() in self._tables

    def __contains__(self, table: str) -> bool:
        return self.is_safe(table)

    def __iter__(self):
        return iter(sorted(self._tables))

    def __len__(self) -> int:
        return len(self._tables)


SAFE_TABLES = SafeTableRegistry(
    [
        "notes",
        "appointments",
        "contacts",
        "incomes",
        "expenses",
        "memories",
        "assistant_preferences",
        "biometric_credentials",
    ]
)
