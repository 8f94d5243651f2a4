"""
Transaction isolation levels and the statements that apply them.

MySQL receives `SET TRANSACTION ISOLATION LEVEL <level>` before the first
statement of the transaction; without the SESSION keyword it applies to
the next transaction only. SQLite has no such statement, so the levels map
onto the `read_uncommitted` connection flag, which only takes effect for
shared-cache connections. The flag outlives the transaction and must be
reset before the connection goes back to the pool.
"""

from enum import Enum
from typing import Optional


class IsolationLevel(Enum):
    """
    Transaction isolation levels.

    Values are the SQL spellings used in SET TRANSACTION.
    """

    READ_UNCOMMITTED = "READ UNCOMMITTED"
    """
    Transactions can see uncommitted changes from other transactions.
    Allows dirty reads.
    """

    READ_COMMITTED = "READ COMMITTED"
    """
    Transactions only see committed changes.
    Prevents dirty reads but allows non-repeatable reads.
    """

    REPEATABLE_READ = "REPEATABLE READ"
    """
    Re-reading a row inside a transaction returns the same value.
    Prevents non-repeatable reads but allows phantom reads.
    """

    SERIALIZABLE = "SERIALIZABLE"
    """
    Transactions behave as if run one after another.
    """

    @classmethod
    def default(cls) -> "IsolationLevel":
        """Get the default isolation level."""
        return cls.REPEATABLE_READ

    @classmethod
    def parse(cls, value: "str | IsolationLevel") -> "IsolationLevel":
        """
        Parse an isolation level from a name or SQL spelling.

        Accepts "READ_COMMITTED", "read committed", "ReadCommitted" and
        "read-committed" alike.

        Raises:
            ValueError: If the value names no known level
        """
        if isinstance(value, cls):
            return value

        key = "".join(ch for ch in str(value).upper() if ch.isalpha())
        for level in cls:
            if level.name.replace("_", "") == key:
                return level

        valid = ", ".join(level.name for level in cls)
        raise ValueError(f"Unknown isolation level {value!r}. Expected one of: {valid}")

    @property
    def allows_non_repeatable_reads(self) -> bool:
        """Check if a re-read may observe another transaction's commit."""
        return self in (IsolationLevel.READ_UNCOMMITTED, IsolationLevel.READ_COMMITTED)

    def statement(self, dialect: str) -> str:
        """
        Get the statement that applies this level on the given dialect.

        Args:
            dialect: SQLAlchemy dialect name ("mysql", "sqlite")

        Returns:
            SQL text to execute before the transaction's first statement

        Raises:
            ValueError: For dialects without an isolation mapping
        """
        if dialect == "mysql":
            return f"SET TRANSACTION ISOLATION LEVEL {self.value}"
        if dialect == "sqlite":
            flag = 1 if self.allows_non_repeatable_reads else 0
            return f"PRAGMA read_uncommitted = {flag}"
        raise ValueError(f"No isolation mapping for dialect {dialect!r}")


def reset_statement(dialect: str) -> Optional[str]:
    """Statement restoring the connection default after a transaction, if any."""
    if dialect == "sqlite":
        return "PRAGMA read_uncommitted = 0"
    return None
