"""Exceptions raised by the schema synchronization engine."""


class SchemaError(Exception):
    """Base class for schema declaration and synchronization errors."""

    pass


class PrimaryKeyChangeError(SchemaError):
    """Raised when the primary key of an existing table would change."""

    pass


class AlterNotSupportedError(SchemaError, NotImplementedError):
    """Raised when a dialect has no way to alter a column in place."""

    pass


class DefinitionError(SchemaError):
    """Raised on a malformed column type definition string."""

    pass


class SchemaHandlerError(SchemaError):
    """Raised when the database rejects a DDL statement.

    Attributes:
        statement: The SQL statement that failed.
        error: The original driver exception.
    """

    def __init__(self, statement: str, error: Exception):
        self.statement = statement
        self.error = error
        super().__init__(f"{error} (statement: {statement})")


class CircularDependencyError(SchemaError):
    """Raised when tables reference each other in a cycle.

    Attributes:
        cycle: Keys forming the cycle, first key repeated at the end.
    """

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Circular dependency detected: {' -> '.join(cycle)}")
