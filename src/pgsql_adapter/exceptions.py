"""
Adapter-specific exception classes.
"""


class DatabaseError(Exception):
    """Base class for all adapter errors.
    """


class ConfigurationError(DatabaseError):
    """The native client is unavailable or the adapter is misconfigured.
    """


class ConnectionFailure(DatabaseError):
    """Error establishing the link to the server.
    """


class StatementError(DatabaseError):
    """Error executing a statement, carrying the server's error text.
    """

    def __init__(self, message: str, code: int = 1) -> None:
        super().__init__(message)
        self.code = code


class UnsupportedError(DatabaseError):
    """Operation the adapter deliberately does not provide.
    """


class ValidationError(DatabaseError, ValueError):
    """Error in input validation.
    """
