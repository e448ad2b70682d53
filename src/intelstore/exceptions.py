"""Library exceptions for the intelstore package."""


class IntelStoreError(Exception):
    """Base exception for intelstore library."""

    pass


class ConfigurationError(IntelStoreError):
    """Raised when store or migration configuration is invalid."""

    pass


class DocumentStoreError(IntelStoreError):
    """Raised when the document store rejects an operation."""

    def __init__(self, operation: str, index: str, message: str) -> None:
        self.operation = operation
        self.index = index
        super().__init__(f"{operation} failed on index {index}: {message}")


class UnknownStoreError(ConfigurationError):
    """Raised when an entity store key is not configured."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Unknown entity store: {key}")
