# Custom Exception Classes
from typing import Any


class EngineError(Exception):
    """Base exception for rule engine operations"""
    def __init__(self, message: str, address: int = None, source: str = None):
        super().__init__(message)
        self.address = address
        self.source = source


class ConfigurationError(EngineError):
    """Raised when configuration is missing or invalid"""
    pass


class ConnectionError(EngineError):
    """Raised when the PLC session cannot be opened or is not open"""
    pass


class ProtocolValidationError(ConnectionError):
    """Raised when every validation probe against a freshly opened session fails"""
    pass


class EncodingError(EngineError):
    """Raised when register data encoding/decoding fails"""
    pass


class VerificationError(EngineError):
    """Raised when a read-back value does not match what was written"""
    def __init__(self, message: str, address: int = None, expected: Any = None, actual: Any = None,
                 source: str = None):
        super().__init__(message, address=address, source=source)
        self.expected = expected
        self.actual = actual


class RecordNotFoundError(EngineError, LookupError):
    """Raised when an expected record or configured value is missing"""
    pass
