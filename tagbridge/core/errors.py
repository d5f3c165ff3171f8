"""Domain-specific errors for tagbridge."""


class TagbridgeError(Exception):
    """Base error for tagbridge."""


class ConfigLoadError(TagbridgeError):
    """Raised when a configuration file cannot be read."""


class ConfigValidationError(TagbridgeError):
    """Raised when configuration does not conform to schema or semantics."""


class TransportError(TagbridgeError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on peripheral or broker connect/setup failures."""


class TransportSendError(TransportError):
    """Raised when a transport refuses an outbound message."""


class InvariantViolationError(TagbridgeError):
    """Raised when internal lifecycle bookkeeping is inconsistent."""


class GatewayFaultError(TagbridgeError):
    """Raised when the gateway stopped because of an unrecoverable fault."""
