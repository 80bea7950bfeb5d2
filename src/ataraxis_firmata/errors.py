"""This module stores the exception hierarchy used by the library.

All usage errors are derived from ValueError, so that callers who only care about 'bad input' can catch them without
importing library-specific classes. Errors are raised through the console.error() method of the
ataraxis_base_utilities library, which formats the message and, if the console is enabled, logs it before raising.
"""


class FirmataError(Exception):
    """The base class for all errors raised by this library."""


class UsageError(FirmataError, ValueError):
    """Raised when a library method is called with missing or invalid arguments."""


class CodecError(UsageError):
    """Raised when the 7-bit codec receives data it cannot decode, such as an odd-length pair sequence."""


class ProtocolError(UsageError):
    """Raised when a sub-protocol is used before its prerequisite configuration or in a way the firmware can not
    service (for example, requesting a ping read from a pin that does not support it)."""


class TransportError(FirmataError):
    """Wraps the errors reported by the underlying byte transport. These errors are delivered to the consumer as ERROR
    events and are never raised from inside the parsing loop."""


class HandshakeError(FirmataError):
    """Reported (via the ERROR event) when the board does not answer the version query within the configured number
    of retries."""
