"""
Exceptions raised inside the relay.

All of them are caught at the relay boundary and turned into a uniform failure response;
none of them reach the proxy's clients as-is.
"""


class RelayError(Exception):
    """Base class for failures raised while relaying one request."""


class TransportError(RelayError):
    """The in-page request failed (origin unreachable, malformed URL, script error)."""


class RelayTimeoutError(RelayError):
    """The in-page request did not complete within its time budget."""


class StreamIntegrityError(RelayError):
    """A polled buffer shrank or a delta did not match the observed growth."""


class EngineLaunchError(RelayError):
    """The browser engine could not be started (or has been shut down)."""


class PageCreationError(RelayError):
    """A page could not be opened on a running engine; only the one request fails."""


class CredentialError(RelayError):
    """The credential flow could not produce a token."""
