"""Error taxonomy for lakedash.

every failure the datasource can report maps to one of these. the code
string is stable so the host can branch on it without parsing messages.
driver exceptions are NOT wrapped on their way out of the executor - callers
see exactly what the engine said.
"""


class DatasourceError(Exception):
    """Base class for all lakedash errors."""

    code = "datasource_error"
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TemplateError(DatasourceError):
    """The dashboard query payload could not be understood."""

    code = "template_error"


class EmptyQueryError(DatasourceError):
    """Nothing left to execute after macro expansion."""

    code = "empty_query"


class SessionExpiredError(DatasourceError):
    """The engine no longer recognizes the session behind a connection.

    connectors that can detect this structurally should raise it directly -
    the executor falls back to sniffing the error text otherwise.
    """

    code = "session_expired"
    retryable = True


class TransportError(DatasourceError):
    """Execution or network failure that this layer does not retry."""

    code = "transport_error"


class QueryCancelledError(TransportError):
    """The caller's deadline passed or the call was cancelled."""

    code = "query_cancelled"


class AuthError(DatasourceError):
    """Credential missing, invalid, or the token exchange failed."""

    code = "auth_error"


class ConfigError(DatasourceError):
    """Datasource settings are incomplete or invalid."""

    code = "config_error"


class FrameError(DatasourceError):
    """A result set could not be reshaped as requested."""

    code = "frame_error"
