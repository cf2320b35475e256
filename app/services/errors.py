"""Service-layer exceptions. Routers map them to HTTP status codes."""


class ServiceError(Exception):
    def __init__(self, msg: str):
        self.msg = msg
        super().__init__(msg)


class ConfigurationMissing(ServiceError):
    """Required configuration (home location, todo calendar, service account) is not set."""


class ReauthorizationRequired(ServiceError):
    """The Google connection is broken; the stored tokens were cleared or never existed."""


class RefreshInProgress(ServiceError):
    """Another request holds the refresh claim for this identity and did not finish in time."""


class CalendarApiError(ServiceError):
    """Google Calendar returned an error other than an authentication rejection."""

    def __init__(self, msg: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(msg)


class TokenGrantRejected(ServiceError):
    """Google's token endpoint refused an authorization-code or refresh-token grant."""


class AuthenticationRejected(ServiceError):
    """Google rejected the bearer token (HTTP 401)."""
