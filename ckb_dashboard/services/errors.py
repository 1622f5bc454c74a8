class DashboardError(RuntimeError):
    """Base class for errors raised by the dashboard services."""


class NetworkError(DashboardError):
    """The RPC endpoint could not be reached (refused, DNS, timeout, HTTP status)."""


class ProtocolError(DashboardError):
    """The node answered, but not with the shape we expected."""


class InvalidEpochError(ProtocolError):
    """A decoded epoch has length 0, so progress through it is undefined."""


class SettingsError(DashboardError):
    pass
