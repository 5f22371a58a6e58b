# errors.py
# Exception taxonomy. Every failure is local to the component that raises it;
# the session catches these and degrades instead of stopping.


class NavError(Exception):
    """Base class for all navlink errors."""
    pass


class PermissionDenied(NavError):
    """The OS refused access to a resource (location, serial port)."""
    pass


class GeocodeFailed(NavError):
    pass


class InvalidFix(NavError):
    """Malformed or empty position fix. Skipped without state change."""
    pass


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

class RouteError(NavError):
    pass


class NoRoute(RouteError):
    pass


class NetworkError(RouteError):
    pass


# ---------------------------------------------------------------------------
# Peripheral
# ---------------------------------------------------------------------------

class PeripheralError(NavError):
    pass


class PeripheralNotFound(PeripheralError):
    pass


class PeripheralConnectFailed(PeripheralError):
    pass


class PeripheralNotConnected(PeripheralError):
    pass


class PeripheralWriteFailed(PeripheralError):
    pass
