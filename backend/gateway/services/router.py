from typing import NamedTuple

from gateway.core.config import Settings


class Upstream(NamedTuple):
    endpoint: str
    native: bool


def resolve_upstream(settings: Settings) -> Upstream:
    """
    Pick the backend endpoint. Native mode translates to and from the app
    completion API; otherwise the compatible-mode endpoint gets the request
    as-is.
    """
    if settings.USE_NATIVE_API:
        return Upstream(settings.native_endpoint, True)
    return Upstream(settings.compatible_endpoint, False)
