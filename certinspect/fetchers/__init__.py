from .api import *

__all__ = ['Transport', 'DEFAULT_USER_AGENT', 'default_transport']


def default_transport() -> Transport:
    """
    Instantiate a default transport that doesn't require any resource
    management.
    """

    from .requests_fetchers import RequestsTransport

    return RequestsTransport()
