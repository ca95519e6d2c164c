"""
Synchronous transport API used to fetch CRLs and OCSP responses.
"""

import abc
from typing import Iterable

from ..version import __version__

__all__ = ['Transport', 'DEFAULT_USER_AGENT']

DEFAULT_USER_AGENT = 'certinspect %s' % __version__


class Transport(abc.ABC):
    """
    Utility interface to perform the network I/O required by the revocation
    checkers.

    Implementations make exactly one attempt per call; retries, if desired,
    are the caller's business. Deadlines and cancellation are also handled
    by the implementation, e.g. through a per-request timeout.
    """

    def get(self, url: str, *, acceptable_content_types: Iterable[str]) -> bytes:
        """
        Retrieve the resource at a URL.

        :param url:
            The URL to fetch.
        :param acceptable_content_types:
            Content types to announce in the request.
        :raises:
            TransportError - when a network/IO error occurs
            UnsupportedSchemeError - when the URL's scheme cannot be served
        :return:
            The response body.
        """
        raise NotImplementedError

    def post(
        self,
        url: str,
        data: bytes,
        *,
        content_type: str,
        acceptable_content_types: Iterable[str],
    ) -> bytes:
        """
        Submit a payload to a URL.

        :param url:
            The URL to post to.
        :param data:
            The request body.
        :param content_type:
            Content type of the request body.
        :param acceptable_content_types:
            Content types to announce in the request.
        :raises:
            TransportError - when a network/IO error occurs
            UnsupportedSchemeError - when the URL's scheme cannot be served
        :return:
            The response body.
        """
        raise NotImplementedError
