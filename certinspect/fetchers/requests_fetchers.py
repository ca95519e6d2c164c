"""
Transport implementation using the ``requests`` library.
"""

import logging
from typing import Iterable

import requests
from uritools import urisplit

from ..errors import TransportError, UnsupportedSchemeError
from .api import DEFAULT_USER_AGENT, Transport

__all__ = ['RequestsTransport']

logger = logging.getLogger(__name__)


class RequestsTransport(Transport):
    """
    HTTP(S) transport backed by ``requests``.

    :param user_agent:
        The HTTP user agent to use. If ``None``, a default is used in
        the format "certinspect 1.0.0".
    :param per_request_timeout:
        The number of seconds after which an HTTP request should time out.
    """

    supported_schemes = frozenset(['http', 'https'])

    def __init__(self, user_agent=None, per_request_timeout=10):
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.per_request_timeout = per_request_timeout

    def _check_scheme(self, url: str):
        scheme = urisplit(url).getscheme()
        if scheme not in self.supported_schemes:
            raise UnsupportedSchemeError(url, scheme)

    def _perform(self, method: str, url: str, **kwargs) -> bytes:
        self._check_scheme(url)
        try:
            response = requests.request(
                method, url=url, timeout=self.per_request_timeout, **kwargs
            )
        except requests.RequestException as e:
            raise TransportError(
                f"{method} request to {url} failed: {e}", url=url
            ) from e
        if response.status_code != 200:
            raise TransportError(
                f"{method} request to {url} failed with "
                f"status code {response.status_code}",
                url=url,
            )
        logger.debug(
            f"{method} {url} returned {len(response.content)} bytes "
            f"({response.headers.get('Content-Type')})"
        )
        return response.content

    def get(self, url: str, *, acceptable_content_types: Iterable[str]) -> bytes:
        headers = {
            'Accept': ','.join(acceptable_content_types),
            'User-Agent': self.user_agent,
        }
        return self._perform('GET', url, headers=headers)

    def post(
        self,
        url: str,
        data: bytes,
        *,
        content_type: str,
        acceptable_content_types: Iterable[str],
    ) -> bytes:
        headers = {
            'Accept': ','.join(acceptable_content_types),
            'User-Agent': self.user_agent,
            'Content-Type': content_type,
        }
        return self._perform('POST', url, headers=headers, data=data)
