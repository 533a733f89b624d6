"""Base class for async HTTP clients."""

import logging
import httpx

from ..application.exceptions import ConfigurationError


class BaseClient:
    """A base client that holds the shared async client and request identity."""

    def __init__(self, client: httpx.AsyncClient, user_agent: str, timeout: float):
        """
        Initializes the base client.

        Args:
            client: An instance of httpx.AsyncClient.
            user_agent: The User-Agent sent with every request. Several
                        upstreams reject anonymous clients.
            timeout: Per-request timeout in seconds.

        Raises:
            ConfigurationError: If the user agent is missing or the timeout
                                is not positive.
        """

        if not user_agent or not user_agent.strip():
            raise ConfigurationError(
                f"User agent for {self.__class__.__name__} is missing. "
                f"Please check the [http] section of your settings."
            )
        if timeout <= 0:
            raise ConfigurationError(
                f"Timeout for {self.__class__.__name__} must be positive, got {timeout}"
            )

        self.client = client
        self.user_agent = user_agent
        self.timeout = timeout
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def headers(self):
        return {"User-Agent": self.user_agent}
