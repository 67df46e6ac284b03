"""
Outbound SMS Gateway

Sends one text message per request through the Twilio Messages API using
basic auth and a form-encoded body.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

from saheli.core.errors import MessagingError


class MessagingGateway(ABC):
    """Delivers one text message to one phone number"""

    @abstractmethod
    async def send_message(self, to: str, body: str) -> str:
        """Send a message and return the provider's message id"""

    async def close(self) -> None:
        pass


class TwilioMessagingGateway(MessagingGateway):
    """Twilio REST client for outbound SMS"""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        api_base: str = "https://api.twilio.com/2010-04-01",
        timeout_seconds: float = 30,
        user_agent: str = "Saheli/1.0"
    ):
        self.logger = logging.getLogger(__name__)
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.messages_url = f"{api_base.rstrip('/')}/Accounts/{account_sid}/Messages.json"
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent

        self.session: Optional[aiohttp.ClientSession] = None

        self.messages_sent = 0
        self.send_failures = 0

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'TwilioMessagingGateway':
        return cls(
            account_sid=config.get('account_sid', ''),
            auth_token=config.get('auth_token', ''),
            from_number=config.get('from_number', ''),
            api_base=config.get('api_base', "https://api.twilio.com/2010-04-01"),
            timeout_seconds=config.get('timeout_seconds', 30)
        )

    async def __aenter__(self):
        """Async context manager entry"""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close()

    async def start(self):
        """Initialize the HTTP session"""
        if not self.session:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            headers = {
                'User-Agent': self.user_agent,
                'Accept': 'application/json'
            }

            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                auth=aiohttp.BasicAuth(self.account_sid, self.auth_token)
            )

    async def close(self):
        """Close the HTTP session"""
        if self.session:
            await self.session.close()
            self.session = None

    async def send_message(self, to: str, body: str) -> str:
        """
        Send one SMS

        Args:
            to: Recipient in international format
            body: Message text

        Returns:
            Message SID assigned by Twilio

        Raises:
            MessagingError: If the request fails or Twilio rejects it
        """
        if not self.session:
            await self.start()

        form = {
            'From': self.from_number,
            'To': to,
            'Body': body
        }

        try:
            async with self.session.post(self.messages_url, data=form) as response:
                if 200 <= response.status < 300:
                    data = await response.json()
                    self.messages_sent += 1
                    return data.get('sid', '')

                error_text = await response.text()
                self.send_failures += 1
                raise MessagingError(
                    f"HTTP {response.status}: {self._error_detail(error_text)}",
                    status=response.status
                )

        except aiohttp.ClientError as e:
            self.send_failures += 1
            raise MessagingError(f"Network error: {e}")
        except json.JSONDecodeError as e:
            self.send_failures += 1
            raise MessagingError(f"Invalid JSON response: {e}")

    def _error_detail(self, error_text: str) -> str:
        """Pull Twilio's error message out of a JSON error body"""
        try:
            payload = json.loads(error_text)
        except json.JSONDecodeError:
            return error_text
        if isinstance(payload, dict) and payload.get('message'):
            return f"{payload['message']} (code {payload.get('code')})"
        return error_text
