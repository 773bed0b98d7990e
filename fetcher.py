#!/usr/bin/env python3
"""
Feed document retrieval through CORS relays.

Feeds are fetched through an ordered list of relay endpoints. Each relay is
tried in turn with its own timeout; the first one that returns a usable body
wins. A relay either passes the document through unchanged ("raw") or wraps it
in a JSON envelope whose ``contents`` field holds the document ("json").

Failure is silent at this layer: when every relay fails the caller gets an
empty string and treats the source as having yielded nothing.
"""

from asyncio import TimeoutError
from typing import List, Optional, Sequence, Union
from urllib.parse import quote, urlparse
import json

from aiohttp import ClientSession, ClientError, ClientTimeout

from config import config, get_logger
from errors import RelayError
from models import RelayConfig
from telemetry import init_telemetry, trace_span

logger = get_logger("fetcher")
init_telemetry("music-hub-news-fetcher")

HTTP_OK = 200


class ProxyFetcher:
    def __init__(
        self,
        relays: Optional[Sequence[RelayConfig]] = None,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        self.relays: List[RelayConfig] = list(relays if relays is not None else config.RELAYS)
        self.timeout = float(timeout if timeout is not None else config.RELAY_TIMEOUT)
        self.user_agent = user_agent or config.USER_AGENT

    @trace_span(
        "fetch_via_proxy",
        tracer_name="fetcher",
        attr_from_args=lambda self, target_url, session: {
            "feed.url": target_url,
            "relay.count": len(self.relays),
        },
    )
    async def fetch_via_proxy(self, target_url: str, session: ClientSession) -> Union[str, bytes]:
        """Return the first body any relay yields for ``target_url``, or "" when all fail.

        Raw relays hand back undecoded bytes so feedparser can honour the
        document's own encoding declaration. JSON relays yield the unwrapped text.
        """
        encoded = quote(target_url, safe='')
        for index, relay in enumerate(self.relays):
            relay_label = self._summarize_relay(relay)
            try:
                body = await self._fetch_from_relay(relay, encoded, session)
                logger.debug(f"Fetched {target_url} via relay {relay_label} ({len(body)} bytes)")
                return body
            except RelayError as e:
                logger.warning(
                    "Relay %d/%d (%s) failed for %s: %s",
                    index + 1,
                    len(self.relays),
                    relay_label,
                    target_url,
                    e,
                )
            except TimeoutError:
                logger.warning(
                    "Relay %d/%d (%s) timed out after %ss for %s",
                    index + 1,
                    len(self.relays),
                    relay_label,
                    self.timeout,
                    target_url,
                )
            except ClientError as e:
                logger.warning(
                    "Relay %d/%d (%s) network error for %s: %s",
                    index + 1,
                    len(self.relays),
                    relay_label,
                    target_url,
                    self._format_client_error(e),
                )
            except ValueError as e:
                # Covers UnicodeDecodeError from a mislabelled charset
                logger.warning(
                    "Relay %d/%d (%s) returned an undecodable body for %s: %s",
                    index + 1,
                    len(self.relays),
                    relay_label,
                    target_url,
                    e,
                )

        logger.error(f"All {len(self.relays)} relays failed for {target_url}")
        return ""

    async def _fetch_from_relay(
        self, relay: RelayConfig, encoded_target: str, session: ClientSession
    ) -> Union[str, bytes]:
        """Perform one bounded relay request and unwrap the document."""
        relay_url = relay.build_url(encoded_target)
        relay_label = self._summarize_relay(relay)
        async with session.get(
            relay_url,
            headers={'User-Agent': self.user_agent},
            timeout=ClientTimeout(total=self.timeout),
        ) as response:
            if response.status != HTTP_OK:
                raise RelayError(f"HTTP {response.status}", relay=relay_label, status=response.status)
            payload = await response.read()

        body: Union[str, bytes] = payload
        if relay.format == 'json':
            body = self._unwrap_envelope(payload, relay_label)
        if not body or not body.strip():
            raise RelayError("empty body", relay=relay_label)
        return body

    def _unwrap_envelope(self, payload: bytes, relay_label: str) -> str:
        try:
            envelope = json.loads(payload)
        except (TypeError, ValueError) as e:
            raise RelayError(f"invalid JSON envelope ({e})", relay=relay_label) from e
        if not isinstance(envelope, dict):
            raise RelayError("JSON envelope is not an object", relay=relay_label)
        contents = envelope.get('contents')
        if not isinstance(contents, str):
            raise RelayError("JSON envelope has no contents", relay=relay_label)
        return contents

    def _summarize_relay(self, relay: RelayConfig) -> str:
        """Provide a redacted relay identifier for logging."""
        try:
            parsed = urlparse(relay.template)
            if parsed.scheme and parsed.hostname:
                return f"{parsed.scheme}://{parsed.hostname}"
        except ValueError:
            pass
        return relay.template.split('?')[0]

    def _format_client_error(self, error: ClientError) -> str:
        """Describe aiohttp client errors with any available status/errno."""
        parts: List[str] = [error.__class__.__name__]
        status = getattr(error, 'status', None)
        if status is not None:
            parts.append(f"status={status}")
        os_error = getattr(error, 'os_error', None)
        if os_error is not None:
            errno = getattr(os_error, 'errno', None)
            strerror = getattr(os_error, 'strerror', None)
            if errno is not None:
                parts.append(f"errno={errno}")
            if strerror:
                parts.append(str(strerror))
        message = str(error)
        if message:
            parts.append(message)
        return " ".join(parts)
