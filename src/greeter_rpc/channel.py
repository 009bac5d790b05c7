"""Channel lifecycle: open a gRPC channel and shut it down with a bounded wait.

The code that opens a channel owns it and is the only code that closes it.
Clients only borrow the handle.
"""

import logging
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import grpc
from pydantic import BaseModel, ConfigDict

from .config import DEFAULT_SHUTDOWN_TIMEOUT

logger = logging.getLogger(__name__)


class TransportSecurity(BaseModel):
    """Transport security settings for a client channel.

    With ``use_tls`` unset the channel is plaintext. Otherwise the optional
    PEM-encoded certificates are handed to ``grpc.ssl_channel_credentials``;
    providing both ``private_key`` and ``certificate_chain`` enables mTLS.
    """

    model_config = ConfigDict(frozen=True)

    use_tls: bool = False
    root_certificates: bytes | None = None
    private_key: bytes | None = None
    certificate_chain: bytes | None = None

    @classmethod
    def insecure(cls) -> "TransportSecurity":
        return cls()

    @classmethod
    def tls(
        cls,
        root_certificates: bytes | None = None,
        private_key: bytes | None = None,
        certificate_chain: bytes | None = None,
    ) -> "TransportSecurity":
        if (private_key is None) != (certificate_chain is None):
            raise ValueError(
                "private_key and certificate_chain must be provided together"
            )
        return cls(
            use_tls=True,
            root_certificates=root_certificates,
            private_key=private_key,
            certificate_chain=certificate_chain,
        )

    def credentials(self) -> grpc.ChannelCredentials | None:
        """Return channel credentials, or None for a plaintext channel."""
        if not self.use_tls:
            return None
        return grpc.ssl_channel_credentials(
            root_certificates=self.root_certificates,
            private_key=self.private_key,
            certificate_chain=self.certificate_chain,
        )


def open_channel(
    target: str,
    security: TransportSecurity | None = None,
    options: Sequence[tuple[str, Any]] | None = None,
) -> grpc.Channel:
    """Create a channel to ``target``.

    The connection is established lazily on the first call, so an
    unreachable target is not reported here.
    """
    credentials = (security or TransportSecurity.insecure()).credentials()
    if credentials is None:
        logger.debug("Opening insecure channel to %s", target)
        return grpc.insecure_channel(target, options=options)
    logger.debug("Opening secure channel to %s", target)
    return grpc.secure_channel(target, credentials, options=options)


def close_channel(channel: grpc.Channel, timeout: float = DEFAULT_SHUTDOWN_TIMEOUT) -> bool:
    """Shut ``channel`` down, waiting at most ``timeout`` seconds.

    Closing cancels any in-flight calls. Returns True once shutdown has
    finished and False if the wait expired first; expiry is logged, not
    raised.
    """
    closer = threading.Thread(
        target=channel.close, name="greeter-channel-close", daemon=True
    )
    closer.start()
    closer.join(timeout)
    if closer.is_alive():
        logger.warning("Channel did not shut down within %.1f seconds", timeout)
        return False
    logger.debug("Channel closed")
    return True


@contextmanager
def managed_channel(
    target: str,
    security: TransportSecurity | None = None,
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    options: Sequence[tuple[str, Any]] | None = None,
) -> Iterator[grpc.Channel]:
    """Open a channel for the duration of a ``with`` block."""
    channel = open_channel(target, security, options)
    try:
        yield channel
    finally:
        _ = close_channel(channel, shutdown_timeout)
