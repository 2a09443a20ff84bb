"""Temporal client factory.

Connects either to Temporal Cloud (API key over TLS) or to a plain local
server, using the settings in core.config.
"""

from pathlib import Path
from typing import Optional, Union

from temporalio.client import Client
from temporalio.service import TLSConfig

from core import config


def _tls_config() -> Union[bool, TLSConfig]:
    """TLS settings for the connection.

    A client certificate (TEMPORAL_CERT_PATH, PEM with the private key) is
    used when configured; otherwise an API key enables TLS with system
    certificates, and a local server gets no TLS at all.
    """
    if config.TEMPORAL_CERT_PATH:
        pem = Path(config.TEMPORAL_CERT_PATH).read_bytes()
        return TLSConfig(client_cert=pem, client_private_key=pem)
    return bool(config.TEMPORAL_API_KEY)


async def get_temporal_client(
    endpoint: Optional[str] = None,
    namespace: Optional[str] = None,
) -> Client:
    """Create and return a Temporal client.

    Reads configuration from environment variables (via core.config):
    - TEMPORAL_ENDPOINT: Server address (default "localhost:7233")
    - TEMPORAL_NAMESPACE: Namespace (default "default")
    - TEMPORAL_API_KEY: API key for Temporal Cloud (optional)
    - TEMPORAL_CERT_PATH: Client certificate for mTLS (optional)

    Returns:
        Connected Temporal client
    """
    return await Client.connect(
        target_host=endpoint or config.TEMPORAL_ENDPOINT,
        namespace=namespace or config.TEMPORAL_NAMESPACE,
        tls=_tls_config(),
        api_key=config.TEMPORAL_API_KEY,
    )
