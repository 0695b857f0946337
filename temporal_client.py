"""Temporal client factory.

Connects resolution workers to Temporal using settings from the environment
(or a .env file next to this module).
"""

import os
import ssl
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
env_path = Path(__file__).resolve().parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

from temporalio.client import Client


DEFAULT_LOCAL_ENDPOINT = "localhost:7233"


async def get_temporal_client() -> Client:
    """Create and return a Temporal client.

    Reads configuration from environment variables:
    - TEMPORAL_ENDPOINT: host:port (default: local dev server on localhost:7233)
    - TEMPORAL_NAMESPACE: Namespace (default: "default")
    - TEMPORAL_API_KEY: Temporal Cloud API key; enables TLS when set
    - TEMPORAL_CERT_PATH: Client certificate chain for mTLS (optional)

    Returns:
        Connected Temporal client

    Raises:
        ValueError: If TEMPORAL_CERT_PATH points to a missing file
    """
    endpoint = os.getenv("TEMPORAL_ENDPOINT", DEFAULT_LOCAL_ENDPOINT)
    namespace = os.getenv("TEMPORAL_NAMESPACE", "default")
    api_key = os.getenv("TEMPORAL_API_KEY")
    cert_path = os.getenv("TEMPORAL_CERT_PATH")

    tls_config: Optional[ssl.SSLContext] = None
    if cert_path:
        if not Path(cert_path).exists():
            raise ValueError(f"TEMPORAL_CERT_PATH does not exist: {cert_path}")
        tls_config = ssl.create_default_context()
        tls_config.load_cert_chain(cert_path)
    elif api_key:
        tls_config = ssl.create_default_context()

    # Local dev server: plain connection, no credentials
    if tls_config is None:
        return await Client.connect(endpoint, namespace=namespace)

    return await Client.connect(
        endpoint,
        namespace=namespace,
        tls=tls_config,
        api_key=api_key,
    )
