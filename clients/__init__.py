# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    VaultError,
    get_session_secret,
    get_valkey_url,
    get_email_config,
)
from clients.valkey_client import ValkeyClient
from clients.email_client import EmailGatewayClient, EmailGatewayError
from clients.backend_client import (
    BackendProxyClient,
    BackendResponse,
    BackendUnavailableError,
    BackendResponseError,
    ProxyConfig,
)
