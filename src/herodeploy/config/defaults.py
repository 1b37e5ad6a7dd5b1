"""Default configuration values for herodeploy."""

# Built-in defaults for RunConfiguration fields
DEFAULT_RUN_CONFIG: dict[str, int | bool | str | None] = {
    "network_mode": "both",
    "main_network": "wireguard",
    "gateway_type": "proxy",
    "enable_ssl": False,
    "domain_name": None,
    "ssl_email": None,
    "ssl_staging": False,
    "enable_monitoring": True,
    "cpu": 2,
    "memory": 4096,
    "dns_records_set": False,
}

# RunConfiguration field -> env file key
ENV_VAR_MAP: dict[str, str] = {
    "network_mode": "NETWORK_MODE",
    "main_network": "MAIN_NETWORK",
    "gateway_type": "GATEWAY_TYPE",
    "enable_ssl": "ENABLE_SSL",
    "domain_name": "DOMAIN_NAME",
    "ssl_email": "SSL_EMAIL",
    "ssl_staging": "SSL_STAGING",
    "enable_monitoring": "ENABLE_MONITORING",
    "cpu": "CPU",
    "memory": "MEMORY",
    "dns_records_set": "DNS_RECORDS_SET",
    "postgres_password": "POSTGRES_PASSWORD",
    "redis_password": "REDIS_PASSWORD",
    "jwt_secret": "JWT_SECRET",
}

BOOL_FIELDS = frozenset(
    {"enable_ssl", "ssl_staging", "enable_monitoring", "dns_records_set"}
)
INT_FIELDS = frozenset({"cpu", "memory"})

# Secret field -> encoding of the generated value
SECRET_ENCODINGS: dict[str, str] = {
    "postgres_password": "base64",
    "redis_password": "base64",
    "jwt_secret": "hex",
}
SECRET_BYTES = 32

# WireGuard tunnel
TUNNEL_NAME = "hero"
TUNNEL_CONFIG_DIR = "/etc/wireguard"
TUNNEL_ROUTES = ("100.64.0.0/16", "10.1.0.0/16")

# Provisioning backend
PLAN_FILE = "hero.tfplan"
MNEMONIC_ENV = "TF_VAR_mnemonic"

# Verification
DEFAULT_REQUIRED_ENDPOINTS = ("app", "health")
HTTP_TIMEOUT = 10  # seconds
HTTP_RETRIES = 3
HTTP_RETRY_DELAY = 5  # seconds

# Service ports exposed to roles
HERO_BACKEND_PORT = 8080
UI_COLAB_PORT = 3000
