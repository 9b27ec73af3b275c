import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "proxy-gateway")
# Prefix of the environment variables overriding config file values,
# e.g. APP_SERVER_PORT or APP_LOG_LEVEL
ENV_PREFIX = os.environ.get("ENV_PREFIX", "APP")
CONFIG_PATH = os.environ.get(f"{ENV_PREFIX}_CONFIG_PATH", "config.toml")

# Empty disables the metrics endpoint
METRICS_PATH = os.environ.get("METRICS_PATH", "/metrics")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
