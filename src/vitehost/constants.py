"""Global constants for vitehost."""

# Dev server defaults

DEFAULT_DEV_SERVER_PORT = 3000
DEFAULT_HOST = "localhost"
DEFAULT_SCHEME = "https"
DEFAULT_STARTUP_TIMEOUT = 120.0

# Proxy defaults

DEFAULT_PROXY_HOST = "127.0.0.1"
DEFAULT_PROXY_PORT = 5000

# Printed by `npm run dev` once vite accepts connections
DEV_SERVER_READY_MESSAGE = "Dev server running at:"

# Artifacts generated inside the frontend source directory
IDENTITY_FILE_NAME = "devcert.pfx"
CONFIG_FILE_NAME = "vite.config.js"
CONFIG_TEMPLATE_NAME = "vite.config.js.jinja2"

# External commands (wrapped with `cmd /c` on Windows)
DEFAULT_LAUNCH_COMMAND = ["npm", "run", "dev"]
DEFAULT_CERT_EXPORT_COMMAND = ["dotnet", "dev-certs", "https", "-v"]

# Read buffer for the dev server pipes; longer lines are skipped
STREAM_READ_LIMIT = 1024 * 1024

# Header added to requests forwarded to the dev server
VITEHOST_PROXY_HEADER = "x-vitehost-proxy"
