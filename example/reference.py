#
# CONFIGURATION REFERENCE
# -----------------------
#
#  This file should always contain all possible configuration options for documentation
#  It does not serve to run. The configuration should show possible options, not a well configured setup to run.
#


# ======================================================
#  Basic SSH connection details, common for all tunnels
# ======================================================
SSH_HOST = 'remote-host.org'
SSH_PORT = 3422                 # defaults to 3422
SSH_USER = 'proxyuser'
SSH_KEY = '~/.ssh/id_ed25519'   # Ed25519, ECDSA and RSA keys are supported
SSH_KEY_PASSPHRASE = None       # only for encrypted keys

CONNECT_TIMEOUT = 15            # seconds, used for TCP connect, SSH banner and authentication
KEEPALIVE_INTERVAL = 15         # seconds between SSH-level keepalive packets, 0 disables
STRICT_HOST_KEY_CHECKING = True  # refuse hosts missing in known_hosts, see "revkeeper add-to-known-hosts"
KNOWN_HOSTS_PATH = '~/.ssh/known_hosts'

# ==========================================================================
#  Reverse tunnels: a port bound on the SSH server is forwarded to a local service
# ==========================================================================

# short form: "remoteHost:remotePort:localHost:localPort", comma separated
TUNNELS = '127.0.0.1:8080:localhost:80,0.0.0.0:2222:192.168.1.5:22'

# or the structured form
TUNNELS = [
    {
        'remote': {
            'host': '127.0.0.1',   # address to bind on the SSH server
            'port': 8080           # port to bind on the SSH server, 0 lets the server choose
        },
        'local': {
            'host': 'localhost',   # service reachable from this machine
            'port': 80
        }
    }
]

MAX_TUNNELS = 5                 # at most this many tunnels are opened, clamped to 1..5
HEARTBEAT_INTERVAL_MS = 30000   # time between "connection alive" heartbeats

# ======================================================
#  Integrations
# ======================================================
NOTIFY_URL = 'http://some-slack-webhook-url'     # Slack/Mattermost integration, empty disables
AUDIT_DB_PATH = '/var/lib/revkeeper/Logs.db'     # SQLite audit log, empty disables
