#
# Publishes a local web server and SSH daemon on a VPS
#

SSH_HOST = 'vps.example.org'
SSH_USER = 'revkeeper'
SSH_KEY = '~/.ssh/id_ed25519'

TUNNELS = '127.0.0.1:8080:localhost:80,127.0.0.1:2222:localhost:22'
HEARTBEAT_INTERVAL_MS = 10000
