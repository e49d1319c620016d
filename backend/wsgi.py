# Overview: WSGI entry point; `flask --app wsgi` or any WSGI server.

import sys

from marketplace import check_database, create_app
from marketplace.config import ConfigError, DatabaseUnavailable

try:
    app = create_app()
    check_database(app)
except (ConfigError, DatabaseUnavailable) as exc:
    print(f"FATAL: {exc}", file=sys.stderr)
    sys.exit(1)


if __name__ == "__main__":
    host, _, port = app.config["SERVER_ADDR"].rpartition(":")
    app.run(host=host or "127.0.0.1", port=int(port), threaded=True)
