"""
Entry point for running the Thought Percolator application.

Load environment variables and start the Flask development server.
"""

import os
import socket
from dotenv import load_dotenv
from app import create_app


def ensure_port_available(port: int, host: str = "127.0.0.1") -> int:
    """Return ``port`` if it can be bound, otherwise exit with a clear message."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError as exc:
            raise SystemExit(f"Cannot serve on {host}:{port} ({exc}). Set PORT to a free port.")
    return port


if __name__ == "__main__":
    # Load environment variables from .env file
    load_dotenv()

    app = create_app(os.getenv("FLASK_ENV", "development"))
    host = os.getenv("HOST", "127.0.0.1")
    port = ensure_port_available(int(os.getenv("PORT", "5000")), host)

    print(f"Starting Thought Percolator on http://{host}:{port}")
    app.run(host=host, port=port, debug=app.config.get("DEBUG", False))
