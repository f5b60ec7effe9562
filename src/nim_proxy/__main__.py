"""
Point d'entrée pour `python -m nim_proxy`.
"""
import argparse
import logging
import os
import sys

import uvicorn

from .config.loader import CONFIG_PATH_ENV
from .config.settings import Settings
from .core.constants import DEFAULT_PORT
from .core.exceptions import ConfigurationError


def main():
    """Fonction principale."""
    parser = argparse.ArgumentParser(description="NIM Proxy (OpenAI -> NVIDIA NIM)")
    parser.add_argument("--host", default="0.0.0.0", help="Host (défaut: 0.0.0.0)")
    parser.add_argument(
        "--port", type=int, default=int(os.environ.get("PORT", DEFAULT_PORT)),
        help=f"Port (défaut: $PORT ou {DEFAULT_PORT})"
    )
    parser.add_argument("--reload", action="store_true", help="Activer le reload auto")
    parser.add_argument("--config", default=None, help="Chemin vers config.toml")
    parser.add_argument(
        "--log-level", default="info",
        choices=["debug", "info", "warning", "error"],
        help="Niveau de log (défaut: info)"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    if args.config:
        # Lu aussi par le process uvicorn (reload)
        os.environ[CONFIG_PATH_ENV] = args.config

    try:
        settings = Settings.load(args.config)
    except ConfigurationError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"🚀 Démarrage du NIM Proxy sur {args.host}:{args.port}")
    print(f"   Reasoning: {settings.display.show_reasoning} | Thinking: {settings.display.enable_thinking_mode}")

    uvicorn.run(
        "nim_proxy.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level
    )


if __name__ == "__main__":
    main()
