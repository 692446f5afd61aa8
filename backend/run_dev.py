#!/usr/bin/env python3
"""
Development server.

- loads settings.yaml / .env through paperhub.config
- hot reload on by default
- host, port and engine are configurable

Usage:
    python run_dev.py
    python run_dev.py --port 8080
    python run_dev.py --no-reload
    python run_dev.py --database-type relational
"""

import argparse
import os
import sys

# make sure backend/ is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))


def main():
    parser = argparse.ArgumentParser(description="PaperHub Backend Dev Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind (default: 8000)")
    parser.add_argument("--reload", action="store_true", default=True, help="Enable auto-reload (default: True)")
    parser.add_argument("--no-reload", dest="reload", action="store_false", help="Disable auto-reload")
    parser.add_argument(
        "--database-type",
        choices=["relational", "document", "hybrid", "postgres", "mongodb"],
        help="Engine selected at startup (overrides DATABASE_TYPE)",
    )
    parser.add_argument("--log-level", default="info", choices=["debug", "info", "warning", "error"], help="Log level")

    args = parser.parse_args()

    if args.database_type:
        # read by Settings when main.py builds the factory
        os.environ["DATABASE_TYPE"] = args.database_type

    import uvicorn

    print(f"""
╔══════════════════════════════════════════════════════════════╗
║              📚 PaperHub Backend                             ║
╠══════════════════════════════════════════════════════════════╣
║  Host:     {args.host:<48} ║
║  Port:     {args.port:<48} ║
║  Reload:   {str(args.reload):<48} ║
║  Engine:   {(args.database_type or 'from settings'):<48} ║
║  Log:      {args.log_level:<48} ║
╠══════════════════════════════════════════════════════════════╣
║  API Docs: http://{args.host}:{args.port}/docs{' ' * 28}║
║  ReDoc:    http://{args.host}:{args.port}/redoc{' ' * 27}║
╚══════════════════════════════════════════════════════════════╝
    """)

    uvicorn.run(
        "main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
        reload_dirs=["api", "paperhub"] if args.reload else None,
    )


if __name__ == "__main__":
    main()
