#!/usr/bin/env python3
"""
CertChain Command Line Interface.

Provides commands for running and managing CertChain:
    - serve: Start the certificate server
    - check: Verify installation and configuration
    - info: Display system information

Usage:
    certchain serve [--host HOST] [--port PORT] [--workers N]
    certchain check
    certchain info
    certchain --version
"""

import argparse
import os
import signal
import sys

# Ensure src is in path when running from source
if os.path.exists(os.path.join(os.path.dirname(__file__), "blockchain.py")):
    sys.path.insert(0, os.path.dirname(__file__))

__version__ = "0.1.0"


def cmd_serve(args):
    """Start the certificate server."""
    from dotenv import load_dotenv

    from config import ServerConfig
    from exceptions import CertChainError, HashProviderUnavailable
    from monitoring import configure_logging, get_logger
    from server import build_application
    from storage.base import StorageError

    load_dotenv()

    try:
        config = ServerConfig.from_env(host=args.host, port=args.port, max_workers=args.workers)
    except CertChainError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 1

    configure_logging(level=config.log_level, json_output=config.json_logging, log_file=args.log_file)
    logger = get_logger(__name__)
    logger.info("CertChain %s starting with %s storage", __version__, config.storage_backend)

    try:
        server = build_application(config)
    except HashProviderUnavailable as e:
        print(f"Fatal: {e.message}", file=sys.stderr)
        return 1
    except StorageError as e:
        print(f"Fatal: could not open storage: {e}", file=sys.stderr)
        return 1

    print(f"Starting CertChain server on http://{config.host}:{config.port}")
    print(f"Storage backend: {config.storage_backend}")
    print(f"Upload directory: {os.path.abspath(config.uploads_dir)}")

    # SIGTERM stops the server the same way Ctrl+C does
    signal.signal(signal.SIGTERM, lambda signum, frame: server.shutdown())

    try:
        server.bind()
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nShutting down...")
    except OSError as e:
        logger.error("Could not listen on %s:%d: %s", config.host, config.port, e)
        print(f"Fatal: could not listen on {config.host}:{config.port}: {e}", file=sys.stderr)
        return 1
    finally:
        server.stop()
    return 0


def cmd_check(args):
    """Check installation and configuration."""
    from dotenv import load_dotenv

    load_dotenv()

    print("CertChain Installation Check")
    print("=" * 40)

    checks = []

    # Hash provider
    try:
        from hash_utils import ensure_hash_provider

        ensure_hash_provider()
        checks.append(("SHA-256 provider", "OK"))
    except Exception as e:
        checks.append(("SHA-256 provider", f"FAIL: {e}"))

    # Configuration
    config = None
    try:
        from config import ServerConfig

        config = ServerConfig.from_env()
        checks.append(("Configuration", "OK"))
    except Exception as e:
        checks.append(("Configuration", f"FAIL: {e}"))

    # Storage
    if config is not None:
        try:
            from storage import get_storage_backend

            with get_storage_backend(config) as storage:
                backend_name = storage.__class__.__name__
                status = "OK" if storage.is_available() else "WARN (not available)"
            checks.append((f"Storage ({backend_name})", status))
        except Exception as e:
            checks.append(("Storage", f"FAIL: {e}"))

        uploads_ok = os.path.isdir(config.uploads_dir) or not os.path.exists(config.uploads_dir)
        checks.append(
            ("Upload directory", "OK" if uploads_ok else f"FAIL: {config.uploads_dir} is not a directory")
        )

    # Optional dependencies
    try:
        import psycopg2  # noqa: F401

        checks.append(("PostgreSQL support", "OK"))
    except ImportError:
        checks.append(("PostgreSQL support", "SKIP (psycopg2 not installed)"))

    print()
    all_ok = True
    for name, status in checks:
        icon = "✓" if status == "OK" else ("○" if "SKIP" in status or "WARN" in status else "✗")
        print(f"  {icon} {name}: {status}")
        if "FAIL" in status:
            all_ok = False

    print()
    if all_ok:
        print("All checks passed!")
        return 0
    else:
        print("Some checks failed. See above for details.")
        return 1


def cmd_info(args):
    """Display system information."""
    import platform

    from dotenv import load_dotenv

    load_dotenv()

    print("CertChain System Information")
    print("=" * 40)
    print(f"Version: {__version__}")
    print(f"Python: {platform.python_version()}")
    print(f"Platform: {platform.platform()}")

    print()
    print("Configuration:")
    try:
        from config import ServerConfig

        config = ServerConfig.from_env()
    except Exception as e:
        print(f"  Error: {e}")
        return 1
    for key, value in config.to_dict().items():
        print(f"  {key}: {value}")

    print()
    print("Storage:")
    try:
        from storage import get_storage_backend

        with get_storage_backend(config) as storage:
            info = storage.get_info()
        for key, value in info.items():
            print(f"  {key}: {value}")
    except Exception as e:
        print(f"  Error: {e}")

    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="certchain",
        description="CertChain - Hash-chained certificate issuing and validation",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start the certificate server")
    serve_parser.add_argument("--host", help="Host to bind to (default: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, help="Port to bind to (default: 8080)")
    serve_parser.add_argument("--workers", type=int, help="Number of worker threads (default: 10)")
    serve_parser.add_argument("--log-file", help="Also write JSON logs to this file")

    # check command
    subparsers.add_parser("check", help="Check installation and configuration")

    # info command
    subparsers.add_parser("info", help="Display system information")

    args = parser.parse_args()

    if args.command == "serve":
        sys.exit(cmd_serve(args))
    elif args.command == "check":
        sys.exit(cmd_check(args))
    elif args.command == "info":
        sys.exit(cmd_info(args))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
