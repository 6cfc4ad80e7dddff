#!/usr/bin/env python3
"""
Redis-Backed Session Store

Entry point demonstrating path-addressed writes and reads, deletes that
prune empty fields, and per-field lock contention between two sessions.

Usage:
    python -m redsession --memory

    # Against a Redis server
    python -m redsession --host redis.example.com --port 6379 --db 2

    # Or configured from the environment
    REDSESSION_REDIS_HOST=redis.example.com python -m redsession
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from redsession.core.config import SessionConfig
from redsession.core.errors import SessionError
from redsession.default import create_session
from redsession.observability.logging import LogLevel, setup_logging
from redsession.session.host import StaticSessionHost
from redsession.storage import InMemoryKVBackend, KVBackendProtocol, create_kv_backend


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="redsession",
        description="Demonstrate the Redis-backed session store.",
    )
    parser.add_argument("--memory", action="store_true", help="use the in-memory backend")
    parser.add_argument("--host", help="Redis host (overrides REDSESSION_REDIS_HOST)")
    parser.add_argument("--port", type=int, help="Redis port")
    parser.add_argument("--db", type=int, help="Redis database index")
    parser.add_argument("--name", help="session name (namespace)")
    parser.add_argument(
        "--attempts", type=int, default=3,
        help="lock attempts for the contention demo (default: 3)",
    )
    parser.add_argument("--debug", action="store_true", help="log at DEBUG level")
    return parser


def load_config(args: argparse.Namespace) -> SessionConfig:
    config_result = SessionConfig.from_env()
    if config_result.is_err():
        print(f"Configuration error: {config_result.error}")
        sys.exit(1)

    config = config_result.unwrap()
    overrides = {
        "redis_host": args.host,
        "redis_port": args.port,
        "redis_database": args.db,
        "session_name": args.name,
        "lock_max_attempts": args.attempts,
        "debug": args.debug or config.debug,
    }
    return config.with_overrides(**{k: v for k, v in overrides.items() if v is not None})


async def demo(config: SessionConfig, backend: KVBackendProtocol) -> None:
    """Two sessions sharing one record, contending for one field."""
    print("\n" + "=" * 60)
    print("Redis-Backed Session Store - Demo")
    print("=" * 60 + "\n")

    alice = create_session(config, StaticSessionHost(), backend=backend)
    await alice.start()
    print(f"✓ Session started: {alice.session_key.record_key}")

    # Second participant bound to the same session id
    other_host = StaticSessionHost(session_id=alice.id, session_name=alice.name)
    other = create_session(config, other_host, backend=backend)

    print("\n--- Path-Addressed Writes ---\n")
    await alice.write("profile.name", "Alice")
    await alice.write("profile.age", 30)
    await alice.write("cart.items.0", {"sku": "A1", "qty": 2})
    print(f"1. profile          = {await alice.read('profile')}")
    print(f"2. cart.items.0.sku = {await alice.read('cart.items.0.sku')}")

    print("\n--- Deletes ---\n")
    await alice.delete("profile.age")
    print(f"3. check profile.age -> {await alice.check('profile.age')}")
    print(f"   check profile     -> {await alice.check('profile')}")
    await alice.delete("cart.items.0")
    await alice.delete("cart.items")
    print(f"4. cart pruned       -> {not await alice.check('cart')}")

    print("\n--- Lock Contention ---\n")
    await other.start()
    async with alice.locked_field("profile"):
        print("5. alice holds the 'profile' lock")
        written = await other.write("profile.name", "Mallory")
        print(f"   other write while held -> {written} "
              f"(after {config.lock_max_attempts} attempts)")
    written = await other.write("profile.name", "Bob")
    print(f"6. other write after release -> {written}")
    print(f"   profile = {await alice.read('profile')}")

    print("\n--- Identifier Rotation ---\n")
    old_key = alice.session_key.record_key
    await alice.renew()
    print(f"7. {old_key} -> {alice.session_key.record_key}")
    print(f"   profile = {await alice.read('profile')}")

    await alice.destroy()
    await other.close()
    await alice.close()

    print("\n✓ Demo complete")
    print("=" * 60 + "\n")


async def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    config = load_config(args)
    setup_logging(LogLevel.DEBUG if config.debug else LogLevel.WARNING, json_output=False)

    backend = InMemoryKVBackend() if args.memory else create_kv_backend(config.redis_config())
    try:
        await demo(config, backend)
    except SessionError as e:
        print(f"Error: {e}")
        return 1
    finally:
        await backend.close()
    return 0


def run() -> None:
    """Synchronous entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nInterrupted")


if __name__ == "__main__":
    run()
