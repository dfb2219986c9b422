#!/usr/bin/env python3
"""
Kerong Lock Bridge — local WebSocket server.

Exposes the lock driver as JSON messages on ws://localhost:8765.
One BLE session per connected client.

Usage:
    python server.py                    # localhost:8765
    python server.py --port 9000 -v     # other port, debug logging
"""

import argparse
import asyncio
import json
import logging
import signal

import websockets

from ble_handler import BLEHandler

HOST = "localhost"
PORT = 8765

_LOGGER = logging.getLogger(__name__)


# ── WebSocket handler ─────────────────────────────────────────────────────

async def ws_handler(websocket):
    """Handle a single WebSocket connection."""
    _LOGGER.info("Client connected from %s", websocket.remote_address)

    async def send_json(msg: dict):
        await websocket.send(json.dumps(msg))

    handler = BLEHandler(send=send_json)

    try:
        async for raw in websocket:
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await send_json({"type": "error", "message": "Invalid JSON"})
                continue
            await handler.handle(msg)
    except websockets.exceptions.ConnectionClosed:
        pass
    finally:
        # Clean up BLE on disconnect
        await handler.disconnect(silent=True)
        _LOGGER.info("Client disconnected")


# ── Main ──────────────────────────────────────────────────────────────────

def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Kerong lock WebSocket bridge")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser.parse_args(argv)


async def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("Kerong Lock Bridge")
    print(f"  WS    → ws://{args.host}:{args.port}")
    print()

    async with websockets.serve(ws_handler, args.host, args.port, max_size=2**20):
        print("Server running — press Ctrl+C to stop")

        # Wait forever (until Ctrl-C)
        loop = asyncio.get_running_loop()
        stop = loop.create_future()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set_result, None)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                pass

        try:
            await stop
        except asyncio.CancelledError:
            pass

    print("\nServer stopped.")


def cli():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
