# robot_base/runners/run_sim_server.py
"""
Serve a simulated base so run_base_demo can be tried without hardware.

Usage:
    python -m robot_base.runners.run_sim_server --port 8439
    python -m robot_base.runners.run_base_demo ws://127.0.0.1:8439 --profile sim
"""

import argparse
import asyncio
import logging
import signal
import sys

from robot_base.research.simulation import SimulatedBase, serve_simulated_base


async def serve(host: str, port: int) -> None:
    base = SimulatedBase()
    server = await serve_simulated_base(base, host, port)
    print(f"[sim] Serving simulated base on ws://{host}:{port}  (Ctrl-C to stop)")

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass

    try:
        await stop.wait()
    finally:
        server.close()
        await server.wait_closed()
        print(f"[sim] Stopped after {len(base.commands)} commands")


def main() -> int:
    p = argparse.ArgumentParser(description="Simulated robot base WebSocket server")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8439)
    p.add_argument("-v", "--verbose", action="store_true")
    args = p.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        asyncio.run(serve(args.host, args.port))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
