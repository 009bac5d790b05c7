#!/usr/bin/env python
"""Greet a server with an explicit channel and per-call deadline."""

import logging

from greeter_rpc import GreeterClient, TransportSecurity, managed_channel

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)


def run():
    """Run the greeter client."""
    with managed_channel(
        "localhost:50051", TransportSecurity.insecure(), shutdown_timeout=5.0
    ) as channel:
        client = GreeterClient(channel, timeout=3.0)
        client.greet("GHOUMA", "MAYEZ", "99999999")


if __name__ == "__main__":
    run()
