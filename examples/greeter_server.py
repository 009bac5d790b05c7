#!/usr/bin/env python
"""Serve a customized Greeter on port 50051."""

import logging

from greeter_rpc import Greeter, GreeterServer, HelloReply, HelloRequest

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)


class FrenchGreeter(Greeter):
    """Greets in French."""

    def say_hello(self, request: HelloRequest) -> HelloReply:
        return HelloReply(message=f"Bonjour {request.first_name} {request.name}")

    def say_hello_again(self, request: HelloRequest) -> HelloReply:
        return HelloReply(message=f"Rebonjour {request.first_name} {request.name}")


if __name__ == "__main__":
    server = GreeterServer(port=50051)
    server.run(FrenchGreeter())
