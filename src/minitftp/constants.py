from __future__ import annotations

DATAGRAM_SIZE = 516
OPCODE_SIZE = 2
BLOCK_NUMBER_SIZE = 2
HEADER_SIZE = OPCODE_SIZE + BLOCK_NUMBER_SIZE
BLOCK_SIZE = DATAGRAM_SIZE - HEADER_SIZE
HEADER_FORMAT = "!HH"  # opcode, block number / error code

MAX_BLOCK_NUMBER = 0xFFFF

MODE_OCTET = "octet"

DEFAULT_PORT = 69
DEFAULT_SERVER_ADDRESS = f"127.0.0.1:{DEFAULT_PORT}"
DEFAULT_CLIENT_ADDRESS = "127.0.0.1:0"
DEFAULT_RETRIES = 10
DEFAULT_TIMEOUT_S = 6.0
POLL_INTERVAL_S = 0.5
