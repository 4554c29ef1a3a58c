"""MCP server entry point for CmdMessenger devices.

Exposes a serial-attached command messenger as tools, resources, and
prompts via the Model Context Protocol using the official Python MCP SDK
with stdio transport.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import DEFAULT_ACK_ID, DEFAULT_TIMEOUT_MS, MessengerConfig
from .messenger import CmdMessenger
from .protocol.values import value_type
from .transport.base import Channel
from .transport.serial_connection import DEFAULT_BAUDRATE, SerialChannel, list_ports
from .utils.crc import CrcPolynomial

logger = logging.getLogger(__name__)

RECEIVE_QUEUE_SIZE = 100

mcp = FastMCP(
    "cmdmessenger",
    instructions="MCP server for devices speaking the CmdMessenger serial protocol",
)

# Global connection state
_channel: Channel | None = None
_messenger: CmdMessenger | None = None
_received: deque[dict[str, Any]] = deque(maxlen=RECEIVE_QUEUE_SIZE)


def _get_messenger() -> CmdMessenger:
    """Get the active messenger, raising if not connected."""
    if _messenger is None:
        raise RuntimeError(
            "Not connected to device. Use the 'connect' tool first."
        )
    return _messenger


def _collect_message() -> None:
    """Default handler: queue every received command with its text arguments."""
    messenger = _get_messenger()
    arguments = []
    while messenger.available():
        arguments.append(messenger.read_string_arg())
    _received.append({"command_id": messenger.command_id(), "arguments": arguments})


def bind(channel: Channel, config: MessengerConfig | None = None) -> CmdMessenger:
    """Attach a messenger to an already open channel and collect its commands."""
    global _channel, _messenger
    _channel = channel
    _messenger = CmdMessenger(channel, config)
    _messenger.attach_default(_collect_message)
    _received.clear()
    return _messenger


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def list_serial_ports() -> dict[str, Any]:
    """List serial ports present on this machine."""
    return {"ports": [port.to_dict() for port in list_ports()]}


@mcp.tool()
def connect(
    port: str,
    baudrate: int = DEFAULT_BAUDRATE,
    crc: str = "none",
    field_separator: str = ",",
    command_separator: str = ";",
    escape_character: str = "/",
) -> dict[str, Any]:
    """Open a serial port and start a command messenger on it.

    Args:
        port: Serial device, e.g. /dev/ttyACM0 or COM3.
        baudrate: Line speed (default 115200).
        crc: Check value polynomial: none, ccitt, mcrf4xx, kermit, modbus, xmodem, x25.
        field_separator: Character between arguments.
        command_separator: Character ending each command.
        escape_character: Character escaping reserved bytes inside arguments.
    """
    if _messenger is not None:
        return {"connected": True, "message": "Already connected", "port": _port_name()}

    try:
        polynomial = CrcPolynomial[crc.upper()]
    except KeyError:
        return {"error": f"Unknown CRC '{crc}'. Valid: {[p.name.lower() for p in CrcPolynomial]}"}

    try:
        config = MessengerConfig(
            field_separator=field_separator,
            command_separator=command_separator,
            escape_character=escape_character,
            crc=polynomial,
        )
    except ValueError as e:
        return {"error": str(e)}

    channel = SerialChannel(port, baudrate)
    channel.open()
    bind(channel, config)
    return {"connected": True, "port": port, "baudrate": baudrate, "config": config.to_dict()}


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the serial port."""
    global _channel, _messenger
    if isinstance(_channel, SerialChannel):
        _channel.close()
    _channel = None
    _messenger = None
    return {"disconnected": True}


def _port_name() -> str | None:
    if isinstance(_channel, SerialChannel):
        return _channel.port
    return None


# ─── MESSAGING TOOLS ──────────────────────────────────────────────────

@mcp.tool()
def send_command(
    cmd_id: int,
    args: list[str] | None = None,
    binary_args: list[dict[str, Any]] | None = None,
    require_ack: bool = False,
    ack_id: int = DEFAULT_ACK_ID,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
) -> dict[str, Any]:
    """Send one command, optionally waiting for an acknowledgment.

    Args:
        cmd_id: Command identifier.
        args: Text arguments, sent in order.
        binary_args: Binary arguments sent after the text ones, each
            {"type": "int16", "value": 42}. Types: bool, char, int8, uint8,
            int16, uint16, int32, uint32, int64, uint64, float, double.
        require_ack: Wait for a command with ack_id before returning.
        ack_id: Identifier of the acknowledgment command.
        timeout_ms: Acknowledgment deadline in milliseconds.
    """
    messenger = _get_messenger()
    encoded = []
    try:
        for item in binary_args or []:
            kind = value_type(str(item["type"]))
            kind.encode(item["value"])
            encoded.append((kind, item["value"]))
    except (KeyError, TypeError) as e:
        return {"error": f"Binary arguments need 'type' and 'value': {e}"}
    except ValueError as e:
        return {"error": str(e)}

    if not messenger.send_cmd_start(cmd_id):
        return {"sent": False, "cmd_id": cmd_id, "error": "Another command is still being composed"}
    for arg in args or []:
        messenger.send_cmd_arg(arg)
    for kind, value in encoded:
        messenger.send_cmd_bin_arg(value, kind)
    ok = messenger.send_cmd_end(req_ack=require_ack, ack_id=ack_id, timeout_ms=timeout_ms)
    result: dict[str, Any] = {"sent": ok, "cmd_id": cmd_id}
    if require_ack:
        # Written either way, ok only reports the acknowledgment
        result["sent"] = True
        result["acknowledged"] = ok
        if ok:
            ack_args = []
            while messenger.available():
                ack_args.append(messenger.read_string_arg())
            result["ack_arguments"] = ack_args
        else:
            result["error"] = f"No acknowledgment {ack_id} within {timeout_ms} ms"
    return result


@mcp.tool()
def receive_commands(max_messages: int = 20) -> dict[str, Any]:
    """Read pending commands from the device.

    Args:
        max_messages: Maximum number of commands to return.
    """
    messenger = _get_messenger()
    messenger.feed_incoming()
    messages = []
    while _received and len(messages) < max_messages:
        messages.append(_received.popleft())
    return {"messages": messages, "pending": len(_received)}


@mcp.tool()
def get_stats() -> dict[str, Any]:
    """Receive counters and the last protocol error."""
    return _get_messenger().stats()


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("cmdmessenger://connection/status")
def resource_connection_status() -> str:
    """Current connection state."""
    return json.dumps({"connected": _messenger is not None, "port": _port_name()})


@mcp.resource("cmdmessenger://config")
def resource_config() -> str:
    """Messenger configuration in use."""
    if _messenger is None:
        return json.dumps({"connected": False})
    return json.dumps(_messenger.config.to_dict())


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def explore_device(port: str) -> str:
    """Guide the AI through discovering the commands a device understands.

    Args:
        port: Serial port the device is attached to.
    """
    return f"""Connect to the device on {port} using the connect tool.
Then find out which commands it answers to:
- Call receive_commands to see anything the device sends on its own
- Try send_command with small command IDs and no arguments
- Use require_ack with the device's acknowledgment ID to confirm receipt
- Check get_stats for integrity failures if a CRC is configured

Summarise each command ID with its arguments and replies."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
