"""
AT-command driver for the RAK3172 LoRaWAN module on a UART.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Union

import serial

log = logging.getLogger(__name__)

HEX_DIGITS = set("0123456789abcdefABCDEF")
RX_EVENT = "+EVT:RX_1"
TX_DONE_EVENT = "+EVT:TX_DONE"


@dataclass
class AtResponse:
    command: str
    lines: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        # The RAK3172 answers AT+SEND with a bare OK well before TX_DONE
        return any(line == "OK" or TX_DONE_EVENT in line for line in self.lines)

    @property
    def error(self) -> Optional[str]:
        for line in self.lines:
            if "ERROR" in line or line.startswith("AT_"):
                return line
        return None

    def downlink(self) -> Optional[str]:
        """Hex payload of the newest RX_1 event, e.g. +EVT:RX_1:-70:8:UNICAST:1:7B7D"""
        for line in reversed(self.lines):
            if not line.startswith(RX_EVENT):
                continue
            payload = line.rsplit(":", 1)[-1].strip()
            if payload and all(c in HEX_DIGITS for c in payload):
                return payload.upper()
        return None

    def __str__(self) -> str:
        return " | ".join(self.lines) or "<no response>"


class RAK3172Communicator:
    """
    One UART session with the module. Every method that talks to the radio
    raises ConnectionError when the port is not open.
    """

    def __init__(self, port: str, baudrate: int = 115200, timeout: float = 1.0):
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.ser: Optional[serial.Serial] = None
        self._pending_downlink: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.ser is not None and self.ser.is_open

    def connect(self) -> None:
        self.ser = serial.Serial(self.port, self.baudrate, timeout=self.timeout)
        log.info(f"[RAK] {self.port} open @ {self.baudrate}")

    def disconnect(self) -> None:
        if self.is_open:
            self.ser.close()
            log.info(f"[RAK] {self.port} closed")
        self.ser = None

    def listen(self, window_s: float, until_quiet: bool = False) -> List[str]:
        """
        Collect unsolicited lines for up to `window_s`. With `until_quiet`
        the first empty read after some output ends the window early.
        """
        if not self.is_open:
            raise ConnectionError(f"RAK3172 port {self.port} is not open")
        collected: List[str] = []
        deadline = time.time() + window_s
        while time.time() < deadline:
            text = self.ser.readline().decode("utf-8", errors="ignore").strip()
            if text:
                collected.append(text)
                continue
            if until_quiet and collected:
                break
            time.sleep(0.05)
        return collected

    def query(self, command: str, window_s: float = 2.0) -> AtResponse:
        if not self.is_open:
            raise ConnectionError(f"RAK3172 port {self.port} is not open")
        self.ser.reset_input_buffer()
        self.ser.write(f"{command}\r\n".encode("utf-8"))
        self.ser.flush()
        response = AtResponse(command, self.listen(window_s, until_quiet=True))
        log.debug(f"[RAK] {command} -> {response}")
        return response

    @staticmethod
    def normalize_hex_payload(payload: Union[str, bytes, bytearray]) -> str:
        """bytes -> hex; a str is already hex (a 0x prefix and whitespace are tolerated)."""
        if isinstance(payload, (bytes, bytearray)):
            return bytes(payload).hex().upper()
        if not isinstance(payload, str):
            raise TypeError(f"payload must be hex str or bytes, not {type(payload).__name__}")
        text = "".join(payload.split())
        if text.lower().startswith("0x"):
            text = text[2:]
        return text.upper()

    def send_data(self, payload: Union[str, bytes, bytearray], fport: int = 1,
                  rx_window_s: float = 5.0) -> AtResponse:
        """
        AT+SEND, then keep listening through the class A receive windows so
        a downlink riding on this uplink is kept for check_downlink().
        """
        hex_payload = self.normalize_hex_payload(payload)
        response = self.query(f"AT+SEND={fport}:{hex_payload}")
        response.lines.extend(self.listen(rx_window_s))

        downlink = response.downlink()
        if downlink:
            log.info(f"[RAK] Downlink received ({len(downlink) // 2} bytes)")
            self._pending_downlink = downlink
        if not response.ok:
            log.warning(f"[RAK] Uplink not acknowledged: {response}")
        return response

    def check_downlink(self) -> Optional[str]:
        downlink, self._pending_downlink = self._pending_downlink, None
        return downlink
