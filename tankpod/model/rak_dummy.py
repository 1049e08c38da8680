import json
import logging
import os
from typing import List, Optional

from tankpod.model.rak3172_comm import AtResponse, RAK3172Communicator

log = logging.getLogger(__name__)


class DummyRAK:
    """
    Stand-in for RAK3172Communicator on the bench. Every AT command succeeds;
    uplinks are kept in `sent` (hex); downlinks come from inject() or from a
    JSON file dropped at `inbox_path`, which is consumed on read.
    """

    is_open = True

    def __init__(self, inbox_path: Optional[str] = None):
        self.inbox_path = inbox_path
        self.sent: List[str] = []
        self._downlink: Optional[str] = None

    def connect(self) -> None:
        return

    def disconnect(self) -> None:
        return

    def query(self, command: str, window_s: float = 0.0) -> AtResponse:
        return AtResponse(command, ["OK"])

    def listen(self, window_s: float, until_quiet: bool = False) -> List[str]:
        return []

    def send_data(self, payload, fport: int = 1) -> AtResponse:
        hex_payload = RAK3172Communicator.normalize_hex_payload(payload)
        self.sent.append(hex_payload)
        log.info(f"[SIM] Uplink on port {fport}: {len(hex_payload) // 2} bytes")
        return AtResponse(f"AT+SEND={fport}:{hex_payload}", ["OK", "+EVT:TX_DONE"])

    def inject(self, message) -> None:
        """Queue a downlink; dicts are JSON-encoded and hexed like a real RX_1 payload."""
        if isinstance(message, dict):
            message = json.dumps(message).encode("utf-8").hex().upper()
        log.info(f"[SIM] Downlink queued: {message}")
        self._downlink = message

    def _poll_inbox(self) -> None:
        if not self.inbox_path or not os.path.exists(self.inbox_path):
            return
        try:
            with open(self.inbox_path, "r") as f:
                text = f.read().strip()
            os.remove(self.inbox_path)
        except OSError as e:
            log.error(f"[SIM] Could not read inbox {self.inbox_path}: {e}")
            return
        if text:
            self._downlink = text.encode("utf-8").hex().upper()

    def check_downlink(self) -> Optional[str]:
        self._poll_inbox()
        downlink, self._downlink = self._downlink, None
        return downlink
