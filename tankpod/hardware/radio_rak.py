"""
LoRaWAN link for the pod: finds the RAK3172, keeps it joined (OTAA) and
carries the JSON status uplink / command downlink.
"""

import logging
import time
from typing import Iterable, List, Optional

from tankpod import config
from tankpod.model.rak3172_comm import AtResponse, RAK3172Communicator
from tankpod.model.rak_dummy import DummyRAK
from tankpod.telemetry import encode_status

log = logging.getLogger(__name__)

JOIN_CMD = "AT+JOIN=1:1:10:5"  # join now, auto-join on boot, 10 s between tries, 5 tries
JOIN_WAIT_S = 30
REJOIN_SETTLE_S = 10
# Largest application payload at the slowest data rate we allow (US915 DR3)
MAX_UPLINK_BYTES = 222


def njs_reports_joined(response: AtResponse) -> bool:
    """
    AT+NJS answers "1", "+NJS:1" or "AT+NJS=1" depending on firmware. The
    "AT+NJS=?" help line also contains a 1 and is ignored.
    """
    for line in response.lines:
        if "join status" in line:
            continue
        value = line.rsplit("=", 1)[-1].rsplit(":", 1)[-1].strip()
        if value == "1":
            return True
    return False


class RadioLink:
    """
    Owns the RAK3172 session. Join health is re-checked with AT+NJS every
    `njs_check_every` uplinks; an unjoined module gets `rejoin_attempts`
    AT+JOIN tries before the uplink is skipped.
    """

    def __init__(self, ports: Optional[Iterable[str]] = None, max_retries: Optional[int] = None,
                 njs_check_every: int = 10, rejoin_attempts: int = 2,
                 reconnect_backoff_s: Optional[float] = None):
        if ports is None:
            ports = [config.SERIAL_PORT, *getattr(config, "RAK_PORT_CANDIDATES", [])]
        self.ports: List[str] = [p for p in ports if p]
        self.max_retries = max_retries or getattr(config, "MAX_RETRIES", 5)
        self.njs_check_every = njs_check_every
        self.rejoin_attempts = rejoin_attempts
        if reconnect_backoff_s is None:
            reconnect_backoff_s = getattr(config, "RADIO_RECONNECT_BACKOFF_SECONDS", 300)
        self.reconnect_backoff_s = float(reconnect_backoff_s)
        self.rak = None
        self._sends_since_check = 0
        self._next_reconnect_at = 0.0

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def open(self) -> bool:
        for attempt in range(self.max_retries):
            port = self.ports[attempt % len(self.ports)]
            rak = RAK3172Communicator(port)
            try:
                rak.connect()
                self._configure(rak)
            except Exception as e:
                log.error(f"[RAK] Connect error on {port} ({attempt + 1}/{self.max_retries}): {e}")
                rak.disconnect()
                if attempt + 1 < self.max_retries:
                    time.sleep(2)
                continue

            self.rak = rak
            if not self.is_joined() and not self._join_and_wait():
                log.warning("[RAK] Module is up but NOT JOINED; uplinks fail until the join completes.")
            return True

        log.error(f"[RAK] Could not open the RAK3172 on any of {self.ports}")
        return False

    @staticmethod
    def _configure(rak: RAK3172Communicator) -> None:
        for command in ("AT+NWM=1", "AT+NJM=1"):  # LoRaWAN, OTAA
            response = rak.query(command)
            if response.error:
                log.warning(f"[RAK] {command}: {response.error}")

    def close(self) -> None:
        if self.rak is not None:
            self.rak.disconnect()
            self.rak = None

    def reconnect(self) -> bool:
        """
        Close and reopen the radio, at most once per `reconnect_backoff_s`
        whether or not the attempt works (an open but unjoined module fails
        its next uplink too). Calls inside the window return False at once.
        """
        now = time.monotonic()
        if now < self._next_reconnect_at:
            log.debug(f"[RAK] Reconnect deferred {self._next_reconnect_at - now:.0f} s")
            return False

        log.info("[RAK] Reconnecting radio ...")
        self.close()
        self._sends_since_check = 0
        opened = self.open()
        self._next_reconnect_at = time.monotonic() + self.reconnect_backoff_s
        if opened:
            return True

        log.warning(f"[RAK] Radio still down; next reconnect in {self.reconnect_backoff_s:.0f} s")
        return False

    # ------------------------------------------------------------------
    # Join handling
    # ------------------------------------------------------------------

    def is_joined(self) -> bool:
        try:
            response = self.rak.query("AT+NJS")
        except Exception as e:
            log.warning(f"[RAK] AT+NJS failed: {e}")
            return False
        log.info(f"[RAK] Join status: {response}")
        return njs_reports_joined(response)

    def _join_and_wait(self) -> bool:
        log.info(f"[RAK] Not joined; {JOIN_CMD}")
        try:
            self.rak.query(JOIN_CMD)
            deadline = time.monotonic() + JOIN_WAIT_S
            while time.monotonic() < deadline:
                events = self.rak.listen(1.0)
                if any("JOINED" in line.upper() and "NOT" not in line.upper() for line in events):
                    log.info("[RAK] Network joined.")
                    return True
        except Exception as e:
            log.error(f"[RAK] Join failed: {e}")
            return False
        return self.is_joined()

    def ensure_joined(self) -> bool:
        if self.is_joined():
            return True
        for attempt in range(1, self.rejoin_attempts + 1):
            log.warning(f"[RAK] Not joined; re-join attempt {attempt}/{self.rejoin_attempts}")
            try:
                self.rak.query(JOIN_CMD)
            except Exception as e:
                log.error(f"[RAK] {JOIN_CMD} failed: {e}")
                continue
            time.sleep(REJOIN_SETTLE_S)
            if self.is_joined():
                log.info("[RAK] Re-joined.")
                return True
        log.error("[RAK] Re-join failed.")
        return False

    # ------------------------------------------------------------------
    # Traffic
    # ------------------------------------------------------------------

    def _join_check_due(self) -> bool:
        self._sends_since_check += 1
        if self._sends_since_check < self.njs_check_every:
            return False
        self._sends_since_check = 0
        return True

    def send_status(self, status: dict) -> bool:
        """Compact JSON status uplink. False when it was not handed to the network."""
        if self.rak is None:
            log.debug("[SEND] Radio not open; uplink skipped.")
            return False

        if self._join_check_due() and not self.ensure_joined():
            log.warning("[SEND] Not joined; uplink skipped this interval.")
            return False

        payload = encode_status(status)
        if len(payload) > MAX_UPLINK_BYTES:
            log.error(f"[SEND] Status is {len(payload)} bytes (limit {MAX_UPLINK_BYTES}); not sent")
            return False

        log.info(f"[SEND] {payload.decode('utf-8')}")
        try:
            response = self.rak.send_data(payload)
        except Exception as e:
            log.error(f"[SEND] Uplink failed: {e}")
            return False

        if response.error or not response.ok:
            log.error(f"[SEND] Uplink rejected: {response}")
            return False
        return True

    def check_downlink(self) -> Optional[str]:
        if self.rak is None:
            return None
        return self.rak.check_downlink()


class BenchRadioLink(RadioLink):
    """DummyRAK behind the same interface; commands come from an inbox file."""

    def __init__(self, inbox_path: Optional[str] = None):
        super().__init__(ports=["dummy"], max_retries=1)
        self.inbox_path = inbox_path

    def open(self) -> bool:
        self.rak = DummyRAK(inbox_path=self.inbox_path)
        if self.inbox_path:
            log.info(f"[SIM] Dummy radio; drop a JSON command in {self.inbox_path} to inject a downlink")
        return True

    def ensure_joined(self) -> bool:
        return True

    def close(self) -> None:
        self.rak = None


def build_radio(driver: str) -> RadioLink:
    if driver == "rak3172":
        return RadioLink()
    if driver == "dummy":
        return BenchRadioLink(inbox_path=config.LOCAL_ROOT_DIR + "/downlink.json")
    raise ValueError(f"Unknown radio driver: {driver}")
