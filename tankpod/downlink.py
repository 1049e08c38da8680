"""
Handles decoding of downlink payloads received over the radio channel:
- hex-encoded (or plain) UTF-8 JSON command objects
- mapping the `command` field onto typed commands
- handing the result to the pump controller

Anything malformed is dropped with a warning; the sender re-syncs from the
periodic status uplink.
"""
import json
import logging
from typing import Optional

from tankpod.model.commands import Auto, Command, PumpOff, PumpOn, Settings
from tankpod.settings_store import coerce_bool, coerce_int

log = logging.getLogger(__name__)

HEX_DIGITS = set("0123456789abcdefABCDEF")


def _text_from_payload(raw) -> Optional[str]:
    """
    Try to interpret the payload as hex-encoded text first. If that
    fails, fall back to treating it as the text itself.
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="ignore")

    if not isinstance(raw, str):
        log.warning(f"[DOWNLINK] Unsupported payload type {type(raw).__name__}")
        return None

    text = raw.strip()
    if not text:
        log.warning("[DOWNLINK] Empty downlink payload.")
        return None

    if len(text) % 2 == 0 and all(c in HEX_DIGITS for c in text):
        try:
            decoded = bytes.fromhex(text).decode("utf-8").strip()
            if decoded:
                log.debug(f"[DOWNLINK] Hex decoded: {decoded}")
                return decoded
        except UnicodeDecodeError:
            pass

    return text


def parse_command(message: dict) -> Optional[Command]:
    """
    Map a decoded message onto a command:

      {"command": "PUMP_ON"}
      {"command": "PUMP_OFF"}
      {"command": "AUTO"}
      {"command": "SETTINGS", "min": 25, "max": 90, "sched": true, "pre": 65, "rec": 70}

    Returns None for anything unrecognised.
    """
    name = message.get("command")
    if not isinstance(name, str):
        log.warning(f"[DOWNLINK] Missing or invalid 'command' field: {message}")
        return None

    name = name.strip().upper()

    if name == "PUMP_ON":
        return PumpOn()
    if name == "PUMP_OFF":
        return PumpOff()
    if name == "AUTO":
        return Auto()
    if name == "SETTINGS":
        return _parse_settings(message)

    log.warning(f"[DOWNLINK] Unknown command '{name}' ignored")
    return None


def _parse_settings(message: dict) -> Optional[Settings]:
    values = {}
    for key in ("min", "max", "pre", "rec"):
        if key in message and message[key] is not None:
            value = coerce_int(message[key])
            if value is None:
                log.warning(f"[DOWNLINK] Invalid SETTINGS '{key}'={message[key]!r}; command dropped")
                return None
            values[key] = value

    if "sched" in message and message["sched"] is not None:
        sched = coerce_bool(message["sched"])
        if sched is None:
            log.warning(f"[DOWNLINK] Invalid SETTINGS 'sched'={message['sched']!r}; command dropped")
            return None
        values["sched"] = sched

    return Settings(**values)


def decode_downlink_payload(raw) -> Optional[Command]:
    """Payload (hex or plain JSON text) -> command, or None when malformed."""
    if raw is None:
        return None

    text = _text_from_payload(raw)
    if text is None:
        return None

    try:
        message = json.loads(text)
    except ValueError:
        log.warning(f"[DOWNLINK] Non-JSON downlink dropped: {text!r}")
        return None

    if not isinstance(message, dict):
        log.warning(f"[DOWNLINK] Downlink is not a JSON object: {text!r}")
        return None

    return parse_command(message)


def process_downlink_command(controller, raw_downlink) -> bool:
    """
    Decode a raw downlink and apply it to the controller.
    Returns True if a valid command was recognized and handed over.
    """
    command = decode_downlink_payload(raw_downlink)
    if command is None:
        return False

    log.info(f"[DOWNLINK] Applying {command}")
    controller.apply_command(command)
    return True


def check_downlink(radio, controller) -> bool:
    """
    Polls the radio for a new downlink and applies it.
    Returns True if a command was processed.
    """
    if radio is None:
        return False

    try:
        downlink = radio.check_downlink()
    except Exception as e:
        log.error(f"[DOWNLINK] Error while checking downlink: {e}")
        return False

    if not downlink:
        log.debug("[DOWNLINK] No new downlink received.")
        return False

    log.info(f"[DOWNLINK] Received raw: {downlink}")
    return process_downlink_command(controller, downlink)
