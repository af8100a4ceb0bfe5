"""Device records shown by the viewer and helpers for displaying them."""

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Dict, FrozenSet, Mapping, Tuple

# Address reported when the platform hides the real BD_ADDR (CoreBluetooth)
PLACEHOLDER_ADDRESS = "00:00:00:00:00:00"

# Bluetooth SIG assigned company identifiers (subset)
COMPANY_IDENTIFIERS = {
    0x0001: "Nokia",
    0x0002: "Intel",
    0x0006: "Microsoft",
    0x000A: "Qualcomm",
    0x000D: "Texas Instruments",
    0x000F: "Broadcom",
    0x004C: "Apple",
    0x0059: "Nordic Semiconductor",
    0x0075: "Samsung",
    0x0087: "Garmin",
    0x009E: "Bose",
    0x00E0: "Google",
    0x012D: "Sony",
    0x0131: "Cypress Semiconductor",
    0x0171: "Amazon",
    0x01DA: "Fitbit",
    0x0499: "Ruuvi Innovations",
    0x038F: "Xiaomi",
}


@dataclass(frozen=True)
class DeviceInfo:
    """One discovered device, as published in a snapshot.

    All display fields are pre-formatted strings.  ``services`` only
    matters for its size and ``manufacturer_data`` is decoded with
    :func:`extract_manufacturer_data`.  ``manufacturer_data`` is copied
    into a read-only mapping and left out of the hash.
    """

    id: str = ""
    address: str = ""
    name: str = ""
    tx_power: str = ""
    rssi: str = ""
    detected_at: str = ""
    services: FrozenSet[str] = frozenset()
    manufacturer_data: Mapping[int, bytes] = field(
        default_factory=dict, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "services", frozenset(self.services))
        object.__setattr__(
            self, "manufacturer_data",
            MappingProxyType({k: bytes(v) for k, v in self.manufacturer_data.items()}))


def _timestamp() -> str:
    """Return an ISO 8601 timestamp with timezone offset."""
    return datetime.now().astimezone().strftime("%Y-%m-%dT%H:%M:%S%z")


def _is_uuid_address(address: str) -> bool:
    """CoreBluetooth hands out 128-bit UUIDs instead of MAC addresses."""
    return len(address.replace("-", "")) == 32 and ":" not in address


def display_address(device: DeviceInfo) -> str:
    """Address column text: the local id stands in for a placeholder address."""
    if device.address == PLACEHOLDER_ADDRESS:
        return device.id
    return device.address


def _company_label(company_id: int) -> str:
    label = f"0x{company_id:04X}"
    name = COMPANY_IDENTIFIERS.get(company_id)
    if name:
        label += f" ({name})"
    return label


def _payload_text(data: bytes) -> str:
    """Printable UTF-8 payloads are shown as text, anything else as hex."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return data.hex()
    if text.isprintable():
        return text
    return data.hex()


def extract_manufacturer_data(
        manufacturer_data: Mapping[int, bytes]) -> Tuple[str, str]:
    """Decode manufacturer data into (company code, payload) display strings.

    Entries are ordered by company code and joined with ``"; "``.  A
    device that advertises no manufacturer data yields ``("n/a", "n/a")``.
    """
    if not manufacturer_data:
        return "n/a", "n/a"
    codes = []
    payloads = []
    for company_id in sorted(manufacturer_data):
        codes.append(_company_label(company_id))
        payloads.append(_payload_text(bytes(manufacturer_data[company_id])))
    return "; ".join(codes), "; ".join(payloads)


def build_device(handle: str, name: str, rssi: int, tx_power, services,
                 manufacturer_data: Dict[int, bytes]) -> DeviceInfo:
    """Build a DeviceInfo from raw advertisement values."""
    handle = handle or ""
    address = PLACEHOLDER_ADDRESS if _is_uuid_address(handle) else handle.upper()
    return DeviceInfo(
        id=handle,
        address=address,
        name=(name or "").replace("\x00", ""),
        tx_power=str(tx_power) if tx_power is not None else "",
        rssi=str(rssi),
        detected_at=_timestamp(),
        services=frozenset(services or ()),
        manufacturer_data=dict(manufacturer_data or {}),
    )
