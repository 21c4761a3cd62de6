"""
Hardware fingerprinting for machine-bound keys.

Collects quasi-stable identifiers from the host (MAC of the interface holding
the default route, board and product serials, machine UUIDs, disk serial, CPU
identifier) and folds them into a single 64-bit machine identifier.

Probing is best effort: each probe that fails (missing command, unreadable
pseudo-file, timeout) simply contributes nothing. Only a host where every probe
fails is an error, because no key can be derived without an identifier.

On virtual machines CPU serials are commonly cloned or spoofed, so they are
skipped and the VM-assigned identifiers (machine id / machine GUID, SMBIOS
UUID) carry the fingerprint instead.

The deterministic part (normalizing, sorting, hashing) lives in
fold_identifiers() and needs no OS access; tests inject a StaticProbe.
"""

from __future__ import annotations

import hashlib
import logging
import platform
import re
import subprocess
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable
from functools import cached_property
from pathlib import Path

from sealconf.errors import HardwareIdentificationError

logger = logging.getLogger(__name__)

IDENTIFIER_SEPARATOR = "|"
DEFAULT_PROBE_TIMEOUT = 5.0

_ZERO_MAC = "00:00:00:00:00:00"
_MAC_RE = re.compile(r"^([0-9a-f]{2}[:-]){5}[0-9a-f]{2}$", re.IGNORECASE)

# Substrings of vendor/model strings reported by common hypervisors
_VM_VENDOR_PATTERNS = (
    "vmware",
    "virtualbox",
    "innotek",
    "qemu",
    "kvm",
    "microsoft corporation",
    "hyper-v",
    "virtual machine",
    "parallels",
    "xen",
    "bhyve",
    "amazon ec2",
    "google compute engine",
)

# Placeholder serials shipped by OEMs that identify nothing
_PLACEHOLDER_VALUES = {
    "",
    "none",
    "n/a",
    "default string",
    "to be filled by o.e.m.",
    "not specified",
    "system serial number",
    "0",
    "00000000-0000-0000-0000-000000000000",
}


def normalize_mac(value: str | None) -> str | None:
    """Normalize a MAC address to lower-case colon form, or None if unusable."""
    if not value:
        return None
    candidate = value.strip().lower().replace("-", ":")
    if not _MAC_RE.match(candidate) or candidate == _ZERO_MAC:
        return None
    return candidate


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    candidate = value.strip()
    if candidate.lower() in _PLACEHOLDER_VALUES:
        return None
    return candidate


def _looks_virtual(*values: str | None) -> bool:
    for value in values:
        if not value:
            continue
        lowered = value.lower()
        if any(pattern in lowered for pattern in _VM_VENDOR_PATTERNS):
            return True
    return False


class HardwareProbe(ABC):
    """
    Capability interface for host identification.

    One implementation exists per OS family. Subclasses should return None or
    empty lists for anything they cannot determine rather than raising; any
    exception that escapes anyway is treated as "identifier unavailable".
    """

    def __init__(self, timeout: float = DEFAULT_PROBE_TIMEOUT) -> None:
        self.timeout = timeout

    @abstractmethod
    def detect_virtual_machine(self) -> bool:
        """Return True if the host appears to be a virtual machine."""

    @abstractmethod
    def active_interface_mac(self) -> str | None:
        """Return the MAC of the interface carrying the default route."""

    @abstractmethod
    def platform_identifiers(self) -> list[str]:
        """Return platform-specific serials and UUIDs."""

    @cached_property
    def is_virtual_machine(self) -> bool:
        try:
            return self.detect_virtual_machine()
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            logger.debug("VM detection failed: %s", e)
            return False

    def run_command(self, command: list[str]) -> str | None:
        """Run a probe command and return its stripped stdout, or None."""
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except (subprocess.SubprocessError, OSError) as e:
            logger.debug("Probe command %s failed: %s", command[0], e)
            return None
        if result.returncode != 0:
            return None
        output = result.stdout.strip()
        return output or None

    @staticmethod
    def read_first_line(path: Path) -> str | None:
        """Read the first line of a (pseudo-)file, or None if unavailable."""
        try:
            with path.open("r", encoding="utf-8", errors="ignore") as handle:
                line = handle.readline().strip()
        except OSError:
            return None
        return line or None


class StaticProbe(HardwareProbe):
    """Probe returning a fixed identifier list, for tests and migrations."""

    def __init__(self, identifiers: Iterable[str], virtual: bool = False) -> None:
        super().__init__()
        self._identifiers = list(identifiers)
        self._virtual = virtual

    def detect_virtual_machine(self) -> bool:
        return self._virtual

    def active_interface_mac(self) -> str | None:
        return None

    def platform_identifiers(self) -> list[str]:
        return list(self._identifiers)


class GenericProbe(HardwareProbe):
    """Fallback for unknown systems: only the MAC reported by uuid.getnode()."""

    def detect_virtual_machine(self) -> bool:
        return False

    def active_interface_mac(self) -> str | None:
        node = uuid.getnode()
        # A set multicast bit means getnode() made up a random address
        if (node >> 40) & 0x01:
            return None
        return normalize_mac(":".join(f"{(node >> s) & 0xff:02x}" for s in range(40, -1, -8)))

    def platform_identifiers(self) -> list[str]:
        return []


class LinuxProbe(HardwareProbe):
    """Probe reading sysfs, procfs and a few standard utilities."""

    dmi_dir = Path("/sys/class/dmi/id")
    net_dir = Path("/sys/class/net")
    route_file = Path("/proc/net/route")
    cpuinfo_file = Path("/proc/cpuinfo")
    machine_id_files = (Path("/etc/machine-id"), Path("/var/lib/dbus/machine-id"))

    def detect_virtual_machine(self) -> bool:
        virt = self.run_command(["systemd-detect-virt", "--vm"])
        if virt and virt.lower() != "none":
            return True

        vendor = self.read_first_line(self.dmi_dir / "sys_vendor")
        product = self.read_first_line(self.dmi_dir / "product_name")
        if _looks_virtual(vendor, product):
            return True

        try:
            cpuinfo = self.cpuinfo_file.read_text(encoding="utf-8", errors="ignore")
        except OSError:
            return False
        for line in cpuinfo.splitlines():
            if line.startswith("flags") and " hypervisor" in line:
                return True
        return False

    def active_interface_mac(self) -> str | None:
        interface = self._default_route_interface()
        if interface:
            mac = normalize_mac(self.read_first_line(self.net_dir / interface / "address"))
            if mac:
                return mac
        return self._smallest_interface_mac()

    def _default_route_interface(self) -> str | None:
        try:
            lines = self.route_file.read_text(encoding="utf-8").splitlines()
        except OSError:
            return None
        # Columns: Iface Destination Gateway Flags RefCnt Use Metric Mask ...
        best: tuple[int, str] | None = None
        for line in lines[1:]:
            parts = line.split()
            if len(parts) < 8 or parts[1] != "00000000" or parts[7] != "00000000":
                continue
            try:
                metric = int(parts[6])
            except ValueError:
                continue
            if best is None or metric < best[0]:
                best = (metric, parts[0])
        return best[1] if best else None

    def _smallest_interface_mac(self) -> str | None:
        if not self.net_dir.is_dir():
            return None
        macs = set()
        for interface in self.net_dir.iterdir():
            if interface.name == "lo":
                continue
            mac = normalize_mac(self.read_first_line(interface / "address"))
            if mac:
                macs.add(mac)
        return min(macs) if macs else None

    def platform_identifiers(self) -> list[str]:
        identifiers: list[str | None] = [
            self.read_first_line(self.dmi_dir / "product_uuid"),
            self.read_first_line(self.dmi_dir / "board_serial"),
            self.read_first_line(self.dmi_dir / "product_serial"),
            self._disk_serial(),
        ]
        if self.is_virtual_machine:
            identifiers.append(self._machine_id())
        else:
            identifiers.append(self._cpu_serial())
        return [value for value in (_clean(v) for v in identifiers) if value]

    def _machine_id(self) -> str | None:
        for path in self.machine_id_files:
            value = self.read_first_line(path)
            if value:
                return value
        return None

    def _cpu_serial(self) -> str | None:
        try:
            cpuinfo = self.cpuinfo_file.read_text(encoding="utf-8", errors="ignore")
        except OSError:
            return None
        for line in cpuinfo.splitlines():
            key, sep, value = line.partition(":")
            if sep and key.strip().lower() == "serial":
                return value.strip() or None
        return None

    def _disk_serial(self) -> str | None:
        output = self.run_command(["lsblk", "--nodeps", "--noheadings", "-o", "SERIAL"])
        if not output:
            return None
        serials = [s for s in (_clean(line) for line in output.splitlines()) if s]
        return min(serials) if serials else None


class WindowsProbe(HardwareProbe):
    """Probe using wmic, reg and PowerShell.

    wmic is gone from recent Windows 11 builds; WMI queries then go through
    PowerShell's Get-CimInstance instead.
    """

    # wmic alias -> CIM class
    cim_classes = {
        "computersystem": "Win32_ComputerSystem",
        "csproduct": "Win32_ComputerSystemProduct",
        "baseboard": "Win32_BaseBoard",
        "diskdrive": "Win32_DiskDrive",
        "cpu": "Win32_Processor",
    }

    def _wmic_value(self, alias: str, prop: str) -> list[str]:
        output = self.run_command(["wmic", alias, "get", prop, "/value"])
        if not output:
            return self._cim_value(alias, prop)
        values = []
        for line in output.splitlines():
            key, sep, value = line.partition("=")
            if sep and key.strip().lower() == prop.lower():
                cleaned = _clean(value)
                if cleaned:
                    values.append(cleaned)
        return values

    def _cim_value(self, alias: str, prop: str) -> list[str]:
        script = (
            f"Get-CimInstance -ClassName {self.cim_classes[alias]} | "
            f"Select-Object -ExpandProperty {prop}"
        )
        output = self.run_command(["powershell", "-NoProfile", "-Command", script])
        if not output:
            return []
        return [value for value in (_clean(line) for line in output.splitlines()) if value]

    def detect_virtual_machine(self) -> bool:
        manufacturer = self._wmic_value("computersystem", "Manufacturer")
        model = self._wmic_value("computersystem", "Model")
        return _looks_virtual(*manufacturer, *model)

    def active_interface_mac(self) -> str | None:
        script = (
            "Get-NetRoute -DestinationPrefix 0.0.0.0/0 | Sort-Object RouteMetric | "
            "Select-Object -First 1 | Get-NetAdapter | "
            "Select-Object -ExpandProperty MacAddress"
        )
        mac = normalize_mac(self.run_command(["powershell", "-NoProfile", "-Command", script]))
        if mac:
            return mac

        output = self.run_command(["getmac", "/fo", "csv", "/nh"])
        if not output:
            return None
        macs = set()
        for line in output.splitlines():
            first = line.split(",", 1)[0].strip().strip('"')
            candidate = normalize_mac(first)
            if candidate:
                macs.add(candidate)
        return min(macs) if macs else None

    def platform_identifiers(self) -> list[str]:
        identifiers: list[str] = []
        identifiers.extend(self._wmic_value("csproduct", "UUID"))
        identifiers.extend(self._wmic_value("baseboard", "SerialNumber"))
        identifiers.extend(self._wmic_value("baseboard", "Product"))
        disks = self._wmic_value("diskdrive", "SerialNumber")
        if disks:
            identifiers.append(min(disks))
        if self.is_virtual_machine:
            guid = self._machine_guid()
            if guid:
                identifiers.append(guid)
        else:
            identifiers.extend(self._wmic_value("cpu", "ProcessorId")[:1])
        return identifiers

    def _machine_guid(self) -> str | None:
        output = self.run_command(
            ["reg", "query", r"HKLM\SOFTWARE\Microsoft\Cryptography", "/v", "MachineGuid"]
        )
        if not output:
            return None
        for line in output.splitlines():
            parts = line.split()
            if len(parts) >= 3 and parts[0] == "MachineGuid":
                return _clean(parts[-1])
        return None


class DarwinProbe(HardwareProbe):
    """Probe using sysctl, route, ifconfig and ioreg."""

    def detect_virtual_machine(self) -> bool:
        if self.run_command(["sysctl", "-n", "kern.hv_vmm_present"]) == "1":
            return True
        model = self.run_command(["sysctl", "-n", "hw.model"])
        return _looks_virtual(model)

    def active_interface_mac(self) -> str | None:
        output = self.run_command(["route", "-n", "get", "default"])
        if output:
            for line in output.splitlines():
                key, sep, value = line.strip().partition(":")
                if sep and key == "interface":
                    mac = self._ether_addresses(["ifconfig", value.strip()])
                    if mac:
                        return min(mac)
        macs = self._ether_addresses(["ifconfig"])
        return min(macs) if macs else None

    def _ether_addresses(self, command: list[str]) -> list[str]:
        output = self.run_command(command)
        if not output:
            return []
        macs = []
        for line in output.splitlines():
            parts = line.split()
            if len(parts) >= 2 and parts[0] == "ether":
                mac = normalize_mac(parts[1])
                if mac:
                    macs.append(mac)
        return macs

    def platform_identifiers(self) -> list[str]:
        output = self.run_command(["ioreg", "-rd1", "-c", "IOPlatformExpertDevice"])
        if not output:
            return []
        wanted = {"IOPlatformUUID", "IOPlatformSerialNumber"}
        identifiers = []
        for line in output.splitlines():
            key, sep, value = line.partition("=")
            if sep and key.strip().strip('"') in wanted:
                cleaned = _clean(value.strip().strip('"'))
                if cleaned:
                    identifiers.append(cleaned)
        return identifiers


def probe_for_platform(
    system: str | None = None, timeout: float = DEFAULT_PROBE_TIMEOUT
) -> HardwareProbe:
    """
    Return the probe implementation for the given (or current) OS family.

    Args:
        system: Value as returned by platform.system(). Defaults to this host.
        timeout: Timeout in seconds for each probe command.
    """
    system = (system or platform.system()).lower()
    if system == "linux":
        return LinuxProbe(timeout)
    if system == "windows":
        return WindowsProbe(timeout)
    if system == "darwin":
        return DarwinProbe(timeout)
    return GenericProbe(timeout)


def collect_identifiers(probe: HardwareProbe) -> list[str]:
    """
    Gather every identifier a probe can supply.

    Failures of individual probe calls are logged and skipped.

    Returns:
        Sorted, de-duplicated identifier strings.
    """
    collected: set[str] = set()

    try:
        mac = probe.active_interface_mac()
    except (OSError, ValueError, subprocess.SubprocessError) as e:
        logger.debug("MAC probe failed: %s", e)
        mac = None
    if mac:
        collected.add(mac)

    try:
        identifiers = probe.platform_identifiers()
    except (OSError, ValueError, subprocess.SubprocessError) as e:
        logger.debug("Platform identifier probe failed: %s", e)
        identifiers = []
    for identifier in identifiers:
        if identifier and identifier.strip():
            collected.add(identifier.strip())

    logger.debug(
        "Collected %d hardware identifier(s) (virtual machine: %s)",
        len(collected),
        probe.is_virtual_machine,
    )
    return sorted(collected)


def fold_identifiers(identifiers: Iterable[str]) -> int:
    """
    Fold identifier strings into a 64-bit unsigned machine identifier.

    Identifiers are stripped, de-duplicated and sorted so the result does not
    depend on collection order. The joined string is hashed with SHA-256 and
    the first 8 bytes are read little-endian.

    Raises:
        HardwareIdentificationError: If no non-empty identifier is supplied.
    """
    unique = sorted({value.strip() for value in identifiers if value and value.strip()})
    if not unique:
        raise HardwareIdentificationError("No hardware identifiers found on this host")

    digest = hashlib.sha256(IDENTIFIER_SEPARATOR.join(unique).encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "little")


def get_hardware_id(probe: HardwareProbe | None = None) -> int:
    """
    Compute the machine identifier of this host.

    Args:
        probe: Probe to use. Defaults to the one for the current platform.

    Raises:
        HardwareIdentificationError: If no identifier could be collected.
    """
    if probe is None:
        probe = probe_for_platform()
    return fold_identifiers(collect_identifiers(probe))
