"""Tests for hardware fingerprinting and probe implementations."""

from __future__ import annotations

import hashlib
import shutil
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from sealconf.errors import HardwareIdentificationError
from sealconf.vault.fingerprint import (
    DarwinProbe,
    GenericProbe,
    HardwareProbe,
    LinuxProbe,
    StaticProbe,
    WindowsProbe,
    collect_identifiers,
    fold_identifiers,
    get_hardware_id,
    normalize_mac,
    probe_for_platform,
)


# Prints bytes that are not valid UTF-8, like some disk firmware serials
NON_UTF8_SCRIPT = r"import sys; sys.stdout.buffer.write(b'WD-\xff\xfeABC\n')"


class TestFoldIdentifiers(unittest.TestCase):
    """Tests for folding identifiers into a machine ID."""

    def test_known_value(self) -> None:
        """Test the fold is SHA-256 of the sorted, joined list, read little-endian."""
        digest = hashlib.sha256(b"aa:bb:cc:dd:ee:ff|SERIAL-1").digest()
        expected = int.from_bytes(digest[:8], "little")

        self.assertEqual(fold_identifiers(["SERIAL-1", "aa:bb:cc:dd:ee:ff"]), expected)

    def test_order_independent(self) -> None:
        """Test that collection order does not change the result."""
        first = fold_identifiers(["uuid-1", "serial-2", "mac-3"])
        second = fold_identifiers(["mac-3", "uuid-1", "serial-2"])

        self.assertEqual(first, second)

    def test_duplicates_and_whitespace_ignored(self) -> None:
        """Test that duplicates and surrounding whitespace are folded away."""
        first = fold_identifiers(["uuid-1", "serial-2"])
        second = fold_identifiers([" uuid-1 ", "serial-2", "uuid-1", ""])

        self.assertEqual(first, second)

    def test_different_hosts_differ(self) -> None:
        """Test that different identifier sets give different IDs."""
        self.assertNotEqual(
            fold_identifiers(["uuid-1"]),
            fold_identifiers(["uuid-2"]),
        )

    def test_result_is_64_bit(self) -> None:
        """Test that the result fits in an unsigned 64-bit integer."""
        value = fold_identifiers(["anything"])

        self.assertGreaterEqual(value, 0)
        self.assertLess(value, 2**64)

    def test_empty_raises(self) -> None:
        """Test that an empty identifier list is an error."""
        with self.assertRaises(HardwareIdentificationError):
            fold_identifiers([])

        with self.assertRaises(HardwareIdentificationError):
            fold_identifiers(["", "   "])


class TestNormalizeMac(unittest.TestCase):
    """Tests for MAC address normalization."""

    def test_dash_form(self) -> None:
        """Test Windows-style dashed MACs are converted."""
        self.assertEqual(normalize_mac("AA-BB-CC-DD-EE-FF"), "aa:bb:cc:dd:ee:ff")

    def test_zero_mac_rejected(self) -> None:
        """Test the all-zero MAC is rejected."""
        self.assertIsNone(normalize_mac("00:00:00:00:00:00"))

    def test_garbage_rejected(self) -> None:
        """Test non-MAC strings are rejected."""
        self.assertIsNone(normalize_mac("not-a-mac"))
        self.assertIsNone(normalize_mac(""))
        self.assertIsNone(normalize_mac(None))


class TestCollectIdentifiers(unittest.TestCase):
    """Tests for collect_identifiers()."""

    def test_static_probe(self) -> None:
        """Test identifiers from a static probe are sorted and de-duplicated."""
        probe = StaticProbe(["b", "a", "b", " "])

        self.assertEqual(collect_identifiers(probe), ["a", "b"])

    def test_failing_probe_contributes_nothing(self) -> None:
        """Test that a probe raising OSError is skipped."""

        class BrokenProbe(StaticProbe):
            def platform_identifiers(self) -> list[str]:
                raise OSError("no access")

            def active_interface_mac(self) -> str | None:
                return "aa:bb:cc:dd:ee:ff"

        self.assertEqual(collect_identifiers(BrokenProbe([])), ["aa:bb:cc:dd:ee:ff"])

    def test_get_hardware_id_with_probe(self) -> None:
        """Test get_hardware_id() uses the supplied probe."""
        probe = StaticProbe(["uuid-1", "serial-2"])

        self.assertEqual(get_hardware_id(probe), fold_identifiers(["serial-2", "uuid-1"]))

    def test_get_hardware_id_no_identifiers(self) -> None:
        """Test get_hardware_id() fails on a host with nothing to collect."""
        with self.assertRaises(HardwareIdentificationError):
            get_hardware_id(StaticProbe([]))


class TestProbeForPlatform(unittest.TestCase):
    """Tests for probe selection."""

    def test_platform_mapping(self) -> None:
        """Test each OS family maps to its probe."""
        self.assertIsInstance(probe_for_platform("Linux"), LinuxProbe)
        self.assertIsInstance(probe_for_platform("Windows"), WindowsProbe)
        self.assertIsInstance(probe_for_platform("Darwin"), DarwinProbe)
        self.assertIsInstance(probe_for_platform("SunOS"), GenericProbe)

    def test_timeout_passed(self) -> None:
        """Test the probe timeout is applied."""
        probe = probe_for_platform("Linux", timeout=1.5)

        self.assertEqual(probe.timeout, 1.5)


class TestRunCommand(unittest.TestCase):
    """Tests for HardwareProbe.run_command()."""

    def setUp(self) -> None:
        """Create a probe for tests."""
        self.probe = GenericProbe(timeout=2.0)

    @patch("sealconf.vault.fingerprint.subprocess.run")
    def test_success(self, mock_run: MagicMock) -> None:
        """Test stdout is returned stripped."""
        mock_run.return_value = subprocess.CompletedProcess([], 0, stdout=" value \n", stderr="")

        self.assertEqual(self.probe.run_command(["tool"]), "value")
        self.assertEqual(mock_run.call_args.kwargs["timeout"], 2.0)

    @patch("sealconf.vault.fingerprint.subprocess.run")
    def test_nonzero_exit(self, mock_run: MagicMock) -> None:
        """Test a failing command yields None."""
        mock_run.return_value = subprocess.CompletedProcess([], 1, stdout="value", stderr="")

        self.assertIsNone(self.probe.run_command(["tool"]))

    @patch("sealconf.vault.fingerprint.subprocess.run")
    def test_missing_command(self, mock_run: MagicMock) -> None:
        """Test a missing executable yields None."""
        mock_run.side_effect = FileNotFoundError("tool")

        self.assertIsNone(self.probe.run_command(["tool"]))

    def test_undecodable_output(self) -> None:
        """Test output that is not valid UTF-8 is decoded with replacements."""
        output = self.probe.run_command([sys.executable, "-c", NON_UTF8_SCRIPT])

        self.assertEqual(output, "WD-\ufffd\ufffdABC")

    @patch("sealconf.vault.fingerprint.subprocess.run")
    def test_timeout(self, mock_run: MagicMock) -> None:
        """Test a hanging command yields None."""
        mock_run.side_effect = subprocess.TimeoutExpired(["tool"], 2.0)

        self.assertIsNone(self.probe.run_command(["tool"]))


class TestLinuxProbe(unittest.TestCase):
    """Tests for LinuxProbe against a fake sysfs/procfs tree."""

    def setUp(self) -> None:
        """Create a fake filesystem layout."""
        self.temp_dir = tempfile.mkdtemp()
        root = Path(self.temp_dir)

        self.probe = LinuxProbe()
        self.probe.dmi_dir = root / "dmi"
        self.probe.net_dir = root / "net"
        self.probe.route_file = root / "route"
        self.probe.cpuinfo_file = root / "cpuinfo"
        self.probe.machine_id_files = (root / "machine-id",)

        self.probe.dmi_dir.mkdir()
        (self.probe.dmi_dir / "sys_vendor").write_text("Dell Inc.\n")
        (self.probe.dmi_dir / "product_name").write_text("OptiPlex 7090\n")
        (self.probe.dmi_dir / "product_uuid").write_text("4C4C4544-0042\n")
        (self.probe.dmi_dir / "board_serial").write_text("To be filled by O.E.M.\n")
        (self.probe.dmi_dir / "product_serial").write_text("SVC123\n")

        for name, mac in (("lo", "00:00:00:00:00:00"), ("eth0", "aa:bb:cc:00:00:02"),
                          ("wlan0", "aa:bb:cc:00:00:01")):
            (self.probe.net_dir / name).mkdir(parents=True)
            (self.probe.net_dir / name / "address").write_text(mac + "\n")

        self.probe.route_file.write_text(
            "Iface\tDestination\tGateway\tFlags\tRefCnt\tUse\tMetric\tMask\n"
            "wlan0\t00000000\t0101A8C0\t0003\t0\t0\t600\t00000000\n"
            "eth0\t00000000\t0101A8C0\t0003\t0\t0\t100\t00000000\n"
            "eth0\t0001A8C0\t00000000\t0001\t0\t0\t100\t00FFFFFF\n"
        )
        self.probe.cpuinfo_file.write_text(
            "processor\t: 0\nflags\t\t: fpu vme sse\nSerial\t\t: 00000000cafe\n"
        )
        (root / "machine-id").write_text("0123456789abcdef\n")

    def tearDown(self) -> None:
        """Clean up temporary directory."""
        shutil.rmtree(self.temp_dir)

    def test_default_route_mac(self) -> None:
        """Test the MAC of the lowest-metric default route is used."""
        self.assertEqual(self.probe.active_interface_mac(), "aa:bb:cc:00:00:02")

    def test_fallback_smallest_mac(self) -> None:
        """Test the smallest MAC is used when no default route exists."""
        self.probe.route_file.unlink()

        self.assertEqual(self.probe.active_interface_mac(), "aa:bb:cc:00:00:01")

    def test_physical_identifiers(self) -> None:
        """Test identifiers on a physical host include the CPU serial."""
        with patch.object(LinuxProbe, "run_command", return_value=None):
            identifiers = self.probe.platform_identifiers()

        self.assertIn("4C4C4544-0042", identifiers)
        self.assertIn("SVC123", identifiers)
        self.assertIn("00000000cafe", identifiers)
        self.assertNotIn("To be filled by O.E.M.", identifiers)
        self.assertNotIn("0123456789abcdef", identifiers)

    def test_virtual_identifiers(self) -> None:
        """Test identifiers on a VM use the machine id instead of the CPU serial."""
        (self.probe.dmi_dir / "sys_vendor").write_text("QEMU\n")

        with patch.object(LinuxProbe, "run_command", return_value=None):
            self.assertTrue(self.probe.is_virtual_machine)
            identifiers = self.probe.platform_identifiers()

        self.assertIn("0123456789abcdef", identifiers)
        self.assertNotIn("00000000cafe", identifiers)

    def test_hypervisor_flag(self) -> None:
        """Test the cpuinfo hypervisor flag marks a VM."""
        self.probe.cpuinfo_file.write_text("flags\t\t: fpu vme hypervisor\n")

        with patch.object(LinuxProbe, "run_command", return_value=None):
            self.assertTrue(self.probe.detect_virtual_machine())

    def test_undecodable_command_keeps_other_identifiers(self) -> None:
        """Test one command printing non-UTF-8 bytes does not drop sysfs identifiers."""
        real_run = subprocess.run

        def run(command: list[str], **kwargs):
            return real_run([sys.executable, "-c", NON_UTF8_SCRIPT], **kwargs)

        with patch("sealconf.vault.fingerprint.subprocess.run", side_effect=run):
            identifiers = collect_identifiers(self.probe)

        self.assertIn("4C4C4544-0042", identifiers)
        self.assertIn("SVC123", identifiers)
        self.assertIn("WD-\ufffd\ufffdABC", identifiers)

    def test_disk_serial_smallest(self) -> None:
        """Test the smallest disk serial is chosen."""
        with patch.object(LinuxProbe, "run_command", return_value="ZZZ\nAAA\n\n"):
            identifiers = self.probe.platform_identifiers()

        self.assertIn("AAA", identifiers)
        self.assertNotIn("ZZZ", identifiers)


class TestWindowsProbe(unittest.TestCase):
    """Tests for WindowsProbe with stubbed commands."""

    def _responder(self, outputs: dict[str, str]):
        def run(command: list[str]) -> str | None:
            return outputs.get(" ".join(command[:2]))
        return run

    def test_physical_identifiers(self) -> None:
        """Test wmic output parsing on a physical host."""
        outputs = {
            "wmic csproduct": "UUID=1111-2222\n",
            "wmic baseboard": "SerialNumber=BOARD1\n",
            "wmic diskdrive": "SerialNumber=DISK-B\nSerialNumber=DISK-A\n",
            "wmic cpu": "ProcessorId=BFEBFBFF000906EA\n",
            "wmic computersystem": "Manufacturer=Lenovo\n",
        }
        probe = WindowsProbe()

        with patch.object(probe, "run_command", side_effect=self._responder(outputs)):
            identifiers = probe.platform_identifiers()

        self.assertIn("1111-2222", identifiers)
        self.assertIn("BOARD1", identifiers)
        self.assertIn("DISK-A", identifiers)
        self.assertNotIn("DISK-B", identifiers)
        self.assertIn("BFEBFBFF000906EA", identifiers)

    def test_cim_fallback_without_wmic(self) -> None:
        """Test WMI values come from Get-CimInstance when wmic is unavailable."""
        cim = {
            "Win32_ComputerSystem -ExpandProperty Manufacturer": "QEMU",
            "Win32_ComputerSystem -ExpandProperty Model": "Standard PC",
            "Win32_ComputerSystemProduct -ExpandProperty UUID": "1111-2222",
            "Win32_BaseBoard -ExpandProperty SerialNumber": "BOARD1",
            "Win32_DiskDrive -ExpandProperty SerialNumber": "DISK-B\r\nDISK-A",
        }

        def run(command: list[str]) -> str | None:
            if command[0] != "powershell":
                return None
            for query, value in cim.items():
                class_name, prop = query.split(" -ExpandProperty ")
                script = command[-1]
                if class_name + " |" in script and script.endswith(prop):
                    return value
            return None

        probe = WindowsProbe()

        with patch.object(probe, "run_command", side_effect=run):
            self.assertTrue(probe.is_virtual_machine)
            identifiers = probe.platform_identifiers()

        self.assertIn("1111-2222", identifiers)
        self.assertIn("BOARD1", identifiers)
        self.assertIn("DISK-A", identifiers)
        self.assertNotIn("DISK-B", identifiers)

    def test_getmac_fallback(self) -> None:
        """Test the smallest getmac address is used without a default route."""
        outputs = {
            "getmac /fo": '"AA-BB-CC-00-00-09","\\Device\\Tcpip_{X}"\n'
                          '"AA-BB-CC-00-00-03","\\Device\\Tcpip_{Y}"\n',
        }
        probe = WindowsProbe()

        with patch.object(probe, "run_command", side_effect=self._responder(outputs)):
            self.assertEqual(probe.active_interface_mac(), "aa:bb:cc:00:00:03")


class TestDarwinProbe(unittest.TestCase):
    """Tests for DarwinProbe with stubbed commands."""

    def test_ioreg_identifiers(self) -> None:
        """Test IOPlatformUUID and serial number are parsed from ioreg."""
        ioreg = (
            '+-o J314sAP  <class IOPlatformExpertDevice>\n'
            '    "IOPlatformSerialNumber" = "C02XYZ"\n'
            '    "IOPlatformUUID" = "ABCD-1234"\n'
            '    "model" = <"MacBookPro18,3">\n'
        )
        probe = DarwinProbe()

        with patch.object(probe, "run_command", return_value=ioreg):
            identifiers = probe.platform_identifiers()

        self.assertEqual(sorted(identifiers), ["ABCD-1234", "C02XYZ"])

    def test_vm_detection(self) -> None:
        """Test kern.hv_vmm_present marks a VM."""
        probe = DarwinProbe()

        with patch.object(probe, "run_command", return_value="1"):
            self.assertTrue(probe.detect_virtual_machine())


class TestHardwareProbeInterface(unittest.TestCase):
    """Tests for the HardwareProbe base class."""

    def test_cannot_instantiate_abstract(self) -> None:
        """Test the abstract base cannot be instantiated."""
        with self.assertRaises(TypeError):
            HardwareProbe()  # type: ignore[abstract]

    def test_vm_detection_failure_is_false(self) -> None:
        """Test a failing VM check counts as not virtual."""

        class FailingProbe(StaticProbe):
            def detect_virtual_machine(self) -> bool:
                raise OSError("boom")

        self.assertFalse(FailingProbe([]).is_virtual_machine)


if __name__ == "__main__":
    unittest.main()
