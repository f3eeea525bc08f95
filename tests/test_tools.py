from pathlib import Path

from flashxt.utils.process import ProcessResult
from flashxt.utils.tools import (
    DeviceTools,
    Transport,
    parse_adb_devices,
    parse_fastboot_devices,
)
from tests.fakes import FakeRunner

ADB_TWO_ONLINE = "List of devices attached\n1A2B3C4D\tdevice\n9Z8Y7X6W\tdevice\n"
ADB_UNAUTHORIZED = "List of devices attached\n1A2B3C4D\tunauthorized\nEMU5554\toffline\n"
FASTBOOT_TWO = "35081FDH2000A1\tfastboot\n26011JEC201234\tfastboot\n"


class TestParseAdbDevices:
    def test_first_online_serial_only(self):
        device = parse_adb_devices(ADB_TWO_ONLINE)

        assert device is not None
        assert device.serial == "1A2B3C4D"
        assert device.transport == Transport.ADB

    def test_header_only(self):
        assert parse_adb_devices("List of devices attached\n\n") is None

    def test_non_online_states_do_not_match(self):
        assert parse_adb_devices(ADB_UNAUTHORIZED) is None

    def test_windows_line_endings(self):
        device = parse_adb_devices("List of devices attached\r\nABC123\tdevice\r\n")
        assert device.serial == "ABC123"

    def test_daemon_banner_is_ignored(self):
        output = (
            "* daemon not running; starting now at tcp:5037\n"
            "* daemon started successfully\n"
            "List of devices attached\n"
            "R58M123\tdevice\n"
        )
        assert parse_adb_devices(output).serial == "R58M123"

    def test_empty_output(self):
        assert parse_adb_devices("") is None


class TestParseFastbootDevices:
    def test_all_devices_in_tool_order(self):
        devices = parse_fastboot_devices(FASTBOOT_TWO)

        assert [d.serial for d in devices] == ["35081FDH2000A1", "26011JEC201234"]
        assert all(d.transport == Transport.FASTBOOT for d in devices)
        assert all(d.state == "fastboot" for d in devices)

    def test_space_separated(self):
        devices = parse_fastboot_devices("ABCDEF123   fastboot\n")
        assert [d.serial for d in devices] == ["ABCDEF123"]

    def test_no_matching_lines_is_empty_list(self):
        assert parse_fastboot_devices("") == []
        assert parse_fastboot_devices("\n   \n\t\n") == []
        assert parse_fastboot_devices("< waiting for any device >\n") == []

    def test_blank_and_garbage_lines_are_skipped(self):
        output = "\n   \nXYZ987\tfastboot\nerror: no devices\nlonely-token\n"
        assert [d.serial for d in parse_fastboot_devices(output)] == ["XYZ987"]


class TestDeviceTools:
    def test_adb_device_runs_adb_devices(self, make_tools):
        tools = make_tools(lambda cmd: ADB_TWO_ONLINE)

        device = tools.adb_device()

        assert device.serial == "1A2B3C4D"
        assert tools.runner.calls == [["adb", "devices"]]

    def test_fastboot_devices(self, make_tools):
        tools = make_tools(lambda cmd: FASTBOOT_TWO)

        devices = tools.fastboot_devices()

        assert len(devices) == 2
        assert tools.runner.calls == [["fastboot", "devices"]]

    def test_unstartable_tool_means_no_devices(self, settings):
        class NotInstalled:
            def run(self, command, timeout=None):
                return ProcessResult(command=list(command), started=False)

        tools = DeviceTools(settings, runner=NotInstalled())

        assert tools.adb_device() is None
        assert tools.fastboot_devices() == []

    def test_flash_command_is_scoped_to_serial(self, make_tools):
        tools = make_tools()

        tools.flash("SER1", "boot", Path("/imgs/boot.img"))

        assert tools.runner.calls == [["fastboot", "-s", "SER1", "flash", "boot", str(Path("/imgs/boot.img"))]]

    def test_reboot_command(self, make_tools):
        tools = make_tools()
        tools.reboot("SER1")
        assert tools.runner.calls == [["fastboot", "-s", "SER1", "reboot"]]

    def test_getprop(self, make_tools):
        tools = make_tools(lambda cmd: "Pixel 7\n")

        assert tools.getprop("SER1", "ro.product.model") == "Pixel 7"
        assert tools.runner.calls == [["adb", "-s", "SER1", "shell", "getprop", "ro.product.model"]]

    def test_getprop_failure_is_empty(self, settings):
        tools = DeviceTools(settings, runner=FakeRunner(lambda cmd: "error: device offline", returncode=1))
        assert tools.getprop("SER1", "ro.product.model") == ""

    def test_check_tool_missing(self, make_tools):
        tools = make_tools()
        assert tools.check_tool("definitely-not-a-real-tool-xyz") is False
        assert tools.runner.calls == []

    def test_device_to_dict(self):
        device = parse_fastboot_devices(FASTBOOT_TWO)[0]
        assert device.to_dict() == {"transport": "fastboot", "serial": "35081FDH2000A1", "state": "fastboot"}
