from pathlib import Path

import pytest

from flashxt.core.errors import FlashFailure, UserAborted
from flashxt.utils.flash import AttemptOutcome, FlashOrchestrator, FlashState
from tests.fakes import FLASH_FAILED, FLASH_OK

SERIAL = "35081FDH2000A1"


def write_images(directory: Path, *names: str) -> None:
    for name in names:
        (directory / name).write_bytes(b"\0" * 32)


def fastboot_handler(failing=()):
    """Flash fails for the given partitions, everything else succeeds"""
    def handler(cmd):
        if "flash" in cmd:
            partition = cmd[cmd.index("flash") + 1]
            return FLASH_FAILED if partition in failing else FLASH_OK
        if "reboot" in cmd:
            return "Rebooting                OKAY [  0.001s]\nFinished. Total time: 0.051s"
        return ""
    return handler


def flash_calls(tools):
    return [cmd for cmd in tools.runner.calls if "flash" in cmd]


@pytest.fixture
def orchestrator(settings, make_tools, action_logger):
    def _make(failing=()):
        return FlashOrchestrator(settings, make_tools(fastboot_handler(failing)), action_logger)
    return _make


class TestFlashOrchestrator:
    def test_all_images_flashed_then_reboot(self, orchestrator, action_logger, image_dir):
        write_images(image_dir, "1_boot.img", "2_vendor.img", "3_vbmeta.img")
        flasher = orchestrator()

        result = flasher.run(SERIAL, image_dir, confirm=lambda plan: "y")

        assert result.final_state == FlashState.DONE
        assert result.success
        assert [a.partition for a in result.attempts] == ["boot", "vendor", "vbmeta"]
        assert all(a.outcome == AttemptOutcome.OK for a in result.attempts)
        assert flasher.tools.runner.calls[-1] == ["fastboot", "-s", SERIAL, "reboot"]
        assert action_logger.records == [
            (SERIAL, "flash:boot", "OK"),
            (SERIAL, "flash:vendor", "OK"),
            (SERIAL, "flash:vbmeta", "OK"),
            (SERIAL, "flash", "completed"),
        ]

    def test_aborts_on_first_failure(self, orchestrator, action_logger, image_dir):
        write_images(image_dir, "1_boot.img", "2_vendor.img", "3_vbmeta.img")
        flasher = orchestrator(failing=("vendor",))

        result = flasher.run(SERIAL, image_dir, confirm=lambda plan: "yes")

        assert result.final_state == FlashState.ABORTED
        assert [(a.partition, a.outcome) for a in result.attempts] == [
            ("boot", AttemptOutcome.OK),
            ("vendor", AttemptOutcome.FAIL),
        ]
        assert [cmd[4] for cmd in flash_calls(flasher.tools)] == ["boot", "vendor"]
        assert not any("reboot" in cmd for cmd in flasher.tools.runner.calls)
        assert isinstance(result.error, FlashFailure)
        assert result.error.partition == "vendor"
        attempt_records = [r for r in action_logger.records if r[1].startswith("flash:")]
        assert attempt_records == [(SERIAL, "flash:boot", "OK"), (SERIAL, "flash:vendor", "FAIL")]

    def test_empty_directory_is_done_without_records(self, orchestrator, action_logger, image_dir):
        write_images(image_dir, "readme.txt")
        asked = []
        flasher = orchestrator()

        result = flasher.run(SERIAL, image_dir, confirm=lambda plan: asked.append(plan) or "y")

        assert result.final_state == FlashState.DONE
        assert result.no_images is True
        assert result.attempts == []
        assert asked == []
        assert action_logger.records == []
        assert flasher.tools.runner.calls == []

    def test_missing_directory_is_done_without_records(self, orchestrator, action_logger, tmp_path):
        result = orchestrator().run(SERIAL, tmp_path / "nope", confirm=lambda plan: "y")

        assert result.final_state == FlashState.DONE
        assert result.no_images is True

    @pytest.mark.parametrize("answer", ["n", "", "no", "maybe", None, False])
    def test_declined_confirmation_aborts(self, orchestrator, action_logger, image_dir, answer):
        write_images(image_dir, "boot.img")
        flasher = orchestrator()

        result = flasher.run(SERIAL, image_dir, confirm=lambda plan: answer)

        assert result.final_state == FlashState.ABORTED
        assert isinstance(result.error, UserAborted)
        assert result.attempts == []
        assert flasher.tools.runner.calls == []
        assert action_logger.records == [(SERIAL, "flash", "aborted_by_user")]

    @pytest.mark.parametrize("answer", ["y", "Y", " yes ", "YES", True])
    def test_affirmative_answers(self, orchestrator, image_dir, answer):
        write_images(image_dir, "boot.img")

        result = orchestrator().run(SERIAL, image_dir, confirm=lambda plan: answer)

        assert result.final_state == FlashState.DONE

    def test_plan_lists_flash_and_skip(self, orchestrator, image_dir):
        write_images(image_dir, "boot.img", "logo.img")
        plans = []

        orchestrator().run(SERIAL, image_dir, confirm=lambda plan: plans.append(plan) or "n")

        plan = plans[0]
        assert plan.serial == SERIAL
        assert [i.filename for i in plan.to_flash] == ["boot.img"]
        assert [i.filename for i in plan.to_skip] == ["logo.img"]

    def test_unclassified_images_are_never_attempted(self, orchestrator, action_logger, image_dir):
        write_images(image_dir, "a_logo.img", "boot.img", "splash.img")
        flasher = orchestrator()

        result = flasher.run(SERIAL, image_dir, confirm=lambda plan: "y")

        assert [a.partition for a in result.attempts] == ["boot"]
        assert [i.filename for i in result.skipped] == ["a_logo.img", "splash.img"]
        assert len(flash_calls(flasher.tools)) == 1

    def test_only_unclassified_images_ends_before_confirmation(self, orchestrator, action_logger, image_dir):
        write_images(image_dir, "logo.img", "splash.img")
        asked = []
        flasher = orchestrator()
        states = []
        flasher.on_state = states.append

        result = flasher.run(SERIAL, image_dir, confirm=lambda plan: asked.append(plan) or "y")

        assert result.final_state == FlashState.DONE
        assert result.no_images is True
        assert [i.filename for i in result.skipped] == ["logo.img", "splash.img"]
        assert states == [FlashState.LISTING, FlashState.DONE]
        assert asked == []
        assert flasher.tools.runner.calls == []
        assert action_logger.records == []

    def test_images_flashed_in_listing_order(self, orchestrator, image_dir):
        write_images(image_dir, "vendor_boot.img", "boot.img", "init_boot.img", "system.img")
        flasher = orchestrator()

        flasher.run(SERIAL, image_dir, confirm=lambda plan: "y")

        assert [cmd[4] for cmd in flash_calls(flasher.tools)] == ["boot", "init_boot", "system", "vendor_boot"]

    def test_typed_confirmation_required(self, settings, make_tools, action_logger, image_dir):
        settings.REQUIRE_TYPED_CONFIRMATION = True
        write_images(image_dir, "boot.img")
        flasher = FlashOrchestrator(settings, make_tools(fastboot_handler()), action_logger)

        assert flasher.run(SERIAL, image_dir, confirm=lambda plan: "y").final_state == FlashState.ABORTED
        assert flasher.run(SERIAL, image_dir, confirm=lambda plan: True).final_state == FlashState.ABORTED
        assert flasher.run(SERIAL, image_dir, confirm=lambda plan: f"FLASH {SERIAL}").final_state == FlashState.DONE

    def test_action_log_errors_do_not_stop_the_run(self, settings, make_tools, image_dir):
        class BrokenLogger:
            def record(self, device_label, action, outcome):
                raise RuntimeError("database is locked")

        write_images(image_dir, "boot.img", "vendor.img")
        flasher = FlashOrchestrator(settings, make_tools(fastboot_handler()), BrokenLogger())

        result = flasher.run(SERIAL, image_dir, confirm=lambda plan: "y")

        assert result.final_state == FlashState.DONE
        assert len(result.attempts) == 2

    def test_unconfirmed_reboot_still_completes(self, settings, make_tools, action_logger, image_dir):
        def handler(cmd):
            return FLASH_OK if "flash" in cmd else "fastboot: error: device disappeared"

        write_images(image_dir, "boot.img")
        flasher = FlashOrchestrator(settings, make_tools(handler), action_logger)

        result = flasher.run(SERIAL, image_dir, confirm=lambda plan: "y")

        assert result.final_state == FlashState.DONE
        assert action_logger.records[-1] == (SERIAL, "flash", "completed")

    def test_state_sequence(self, orchestrator, image_dir):
        write_images(image_dir, "boot.img")
        flasher = orchestrator()
        states = []
        flasher.on_state = states.append

        flasher.run(SERIAL, image_dir, confirm=lambda plan: "y")

        assert states == [
            FlashState.LISTING,
            FlashState.CONFIRMING,
            FlashState.FLASHING,
            FlashState.REBOOTING,
            FlashState.DONE,
        ]

    def test_result_to_dict(self, orchestrator, image_dir):
        write_images(image_dir, "boot.img")

        data = orchestrator(failing=("boot",)).run(SERIAL, image_dir, confirm=lambda plan: "y").to_dict()

        assert data["success"] is False
        assert data["final_state"] == "aborted"
        assert data["attempts"][0]["outcome"] == "FAIL"
        assert "boot" in data["error"]
