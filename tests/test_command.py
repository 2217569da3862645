import subprocess

import pytest

from msi_lifecycle.lib import command, installer, packager, process
from msi_lifecycle.lib.command import CmdResult, run_cmd, wait_until
from msi_lifecycle.lib.installer import MsiexecInvoker
from msi_lifecycle.lib.packager import CommandPackager
from msi_lifecycle.lib.process import WindowsProcessControl
from msi_lifecycle.lib.registry import split_key
from msi_lifecycle.package_config import FeatureFlags, PackageConfiguration


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, s):
        self.now += s


class Recorder:
    def __init__(self, returncode=0, stdout=""):
        self.calls = []
        self.returncode = returncode
        self.stdout = stdout

    def __call__(self, argv, **kwargs):
        self.calls.append((list(argv), kwargs))
        return CmdResult(argv=list(argv), returncode=self.returncode, stdout=self.stdout, stderr="")


class TestWaitUntil:
    def test_true_immediately(self):
        clock = FakeClock()
        assert wait_until(lambda: True, timeout_s=5, sleep=clock.sleep, clock=clock)
        assert clock.now == 0.0

    def test_becomes_true(self):
        clock = FakeClock()
        assert wait_until(lambda: clock.now >= 1.0, timeout_s=5, interval_s=0.5, sleep=clock.sleep, clock=clock)
        assert clock.now == 1.0

    def test_times_out(self):
        clock = FakeClock()
        assert not wait_until(lambda: False, timeout_s=2, interval_s=0.5, sleep=clock.sleep, clock=clock)
        assert clock.now == 2.0

    def test_zero_timeout_checks_once(self):
        calls = []
        assert not wait_until(lambda: calls.append(1), timeout_s=0, sleep=pytest.fail)
        assert calls == [1]


class TestRunCmd:
    def test_timeout_propagates(self, monkeypatch):
        def _run(argv, **kwargs):
            raise subprocess.TimeoutExpired(argv, kwargs["timeout"])

        monkeypatch.setattr(command.subprocess, "run", _run)
        with pytest.raises(subprocess.TimeoutExpired):
            run_cmd(["msiexec.exe"], timeout_s=1.0)

    def test_check_raises_on_failure(self, monkeypatch):
        monkeypatch.setattr(
            command.subprocess,
            "run",
            lambda argv, **kw: subprocess.CompletedProcess(argv, 1603, stdout="", stderr="fatal"),
        )
        with pytest.raises(RuntimeError, match="1603"):
            run_cmd(["msiexec.exe"])
        assert run_cmd(["msiexec.exe"], check=False).returncode == 1603


class TestMsiexecInvoker:
    def test_per_machine_install(self, monkeypatch, tmp_path):
        rec = Recorder()
        monkeypatch.setattr(installer, "run_cmd", rec)
        code = MsiexecInvoker(install_timeout_s=42, log_dir=str(tmp_path / "logs")).install("HelloWix.msi", "perMachine")

        argv, kwargs = rec.calls[0]
        assert code == 0
        assert argv[:5] == ["msiexec.exe", "/i", "HelloWix.msi", "/qn", "/norestart"]
        assert "ALLUSERS=1" in argv
        assert argv[-2] == "/l*v"
        assert kwargs["timeout_s"] == 42

    def test_per_user_install(self, monkeypatch):
        rec = Recorder(returncode=3010)
        monkeypatch.setattr(installer, "run_cmd", rec)
        assert MsiexecInvoker().install("HelloWix.msi", "perUser") == 3010
        argv, _ = rec.calls[0]
        assert "ALLUSERS=2" in argv and "MSIINSTALLPERUSER=1" in argv

    def test_uninstall_by_display_name_quotes(self, monkeypatch):
        rec = Recorder()
        monkeypatch.setattr(installer, "powershell", lambda script, **kw: rec([script], **kw))
        MsiexecInvoker().uninstall_by_display_name("Bob's App (Machine - MSI)")
        assert "'Bob''s App (Machine - MSI)'" in rec.calls[0][0][0]


class TestCommandPackager:
    def test_placeholders_are_expanded(self, monkeypatch, tmp_path):
        out = tmp_path / "out"

        def _run(argv, **kwargs):
            (out / "HelloWix-x86.msi").write_bytes(b"msi")
            return CmdResult(argv=list(argv), returncode=0, stdout="", stderr="")

        monkeypatch.setattr(packager, "run_cmd", _run)
        p = CommandPackager(
            command=["build", "{staging}", "{package}", "{arch}", "{autoLaunch}"],
            staging_dir="stage",
            out_dir=str(out),
            package_name="{name}-{arch}.msi",
        )
        config = PackageConfiguration(name="HelloWix", version="1.0.0", arch="x86", features=FeatureFlags(auto_launch=True))
        assert p.build(config) == str(out / "HelloWix-x86.msi")

    def test_missing_output_raises(self, monkeypatch, tmp_path):
        monkeypatch.setattr(packager, "run_cmd", Recorder())
        p = CommandPackager(command=["build"], staging_dir="stage", out_dir=str(tmp_path))
        with pytest.raises(RuntimeError, match="not produced"):
            p.build(PackageConfiguration(name="HelloWix", version="1.0.0"))

    def test_empty_command(self):
        with pytest.raises(ValueError):
            CommandPackager(command=[], staging_dir="s", out_dir="o")


class TestWindowsProcessControl:
    def test_is_running_parses_tasklist_csv(self, monkeypatch):
        monkeypatch.setattr(process, "run_cmd", Recorder(stdout='"HelloWix.exe","1234","Console","1","50,000 K"\n'))
        assert WindowsProcessControl().is_running("HelloWix.exe")

    def test_not_running(self, monkeypatch):
        monkeypatch.setattr(process, "run_cmd", Recorder(stdout="INFO: No tasks are running which match the specified criteria.\n"))
        assert not WindowsProcessControl().is_running("HelloWix")

    def test_resolved_path(self, monkeypatch):
        monkeypatch.setattr(process, "powershell", Recorder(stdout="C:\\Program Files\\HelloWix\\app-1.2.3\\HelloWix.exe\r\n"))
        assert WindowsProcessControl().resolved_path("HelloWix.exe") == r"C:\Program Files\HelloWix\app-1.2.3\HelloWix.exe"


class TestSplitKey:
    def test_aliases(self):
        assert split_key(r"HKCU\SOFTWARE\x") == ("HKEY_CURRENT_USER", r"SOFTWARE\x")

    def test_unknown_hive(self):
        with pytest.raises(ValueError):
            split_key(r"HKEY_USERS\x")
