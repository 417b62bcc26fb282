from fcntl import LOCK_EX, LOCK_NB, flock
from tempfile import TemporaryDirectory
from unittest import TestCase, main

from fake_host import FakeHost, make_enabler
from hibernator import (
    AllocationError,
    ConcurrentRunError,
    PolicyCompileError,
    PrivilegeError,
    ResolutionError,
    ValidationError,
)
from zenlib.logging import loggify

SWAP_FILE = "/var/swap/swapfile"
FSTAB_ENTRY = "/var/swap/swapfile none swap defaults,pri=0 0 0"


@loggify
class TestHibernator(TestCase):
    def setUp(self):
        self.tmpdir = TemporaryDirectory()
        self.host = FakeHost(self.tmpdir.name)

    def tearDown(self):
        self.tmpdir.cleanup()

    def run_enabler(self, **kwargs):
        enabler = make_enabler(self.host, self.logger, **kwargs)
        enabler.run()
        return enabler

    def test_full_run(self):
        """16GiB of memory results in a 20GiB swap file and resume arguments for it."""
        enabler = self.run_enabler()
        self.assertEqual(enabler.state, "done")
        self.assertEqual(enabler["swap_size"], 20)
        self.assertEqual(self.host.calls("btrfs", "filesystem", "mkswapfile"),
                         [["btrfs", "filesystem", "mkswapfile", "--size", "20G", SWAP_FILE]])
        self.assertEqual(self.host.path(SWAP_FILE).stat().st_size, 20 * 1024**3)
        self.assertEqual(self.host.path(SWAP_FILE).stat().st_mode & 0o777, 0o600)
        self.assertIn("/var/swap", self.host.nocow)
        self.assertEqual(self.host.read("/etc/fstab").splitlines().count(FSTAB_ENTRY), 1)
        self.assertIn(SWAP_FILE, self.host.read("/proc/swaps"))
        self.assertIn("hibernator_swapfile", self.host.selinux_modules)
        self.assertEqual(self.host.fcontexts, {"/var/swap(/.*)?": "swapfile_t"})
        self.assertIn(f"resume=UUID={self.host.fs_uuid}", self.host.kargs)
        self.assertIn(f"resume_offset={self.host.resume_offset}", self.host.kargs)
        self.assertEqual(self.host.read("/etc/dracut.conf.d/resume.conf"), 'add_dracutmodules+=" resume "\n')
        self.assertTrue(self.host.initramfs_enabled)
        self.assertEqual(enabler.warnings, [])
        # Kernel arguments are read once, during inspection
        self.assertEqual(self.host.commands.count(["rpm-ostree", "kargs"]), 1)

    def test_rerun_is_idempotent(self):
        """A second run leaves the host exactly as the first run did."""
        self.run_enabler()
        first = self.host.snapshot()
        allocations = len(self.host.calls("btrfs", "filesystem", "mkswapfile"))

        enabler = self.run_enabler()
        self.assertEqual(enabler["_swap_state"], "already_present")
        self.assertEqual(self.host.snapshot(), first)
        self.assertEqual(len(self.host.calls("btrfs", "filesystem", "mkswapfile")), allocations)
        for key in ["resume", "resume_offset"]:
            self.assertEqual(len([karg for karg in self.host.kargs if karg.split("=", 1)[0] == key]), 1)
        # Already registered/enabled conditions are tolerated, not fatal
        self.assertEqual(len(enabler.warnings), 2)

    def test_existing_swap_file(self):
        """An existing swap file is never recreated or resized."""
        self.host.path("/var/swap").mkdir(parents=True)
        self.host.path(SWAP_FILE).write_bytes(b"SWAPSPACE2")

        enabler = self.run_enabler()
        self.assertEqual(enabler["_swap_state"], "already_present")
        self.assertEqual(self.host.calls("btrfs", "subvolume", "create"), [])
        self.assertEqual(self.host.calls("chattr"), [])
        self.assertEqual(self.host.calls("btrfs", "filesystem", "mkswapfile"), [])
        self.assertEqual(self.host.path(SWAP_FILE).read_bytes(), b"SWAPSPACE2")
        self.assertEqual(self.host.read("/etc/fstab").splitlines().count(FSTAB_ENTRY), 1)

    def test_existing_subvolume(self):
        """The swap subvolume is only created when missing."""
        self.host.path("/var/swap").mkdir(parents=True)
        self.run_enabler()
        self.assertEqual(self.host.calls("btrfs", "subvolume", "create"), [])
        self.assertTrue(self.host.path(SWAP_FILE).exists())

    def test_stale_resume_arguments(self):
        """Resume arguments left from an older swap file are replaced, not duplicated."""
        self.host.kargs += ["resume=UUID=0f0f0f0f-0000-0000-0000-000000000000", "resume_offset=1234"]
        self.run_enabler()
        self.assertEqual([karg for karg in self.host.kargs if karg.startswith("resume")],
                         [f"resume=UUID={self.host.fs_uuid}", f"resume_offset={self.host.resume_offset}"])

    def test_unprivileged(self):
        """Without root nothing is run and nothing is written."""
        self.host.privileged = False
        fstab = self.host.read("/etc/fstab")
        enabler = make_enabler(self.host, self.logger)
        with self.assertRaises(PrivilegeError):
            enabler.run()
        self.assertEqual(enabler.state, "aborted")
        self.assertEqual(self.host.commands, [])
        self.assertEqual(self.host.read("/etc/fstab"), fstab)
        self.assertFalse(self.host.path("/run/hibernator.lock").exists())

    def test_concurrent_run(self):
        """A run fails if another run holds the lock."""
        lock_path = self.host.path("/run/hibernator.lock")
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(lock_path, "w") as lock_file:
            flock(lock_file, LOCK_EX | LOCK_NB)
            with self.assertRaises(ConcurrentRunError):
                self.run_enabler()
        self.assertEqual(self.host.commands, [])

    def test_allocation_failure(self):
        """A failed swap file allocation aborts before policy and boot changes."""
        self.host.failing.add("chattr")
        enabler = make_enabler(self.host, self.logger)
        with self.assertRaises(AllocationError):
            enabler.run()
        self.assertEqual(enabler.state, "aborted")
        self.assertEqual(enabler.failed_stage, "provision_swap")
        self.assertNotIn(SWAP_FILE, self.host.read("/etc/fstab"))
        self.assertEqual(self.host.calls("semodule", "-i"), [])
        self.assertFalse(any(karg.startswith("resume") for karg in self.host.kargs))

    def test_policy_failure(self):
        self.host.failing.add("checkmodule")
        enabler = make_enabler(self.host, self.logger)
        with self.assertRaises(PolicyCompileError):
            enabler.run()
        self.assertEqual(enabler.failed_stage, "install_policy")
        self.assertNotIn("hibernator_swapfile", self.host.selinux_modules)

    def test_resolution_failure_then_retry(self):
        """A failed lookup keeps the swap file and policy, a retry finishes without reallocating."""
        self.host.failing.add("findmnt")
        enabler = make_enabler(self.host, self.logger)
        with self.assertRaises(ResolutionError):
            enabler.run()
        self.assertEqual(enabler.failed_stage, "resolve_resume")
        self.assertTrue(self.host.path(SWAP_FILE).exists())
        self.assertIn(FSTAB_ENTRY, self.host.read("/etc/fstab").splitlines())
        self.assertIn("hibernator_swapfile", self.host.selinux_modules)
        self.assertFalse(any(karg.startswith("resume") for karg in self.host.kargs))

        self.host.failing.clear()
        enabler = self.run_enabler()
        self.assertEqual(enabler.state, "done")
        self.assertEqual(len(self.host.calls("btrfs", "filesystem", "mkswapfile")), 1)
        self.assertIn(f"resume_offset={self.host.resume_offset}", self.host.kargs)

    def test_initramfs_already_enabled(self):
        """An already enabled initramfs is a warning, the run still completes."""
        self.host.initramfs_enabled = True
        enabler = self.run_enabler()
        self.assertEqual(enabler.state, "done")
        self.assertEqual(len(enabler.warnings), 1)
        self.assertIn("already enabled", str(enabler.warnings[0]))

    def test_missing_stage_requirements(self):
        """Stages refuse to run without the values earlier stages provide."""
        enabler = make_enabler(self.host, self.logger, NO_BASE=True, modules="hibernator.power.sleep")
        with self.assertRaises(ValidationError):
            enabler.run()
        self.assertEqual(enabler.failed_stage, "provision_swap")
        self.assertEqual(self.host.commands, [])

    def test_swap_file_outside_swap_path(self):
        enabler = make_enabler(self.host, self.logger, swap_file="/var/other/swapfile")
        with self.assertRaises(ValidationError):
            enabler.run()
        self.assertEqual(enabler.failed_stage, "inspect")


if __name__ == "__main__":
    main()
