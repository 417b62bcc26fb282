from tempfile import TemporaryDirectory
from unittest import TestCase, main

from fake_host import FakeHost, make_enabler
from hibernator.selinux.policy import generate_policy_source, inspect_policy, install_selinux_policy
from zenlib.logging import loggify


@loggify
class TestPolicy(TestCase):
    def setUp(self):
        self.tmpdir = TemporaryDirectory()
        self.host = FakeHost(self.tmpdir.name)
        self.enabler = make_enabler(self.host, self.logger)

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_policy_source(self):
        """Only the swap file access needed by logind and systemd-sleep is granted."""
        source = generate_policy_source(self.enabler)
        self.assertTrue(source.startswith("module hibernator_swapfile 1.0;\n"))
        allow_rules = [line for line in source.splitlines() if line.startswith("allow ")]
        self.assertEqual(allow_rules, [
            "allow systemd_logind_t swapfile_t:dir search;",
            "allow systemd_sleep_t swapfile_t:dir search;",
            "allow systemd_sleep_t swapfile_t:file { read write open getattr lock ioctl };",
        ])
        self.assertIn("# allow unconfined_service_t unconfined_service_t:capability2 mac_admin;", source)

    def test_install_cleans_artifacts(self):
        """Compiled artifacts are removed once the module is installed."""
        artifacts = install_selinux_policy(self.enabler)
        self.assertEqual([artifact.suffix for artifact in artifacts], [".mod", ".pp"])
        self.assertFalse(any(artifact.exists() for artifact in artifacts))
        self.assertFalse(artifacts[0].parent.exists())
        self.assertEqual(self.host.selinux_modules["hibernator_swapfile"], generate_policy_source(self.enabler))

    def test_inspect_policy(self):
        """The installed state of the module is recorded before installing."""
        inspect_policy(self.enabler)
        self.assertFalse(self.enabler["_selinux_module_installed"])
        install_selinux_policy(self.enabler)
        inspect_policy(self.enabler)
        self.assertTrue(self.enabler["_selinux_module_installed"])

    def test_reinstall(self):
        """Installing the module again replaces it, there is only ever one copy."""
        install_selinux_policy(self.enabler)
        install_selinux_policy(self.enabler)
        self.assertEqual(len(self.host.calls("semodule", "-i")), 2)
        self.assertEqual(list(self.host.selinux_modules).count("hibernator_swapfile"), 1)


if __name__ == "__main__":
    main()
