#!/usr/bin/env python3

import pytest

from conftest import FakeExecutor
from system_maintenance.tasks.executor import CommandResult
from system_maintenance.tasks.packages import (
    AptPackageManager, PacmanPackageManager, PackageQuery,
    detect_package_manager, partition_package_names
)

APT_UPGRADE_SIMULATION = """Reading package lists...
Building dependency tree...
The following packages will be upgraded:
  curl libcurl4
2 upgraded, 0 newly installed, 0 to remove and 0 not upgraded.
Inst curl [7.88.1-10] (7.88.1-10+deb12u5 Debian-Security:12/stable-security [amd64])
Inst libcurl4 [7.88.1-10] (7.88.1-10+deb12u5 Debian-Security:12/stable-security [amd64])
Conf curl (7.88.1-10+deb12u5 Debian-Security:12/stable-security [amd64])
Conf libcurl4 (7.88.1-10+deb12u5 Debian-Security:12/stable-security [amd64])"""

APT_AUTOREMOVE_SIMULATION = """Reading package lists...
The following packages will be REMOVED:
  linux-image-6.1.0-17-amd64
Remv linux-image-6.1.0-17-amd64 [6.1.69-1]"""


class TestPackageQuery:
    """Test query result interpretation"""

    def test_nonzero_exit_without_output_means_nothing(self):
        query = PackageQuery(CommandResult(['pacman', '-Qu'], 1, ""))

        assert not query.failed
        assert query.packages == []

    def test_nonzero_exit_with_output_is_failure(self):
        query = PackageQuery(CommandResult(['pacman', '-Qu'], 1, "error: database not found"))
        assert query.failed

    def test_listing(self):
        query = PackageQuery(CommandResult(['x'], 0, ""), ['a', 'b'], ['a 1 -> 2', 'b 3 -> 4'])
        assert query.listing == "a 1 -> 2\nb 3 -> 4"


class TestPartitionPackageNames:
    def test_valid_names(self):
        names = ['python-pip', 'lib32-gcc-libs', 'gtk+3', 'qt5.base', 'pkg@1']
        assert partition_package_names(names) == (names, [])

    @pytest.mark.parametrize("name", [
        "--noconfirm",
        "-Rdd",
        "pkg;rm -rf /",
        "$(reboot)",
        "two words",
        "",
    ])
    def test_rejected_names(self, name):
        valid, rejected = partition_package_names(['ok', name])

        assert valid == ['ok']
        assert rejected == [name]


class TestPacmanPackageManager:
    """Test the pacman backend"""

    def test_sync_databases(self):
        executor = FakeExecutor()
        PacmanPackageManager(executor).sync_databases()

        assert executor.commands == [['pacman', '-Sy']]

    def test_query_updates(self):
        executor = FakeExecutor({
            ('pacman', '-Qu'): (0, "linux 6.9.1-1 -> 6.9.2-1\nvim 9.1.0-1 -> 9.1.1-1")
        })

        query = PacmanPackageManager(executor).query_updates()

        assert not query.failed
        assert query.packages == ['linux', 'vim']
        assert query.listing == "linux 6.9.1-1 -> 6.9.2-1\nvim 9.1.0-1 -> 9.1.1-1"

    def test_query_updates_none(self):
        """pacman -Qu exits 1 with no output when up to date"""
        executor = FakeExecutor({('pacman', '-Qu'): (1, "")})

        query = PacmanPackageManager(executor).query_updates()

        assert not query.failed
        assert query.packages == []

    def test_query_updates_skips_diagnostics(self):
        executor = FakeExecutor({
            ('pacman', '-Qu'): (0, "warning: config file missing\nlinux 1 -> 2")
        })

        assert PacmanPackageManager(executor).query_updates().packages == ['linux']

    def test_upgrade(self):
        executor = FakeExecutor()
        PacmanPackageManager(executor).upgrade()

        assert executor.commands == [['pacman', '-Syu', '--noconfirm']]

    def test_query_orphans(self):
        executor = FakeExecutor({('pacman', '-Qtdq'): (0, "libfoo\nlibbar\n")})

        query = PacmanPackageManager(executor).query_orphans()

        assert query.packages == ['libfoo', 'libbar']

    def test_query_orphans_keeps_whole_line(self):
        executor = FakeExecutor({('pacman', '-Qtdq'): (0, "libfoo evil-extra")})

        query = PacmanPackageManager(executor).query_orphans()

        assert query.packages == ["libfoo evil-extra"]
        assert partition_package_names(query.packages) == ([], ["libfoo evil-extra"])

    def test_remove_packages_argv(self):
        """Test that names are passed as separate arguments"""
        executor = FakeExecutor()
        PacmanPackageManager(executor).remove_packages(['libfoo', 'libbar'])

        assert executor.commands == [['pacman', '-Rns', '--noconfirm', 'libfoo', 'libbar']]
        assert executor.envs == [None]


class TestAptPackageManager:
    """Test the apt backend"""

    def test_noninteractive_environment(self):
        executor = FakeExecutor()
        AptPackageManager(executor).sync_databases()

        assert executor.commands == [['apt-get', 'update']]
        assert executor.envs == [{'DEBIAN_FRONTEND': 'noninteractive'}]

    def test_environment_is_a_copy(self):
        """Test that callers cannot change the backend's class-level environment"""
        executor = FakeExecutor()
        AptPackageManager(executor).sync_databases()

        executor.envs[0]['DEBIAN_FRONTEND'] = 'dialog'

        assert AptPackageManager.env == {'DEBIAN_FRONTEND': 'noninteractive'}
        assert PacmanPackageManager.env is None

    def test_query_updates(self):
        executor = FakeExecutor({('apt-get', '--simulate', 'upgrade'): (0, APT_UPGRADE_SIMULATION)})

        query = AptPackageManager(executor).query_updates()

        assert query.packages == ['curl', 'libcurl4']
        assert query.lines[0].startswith('curl [7.88.1-10]')

    def test_query_updates_none(self):
        executor = FakeExecutor({
            ('apt-get', '--simulate', 'upgrade'): (0, "0 upgraded, 0 newly installed, 0 to remove")
        })

        assert AptPackageManager(executor).query_updates().packages == []

    def test_query_orphans(self):
        executor = FakeExecutor({
            ('apt-get', '--simulate', 'autoremove'): (0, APT_AUTOREMOVE_SIMULATION)
        })

        query = AptPackageManager(executor).query_orphans()

        assert query.packages == ['linux-image-6.1.0-17-amd64']

    def test_failed_query(self):
        executor = FakeExecutor({
            ('apt-get', '--simulate', 'upgrade'): (100, "E: Could not get lock /var/lib/dpkg/lock")
        })

        query = AptPackageManager(executor).query_updates()

        assert query.failed
        assert query.packages == []

    def test_upgrade_and_remove(self):
        executor = FakeExecutor()
        backend = AptPackageManager(executor)
        backend.upgrade()
        backend.remove_packages(['old-kernel'])

        assert executor.commands == [
            ['apt-get', '-y', 'upgrade'],
            ['apt-get', '-y', 'purge', 'old-kernel'],
        ]


class TestDetectPackageManager:
    """Test backend resolution"""

    def test_auto_prefers_pacman(self):
        backend = detect_package_manager("auto", FakeExecutor(available=("pacman", "apt-get")))
        assert isinstance(backend, PacmanPackageManager)

    def test_auto_falls_back_to_apt(self):
        backend = detect_package_manager("auto", FakeExecutor(available=("apt-get",)))
        assert isinstance(backend, AptPackageManager)

    def test_auto_none_available(self):
        assert detect_package_manager("auto", FakeExecutor(available=())) is None

    def test_explicit_choice(self):
        """Test that an explicit backend is returned even when not installed"""
        backend = detect_package_manager("apt", FakeExecutor(available=()))

        assert isinstance(backend, AptPackageManager)
        assert not backend.is_available()
