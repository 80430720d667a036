import os
import tempfile
import unittest
from pathlib import Path


class _HomeCase(unittest.TestCase):
    def setUp(self) -> None:
        from missionctl.kernel.missions import MissionService
        from missionctl.paths import HomePaths

        self._td = tempfile.TemporaryDirectory()
        self.addCleanup(self._td.cleanup)
        self.paths = HomePaths(home=Path(self._td.name)).ensure()
        self.service = MissionService(self.paths)


class TestMissionIds(unittest.TestCase):
    def test_looks_like_mission_id(self) -> None:
        from missionctl.kernel.missions import looks_like_mission_id

        self.assertTrue(looks_like_mission_id("deadbeef"))
        self.assertTrue(looks_like_mission_id("DEADBEEF"))
        self.assertTrue(looks_like_mission_id("2f1c9a0e-4b7d-4c3e-9f2a-0123456789ab"))
        self.assertFalse(looks_like_mission_id("deadbee"))
        self.assertFalse(looks_like_mission_id("not-an-id"))
        self.assertFalse(looks_like_mission_id("zzzzzzzz"))
        self.assertFalse(looks_like_mission_id(""))


class TestMissionRegistry(_HomeCase):
    def test_create_and_lookup_by_short_id(self) -> None:
        m = self.service.create(git_repo="github.com/acme/api", prompt="fix login")
        self.assertEqual(m.short_id, m.id[:8])
        self.assertEqual(m.state, "STOPPED")
        self.assertTrue(self.paths.mission_agent_dir(m.id).is_dir())

        got = self.service.get(m.short_id.upper())
        self.assertEqual(got.id, m.id)
        self.assertEqual(got.git_repo, "github.com/acme/api")

    def test_unknown_id_raises(self) -> None:
        from missionctl.errors import MissionNotFoundError

        with self.assertRaises(MissionNotFoundError):
            self.service.get("deadbeef")

    def test_update_is_partial_and_empty_snapshot_unpins(self) -> None:
        from missionctl.contracts.v1 import MissionPatch

        m = self.service.create(prompt="original")
        m = self.service.update(m.id, MissionPatch(config_snapshot="abc123"))
        self.assertEqual(m.config_snapshot, "abc123")
        self.assertEqual(m.prompt, "original")

        m = self.service.update(m.id, MissionPatch(session_name="api work", config_snapshot=""))
        self.assertIsNone(m.config_snapshot)
        self.assertEqual(m.session_name, "api work")

    def test_bind_pane_strips_prefix(self) -> None:
        m = self.service.create()
        self.assertEqual(self.service.bind_pane(m.id, "%17").tmux_pane, "17")
        self.assertIsNone(self.service.bind_pane(m.id, "").tmux_pane)

    def test_list_filters_and_orders_by_activity(self) -> None:
        first = self.service.create(prompt="first")
        second = self.service.create(prompt="second", cron_name="nightly")
        self.service.heartbeat(first.id)
        archived = self.service.create(prompt="old")
        self.service.archive(archived.id)

        ids = [m.id for m in self.service.list()]
        self.assertEqual(ids, [first.id, second.id])
        self.assertIn(archived.id, [m.id for m in self.service.list(include_archived=True)])
        self.assertEqual([m.id for m in self.service.list(include_archived=True, cron_name="nightly")], [second.id])

    def test_remove_deletes_record_and_directory(self) -> None:
        from missionctl.errors import MissionNotFoundError

        m = self.service.create()
        self.service.remove(m.short_id)
        self.assertFalse(self.paths.mission_dir(m.id).exists())
        with self.assertRaises(MissionNotFoundError):
            self.service.get(m.id)

    def test_registry_survives_reload(self) -> None:
        from missionctl.kernel.registry import MissionRegistry

        m = self.service.create(prompt="persisted")
        again = MissionRegistry(self.paths).get(m.id)
        self.assertIsNotNone(again)
        self.assertEqual(again.prompt, "persisted")

    def test_corrupt_registry_is_not_overwritten(self) -> None:
        from missionctl.errors import RegistryError

        self.paths.registry_path.write_text("{not json", encoding="utf-8")
        with self.assertRaises(RegistryError):
            self.service.create()
        self.assertEqual(self.paths.registry_path.read_text(encoding="utf-8"), "{not json")


class TestMissionState(_HomeCase):
    def test_live_pid_means_running(self) -> None:
        from missionctl.kernel.missions import derive_state
        from missionctl.kernel.process import write_pid

        m = self.service.create()
        self.assertEqual(derive_state(self.paths, m), "STOPPED")
        write_pid(self.paths.mission_pid_path(m.id), os.getpid())
        self.assertEqual(derive_state(self.paths, m), "RUNNING")

    def test_archived_mission_never_reports_running(self) -> None:
        from missionctl.kernel.missions import derive_state
        from missionctl.kernel.process import write_pid

        m = self.service.create()
        # Archive through the registry so nothing signals the live pid below.
        archived = self.service.registry.archive(m.id)
        pid_path = self.paths.mission_pid_path(m.id)
        write_pid(pid_path, os.getpid())
        self.assertEqual(derive_state(self.paths, archived), "ARCHIVED")
        self.assertEqual(self.service.get(m.id).state, "ARCHIVED")
        self.assertTrue(pid_path.exists())

    def test_archived_missions_reject_mutation(self) -> None:
        from missionctl.contracts.v1 import MissionPatch
        from missionctl.errors import MissionArchivedError

        m = self.service.create()
        self.service.archive(m.id)
        with self.assertRaises(MissionArchivedError):
            self.service.update(m.id, MissionPatch(prompt="again"))
        with self.assertRaises(MissionArchivedError):
            self.service.heartbeat(m.id)
        # Archiving twice is a no-op.
        self.assertEqual(self.service.archive(m.id).state, "ARCHIVED")

    def test_stale_mission_pid_reads_as_stopped(self) -> None:
        from missionctl.kernel.process import write_pid

        m = self.service.create()
        pid_path = self.paths.mission_pid_path(m.id)
        write_pid(pid_path, 999999)
        self.assertEqual(self.service.get(m.id).state, "STOPPED")
        self.assertFalse(pid_path.exists())


class TestConcurrentMutations(_HomeCase):
    def test_parallel_creates_and_updates_keep_every_record(self) -> None:
        import threading

        from missionctl.contracts.v1 import MissionPatch

        seeded = [self.service.create(prompt=f"seed-{i}") for i in range(4)]
        errors = []
        start = threading.Barrier(12)

        def creator(worker: int) -> None:
            try:
                start.wait()
                for j in range(5):
                    self.service.create(prompt=f"w{worker}-{j}")
            except Exception as e:
                errors.append(e)

        def updater(mission_id: str) -> None:
            try:
                start.wait()
                for j in range(10):
                    self.service.update(mission_id, MissionPatch(session_name=f"s{j}"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=creator, args=(i,)) for i in range(8)]
        threads += [threading.Thread(target=updater, args=(m.id,)) for m in seeded]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60.0)

        self.assertEqual(errors, [])
        missions = self.service.list()
        self.assertEqual(len(missions), 4 + 8 * 5)
        self.assertEqual(len({m.id for m in missions}), len(missions))
        prompts = {m.prompt for m in missions}
        for i in range(8):
            for j in range(5):
                self.assertIn(f"w{i}-{j}", prompts)
        for i, m in enumerate(seeded):
            got = self.service.get(m.id)
            self.assertEqual(got.prompt, f"seed-{i}")
            self.assertEqual(got.session_name, "s9")


if __name__ == "__main__":
    unittest.main()
