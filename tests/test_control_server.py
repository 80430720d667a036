import json
import socket
import stat
import tempfile
import threading
import unittest
from pathlib import Path


class TestControlServerOps(unittest.TestCase):
    """Request handling without a socket."""

    def setUp(self) -> None:
        from missionctl.daemon.server import ControlServer
        from missionctl.paths import HomePaths

        self._td = tempfile.TemporaryDirectory()
        self.addCleanup(self._td.cleanup)
        self.server = ControlServer(HomePaths(home=Path(self._td.name)).ensure(), version="9.9.9")

    def _req(self, op, **args):
        from missionctl.contracts.v1 import ServerRequest

        return self.server.handle_request(ServerRequest(op=op, args=args))

    def test_health_reports_version(self) -> None:
        resp = self._req("health")
        self.assertTrue(resp.ok)
        self.assertEqual(resp.result["status"], "ok")
        self.assertEqual(resp.result["version"], "9.9.9")

    def test_error_codes(self) -> None:
        self.assertEqual(self._req("missions/nope").error.code, "unknown_op")
        self.assertEqual(self._req("missions/get").error.code, "missing_id")
        self.assertEqual(self._req("missions/get", id="deadbeef").error.code, "mission_not_found")

        created = self._req("missions/create", prompt="x").result["mission"]
        self.assertEqual(self._req("missions/update", id=created["id"]).error.code, "invalid_request")
        self.assertTrue(self._req("missions/archive", id=created["id"]).ok)
        resp = self._req("missions/update", id=created["id"], prompt="y")
        self.assertEqual(resp.error.code, "mission_archived")

    def test_list_filters_require_real_booleans(self) -> None:
        created = self._req("missions/create", prompt="x").result["mission"]
        self.assertTrue(self._req("missions/archive", id=created["id"]).ok)

        self.assertEqual(self._req("missions/list", include_archived="false").error.code, "invalid_request")
        self.assertEqual(self._req("missions/list", include_archived=1).error.code, "invalid_request")
        self.assertEqual(self._req("missions/list", include_archived=False).result["missions"], [])
        listed = self._req("missions/list", include_archived=True).result["missions"]
        self.assertEqual([m["id"] for m in listed], [created["id"]])

    def test_mission_payloads_carry_state(self) -> None:
        created = self._req("missions/create", repo="github.com/acme/api").result["mission"]
        self.assertEqual(created["state"], "STOPPED")
        listed = self._req("missions/list").result["missions"]
        self.assertEqual([m["state"] for m in listed], ["STOPPED"])
        stopped = self._req("missions/stop", id=created["short_id"]).result
        self.assertEqual(stopped["outcome"], "not_running")


class TestControlServerSocket(unittest.TestCase):
    def setUp(self) -> None:
        from missionctl.daemon.client import ControlClient
        from missionctl.daemon.server import ControlServer
        from missionctl.paths import HomePaths

        self._td = tempfile.TemporaryDirectory()
        self.addCleanup(self._td.cleanup)
        self.paths = HomePaths(home=Path(self._td.name)).ensure()
        self.server = ControlServer(self.paths, version="1.2.3")
        self.exit_codes = []
        self.thread = threading.Thread(
            target=lambda: self.exit_codes.append(self.server.serve_forever(install_signal_handlers=False)),
            daemon=True,
        )
        self.thread.start()
        self.assertTrue(self.server.ready.wait(5.0))
        self.client = ControlClient(self.paths, timeout_s=5.0)

    def tearDown(self) -> None:
        self.server.shutdown()
        self.thread.join(timeout=5.0)

    def test_round_trip(self) -> None:
        from missionctl.errors import ServerRequestError

        self.assertEqual(self.client.health()["version"], "1.2.3")

        m = self.client.create_mission(repo="github.com/acme/api", prompt="fix login")
        self.assertEqual(self.client.get_mission(m.short_id).id, m.id)
        updated = self.client.update_mission(m.id, session_name="login")
        self.assertEqual(updated.session_name, "login")
        self.assertEqual([x.id for x in self.client.list_missions()], [m.id])

        with self.assertRaises(ServerRequestError) as ctx:
            self.client.get_mission("deadbeef")
        self.assertEqual(ctx.exception.code, "mission_not_found")

    def test_socket_is_private_and_cleaned_up(self) -> None:
        mode = stat.S_IMODE(self.paths.sock_path.stat().st_mode)
        self.assertEqual(mode, 0o600)
        self.assertTrue(self.paths.pid_path.exists())

        self.server.shutdown()
        self.thread.join(timeout=5.0)
        self.assertEqual(self.exit_codes, [0])
        self.assertFalse(self.paths.sock_path.exists())
        self.assertFalse(self.paths.pid_path.exists())

    def test_shutdown_finishes_in_flight_request(self) -> None:
        from unittest import mock

        from missionctl.contracts.v1 import ServerResponse

        entered = threading.Event()
        release = threading.Event()

        def slow(service, args):
            entered.set()
            release.wait(10.0)
            return ServerResponse(ok=True, result={"done": True})

        responses = []
        with mock.patch.dict("missionctl.daemon.server.HANDLERS", {"missions/slow": slow}):
            caller = threading.Thread(target=lambda: responses.append(self.client.call("missions/slow")))
            caller.start()
            self.assertTrue(entered.wait(5.0))

            self.server.shutdown()
            # The accept loop has stopped, but the in-flight request holds the server open.
            self.thread.join(timeout=1.0)
            self.assertTrue(self.thread.is_alive())
            self.assertTrue(self.paths.sock_path.exists())
            self.assertTrue(self.paths.pid_path.exists())

            release.set()
            caller.join(timeout=5.0)
            self.thread.join(timeout=5.0)

        self.assertEqual(responses, [{"done": True}])
        self.assertEqual(self.exit_codes, [0])
        self.assertFalse(self.paths.sock_path.exists())
        self.assertFalse(self.paths.pid_path.exists())

    def test_second_server_defers_to_lock_holder(self) -> None:
        from missionctl.daemon.server import ControlServer

        other = ControlServer(self.paths)
        self.assertEqual(other.serve_forever(install_signal_handlers=False), 0)
        # The running server is untouched.
        self.assertTrue(self.paths.sock_path.exists())
        self.assertEqual(self.client.health()["version"], "1.2.3")

    def test_unreachable_server(self) -> None:
        from missionctl.daemon.client import ControlClient
        from missionctl.errors import ServerUnavailableError
        from missionctl.paths import HomePaths

        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ServerUnavailableError):
                ControlClient(HomePaths(home=Path(td)), timeout_s=0.5).health()


class TestClientAfterSend(unittest.TestCase):
    """Failures after the request has reached the server are not retried locally."""

    def setUp(self) -> None:
        from missionctl.paths import HomePaths

        self._td = tempfile.TemporaryDirectory()
        self.addCleanup(self._td.cleanup)
        self.paths = HomePaths(home=Path(self._td.name)).ensure()
        self.received = []

    def _serve_once(self, reply: bytes) -> threading.Thread:
        listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        listener.bind(str(self.paths.sock_path))
        listener.listen(1)
        self.addCleanup(listener.close)

        def run() -> None:
            conn, _ = listener.accept()
            with conn:
                buf = b""
                while b"\n" not in buf:
                    chunk = conn.recv(65536)
                    if not chunk:
                        break
                    buf += chunk
                self.received.append(json.loads(buf.split(b"\n", 1)[0]))
                if reply:
                    conn.sendall(reply)

        t = threading.Thread(target=run, daemon=True)
        t.start()
        return t

    def test_dropped_connection_does_not_create_locally(self) -> None:
        from missionctl.cli import MissionOps
        from missionctl.daemon.client import ControlClient
        from missionctl.errors import ServerReplyError
        from missionctl.kernel.missions import MissionService

        t = self._serve_once(b"")
        ops = MissionOps(self.paths, client=ControlClient(self.paths, timeout_s=5.0))
        with self.assertRaises(ServerReplyError):
            ops.create(prompt="once")
        t.join(timeout=5.0)

        self.assertEqual(self.received[0]["op"], "missions/create")
        self.assertEqual(MissionService(self.paths).list(include_archived=True), [])

    def test_malformed_reply_is_a_reply_error(self) -> None:
        from missionctl.daemon.client import ControlClient
        from missionctl.errors import ServerReplyError

        t = self._serve_once(b"not json\n")
        with self.assertRaises(ServerReplyError):
            ControlClient(self.paths, timeout_s=5.0).health()
        t.join(timeout=5.0)

    def test_unreachable_server_falls_back_to_registry(self) -> None:
        from missionctl.cli import MissionOps
        from missionctl.kernel.missions import MissionService

        m = MissionOps(self.paths).create(prompt="direct")
        self.assertEqual([x.id for x in MissionService(self.paths).list()], [m.id])


if __name__ == "__main__":
    unittest.main()
