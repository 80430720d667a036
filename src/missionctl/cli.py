from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Callable, List, Optional

from . import __version__
from .contracts.v1 import Mission, MissionPatch
from .daemon.client import ControlClient
from .daemon.supervisor import Supervisor
from .errors import MissionctlError, ServerUnavailableError
from .kernel.missions import MissionService
from .kernel.reload import reload_mission
from .kernel.settings import load_settings
from .kernel.wrapper import MissionWrapper
from .paths import HomePaths, default_paths
from .resolve import resolve
from .resolve.missions import MISSION_HEADERS, MissionResolver, mission_label, mission_row
from .resolve.picker import fzf_picker
from .resolve.repos import RepoResolver, list_repos
from .resolve.templates import TemplateResolver
from .runners.tmux import TmuxHost
from .util.obslog import setup_cli_logging
from .util.table import render_table
from .util.time import format_local

logger = logging.getLogger("missionctl.cli")


class MissionOps:
    """Mission operations through the control server, or on the registry directly when it is unreachable."""

    def __init__(self, paths: HomePaths, client: Optional[ControlClient] = None) -> None:
        self.paths = paths
        self.client = client or ControlClient(paths)
        self._service: Optional[MissionService] = None

    def _call(self, remote: Callable[[ControlClient], Any], local: Callable[[MissionService], Any]) -> Any:
        try:
            return remote(self.client)
        except ServerUnavailableError as e:
            logger.info("control server unavailable (%s); using the registry directly", e)
        if self._service is None:
            self._service = MissionService(self.paths)
        return local(self._service)

    def list(self, *, include_archived: bool = False, cron_name: Optional[str] = None) -> List[Mission]:
        return self._call(
            lambda c: c.list_missions(include_archived=include_archived, cron_name=cron_name),
            lambda s: s.list(include_archived=include_archived, cron_name=cron_name),
        )

    def get(self, mission_id: str) -> Mission:
        return self._call(lambda c: c.get_mission(mission_id), lambda s: s.get(mission_id))

    def create(self, *, repo: str = "", prompt: str = "", cron_name: Optional[str] = None) -> Mission:
        return self._call(
            lambda c: c.create_mission(repo=repo, prompt=prompt, cron_name=cron_name),
            lambda s: s.create(git_repo=repo, prompt=prompt, cron_name=cron_name),
        )

    def update(self, mission_id: str, patch: MissionPatch) -> Mission:
        fields = patch.model_dump(exclude_none=True)
        return self._call(lambda c: c.update_mission(mission_id, **fields), lambda s: s.update(mission_id, patch))

    def stop(self, mission_id: str) -> str:
        return self._call(lambda c: c.stop_mission(mission_id), lambda s: s.stop(mission_id))

    def archive(self, mission_id: str) -> Mission:
        return self._call(lambda c: c.archive_mission(mission_id), lambda s: s.archive(mission_id))

    def remove(self, mission_id: str) -> str:
        return self._call(lambda c: c.remove_mission(mission_id), lambda s: s.remove(mission_id))


def _pick_missions(
    ops: MissionOps,
    words: List[str],
    *,
    prompt: str,
    multi: bool,
    include_archived: bool = False,
    include: Optional[Callable[[Mission], bool]] = None,
) -> List[Mission]:
    resolver = MissionResolver(
        list_missions=lambda: ops.list(include_archived=include_archived),
        get_mission=ops.get,
        prompt=prompt,
        multi_select=multi,
        include=include,
    )
    res = resolve(" ".join(words or []), resolver, picker=fzf_picker)
    if not res.items and not res.was_cancelled:
        print("No missions found.")
    return res.items


def _print_missions(missions: List[Mission]) -> None:
    if not missions:
        print("No missions.")
        return
    for line in render_table(MISSION_HEADERS, [mission_row(m) for m in missions]):
        print(line)


def _run_wrapper(paths: HomePaths, mission: Mission) -> int:
    settings = load_settings(paths)
    wrapper = MissionWrapper(paths, mission, agent_command=settings.agent_command, client=ControlClient(paths))
    return wrapper.run()


def cmd_mission_ls(args: argparse.Namespace) -> int:
    ops = MissionOps(args.paths)
    _print_missions(ops.list(include_archived=bool(args.all), cron_name=args.cron or None))
    return 0


def cmd_mission_new(args: argparse.Namespace) -> int:
    paths: HomePaths = args.paths
    repo = ""
    if args.template:
        res = resolve(args.template, TemplateResolver(load_settings(paths).templates), picker=fzf_picker)
        if not res.items:
            return 0
        repo = res.items[0][1]
    elif args.repo:
        res = resolve(" ".join(args.repo), RepoResolver(paths.repos_dir), picker=fzf_picker)
        if not res.items:
            return 0
        repo = res.items[0]
    mission = MissionOps(paths).create(repo=repo, prompt=args.prompt or "")
    print(f"Created mission {mission.short_id}")
    if args.start:
        return _run_wrapper(paths, mission)
    return 0


def cmd_mission_stop(args: argparse.Namespace) -> int:
    ops = MissionOps(args.paths)
    targets = _pick_missions(ops, args.search, prompt="Stop mission: ", multi=True, include=lambda m: m.state == "RUNNING")
    for m in targets:
        outcome = ops.stop(m.id)
        if outcome == "not_running":
            print(f"Mission {m.short_id} is not running")
        else:
            print(f"Stopped mission {m.short_id}")
    return 0


def cmd_mission_archive(args: argparse.Namespace) -> int:
    ops = MissionOps(args.paths)
    for m in _pick_missions(ops, args.search, prompt="Archive mission: ", multi=True):
        ops.archive(m.id)
        print(f"Archived mission {m.short_id}")
    return 0


def cmd_mission_rm(args: argparse.Namespace) -> int:
    ops = MissionOps(args.paths)
    targets = _pick_missions(ops, args.search, prompt="Remove mission: ", multi=True, include_archived=True)
    for m in targets:
        ops.remove(m.id)
        print(f"Removed mission {m.short_id}")
    return 0


def cmd_mission_reload(args: argparse.Namespace) -> int:
    paths: HomePaths = args.paths
    ops = MissionOps(paths)
    for m in _pick_missions(ops, args.search, prompt="Reload mission: ", multi=False):
        outcome = reload_mission(m, stop=ops.stop, resume=lambda mm: _run_wrapper(paths, mm), host=TmuxHost())
        if outcome == "respawned":
            print(f"Reloaded mission {m.short_id} in place")
    return 0


def cmd_mission_update(args: argparse.Namespace) -> int:
    patch = MissionPatch(prompt=args.prompt, config_snapshot=args.config_snapshot, session_name=args.session_name)
    if patch.is_empty():
        print("error: nothing to update (pass --prompt, --session-name or --config-snapshot)", file=sys.stderr)
        return 2
    ops = MissionOps(args.paths)
    for m in _pick_missions(ops, args.search, prompt="Update mission: ", multi=True):
        ops.update(m.id, patch)
        print(f"Updated mission {m.short_id}")
    return 0


def cmd_mission_describe(args: argparse.Namespace) -> int:
    ops = MissionOps(args.paths)
    for m in _pick_missions(ops, args.search, prompt="Describe mission: ", multi=False, include_archived=True):
        rows = [
            ["ID", m.id],
            ["Status", m.state or ""],
            ["Label", mission_label(m)],
            ["Repo", m.git_repo or "--"],
            ["Cron", m.cron_name or "--"],
            ["Config", m.config_snapshot or "--"],
            ["Tmux pane", f"%{m.tmux_pane}" if m.tmux_pane else "--"],
            ["Created", format_local(m.created_at)],
            ["Last active", format_local(m.last_active)],
            ["Directory", str(args.paths.mission_dir(m.id))],
        ]
        for line in render_table([], rows)[1:]:
            print(line)
    return 0


def cmd_mission_resume(args: argparse.Namespace) -> int:
    paths: HomePaths = args.paths
    ops = MissionOps(paths)
    targets = _pick_missions(ops, args.search, prompt="Resume mission: ", multi=False, include=lambda m: m.state != "RUNNING")
    if not targets:
        return 0
    return _run_wrapper(paths, targets[0])


def cmd_cron_ls(args: argparse.Namespace) -> int:
    crons = load_settings(args.paths).crons
    if not crons:
        print("No crons configured.")
        return 0
    rows = [[c.name, c.schedule, "yes" if c.enabled else "no", c.repo or "--", c.overlap] for c in crons]
    for line in render_table(["NAME", "SCHEDULE", "ENABLED", "REPO", "OVERLAP"], rows):
        print(line)
    return 0


def cmd_cron_history(args: argparse.Namespace) -> int:
    cron = load_settings(args.paths).cron(args.name)
    _print_missions(MissionOps(args.paths).list(include_archived=True, cron_name=cron.name))
    return 0


def cmd_repo_ls(args: argparse.Namespace) -> int:
    repos = list_repos(args.paths.repos_dir)
    if not repos:
        print("No repositories in the library.")
    for r in repos:
        print(r)
    return 0


def cmd_template_ls(args: argparse.Namespace) -> int:
    templates = load_settings(args.paths).templates
    if not templates:
        print("No templates configured.")
        return 0
    for line in render_table(["TEMPLATE", "REPO"], sorted(templates.items())):
        print(line)
    return 0


def cmd_server(args: argparse.Namespace) -> int:
    sup = Supervisor(args.paths)
    if args.action == "status":
        st = sup.status()
        if st["running"]:
            print(f"missionctld: running pid={st['pid']} version={st.get('version') or '?'}")
            return 0
        print("missionctld: not running")
        return 1

    if args.action == "start":
        print(f"missionctld: running pid={sup.start()}")
        return 0

    if args.action == "stop":
        outcome = sup.stop()
        print("missionctld: not running" if outcome == "not_running" else f"missionctld: stopped ({outcome})")
        return 0

    if args.action == "restart":
        print(f"missionctld: restarted pid={sup.restart()}")
        return 0

    return 2


def cmd_version(_: argparse.Namespace) -> int:
    print(__version__)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="missionctl", description="Run and manage long-lived agent missions")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_mission = sub.add_parser("mission", help="Mission lifecycle")
    mission_sub = p_mission.add_subparsers(dest="action", required=True)

    p_ls = mission_sub.add_parser("ls", help="List missions")
    p_ls.add_argument("--all", "-a", action="store_true", help="Include archived missions")
    p_ls.add_argument("--cron", default="", help="Only missions launched by this cron")
    p_ls.set_defaults(func=cmd_mission_ls)

    p_new = mission_sub.add_parser("new", help="Create a mission")
    p_new.add_argument("repo", nargs="*", help="Repository (owner/repo, host/owner/repo) or search terms")
    p_new.add_argument("--template", "-t", default="", help="Create from a named template")
    p_new.add_argument("--prompt", "-p", default="", help="What the mission is about")
    p_new.add_argument("--start", action="store_true", help="Run the mission in this terminal right away")
    p_new.set_defaults(func=cmd_mission_new)

    def _targets(name: str, help_text: str, func: Callable[[argparse.Namespace], int]) -> argparse.ArgumentParser:
        p = mission_sub.add_parser(name, help=help_text)
        p.add_argument("search", nargs="*", help="Mission id, short id, or search terms (omit to pick)")
        p.set_defaults(func=func)
        return p

    _targets("stop", "Stop mission processes", cmd_mission_stop)
    _targets("archive", "Stop and archive missions", cmd_mission_archive)
    _targets("rm", "Stop missions and delete them permanently", cmd_mission_rm)
    _targets("reload", "Restart a mission in place (keeps its tmux window)", cmd_mission_reload)
    _targets("describe", "Show mission details", cmd_mission_describe)
    _targets("resume", "Run a stopped mission in this terminal", cmd_mission_resume)
    p_update = _targets("update", "Change mission metadata", cmd_mission_update)
    p_update.add_argument("--prompt", default=None, help="New description")
    p_update.add_argument("--session-name", default=None, help="New display label")
    p_update.add_argument("--config-snapshot", default=None, help="Pin a configuration snapshot ('' unpins)")

    p_cron = sub.add_parser("cron", help="Scheduled missions")
    cron_sub = p_cron.add_subparsers(dest="action", required=True)
    p_cron_ls = cron_sub.add_parser("ls", help="List configured crons")
    p_cron_ls.set_defaults(func=cmd_cron_ls)
    p_cron_hist = cron_sub.add_parser("history", help="Missions launched by a cron")
    p_cron_hist.add_argument("name", help="Cron name")
    p_cron_hist.set_defaults(func=cmd_cron_history)

    p_repo = sub.add_parser("repo", help="Repository library")
    repo_sub = p_repo.add_subparsers(dest="action", required=True)
    p_repo_ls = repo_sub.add_parser("ls", help="List repositories")
    p_repo_ls.set_defaults(func=cmd_repo_ls)

    p_tpl = sub.add_parser("template", help="Mission templates")
    tpl_sub = p_tpl.add_subparsers(dest="action", required=True)
    p_tpl_ls = tpl_sub.add_parser("ls", help="List templates")
    p_tpl_ls.set_defaults(func=cmd_template_ls)

    p_server = sub.add_parser("server", help="Manage the control server")
    p_server.add_argument("action", choices=["start", "stop", "status", "restart"])
    p_server.set_defaults(func=cmd_server)

    p_version = sub.add_parser("version", help="Show version")
    p_version.set_defaults(func=cmd_version)

    return parser


def _prepare_server(paths: HomePaths) -> None:
    sup = Supervisor(paths)
    sup.cleanup_legacy_daemon()
    sup.ensure_running()
    sup.check_version()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_cli_logging()
    try:
        args.paths = default_paths()
        if args.cmd not in ("server", "version"):
            _prepare_server(args.paths)
        return int(args.func(args))
    except MissionctlError as e:
        print(f"error: {e}", file=sys.stderr)
        if e.hint:
            print(f"hint: {e.hint}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
