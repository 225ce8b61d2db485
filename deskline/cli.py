#!/usr/bin/env python3
"""
deskline CLI — a terminal front end for the conversation engine.

Every command has a short name and standard aliases:

    COMMAND         ALIASES         WHAT IT DOES
    -------         -------         ----------------------------------
    chat            talk, support   AI support session (ticket intake)
    channel         group           Live view of a group channel
    direct          dm              Live view of a direct conversation
    users           who             List users
    channels        rooms           List channels
    reset           clear           Forget the stored support session
    flash           info, config    Show config and stored session
"""

import argparse
import asyncio
import logging
import sys

from deskline import __version__

logger = logging.getLogger(__name__)

C_RESET = "\033[0m"
C_DIM = "\033[2m"
C_USER = "\033[96m"       # cyan
C_ASSISTANT = "\033[93m"  # yellow
C_ERROR = "\033[91m"      # red

CHAT_HELP = "  /retry  resend last failed   /cancel  abandon pending   /reset  new session   /quit"


def setup_logging(cfg: dict):
    log_cfg = cfg.get("logging", {})
    level = getattr(logging, str(log_cfg.get("level", "INFO")).upper(), logging.INFO)
    log_file = log_cfg.get("file")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        from pathlib import Path
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def _load(args) -> dict:
    from deskline.config import get_config, load_config

    cfg = load_config(args.config) if args.config else get_config()
    setup_logging(cfg)
    return cfg


def _storage(cfg: dict, ephemeral: bool = False):
    from deskline.storage import make_storage

    storage_cfg = cfg.get("storage", {})
    if ephemeral or storage_cfg.get("backend") == "memory":
        return make_storage("memory")
    return make_storage("sqlite", path=storage_cfg.get("sqlite_path", "./data/deskline.db"))


def _session_storage(cfg: dict, ephemeral: bool = False):
    """Storage for the support session; an unusable store falls back to memory."""
    from deskline.errors import PersistenceError
    from deskline.storage import make_storage

    try:
        return _storage(cfg, ephemeral)
    except PersistenceError as e:
        logger.warning("Session storage unavailable, keeping this session in memory: %s", e)
        return make_storage("memory")


def _local_user(cfg: dict, args):
    from deskline.models import LocalUser

    user_cfg = cfg.get("user", {})
    user_id = getattr(args, "user_id", None) or user_cfg.get("id") or ""
    name = getattr(args, "user_name", None) or user_cfg.get("name") or ""
    return LocalUser(id=user_id, name=name)


def _render(msg, failed_marker: bool = True) -> str:
    role = msg.role or "assistant"
    color = C_USER if role == "user" else C_ASSISTANT
    who = msg.sender_name or ("you" if role == "user" else "support")
    line = f"  {color}{who}{C_RESET}: {msg.text}"
    if failed_marker and msg.error:
        line += f"  {C_ERROR}[failed, /retry]{C_RESET}"
    return line


async def _prompt(label: str) -> str | None:
    try:
        return await asyncio.to_thread(input, label)
    except EOFError:
        return None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

async def _chat(args, cfg: dict):
    from deskline.gateway import HttpGateway
    from deskline.session import WELCOME_MESSAGE, SessionController

    gateway = HttpGateway.from_config(cfg)
    controller = SessionController(
        gateway,
        _session_storage(cfg, args.ephemeral),
        welcome_message=cfg.get("session", {}).get("welcome_message") or WELCOME_MESSAGE,
    )

    print(f"  Connecting to {gateway.base_url} ...")
    while not await controller.initialize():
        print(f"  {C_ERROR}✗ Could not start a support session.{C_RESET}")
        answer = await _prompt("  Try again? [Y/n] ")
        if answer is None or answer.strip().lower().startswith("n"):
            return

    print(CHAT_HELP)
    seen: set[str] = set()

    def show_new():
        for msg in controller.messages:
            if msg.id not in seen:
                seen.add(msg.id)
                print(_render(msg))
        view = controller.snapshot()
        if view.has_error and view.errors:
            print(f"  {C_ERROR}! {view.errors[-1]}{C_RESET}")
        if view.last_latency_ms:
            print(f"  {C_DIM}{view.last_latency_ms:.0f}ms · {view.context.state}{C_RESET}")

    show_new()
    announced = None
    while True:
        line = await _prompt("  you> ")
        if line is None or line.strip() in ("/quit", "/exit", "/q"):
            break
        cmd = line.strip()
        if cmd == "/retry":
            await controller.retry_last_message()
        elif cmd == "/cancel":
            controller.cancel()
        elif cmd == "/reset":
            seen.clear()
            await controller.reset()
        elif cmd:
            await controller.send_message(cmd)
        show_new()

        ticket_id = controller.context.ticket_id
        if controller.context.state == "complete" and ticket_id and ticket_id != announced:
            print(f"  ✓ Ticket {ticket_id} created.")
            announced = ticket_id


def cmd_chat(args):
    """Interactive AI support session."""
    cfg = _load(args)
    try:
        asyncio.run(_chat(args, cfg))
    except KeyboardInterrupt:
        print("\n  [disconnected]")


async def _follow(args, cfg: dict, target):
    from deskline.gateway import HttpGateway
    from deskline.polling import PollingSyncController

    me = _local_user(cfg, args)
    if not me.id or not me.name:
        print(f"  {C_ERROR}✗ Set user.id and user.name (or --user-id/--user-name).{C_RESET}")
        return

    interval = float(cfg.get("polling", {}).get("interval_seconds", 3))
    gateway = HttpGateway.from_config(cfg)

    async with PollingSyncController(gateway, me, poll_interval=interval) as controller:
        await controller.select(target)
        print(f"  Following {controller.channel_key} (every {interval:.0f}s). /retry, /quit")
        shown: list[str] = []

        async def printer():
            while True:
                ids = [m.id for m in controller.messages]
                if ids != shown:
                    print("\033[2J\033[H", end="")
                    for msg in controller.messages:
                        print(_render(msg))
                    shown[:] = ids
                await asyncio.sleep(0.5)

        painter = asyncio.create_task(printer())
        try:
            while True:
                line = await _prompt("")
                if line is None or line.strip() in ("/quit", "/exit", "/q"):
                    break
                if line.strip() == "/retry":
                    await controller.retry_last_message()
                else:
                    await controller.send_message(line)
                shown.clear()
        finally:
            painter.cancel()
            await asyncio.gather(painter, return_exceptions=True)


def cmd_channel(args):
    """Live view of a group channel."""
    from deskline.polling import ChannelTarget

    cfg = _load(args)
    try:
        asyncio.run(_follow(args, cfg, ChannelTarget(args.channel_id)))
    except KeyboardInterrupt:
        print("\n  [disconnected]")


def cmd_direct(args):
    """Live view of a direct conversation."""
    from deskline.polling import DirectTarget

    cfg = _load(args)
    try:
        asyncio.run(_follow(args, cfg, DirectTarget(args.peer_id)))
    except KeyboardInterrupt:
        print("\n  [disconnected]")


def cmd_users(args):
    """List users known to the backend."""
    from deskline.gateway import HttpGateway

    cfg = _load(args)
    users = asyncio.run(HttpGateway.from_config(cfg).list_users())
    if not users:
        print("  No users (or backend unreachable).")
        return
    for u in users:
        dot = "●" if u.status == "online" else "○"
        print(f"  {dot} {u.name:<24} {u.id}  {C_DIM}{u.status}{C_RESET}")


def cmd_channels(args):
    """List channels known to the backend."""
    from deskline.gateway import HttpGateway

    cfg = _load(args)
    channels = asyncio.run(HttpGateway.from_config(cfg).list_channels())
    if not channels:
        print("  No channels (or backend unreachable).")
        return
    for c in channels:
        unread = f" ({c.unread_count} unread)" if c.unread_count else ""
        print(f"  # {c.name:<24} {c.id}  {c.member_count} members{unread}")
        if c.description:
            print(f"    {C_DIM}{c.description}{C_RESET}")


def cmd_reset(args):
    """Forget the stored support session."""
    from deskline.errors import PersistenceError

    cfg = _load(args)
    try:
        _storage(cfg).clear_session()
    except PersistenceError as e:
        print(f"  {C_ERROR}✗ {e}{C_RESET}")
        sys.exit(1)
    print("  ✓ Stored session cleared.")


def cmd_flash(args):
    """Show config and the stored session at a glance."""
    from deskline.config import resolve_api_url
    from deskline.errors import PersistenceError

    cfg = _load(args)
    storage_cfg = cfg.get("storage", {})
    print(f"  deskline {__version__}")
    print(f"  Backend:  {resolve_api_url(cfg)}")
    print(f"  Storage:  {storage_cfg.get('backend', 'sqlite')} {storage_cfg.get('sqlite_path', '')}")
    print(f"  Polling:  every {cfg.get('polling', {}).get('interval_seconds', 3)}s")

    try:
        session = _storage(cfg).load_session()
    except PersistenceError as e:
        print(f"  Session:  {C_ERROR}unreadable ({e}){C_RESET}")
        return
    if session is None:
        print("  Session:  none")
        return
    ctx = session.context
    failed = sum(1 for m in session.messages if m.error)
    print(f"  Session:  {session.session_id}")
    print(f"  Messages: {len(session.messages)} ({failed} failed)")
    print(f"  Intake:   {ctx.state}  product={ctx.product} issue={ctx.issue} urgency={ctx.urgency}")
    if ctx.ticket_id:
        print(f"  Ticket:   {ctx.ticket_id}")


# ---------------------------------------------------------------------------
# Parser with aliases
# ---------------------------------------------------------------------------

def _add_command(subparsers, names, help_text, func, setup_fn=None):
    """Register a command under multiple names."""
    p = subparsers.add_parser(names[0], help=help_text, aliases=names[1:])
    p.set_defaults(func=func)
    if setup_fn:
        setup_fn(p)
    return p


def main():
    parser = argparse.ArgumentParser(
        prog="deskline",
        description="deskline — support chat from the terminal.",
        epilog="Run 'deskline <command> --help' for command-specific options.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", "-V", action="version",
        version=f"deskline {__version__}",
    )
    parser.add_argument("--config", "-c", default=None, help="Path to config.yaml")

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    def setup_chat(p):
        p.add_argument("--ephemeral", action="store_true", help="Keep the session in memory only")

    _add_command(sub, ["chat", "talk", "support"],
                 "AI support session (ticket intake)", cmd_chat, setup_chat)

    def setup_identity(p):
        p.add_argument("--user-id", default=None, help="Local user id (default: from config)")
        p.add_argument("--user-name", default=None, help="Local user name (default: from config)")

    def setup_channel(p):
        p.add_argument("channel_id", help="Channel id")
        setup_identity(p)

    _add_command(sub, ["channel", "group"],
                 "Live view of a group channel", cmd_channel, setup_channel)

    def setup_direct(p):
        p.add_argument("peer_id", help="The other user's id")
        setup_identity(p)

    _add_command(sub, ["direct", "dm"],
                 "Live view of a direct conversation", cmd_direct, setup_direct)

    _add_command(sub, ["users", "who"], "List users", cmd_users)
    _add_command(sub, ["channels", "rooms"], "List channels", cmd_channels)
    _add_command(sub, ["reset", "clear"], "Forget the stored support session", cmd_reset)
    _add_command(sub, ["flash", "info", "config"], "Show config and stored session", cmd_flash)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
