#!/usr/bin/env python3
"""
EduSphere CLI: your academic advisor, from the terminal.

    COMMAND         ALIASES         WHAT IT DOES
    -------         -------         ----------------------------------
    login           signin          Log in and store the access token
    register        signup          Create an account
    logout          signout         Forget the stored token and profile
    whoami          me              Show the logged-in user
    analyze         upload          Upload a transcript, get recommendations
    scholarships                    Find scholarships for your profile
    summary                         Generate (and optionally save) a summary
    summaries       ls              List saved summary PDFs
    download        get             Download a saved summary PDF
    chat            ask             Talk to the advising assistant
"""

import argparse
import asyncio
import getpass
import logging
import sys

from edusphere import __version__
from edusphere.api import AdvisingClient
from edusphere.config import get_config, load_config, setup_logging
from edusphere.errors import SESSION_NOTICE, RequestTimeoutError, TransportError, user_notice
from edusphere.session import TurnOutcome
from edusphere.stream.transcript import ASSISTANT, Conversation

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _client() -> AdvisingClient:
    client = AdvisingClient.from_config(get_config())
    client.on_session_invalidated(lambda: print(f"\n  ✗  {SESSION_NOTICE}", file=sys.stderr))
    return client


def _run(coro_fn, args) -> int:
    """Run one async command with a fresh client and uniform error output."""
    async def runner():
        async with _client() as client:
            return await coro_fn(client, args)

    try:
        return asyncio.run(runner()) or 0
    except TransportError as e:
        print(f"  ✗  {user_notice(e)}", file=sys.stderr)
        return 1
    except (ValueError, FileNotFoundError) as e:
        print(f"  ✗  {e}", file=sys.stderr)
        return 1


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

async def cmd_login(client: AdvisingClient, args):
    password = args.password or getpass.getpass("  Password: ")
    user = await client.login(args.username, password)
    print(f"  ✓  Logged in as {user.get('username', args.username)}")


async def cmd_register(client: AdvisingClient, args):
    password = args.password or getpass.getpass("  Password: ")
    await client.register(args.username, args.full_name, args.email, password)
    if client.credentials.present:
        print(f"  ✓  Registered and logged in as {args.username}")
    else:
        print("  ✓  Registration successful. Please log in to continue.")


async def cmd_logout(client: AdvisingClient, args):
    client.logout()
    print("  ✓  Logged out")


async def cmd_whoami(client: AdvisingClient, args):
    user = client.current_user()
    if not user:
        print("  Not logged in")
        return 1
    print(f"  {user.get('username', '?')}  {user.get('full_name', '')}  <{user.get('email', '')}>")


async def cmd_analyze(client: AdvisingClient, args):
    print(f"  ↑  Uploading {args.file}... (AI analysis can take a few minutes)")
    reco = await client.analyze(args.file, preference=args.preference or "")
    print(f"  ✓  Recommendation #{reco.get('id')}")
    for course in reco.get("courses") or []:
        code = course.get("course_code") or course.get("code") or ""
        name = course.get("course_name") or course.get("name") or ""
        print(f"     • {code} {name}".rstrip())


async def cmd_scholarships(client: AdvisingClient, args):
    found = await client.generate_scholarships()
    if not found:
        print("  No scholarships found for this profile yet.")
        return
    for item in found:
        print(f"  • {item.get('name') or item.get('title', '?')}")
        if item.get("url"):
            print(f"    {item['url']}")


async def cmd_summary(client: AdvisingClient, args):
    text = await client.generate_summary()
    print(text)
    if args.save:
        await client.save_summary(text, include_scholarships=args.with_scholarships)
        print("\n  ✓  Summary PDF saved")


async def cmd_summaries(client: AdvisingClient, args):
    for item in await client.list_summaries():
        print(f"  #{item.get('id')}  {item.get('created_at', '')}")


async def cmd_download(client: AdvisingClient, args):
    dest = await client.download_summary(args.id, args.output)
    print(f"  ✓  Saved {dest}")


class _Printer:
    """Writes the growing assistant message as it streams in."""

    def __init__(self):
        self._message = None
        self._shown = 0

    def __call__(self, conversation: Conversation):
        last = conversation.last
        if last is None or last.role != ASSISTANT:
            return
        if last is not self._message:
            self._message = last
            self._shown = 0
        sys.stdout.write(last.content[self._shown:])
        sys.stdout.flush()
        self._shown = len(last.content)


async def cmd_chat(client: AdvisingClient, args):
    printer = _Printer()
    session = client.chat(on_update=printer)
    prompts = [args.message] if args.message else None

    while True:
        if prompts is not None:
            if not prompts:
                return
            text = prompts.pop()
        else:
            try:
                text = input("\n  you ▶ ").strip()
            except EOFError:
                return
            if text in ("/quit", "/exit"):
                return
        if not text:
            continue

        sys.stdout.write("  edusphere ◀ ")
        result = await session.send_turn(text)
        print()
        if result.outcome is TurnOutcome.FAILED and isinstance(result.error, RequestTimeoutError):
            print(f"  ✗  {user_notice(result.error)}", file=sys.stderr)
        elif result.outcome is TurnOutcome.SESSION_ENDED:
            return 1


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="edusphere",
        description="EduSphere academic-advising client",
    )
    parser.add_argument("--version", action="version", version=f"edusphere {__version__}")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("login", aliases=["signin"], help="Log in")
    p.add_argument("username")
    p.add_argument("--password", help="Prompted for when omitted")
    p.set_defaults(func=cmd_login)

    p = sub.add_parser("register", aliases=["signup"], help="Create an account")
    p.add_argument("username")
    p.add_argument("--full-name", required=True)
    p.add_argument("--email", required=True)
    p.add_argument("--password", help="Prompted for when omitted")
    p.set_defaults(func=cmd_register)

    p = sub.add_parser("logout", aliases=["signout"], help="Forget the stored session")
    p.set_defaults(func=cmd_logout)

    p = sub.add_parser("whoami", aliases=["me"], help="Show the logged-in user")
    p.set_defaults(func=cmd_whoami)

    p = sub.add_parser("analyze", aliases=["upload"], help="Upload a transcript for recommendations")
    p.add_argument("file")
    p.add_argument("--preference", "-p", help="What you'd like to focus on")
    p.set_defaults(func=cmd_analyze)

    p = sub.add_parser("scholarships", help="Find scholarships")
    p.set_defaults(func=cmd_scholarships)

    p = sub.add_parser("summary", help="Generate a transcript summary")
    p.add_argument("--save", action="store_true", help="Save as PDF with your recommendations")
    p.add_argument("--with-scholarships", action="store_true")
    p.set_defaults(func=cmd_summary)

    p = sub.add_parser("summaries", aliases=["ls"], help="List saved summaries")
    p.set_defaults(func=cmd_summaries)

    p = sub.add_parser("download", aliases=["get"], help="Download a summary PDF")
    p.add_argument("id")
    p.add_argument("--output", "-o")
    p.set_defaults(func=cmd_download)

    p = sub.add_parser("chat", aliases=["ask"], help="Chat with the assistant")
    p.add_argument("message", nargs="?", help="Send one message and exit")
    p.set_defaults(func=cmd_chat)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "func", None):
        parser.print_help()
        return 0

    cfg = load_config(args.config) if args.config else get_config()
    if args.verbose:
        cfg["logging"]["level"] = "DEBUG"
    setup_logging(cfg)

    return _run(args.func, args)


if __name__ == "__main__":
    sys.exit(main())
