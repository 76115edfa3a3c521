"""Stylio session layer - composition root and command line entry point."""

import argparse
import getpass
import logging
import sys
from typing import Optional

from . import __version__
from .api import ApiClient, AuthApi
from .auth import AuthError, AuthManager, CredentialStore, Session, SessionState
from .config import Config, setup_logging
from .push import PushRegistrar

logger = logging.getLogger(__name__)


class StylioSession:
    """Wires the session layer together.

    The host application builds one of these per process and talks to
    ``auth`` for sign-in flows, ``client`` for API calls and ``session``
    for the current login state.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config.load()

        self.credentials = CredentialStore(self.config.keychain_service)
        self.client = ApiClient(
            self.credentials,
            api_url=self.config.api_url,
            timeout=self.config.timeout,
        )
        self.api = AuthApi(self.client)
        self.session = SessionState()
        self.push = PushRegistrar(self.api, self.config.push_platform)
        self._detach_push = self.push.attach(self.session)
        self.auth = AuthManager(self.api, self.credentials, self.session, push=self.push)

    def close(self) -> None:
        self._detach_push()
        self.auth.close()
        self.client.close()

    def __enter__(self) -> "StylioSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def _describe(session: Session) -> str:
    if session.error:
        return f"{session.status.value}: {session.error}"
    if session.user:
        name = session.user.get("username") or session.user.get("email") or session.user.get("id")
        return f"{session.status.value} as {name}"
    return session.status.value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stylio-session", description=__doc__)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--api-url", help="Override the configured API URL")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("status", help="Restore the stored session and show it")
    login = commands.add_parser("login", help="Log in with username and password")
    login.add_argument("username")
    commands.add_parser("logout", help="Log out and forget stored tokens")
    verify = commands.add_parser("verify", help="Confirm the emailed verification code")
    verify.add_argument("otp")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = _build_parser().parse_args(argv)

    config = Config.load()
    if args.api_url:
        config.api_url = args.api_url
    setup_logging(args.debug or config.debug_mode)
    logger.info(f"Using API URL: {config.api_url}")

    with StylioSession(config) as app:
        try:
            if args.command == "status":
                session = app.auth.restore()
            elif args.command == "login":
                password = getpass.getpass("Password: ")
                session = app.auth.login(args.username, password)
            elif args.command == "logout":
                app.auth.restore()
                session = app.auth.logout()
            else:
                app.auth.restore()
                session = app.auth.verify_email(args.otp)
        except AuthError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return 1

    print(_describe(session))
    return 0


if __name__ == "__main__":
    sys.exit(main())
