"""
Entry point for GymDesk.
Run `python main.py --help` for the available commands.
"""
import argparse
import datetime
import getpass
import logging
import os
import signal
import sys
from typing import Optional, Tuple

from PySide6 import QtCore
from supabase import create_client

import config
from ai_module.analytics import GymAI
from ai_module.recommendations import RecommendationService, build_request
from core.database import init_db
from core.errors import GymDeskError, InvalidQRTokenError
from core.logger import setup_logger
from models.snapshot import Snapshot
from services.analytics_service import generate_daily_brief
from services.attendance_service import AttendanceDesk
from services.auth_service import LocalAuthProvider, SupabaseAuthProvider
from services.change_channel import ChangeChannel, LocalChangeChannel, SupabaseChangeChannel
from services.data_cache import CacheState, GymDataCache
from services.local_store import LocalStore
from services.payment_link_service import PaymentLinkRequest, PaymentLinkService
from services.qr_scanner import QRScanner
from services.remote_store import RemoteStore, SupabaseStore

logger = logging.getLogger("gymdesk")


# --- WIRING ---

def build_backend() -> Tuple[object, RemoteStore, ChangeChannel]:
    """
    Returns (auth provider, store, channel) for the configured backend.
    """
    if config.BACKEND == "supabase":
        client = create_client(config.SUPABASE_URL, config.SUPABASE_KEY)
        channel = SupabaseChangeChannel(config.SUPABASE_URL, config.SUPABASE_KEY)
        return SupabaseAuthProvider(client), SupabaseStore(client), channel

    init_db()
    channel = LocalChangeChannel()
    return LocalAuthProvider(), LocalStore(channel=channel), channel


def sign_in(auth, args) -> None:
    email = args.email or os.getenv("GYMDESK_EMAIL") or input("Email: ")
    password = args.password or os.getenv("GYMDESK_PASSWORD") or getpass.getpass("Password: ")
    auth.sign_in(email, password)


def open_cache(args) -> Tuple[GymDataCache, object]:
    """Signs in and returns a cache bound to the session (the first fetch is running)."""
    auth, store, channel = build_backend()
    sign_in(auth, args)
    cache = GymDataCache(store, channel)
    cache.error.connect(lambda msg: logger.error(msg))
    cache.notice.connect(lambda msg: logger.info(msg))
    cache.bind_auth(auth)
    return cache, auth


def wait_for_snapshot(cache: GymDataCache) -> Snapshot:
    """Runs the event loop until the first fetch settles."""
    if cache.state not in (CacheState.READY, CacheState.ERROR):
        loop = QtCore.QEventLoop()

        def settled(state: str) -> None:
            if state in (CacheState.READY.value, CacheState.ERROR.value):
                loop.quit()

        cache.state_changed.connect(settled)
        loop.exec()
        cache.state_changed.disconnect(settled)

    if cache.snapshot is None:
        raise GymDeskError("Could not load gym data.")
    return cache.snapshot


def print_reminders(snapshot: Optional[Snapshot]) -> None:
    if snapshot is None:
        return
    if not snapshot.reminders:
        print("No memberships expire in the next 7 days.")
        return
    print(f"{'Member':<24} {'Phone':<16} {'Plan':<12} Days left")
    for r in snapshot.reminders:
        print(f"{r.member_name:<24} {r.phone:<16} {r.plan:<12} {r.days_left}")


def run_until_interrupted(app: QtCore.QCoreApplication) -> int:
    signal.signal(signal.SIGINT, lambda *_: app.quit())
    # Let the Python interpreter run so SIGINT is noticed
    heartbeat = QtCore.QTimer()
    heartbeat.timeout.connect(lambda: None)
    heartbeat.start(250)
    return app.exec()


# --- COMMANDS ---

def cmd_init_db(args, app) -> int:
    init_db()
    print(f"Database ready at {config.DB_FILE}")
    return 0


def cmd_signup(args, app) -> int:
    auth, _store, _channel = build_backend()
    password = args.password or getpass.getpass("Password: ")
    session = auth.sign_up(args.email, password, name=args.name, gym_name=args.gym)
    if session is None:
        print("Check your inbox to confirm the account.")
    else:
        print(f"Account created for {session.email}")
    return 0


def cmd_reminders(args, app) -> int:
    cache, _auth = open_cache(args)
    print_reminders(wait_for_snapshot(cache))
    cache.close()
    return 0


def cmd_watch(args, app) -> int:
    cache, _auth = open_cache(args)
    cache.snapshot_changed.connect(print_reminders)
    logger.info("Watching for changes, press Ctrl+C to stop")
    code = run_until_interrupted(app)
    cache.close()
    return code


def cmd_scan(args, app) -> int:
    cache, _auth = open_cache(args)
    wait_for_snapshot(cache)
    desk = AttendanceDesk(cache)
    scanner = QRScanner(camera_index=args.camera)

    def on_token(token: str) -> None:
        try:
            desk.handle_scanned_token(token)
        except InvalidQRTokenError as e:
            logger.warning(e.message)

    scanner.token_scanned.connect(on_token)
    scanner.camera_error.connect(lambda msg: app.exit(1))
    desk.checked_in.connect(
        lambda result: print(f"✅ {result.member_info.get('name')} has been marked present."))
    desk.check_in_failed.connect(lambda msg: print(f"❌ Check-in failed: {msg}"))

    if not scanner.start():
        return 1
    code = run_until_interrupted(app)
    scanner.stop()
    cache.close()
    return code


def cmd_brief(args, app) -> int:
    cache, _auth = open_cache(args)
    snapshot = wait_for_snapshot(cache)
    day = datetime.date.fromisoformat(args.date) if args.date else None
    print(generate_daily_brief(snapshot, day))
    cache.close()
    return 0


def cmd_recommend(args, app) -> int:
    cache, _auth = open_cache(args)
    snapshot = wait_for_snapshot(cache)
    context = args.context or ""
    peak = GymAI(snapshot.attendance).predict_peak_hours()
    context = f"{context} {peak}".strip()
    print(RecommendationService().recommend(build_request(snapshot, context)))
    cache.close()
    return 0


def cmd_pay_link(args, app) -> int:
    cache, _auth = open_cache(args)
    wait_for_snapshot(cache)
    result = PaymentLinkService().create_link(PaymentLinkRequest(
        amount=args.amount,
        payer_name=args.member,
        plan_name=args.plan,
        gym_id=cache.account_id,
    ))
    print(result.link_url)
    cache.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gymdesk", description="Gym membership desk")
    parser.add_argument("--env-file", help="Path to a .env file")
    sub = parser.add_subparsers(dest="cmd")

    def with_login(p):
        p.add_argument("--email")
        p.add_argument("--password")
        return p

    sub.add_parser("init-db", help="Create the local database")

    s = sub.add_parser("signup", help="Create an owner account")
    s.add_argument("--email", required=True)
    s.add_argument("--password")
    s.add_argument("--name", default="")
    s.add_argument("--gym", default="")

    with_login(sub.add_parser("reminders", help="List memberships expiring within a week"))
    with_login(sub.add_parser("watch", help="Keep data in sync and print reminders on change"))

    scan = with_login(sub.add_parser("scan", help="Check members in by webcam QR scan"))
    scan.add_argument("--camera", type=int, default=0)

    brief = with_login(sub.add_parser("brief", help="Print the daily briefing"))
    brief.add_argument("--date", help="YYYY-MM-DD, defaults to today")

    rec = with_login(sub.add_parser("recommend", help="Ask the AI consultant for recommendations"))
    rec.add_argument("--context", default="")

    pay = with_login(sub.add_parser("pay-link", help="Create a Stripe payment link"))
    pay.add_argument("--member", required=True)
    pay.add_argument("--plan", required=True)
    pay.add_argument("--amount", type=float, required=True)
    return parser


COMMANDS = {
    "init-db": cmd_init_db,
    "signup": cmd_signup,
    "reminders": cmd_reminders,
    "watch": cmd_watch,
    "scan": cmd_scan,
    "brief": cmd_brief,
    "recommend": cmd_recommend,
    "pay-link": cmd_pay_link,
}


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.cmd:
        parser.print_help()
        return 1

    config.load_settings(args.env_file)
    setup_logger("gymdesk", config.LOG_LEVEL, config.LOG_FILE)
    for name in ("core", "services", "workers", "ai_module"):
        setup_logger(name, config.LOG_LEVEL, config.LOG_FILE)

    app = QtCore.QCoreApplication(sys.argv[:1])
    try:
        return COMMANDS[args.cmd](args, app)
    except GymDeskError as e:
        logger.error(e.message)
        return 1


if __name__ == "__main__":
    sys.exit(main())
