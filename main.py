import argparse
import logging
import signal
import sys
import threading
from datetime import date, datetime

from adapters.base import Campground, FetchError
from adapters.recreation_gov import RecreationGovAdapter
from availability import MatchedAvailability, StayWindow, ValidationError
from config import DATE_FORMAT, ConfigError, load_config, load_creds
from notifier import EmailNotifier, NotificationDispatcher, PushNotifier, SMSNotifier
from poller import Poller

LOGGER = logging.getLogger("recgov_notify")


def setup_logging(debug: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_dispatcher(config, creds: dict, force: bool = False) -> NotificationDispatcher:
    notif = config.notifications
    timeout = config.fetch_timeout
    routes = []
    if notif.sms_to:
        if creds.get("twilio_sid") and creds.get("twilio_auth_token") and creds.get("twilio_from"):
            sms = SMSNotifier(creds["twilio_sid"], creds["twilio_auth_token"], creds["twilio_from"], timeout=timeout)
            routes.append((sms, notif.sms_to))
        else:
            LOGGER.warning("sms_to is set but TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN or TWILIO_FROM is missing")
    if notif.email_to:
        if creds.get("gmail_address") and creds.get("app_password"):
            email = EmailNotifier(creds["gmail_address"], creds["app_password"], timeout=timeout)
            routes.append((email, notif.email_to))
        else:
            LOGGER.warning("email_to is set but GMAIL_ADDRESS or GMAIL_APP_PASSWORD is missing")
    if creds.get("ntfy_topic"):
        push = PushNotifier(notif.timezone, notif.quiet_start, notif.quiet_end, force=force, timeout=timeout)
        routes.append((push, creds["ntfy_topic"]))
    if not routes:
        LOGGER.warning("No notification channel configured, matches will only be logged")
    return NotificationDispatcher(routes)


# ── Interactive setup ──────────────────────────────────────────────────────────

def choose_campgrounds(config, adapter, input_fn=input) -> list:
    ids = config.availabilities.campground_ids
    if ids:
        campgrounds = []
        for entity_id in ids:
            try:
                campgrounds.append(adapter.get_campground(entity_id))
            except FetchError as e:
                LOGGER.warning("Couldn't look up campground %s: %s", entity_id, e)
                campgrounds.append(Campground(entity_id=entity_id, name=f"Campground {entity_id}"))
        return campgrounds

    while True:
        query = input_fn("Which campground are you looking for? ").strip()
        if not query:
            continue
        try:
            results = adapter.search(query)
        except FetchError as e:
            print(f"Sorry, there was an error, please try again. Error: {e}")
            continue
        if not results:
            print("Sorry, we didn't find any campgrounds for that query. Please try again")
            continue

        print("Select the number that best matches:")
        for i, c in enumerate(results, start=1):
            print(f"[{i}] {c.name}")
        search_again = len(results) + 1
        print(f"[{search_again}] None of these, let me search again")

        choice = ask_choice(search_again, input_fn)
        if choice == search_again:
            continue
        return [results[choice - 1]]


def ask_choice(last: int, input_fn=input) -> int:
    while True:
        raw = input_fn("> ").strip()
        try:
            choice = int(raw)
        except ValueError:
            choice = 0
        if 1 <= choice <= last:
            return choice
        print("Sorry, that was an invalid selection, please try again")


def ask_date(prompt: str, input_fn=input) -> date:
    while True:
        raw = input_fn(f'{prompt} Please enter in "MM-DD-YYYY" format. ').strip()
        try:
            return datetime.strptime(raw, DATE_FORMAT).date()
        except ValueError:
            print("Sorry I couldn't parse that date, please try again.")


def get_window(config, input_fn=input) -> StayWindow:
    avail = config.availabilities
    check_in = avail.check_in or ask_date("When's your check in?", input_fn)
    if avail.check_out:
        window = StayWindow.from_stay(check_in, avail.check_out)
        window.validate()
        return window
    while True:
        window = StayWindow.from_stay(check_in, ask_date("When's your check out?", input_fn))
        try:
            window.validate()
        except ValidationError:
            print("Check out needs to be after check in ;)")
            continue
        return window


# ── Run ────────────────────────────────────────────────────────────────────────

def send_test_notification(config, creds: dict) -> int:
    sample = MatchedAvailability(
        campground_id="232447",
        campground_name="Test Campground",
        site="Test Site",
        matched_dates=(date.today(),),
    )
    dispatcher = build_dispatcher(config, creds, force=True)
    sent = dispatcher.dispatch([sample])
    LOGGER.info("Test notification sent through %d of %d channel(s)", sent, len(dispatcher.routes))
    return 0 if sent == len(dispatcher.routes) else 1


def run(
    config,
    creds: dict,
    adapter,
    campgrounds: list,
    window: StayWindow,
    once: bool = False,
    dry_run: bool = False,
    stop_event: threading.Event = None,
) -> Poller:
    """
    Core logic. Returns the poller once it has stopped.
    Separated from __main__ to allow unit testing without env vars or real files.
    """
    dispatcher = NotificationDispatcher() if dry_run else build_dispatcher(config, creds)
    poller = Poller(
        adapter,
        dispatcher,
        allow_partial=config.availabilities.partial,
        workers=config.workers,
        stop_event=stop_event,
    )

    print("Will search for campgrounds")
    for campground in campgrounds:
        print(f"- {campground.name} ({campground.entity_id})")
    print(
        f"Now we're in business! Searching recreation.gov availability for {len(campgrounds)} "
        f"campground(s) from {window.start} to {window.end}"
    )

    if once:
        poller.run_tick(campgrounds, window)
    else:
        poller.poll(campgrounds, window, config.poll_interval)
        LOGGER.info("Have a good trip!")
    return poller


def cli(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Recreation.gov campsite availability notifier")
    parser.add_argument("--config", default="config.yaml", help="Path to the YAML config file")
    parser.add_argument("--once", action="store_true", help="Run a single check and exit")
    parser.add_argument("--dry-run", action="store_true", help="Log matches, do not send notifications")
    parser.add_argument("--test-notify", action="store_true", help="Send a test notification immediately")
    args = parser.parse_args(argv)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    setup_logging(cfg.debug)
    LOGGER.debug("Using config %s", cfg)
    creds = load_creds()

    if args.test_notify:
        return send_test_notification(cfg, creds)

    adapter = RecreationGovAdapter(api_key=creds["ridb_api_key"], timeout=cfg.fetch_timeout)
    try:
        window = get_window(cfg)
        campgrounds = choose_campgrounds(cfg, adapter)
    except ValidationError as e:
        LOGGER.error("Invalid stay: %s", e)
        return 1
    except (EOFError, KeyboardInterrupt):
        print()
        return 1

    stop_event = threading.Event()

    def _stop(signum, frame):
        LOGGER.info("Received signal %s, stopping after the current campground", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    run(
        config=cfg,
        creds=creds,
        adapter=adapter,
        campgrounds=campgrounds,
        window=window,
        once=args.once,
        dry_run=args.dry_run,
        stop_event=stop_event,
    )
    return 0


if __name__ == "__main__":
    sys.exit(cli())
