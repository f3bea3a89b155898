import logging
import smtplib
from abc import ABC, abstractmethod
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import pytz
import requests
from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

QUIET_START = 23  # 11 PM
QUIET_END = 6     # 6 AM
DEFAULT_TIMEOUT = 30

SMS_TEMPLATE = """Good news from the (very unofficial) Recreation.gov Notifier!
The following sites are available:
{sites}"""

LOGGER = logging.getLogger(__name__)


class DispatchError(Exception):
    """Raised by a channel that failed to deliver a notification."""


def is_quiet_hours(
    timezone_str: str,
    now: datetime = None,
    quiet_start: int = QUIET_START,
    quiet_end: int = QUIET_END,
) -> bool:
    """Returns True if current time is within quiet hours in the given timezone."""
    tz = pytz.timezone(timezone_str)
    if now is None:
        now = datetime.now(tz)
    elif now.tzinfo is None:
        now = tz.localize(now)
    hour = now.hour
    # Range wraps midnight: quiet if hour >= quiet_start OR hour < quiet_end
    return hour >= quiet_start or hour < quiet_end


def format_dates(dates) -> str:
    return ", ".join(d.isoformat() for d in dates)


def booking_url(campground_id: str) -> str:
    return f"https://www.recreation.gov/camping/campgrounds/{campground_id}"


def format_matches(matches: list) -> tuple:
    """
    Returns (long_body, short_body) for a list of MatchedAvailability.

    The long body lists matched dates and booking links; the short body
    only names the sites and fits in a text message.
    """
    count = len(matches)

    lines = [f"{count} campsite{'s' if count > 1 else ''} just opened for your dates:\n"]
    for m in matches:
        lines.append(f"• {m.campground_name} ({m.campground_id}): Site {m.site}")
        lines.append(f"  Dates: {format_dates(m.matched_dates)}")
        lines.append(f"  Book now: {booking_url(m.campground_id)}\n")
    long_body = "\n".join(lines)

    sites = "\n".join(f"- {m.campground_name} ({m.campground_id}): Site {m.site} available" for m in matches)
    short_body = SMS_TEMPLATE.format(sites=sites)

    return long_body, short_body


def send_email(gmail_address: str, app_password: str, to: str, subject: str, body: str, timeout: float = DEFAULT_TIMEOUT):
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = gmail_address
    msg["To"] = to
    msg.attach(MIMEText(body, "plain"))
    with smtplib.SMTP_SSL("smtp.gmail.com", 465, timeout=timeout) as server:
        server.login(gmail_address, app_password)
        server.sendmail(gmail_address, to, msg.as_string())


def send_push(ntfy_topic: str, title: str, body: str, url: str = None, timeout: float = DEFAULT_TIMEOUT):
    headers = {"Title": title}
    if url:
        headers["Click"] = url
    resp = requests.post(
        f"https://ntfy.sh/{ntfy_topic}",
        data=body.encode("utf-8"),
        headers=headers,
        timeout=timeout,
    )
    resp.raise_for_status()


class BaseNotifier(ABC):
    name = "notifier"

    @abstractmethod
    def notify(self, destination: str, matches: list):
        """
        Delivers one message describing every match to the destination.

        Raises:
            DispatchError: if delivery failed
        """
        raise NotImplementedError


class EmailNotifier(BaseNotifier):
    name = "email"

    def __init__(self, gmail_address: str, app_password: str, timeout: float = DEFAULT_TIMEOUT):
        self.gmail_address = gmail_address
        self.app_password = app_password
        self.timeout = timeout

    def notify(self, destination: str, matches: list):
        subject = "\U0001f3d5 Good news! Your campground is available"
        body, _ = format_matches(matches)
        try:
            send_email(self.gmail_address, self.app_password, destination, subject, body, timeout=self.timeout)
        except (smtplib.SMTPException, OSError) as e:
            raise DispatchError(f"email to {destination} failed: {e}") from e
        LOGGER.debug("Email sent to %s", destination)


class SMSNotifier(BaseNotifier):
    name = "sms"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        client: Client = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.from_number = from_number
        self.client = client or Client(account_sid, auth_token, http_client=TwilioHttpClient(timeout=timeout))

    def notify(self, destination: str, matches: list):
        _, body = format_matches(matches)
        LOGGER.debug("Will send SMS:\n%s", body)
        try:
            message = self.client.messages.create(body=body, from_=self.from_number, to=destination)
        except TwilioException as e:
            raise DispatchError(f"SMS to {destination} failed: {e}") from e
        LOGGER.debug("SMS message sent to %s, status %s", destination, message.status)


class PushNotifier(BaseNotifier):
    """ntfy.sh push, held back during quiet hours unless forced."""

    name = "push"

    def __init__(
        self,
        timezone: str,
        quiet_start: int = QUIET_START,
        quiet_end: int = QUIET_END,
        force: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.timezone = timezone
        self.quiet_start = quiet_start
        self.quiet_end = quiet_end
        self.force = force
        self.timeout = timeout

    def notify(self, destination: str, matches: list):
        if not self.force and is_quiet_hours(self.timezone, quiet_start=self.quiet_start, quiet_end=self.quiet_end):
            LOGGER.info("Quiet hours in %s, holding back push notification", self.timezone)
            return

        count = len(matches)
        first = matches[0]
        title = f"\U0001f3d5 {first.campground_name} \u2014 {count} site{'s' if count > 1 else ''} available"
        if count == 1:
            body = f"Site {first.site} ({format_dates(first.matched_dates)})"
        else:
            body = f"Site {first.site} ({format_dates(first.matched_dates)}) + {count - 1} more"
        try:
            send_push(destination, title, body, booking_url(first.campground_id), timeout=self.timeout)
        except requests.RequestException as e:
            raise DispatchError(f"push to {destination} failed: {e}") from e


class NotificationDispatcher:
    def __init__(self, routes: list = None):
        """
        Args:
            routes: list of (notifier, destination) pairs; may be empty
        """
        self.routes = list(routes or [])

    def dispatch(self, matches: list) -> int:
        """Sends the batch through every route; returns how many routes succeeded."""
        if not matches:
            return 0
        sent = 0
        for notifier, destination in self.routes:
            LOGGER.info("Sending %s notification to %s", notifier.name, destination)
            try:
                notifier.notify(destination, matches)
            except DispatchError as e:
                LOGGER.error("Could not send %s notification: %s", notifier.name, e)
                continue
            except Exception:
                LOGGER.exception("Unexpected error sending %s notification to %s", notifier.name, destination)
                continue
            sent += 1
        return sent
