"""
Gmail IMAP client that stores OTA booking emails in ``email_messages``.
"""
import imaplib
import email
import email.utils
from email.header import decode_header
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from ..booking_parser.parser import html_to_text
from ..utils.models import EmailData
from ..utils.logger import get_logger
from config.settings import gmail_config


class GmailClient:
    """Reads mail from allow-listed OTA senders over IMAP."""

    def __init__(self, allowed_senders: Optional[Tuple[str, ...]] = None):
        self.logger = get_logger("gmail_client")
        self.connection: Optional[imaplib.IMAP4_SSL] = None
        self.connected = False
        self.allowed_senders = tuple(allowed_senders or gmail_config.allowed_senders)

    def connect(self) -> bool:
        """Connect to Gmail IMAP server."""
        try:
            self.logger.info(
                "Connecting to Gmail IMAP server",
                server=gmail_config.imap_server,
                port=gmail_config.imap_port,
            )
            self.connection = imaplib.IMAP4_SSL(gmail_config.imap_server, gmail_config.imap_port)
            self.connection.login(gmail_config.email, gmail_config.password)
            self.connected = True
            self.logger.info("Successfully connected to Gmail")
            return True
        except Exception as e:
            self.logger.error("Failed to connect to Gmail", error=str(e))
            self.connected = False
            return False

    def disconnect(self):
        """Disconnect from Gmail IMAP server."""
        if self.connection and self.connected:
            try:
                self.connection.logout()
                self.connected = False
                self.logger.info("Disconnected from Gmail")
            except Exception as e:
                self.logger.error("Error disconnecting from Gmail", error=str(e))

    def _build_or_chain(self, terms: List[List[str]]) -> List[str]:
        """
        Nest IMAP OR terms.

        [["FROM", "a"], ["FROM", "b"], ["FROM", "c"]]
        => ["OR", "FROM", "a", "OR", "FROM", "b", "FROM", "c"]
        """
        if not terms:
            return []
        if len(terms) == 1:
            return terms[0]
        return ["OR"] + terms[0] + self._build_or_chain(terms[1:])

    def search_emails(self, since_days: Optional[int] = None, limit: Optional[int] = None) -> List[str]:
        """IMAP ids of mail from the allowed senders, newest last."""
        if not self.connected:
            self.logger.error("Not connected to Gmail")
            return []

        try:
            self.connection.select(gmail_config.mailbox)
            criteria: List[str] = []
            if since_days:
                since_date = datetime.now() - timedelta(days=since_days)
                criteria += ["SINCE", since_date.strftime("%d-%b-%Y")]
            criteria += self._build_or_chain([["FROM", sender] for sender in self.allowed_senders])

            self.logger.info("Searching emails", criteria=criteria)
            status, email_ids = self.connection.search(None, *criteria)
            if status != "OK":
                self.logger.error("Failed to search emails", status=status)
                return []

            email_id_list = email_ids[0].split()
            if limit:
                email_id_list = email_id_list[-limit:]
            self.logger.info("Found emails", count=len(email_id_list))
            return [eid.decode() for eid in email_id_list]

        except Exception as e:
            self.logger.error("Error searching emails", error=str(e))
            return []

    def fetch_email(self, email_id: str) -> Optional[EmailData]:
        """Fetch and parse a single email."""
        if not self.connected:
            self.logger.error("Not connected to Gmail")
            return None

        try:
            status, msg_data = self.connection.fetch(email_id, "(RFC822)")
            if status != "OK":
                self.logger.error("Failed to fetch email", email_id=email_id, status=status)
                return None
            return self.parse_raw_email(msg_data[0][1], email_id)
        except Exception as e:
            self.logger.error("Error fetching email", email_id=email_id, error=str(e))
            return None

    def parse_raw_email(self, raw_email: bytes, fallback_id: str = "") -> EmailData:
        email_message = email.message_from_bytes(raw_email)

        message_id = (email_message.get("Message-ID") or fallback_id).strip().strip("<>")
        references = (email_message.get("References") or email_message.get("In-Reply-To") or "").split()
        thread_id = references[0].strip("<>") if references else message_id

        try:
            received_at = email.utils.parsedate_to_datetime(email_message["date"])
        except (TypeError, ValueError):
            received_at = datetime.now(timezone.utc)

        body_text, body_html = self._extract_body(email_message)
        if not body_text and body_html:
            body_text = html_to_text(body_html)

        return EmailData(
            message_id=message_id,
            subject=self._decode_header(email_message["subject"]),
            sender=self._decode_header(email_message["from"]),
            recipient=self._decode_header(email_message["to"]),
            received_at=received_at,
            body_text=body_text,
            body_html=body_html,
            thread_id=thread_id,
        )

    def is_allowed_sender(self, sender: str) -> bool:
        sender = (sender or "").lower()
        return any(allowed in sender for allowed in self.allowed_senders)

    def fetch_emails(self, since_days: Optional[int] = None, limit: Optional[int] = None) -> List[EmailData]:
        """Fetch mail from the allowed senders."""
        emails = []
        for eid in self.search_emails(since_days, limit):
            email_data = self.fetch_email(eid)
            if email_data and self.is_allowed_sender(email_data.sender):
                emails.append(email_data)
        self.logger.info("Fetched emails", count=len(emails))
        return emails

    def ingest(self, supabase_client, since_days: Optional[int] = None, limit: Optional[int] = None) -> List[dict]:
        """Store fetched mail as ``email_messages`` rows; already stored mail is skipped."""
        stored = []
        for email_data in self.fetch_emails(since_days, limit):
            row = supabase_client.save_email_message(email_data.to_row())
            if row:
                stored.append(row)
        self.logger.info("Emails ingested", stored=len(stored))
        return stored

    def _decode_header(self, header: Optional[str]) -> str:
        """Decode email header safely."""
        if not header:
            return ""
        try:
            decoded_string = ""
            for part, encoding in decode_header(header):
                if isinstance(part, bytes):
                    decoded_string += part.decode(encoding or "utf-8", errors="ignore")
                else:
                    decoded_string += str(part)
            return decoded_string
        except (LookupError, ValueError):
            return str(header)

    def _extract_body(self, email_message) -> Tuple[str, str]:
        """Extract text and HTML body from email."""
        body_text = ""
        body_html = ""

        parts = email_message.walk() if email_message.is_multipart() else [email_message]
        for part in parts:
            if part.is_multipart() or "attachment" in str(part.get("Content-Disposition")):
                continue
            payload = part.get_payload(decode=True)
            if payload is None:
                continue
            body = payload.decode(part.get_content_charset() or "utf-8", errors="ignore")

            content_type = part.get_content_type()
            if content_type == "text/html":
                body_html += body
            elif content_type == "text/plain" or not email_message.is_multipart():
                body_text += body

        return body_text, body_html

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
