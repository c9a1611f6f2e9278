"""
Telegram Alerts
===============

Telegram Bot API client for the alert bot.

Used for:
- New post notifications (photo with caption, text fallback)
- Replies to commands (text, optional inline keyboard)
- Callback query acknowledgements and update polling
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import requests

from .. import config

logger = logging.getLogger(__name__)


@dataclass
class AlertConfig:
    """Configuration for alert sending."""
    bot_token: str
    api_url: str = config.TELEGRAM_API_URL
    dry_run: bool = False
    max_message_length: int = config.MAX_MESSAGE_LENGTH
    max_caption_length: int = config.MAX_CAPTION_LENGTH
    min_message_interval: float = config.MIN_MESSAGE_INTERVAL_SECONDS
    request_timeout: float = config.TELEGRAM_REQUEST_TIMEOUT


class TelegramAlerts:
    """
    Telegram sender for the alert bot.

    Acts as the scheduler's notification sink (`send`) and as the command
    handlers' reply channel. Sending never raises: failures are logged and
    reported as a None message id.
    """

    def __init__(self, config: AlertConfig):
        """
        Initialize Telegram alerts.

        Args:
            config: AlertConfig with bot token and settings
        """
        self.config = config
        self._validate()

        self._last_message_time: float = 0
        self._interval_lock = threading.Lock()

    @classmethod
    def from_env(cls, dry_run: bool = False) -> "TelegramAlerts":
        """Create TelegramAlerts from TELEGRAM_BOT_TOKEN / TELEGRAM_API_URL."""
        return cls(AlertConfig(
            bot_token=config.TELEGRAM_BOT_TOKEN,
            api_url=config.TELEGRAM_API_URL,
            dry_run=dry_run,
        ))

    def _validate(self):
        """Validate configuration."""
        if not self.config.dry_run and not self.config.bot_token:
            raise ValueError("TELEGRAM_BOT_TOKEN is required (or use --dry-run)")

    def _enforce_message_interval(self):
        """Enforce minimum interval between messages."""
        with self._interval_lock:
            elapsed = time.time() - self._last_message_time
            if elapsed < self.config.min_message_interval:
                time.sleep(self.config.min_message_interval - elapsed)
            self._last_message_time = time.time()

    @staticmethod
    def _truncate(text: str, limit: int) -> str:
        """Truncate text to a Telegram character limit."""
        if len(text) > limit:
            return text[:limit - 20] + "\n... (truncated)"
        return text

    def _request(self, method: str, payload: Dict[str, Any], timeout: Optional[float] = None) -> Tuple[Optional[Any], Optional[int]]:
        """
        Call a Bot API method and report why it failed.

        Returns:
            (result, None) on success; (None, status) when Telegram answered
            with an error status; (None, None) when the outcome is unknown
            (timeout, network error, unreadable body)
        """
        url = f"{self.config.api_url}/bot{self.config.bot_token}/{method}"
        timeout = timeout if timeout is not None else self.config.request_timeout

        try:
            response = requests.post(url, json=payload, timeout=timeout)
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.Timeout:
            logger.error(f"Telegram {method} timed out")
            return None, None
        except requests.exceptions.HTTPError as e:
            # Log status code without exposing token in URL
            status_code = e.response.status_code if e.response is not None else None
            logger.error(f"Telegram {method} HTTP error: {status_code or 'unknown'}")
            if status_code == 429:
                logger.warning("Telegram rate limit hit (429)")
            return None, status_code
        except requests.exceptions.ConnectionError:
            logger.error(f"Telegram {method} connection error - network issue")
            return None, None
        except requests.exceptions.RequestException:
            # Don't log exception details which may contain URL/token
            logger.error(f"Telegram {method} request failed")
            return None, None
        except ValueError:
            logger.error(f"Telegram {method} returned a non-JSON body")
            return None, None

        if not isinstance(body, dict) or not body.get("ok"):
            description = body.get("description") if isinstance(body, dict) else None
            logger.error(f"Telegram {method} rejected: {description}")
            error_code = body.get("error_code") if isinstance(body, dict) else None
            return None, error_code if isinstance(error_code, int) else None

        return body.get("result"), None

    def call(self, method: str, payload: Dict[str, Any], timeout: Optional[float] = None) -> Optional[Any]:
        """
        Call a Bot API method.

        Args:
            method: Bot API method name (e.g. "sendMessage")
            payload: JSON parameters
            timeout: HTTP timeout (default from config)

        Returns:
            The `result` field on success, None otherwise
        """
        result, _ = self._request(method, payload, timeout)
        return result

    def _deliver(self, method: str, payload: Dict[str, Any]) -> Tuple[Optional[int], Optional[int]]:
        """Send one message; returns (message_id, error status)."""
        if self.config.dry_run:
            logger.info(f"[DRY RUN] Would call {method} for chat {payload.get('chat_id')}")
            print(f"\n{'='*60}")
            print(f"[DRY RUN] Telegram {method} -> {payload.get('chat_id')}:")
            print("=" * 60)
            if payload.get("photo"):
                print(f"[photo] {payload['photo']}")
            print(payload.get("text") or payload.get("caption") or "")
            print("=" * 60 + "\n")
            return 999999, None

        self._enforce_message_interval()
        result, status = self._request(method, payload)
        if not isinstance(result, dict):
            return None, status
        return result.get("message_id"), None

    def _photo_payload(self, chat_id: int, photo: str, caption: str) -> Dict[str, Any]:
        return {
            "chat_id": chat_id,
            "photo": photo,
            "caption": self._truncate(caption, self.config.max_caption_length),
        }

    # -------------------------------------------------------------------------
    # Public Methods
    # -------------------------------------------------------------------------

    def send_message(self, chat_id: int, text: str, reply_markup: Optional[dict] = None) -> Optional[int]:
        """
        Send a text message.

        Returns:
            message_id if successful, None otherwise
        """
        payload = {
            "chat_id": chat_id,
            "text": self._truncate(text, self.config.max_message_length),
            "disable_web_page_preview": True,
        }
        if reply_markup:
            payload["reply_markup"] = reply_markup
        message_id, _ = self._deliver("sendMessage", payload)
        return message_id

    def send_photo(self, chat_id: int, photo: str, caption: str) -> Optional[int]:
        """Send a photo by URL with a caption."""
        message_id, _ = self._deliver("sendPhoto", self._photo_payload(chat_id, photo, caption))
        return message_id

    def send(self, destination: int, image_ref: Optional[str], text: str) -> Optional[int]:
        """
        Deliver a notification.

        Sends the image with `text` as caption. Falls back to plain text when
        there is no image or Telegram rejects it with 400 (dead image URL).
        A photo whose outcome is unknown (timeout, network error) is not
        resent as text.

        Returns:
            message_id if delivered, None otherwise
        """
        if image_ref:
            message_id, status = self._deliver("sendPhoto", self._photo_payload(destination, image_ref, text))
            if message_id is not None:
                return message_id
            if status != 400:
                return None
            logger.warning(f"Photo rejected for {destination}, falling back to text")
        return self.send_message(destination, text)

    def answer_callback_query(self, callback_query_id: str) -> bool:
        if self.config.dry_run:
            return True
        return self.call("answerCallbackQuery", {"callback_query_id": callback_query_id}) is not None

    def get_updates(self, offset: Optional[int] = None, timeout: int = config.TELEGRAM_POLL_TIMEOUT) -> List[dict]:
        """
        Long-poll for updates.

        Returns:
            List of update dicts (empty on timeout or failure)
        """
        payload = {"timeout": timeout, "allowed_updates": ["message", "callback_query"]}
        if offset is not None:
            payload["offset"] = offset
        result = self.call("getUpdates", payload, timeout=timeout + self.config.request_timeout)
        return result if isinstance(result, list) else []


def send_test_alert(chat_id: int, bot_token: Optional[str] = None, dry_run: bool = False) -> bool:
    """
    Send a test message to verify Telegram configuration.

    Args:
        chat_id: Chat to send to
        bot_token: Telegram bot token (default: from env)
        dry_run: If True, print message instead of sending

    Returns:
        True if successful
    """
    alerts = TelegramAlerts(AlertConfig(
        bot_token=bot_token if bot_token is not None else config.TELEGRAM_BOT_TOKEN,
        dry_run=dry_run,
    ))
    return alerts.send_message(chat_id, "Test alert - Divar alert bot configuration verified.") is not None
