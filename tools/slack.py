import os
import time
from typing import Dict, Any, Optional
from loguru import logger
from slack_sdk.web import WebClient
from slack_sdk.errors import SlackApiError

from graph.state import LeadInfo

MAX_ATTEMPTS = 3
RATE_LIMIT_WAIT = 2.0
RETRY_WAIT = 1.0
RATE_LIMIT_ERRORS = ("rate_limited", "ratelimited")

class SlackConfigError(RuntimeError):
    """Slack token or channel is not configured."""

class NotificationError(RuntimeError):
    """Slack notification failed after all attempts."""

def get_slack_settings() -> Dict[str, Optional[str]]:
    """Read Slack settings from the environment."""
    return {
        "token": os.getenv("SLACK_BOT_TOKEN"),
        "channel": os.getenv("SLACK_CHANNEL_ID"),
    }

class SlackNotifier:
    """Slack integration for telling the team about new complete leads."""

    def __init__(self, token: Optional[str] = None, channel: Optional[str] = None,
                 client: Optional[WebClient] = None, max_attempts: int = MAX_ATTEMPTS):
        self._token = token
        self._channel = channel
        self._client = client
        self.max_attempts = max_attempts

    def _settings(self) -> Dict[str, Optional[str]]:
        settings = get_slack_settings()
        return {
            "token": self._token or settings["token"],
            "channel": self._channel or settings["channel"],
        }

    def _get_client(self, token: str) -> WebClient:
        if self._client is not None:
            return self._client
        # Retries are counted here, not by the SDK
        return WebClient(token=token, retry_handlers=[])

    def notify_team(self, lead: LeadInfo, sheet_url: Optional[str] = None) -> Dict[str, Any]:
        """
        Send a new lead notification to the configured channel.

        Rate-limited responses wait 2s before the next attempt, any other
        failure waits 1s. There is no wait after the last attempt.

        Args:
            lead: Complete, validated lead
            sheet_url: Link for the "View Sheet" button (omitted when None)

        Returns:
            Slack API response

        Raises:
            SlackConfigError: token or channel missing (no attempt is made)
            NotificationError: every attempt failed
        """
        settings = self._settings()
        if not settings["token"] or not settings["channel"]:
            raise SlackConfigError("Slack not configured. Set SLACK_BOT_TOKEN and SLACK_CHANNEL_ID.")

        client = self._get_client(settings["token"])
        message = self._build_lead_message(lead, sheet_url)

        attempts = self.max_attempts
        while True:
            attempts -= 1
            try:
                response = client.chat_postMessage(
                    channel=settings["channel"],
                    text=message["text"],
                    blocks=message["blocks"]
                )
                logger.info(f"Slack notification sent to {settings['channel']}: {response.get('ts')}")
                return response

            except SlackApiError as e:
                error = e.response.get("error") if e.response is not None else None
                if attempts <= 0:
                    raise NotificationError(f"Slack error: {error}") from e
                if error in RATE_LIMIT_ERRORS:
                    logger.warning(f"Slack rate limited, waiting ({attempts} attempts left)")
                    time.sleep(RATE_LIMIT_WAIT)
                else:
                    logger.warning(f"Slack error {error}, retrying ({attempts} attempts left)")
                    time.sleep(RETRY_WAIT)

            except Exception as e:
                if attempts <= 0:
                    raise NotificationError(f"Slack request failed: {e}") from e
                logger.warning(f"Slack request failed: {e}, retrying ({attempts} attempts left)")
                time.sleep(RETRY_WAIT)

    def send_text(self, text: str) -> Dict[str, Any]:
        """Post a plain text message once (used by the Slack smoke test)."""
        settings = self._settings()
        if not settings["token"] or not settings["channel"]:
            raise SlackConfigError("Slack not configured. Set SLACK_BOT_TOKEN and SLACK_CHANNEL_ID.")

        client = self._get_client(settings["token"])
        return client.chat_postMessage(channel=settings["channel"], text=text)

    def _build_lead_message(self, lead: LeadInfo, sheet_url: Optional[str] = None) -> Dict[str, Any]:
        """Build Slack message for lead notification."""
        observed_at = lead["observed_at"].strftime("%Y-%m-%d %H:%M:%S")

        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": "🎯 New Complete Lead"
                }
            },
            {
                "type": "section",
                "fields": [
                    {
                        "type": "mrkdwn",
                        "text": f"*Name:*\n{lead['name']}"
                    },
                    {
                        "type": "mrkdwn",
                        "text": f"*Email:*\n{lead['email']}"
                    },
                    {
                        "type": "mrkdwn",
                        "text": f"*Company:*\n{lead['company']}"
                    },
                    {
                        "type": "mrkdwn",
                        "text": f"*Phone:*\n{lead['phone']}"
                    },
                    {
                        "type": "mrkdwn",
                        "text": f"*Source:*\n{lead['source']}"
                    },
                    {
                        "type": "mrkdwn",
                        "text": f"*Time:*\n{observed_at}"
                    }
                ]
            }
        ]

        if sheet_url:
            blocks.append({
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {
                            "type": "plain_text",
                            "text": "View Sheet"
                        },
                        "url": sheet_url,
                        "style": "primary"
                    }
                ]
            })

        return {"text": f"New Complete Lead: {lead['name']}", "blocks": blocks}

# Global Slack notifier instance
slack_notifier = SlackNotifier()

def notify_team(lead: LeadInfo, sheet_url: Optional[str] = None) -> Dict[str, Any]:
    """Send lead notification using the global Slack notifier."""
    return slack_notifier.notify_team(lead, sheet_url)
