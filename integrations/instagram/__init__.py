"""Instagram Messaging API sender and webhook parsing."""

from integrations.instagram.adapter import InstagramSender, fetch_instagram_username
from integrations.instagram.webhook import normalize_text, parse_instagram_webhook

__all__ = [
    "InstagramSender",
    "fetch_instagram_username",
    "normalize_text",
    "parse_instagram_webhook",
]
