"""
Payload encoding/decoding for Telegram start links.

Telegram only accepts ``[A-Za-z0-9_-]`` in /start payloads, up to 64
characters, so a deep link is carried as unpadded base64url of its UTF-8
bytes.
"""
import base64
import binascii


MAX_PAYLOAD_LENGTH = 64


def encode_link_payload(link: str) -> str:
    """
    Encode a deep link into a Telegram /start payload.

    Args:
        link: Deep link to carry

    Returns:
        URL-safe payload without padding

    Raises:
        ValueError: If link is empty or the payload exceeds 64 characters

    Examples:
        >>> encode_link_payload("app://c?id=1")
        'YXBwOi8vYz9pZD0x'
    """
    if not link:
        raise ValueError("Link cannot be empty")

    encoded = base64.urlsafe_b64encode(link.encode("utf-8")).rstrip(b"=").decode("ascii")

    if len(encoded) > MAX_PAYLOAD_LENGTH:
        raise ValueError(f"Encoded payload exceeds {MAX_PAYLOAD_LENGTH} characters")

    return encoded


def decode_link_payload(payload: str) -> str:
    """
    Decode a Telegram /start payload back to the deep link.

    Raises:
        ValueError: If payload is empty, too long or not valid base64url text
    """
    if not payload:
        raise ValueError("Payload cannot be empty")

    if len(payload) > MAX_PAYLOAD_LENGTH:
        raise ValueError(f"Payload exceeds {MAX_PAYLOAD_LENGTH} characters")

    try:
        padding = (4 - len(payload) % 4) % 4
        padded = payload + "=" * padding
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        return raw.decode("utf-8")
    except (binascii.Error, UnicodeError) as e:
        raise ValueError(f"Invalid payload format: {e}") from e


def generate_start_link(bot_username: str, link: str) -> str:
    """
    Build https://t.me/<bot_username>?start=<payload> for a deep link.
    """
    payload = encode_link_payload(link)
    return f"https://t.me/{bot_username}?start={payload}"
