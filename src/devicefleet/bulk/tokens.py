"""Index to access-token mapping for provisioned devices.

Every device in a fleet is identified by its position in the configured index
range. The position is rendered as a fixed-width, zero-padded decimal string
which doubles as the device's access token and as the suffix of its name.
"""

TOKEN_WIDTH = 20
MAX_INDEX = 10**TOKEN_WIDTH - 1

DEFAULT_NAME_PREFIX = "Device "


def encode_token(index: int) -> str:
    """Encode a device index as a fixed-width token.

    Args:
        index: Non-negative device index

    Returns:
        Zero-padded decimal string of exactly TOKEN_WIDTH characters

    Raises:
        ValueError: If the index cannot be represented without truncation
    """
    if isinstance(index, bool) or not isinstance(index, int):
        raise ValueError(f"Device index must be an integer, got {index!r}")
    if index < 0 or index > MAX_INDEX:
        raise ValueError(f"Device index {index} is outside the token domain 0..{MAX_INDEX}")
    return f"{index:0{TOKEN_WIDTH}d}"


def decode_token(token: str) -> int:
    """Decode a token produced by encode_token back into its index.

    Raises:
        ValueError: If the token is not exactly TOKEN_WIDTH decimal digits
    """
    if len(token) != TOKEN_WIDTH or not (token.isascii() and token.isdigit()):
        raise ValueError(f"Invalid device token: {token!r}")
    return int(token)


def device_name(index: int, prefix: str = DEFAULT_NAME_PREFIX) -> str:
    """Build the display name for the device at the given index."""
    return f"{prefix}{encode_token(index)}"
