"""Free-text input sanitization."""


def sanitize_user_input(text: str, max_length: int = 10000) -> str:
    """
    Strip null bytes and control characters from user-supplied text.

    Args:
        text: Input text to sanitize
        max_length: Maximum allowed length; longer input is truncated

    Returns:
        Sanitized text with surrounding whitespace removed
    """
    if not text:
        return ""

    if len(text) > max_length:
        text = text[:max_length]

    text = text.replace("\x00", "")
    text = "".join(char for char in text if ord(char) >= 32 or char in "\n\r\t")

    return text.strip()
