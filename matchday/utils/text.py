"""Text helpers shared by lookups and generated content."""

import unicodedata


def slugify(text: str) -> str:
    """Lowercase ASCII slug: accents stripped, runs of other characters become one hyphen."""
    # NFKD leaves Vietnamese đ/Đ intact
    text = text.replace("đ", "d").replace("Đ", "D")
    text = unicodedata.normalize("NFKD", text)
    text = "".join(c for c in text if not unicodedata.combining(c))
    text = text.lower().strip()
    text = "".join(c if c.isascii() and c.isalnum() else "-" for c in text)
    while "--" in text:
        text = text.replace("--", "-")
    return text.strip("-")
