from typing import List


def parse_recipients(raw_text: str) -> List[str]:
    """
    One recipient per line. Lines are trimmed and blanks dropped; order and
    duplicates are kept. Address syntax is not checked here, a malformed
    entry fails later when its transfer is submitted.
    """
    if not raw_text:
        return []
    return [line.strip() for line in raw_text.split("\n") if line.strip()]
