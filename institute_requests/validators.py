import re


def normalize_phone(raw: str) -> str:
    """Digits only, with a leading +91 country code dropped."""
    digits = re.sub(r"\D", "", raw)
    if digits.startswith("91") and len(digits) == 12:
        digits = digits[2:]
    return digits


def is_valid_phone(raw: str) -> bool:
    digits = normalize_phone(raw)

    # Indian mobile or landline (with STD)
    if len(digits) not in (10, 11):
        return False

    # 10-digit mobiles start with 6-9, 11-digit landlines with 0
    if len(digits) == 10 and digits[0] not in "6789":
        return False
    if len(digits) == 11 and digits[0] != "0":
        return False

    # Reject obvious junk
    if digits.startswith("000"):
        return False
    if digits == digits[0] * len(digits):
        return False

    return True
