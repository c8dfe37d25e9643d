"""Валидаторы анкетных данных."""
import re
from typing import Dict, Optional, Tuple

from kyc_bot.config.settings import CountryConfig

PHONE_RE = re.compile(r"^\+?[0-9]{9,15}$")

NAME_MIN, NAME_MAX = 2, 50
GOV_ID_MIN, GOV_ID_MAX = 5, 50


async def validate_name(name: Optional[str], label: str = "name") -> tuple[bool, str]:
    """Имя или фамилия: от 2 до 50 символов."""
    value = (name or "").strip()
    if len(value) < NAME_MIN or len(value) > NAME_MAX:
        return False, f"Invalid {label}. Please enter a {label} between {NAME_MIN} and {NAME_MAX} characters."
    return True, value


async def validate_phone(phone: Optional[str]) -> tuple[bool, str]:
    """Международный формат: необязательный '+' и 9-15 цифр."""
    value = (phone or "").strip().replace(" ", "")
    if not PHONE_RE.match(value):
        return False, "The phone number you shared has an invalid format. Please contact support."
    return True, value


async def validate_government_id(gov_id: Optional[str]) -> tuple[bool, str]:
    value = (gov_id or "").strip()
    if len(value) < GOV_ID_MIN or len(value) > GOV_ID_MAX:
        return False, (
            f"Invalid ID format. The ID must be between {GOV_ID_MIN} and {GOV_ID_MAX} characters. "
            "Please reply with your Government ID / National ID Number."
        )
    return True, value


def match_country(
    choice: Optional[str], countries: Dict[str, CountryConfig]
) -> Optional[Tuple[str, CountryConfig]]:
    """Ищет страну по названию кнопки или ISO-коду без учёта регистра."""
    value = (choice or "").strip().casefold()
    if not value:
        return None
    for code, conf in countries.items():
        if value == code.casefold() or value == conf.title.casefold():
            return code, conf
    return None
