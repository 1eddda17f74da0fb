from datetime import date
from typing import Optional

from .clock import DateLike, parse_date, today as clock_today


def calculate_age(birth_date: DateLike, today: Optional[date] = None) -> int:
    """
    Age in full years. One year is subtracted while this year's birthday
    is still ahead. Malformed date strings raise ValueError.
    """
    birth = parse_date(birth_date)
    ref = today or clock_today()

    age = ref.year - birth.year
    if (ref.month, ref.day) < (birth.month, birth.day):
        age -= 1
    return age


def age_group_label(birth_date: DateLike, today: Optional[date] = None) -> str:
    age = calculate_age(birth_date, today)

    if age < 12:
        return "Children (under 12)"
    if age < 14:
        return "D-Youth (12-13)"
    if age < 16:
        return "C-Youth (14-15)"
    if age < 18:
        return "B-Youth (16-17)"
    if age < 20:
        return "A-Youth (18-19)"
    return "Adults (20+)"
