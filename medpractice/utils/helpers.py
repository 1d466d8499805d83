# /medpractice/utils/helpers.py
import re
import secrets
import string
from datetime import date, datetime

_NON_DIGITS = re.compile(r'\D')
_EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


class ValidationError(ValueError):
    """Raised by model helpers when submitted data is not acceptable."""


def generate_unique_code(length=8):
    """Uppercase alphanumeric code, used for verification codes and session ids."""
    alphabet = string.ascii_uppercase + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def only_digits(value):
    if not value:
        return ''
    return _NON_DIGITS.sub('', value)


def has_non_digits(value):
    return bool(value) and _NON_DIGITS.search(value) is not None


def clean_cpf(cpf):
    return only_digits(cpf)


def format_cpf(cpf):
    digits = clean_cpf(cpf)
    if len(digits) != 11:
        return digits
    return f'{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}'


def validate_cpf(cpf):
    """Returns the digits-only CPF or raises ValidationError."""
    digits = clean_cpf(cpf)
    if len(digits) != 11:
        raise ValidationError('CPF must contain 11 digits')
    return digits


def is_valid_email(email):
    return bool(email) and _EMAIL_RE.match(email) is not None


def parse_date(value):
    """Accepts a date, datetime or ISO string and returns a date."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value)).date()
    except ValueError:
        raise ValidationError(f'Invalid date: {value}')


def parse_datetime(value):
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        raise ValidationError(f'Invalid datetime: {value}')


def calculate_age(birth_date, today=None):
    """Exact age in years, used on patient records shown to clinicians."""
    today = today or date.today()
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def isoformat(value):
    return value.isoformat() if value else None


def paginate(query, page, per_page, max_per_page=100):
    """Applies limit/offset and returns (items, pagination dict)."""
    page = max(page or 1, 1)
    per_page = min(max(per_page or 10, 1), max_per_page)
    total = query.order_by(None).count()
    items = query.limit(per_page).offset((page - 1) * per_page).all()
    return items, {
        'current_page': page,
        'per_page': per_page,
        'total': total,
        'total_pages': (total + per_page - 1) // per_page,
    }
