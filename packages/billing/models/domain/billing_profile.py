"""
Billing profile: who the payment provider bills for an organization.

AbacatePay needs a customer (name, cellphone, email and a CPF or CNPJ tax
id) before it opens a checkout. Phone numbers and tax ids are stored as
digits only.
"""

import re
from typing import Optional
from pydantic import BaseModel

from common.core.exceptions import ValidationError

MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 200

_NON_DIGITS = re.compile(r"\D")


class BillingProfile(BaseModel):
    name: str
    cellphone: str
    tax_id: str
    email: str


def only_digits(value: str) -> str:
    return _NON_DIGITS.sub("", value or "")


def _all_digits_equal(value: str) -> bool:
    return len(set(value)) == 1


def is_valid_brazil_phone(value: str) -> bool:
    """Area code plus an 8 digit landline or 9 digit mobile number."""
    if len(value) not in (10, 11) or not value.isdigit() or _all_digits_equal(value):
        return False
    if int(value[:2]) < 11:
        return False
    first_local_digit = int(value[2])
    if len(value) == 11:
        return first_local_digit == 9
    return 2 <= first_local_digit <= 5


def _cpf_check_digit(digits: list[int], length: int) -> int:
    total = sum(digit * (length + 1 - index) for index, digit in enumerate(digits[:length]))
    check = (total * 10) % 11
    return 0 if check == 10 else check


def is_valid_cpf(value: str) -> bool:
    if len(value) != 11 or not value.isdigit() or _all_digits_equal(value):
        return False
    digits = [int(char) for char in value]
    return (
        _cpf_check_digit(digits, 9) == digits[9]
        and _cpf_check_digit(digits, 10) == digits[10]
    )


_CNPJ_FIRST_WEIGHTS = (5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)
_CNPJ_SECOND_WEIGHTS = (6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)


def _cnpj_check_digit(digits: list[int], weights: tuple[int, ...]) -> int:
    remainder = sum(digit * weight for digit, weight in zip(digits, weights)) % 11
    return 0 if remainder < 2 else 11 - remainder


def is_valid_cnpj(value: str) -> bool:
    if len(value) != 14 or not value.isdigit() or _all_digits_equal(value):
        return False
    digits = [int(char) for char in value]
    return (
        _cnpj_check_digit(digits, _CNPJ_FIRST_WEIGHTS) == digits[12]
        and _cnpj_check_digit(digits, _CNPJ_SECOND_WEIGHTS) == digits[13]
    )


def is_valid_tax_id(value: str) -> bool:
    """CPF (11 digits) or CNPJ (14 digits) with valid check digits."""
    if len(value) == 11:
        return is_valid_cpf(value)
    if len(value) == 14:
        return is_valid_cnpj(value)
    return False


def normalize_billing_profile(
    name: str, cellphone: str, tax_id: str, email: Optional[str]
) -> BillingProfile:
    """
    Validate and normalize a billing profile.

    Raises:
        ValidationError: naming the first invalid field.
    """
    normalized_name = " ".join((name or "").split())
    if not MIN_NAME_LENGTH <= len(normalized_name) <= MAX_NAME_LENGTH:
        raise ValidationError(
            f"Billing name must be between {MIN_NAME_LENGTH} and {MAX_NAME_LENGTH} characters"
        )

    normalized_cellphone = only_digits(cellphone)
    if not is_valid_brazil_phone(normalized_cellphone):
        raise ValidationError("Invalid billing cellphone")

    normalized_tax_id = only_digits(tax_id)
    if not is_valid_tax_id(normalized_tax_id):
        raise ValidationError("Invalid billing tax id (CPF or CNPJ)")

    normalized_email = (email or "").strip().lower()
    local, _, domain = normalized_email.partition("@")
    if not local or "." not in domain:
        raise ValidationError("Invalid billing email")

    return BillingProfile(
        name=normalized_name,
        cellphone=normalized_cellphone,
        tax_id=normalized_tax_id,
        email=normalized_email,
    )
