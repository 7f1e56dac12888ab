"""
Extraction of invoice range data from tax authority authorization text.

The authorization document is a PDF; turning it into text happens
elsewhere.  This module only reads the fields out of that text.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Tuple

RTN_RE = re.compile(r'RTN:\s*(\d{14})', re.I)
LEGAL_NAME_RE = re.compile(r'Raz[oó]n o Denominaci[oó]n Social:\s*([^\n\r]+)', re.I)
TRADE_NAME_RE = re.compile(r'Nombre comercial:\s*([^\n\r]+)', re.I)
CAI_RE = re.compile(
    r'([A-F0-9-]{6}-[A-F0-9-]{6}-[A-F0-9-]{6}-[A-F0-9-]{6}-[A-F0-9-]{6}-[A-F0-9-]{2})', re.I
)
DATE_RE = re.compile(r'(\d{2}/\d{2}/\d{4})')
EMISSION_POINT_RE = re.compile(r'(\d{3})\s*-\s*Auto', re.I)
DOCUMENT_NUMBER_RE = re.compile(r'(\d{3}\s*-\s*\d{3}\s*-\s*\d{2}\s*-\s*\d{8})')
QUANTITY_RE = re.compile(r'Cantidad(?: autorizada)?:?\s*(\d+)', re.I)


class AuthorizationParseError(ValueError):
    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__('could not read authorization document, missing: ' + ', '.join(missing))


@dataclass
class ParsedAuthorization:
    authorization_code: str
    taxpayer_rtn: str
    legal_name: str
    deadline: date
    range_start: str
    range_end: str
    trade_name: str = ''
    emission_point: str = ''
    authorized_quantity: Optional[int] = None

    def as_dict(self) -> dict:
        return {
            'authorizationCode': self.authorization_code,
            'taxpayerRtn': self.taxpayer_rtn,
            'legalName': self.legal_name,
            'tradeName': self.trade_name,
            'deadline': self.deadline.isoformat(),
            'emissionPoint': self.emission_point,
            'rangeStart': self.range_start,
            'rangeEnd': self.range_end,
            'authorizedQuantity': self.authorized_quantity,
        }


def split_document_number(value) -> Tuple[str, int]:
    """Split ``'000-001-01-00000042'`` into ``('000-001-01', 42)``.

    A bare number (int or digit string) has an empty prefix.
    """
    if isinstance(value, int):
        return '', value
    text = re.sub(r'\s+', '', str(value))
    prefix, _, digits = text.rpartition('-')
    if not digits.isdigit():
        raise ValueError(f'invalid document number: {value!r}')
    return prefix, int(digits)


def _first(regex, text: str) -> Optional[str]:
    m = regex.search(text)
    return m.group(1).strip() if m else None


def parse_authorization_text(text: str) -> ParsedAuthorization:
    """Read an authorization document.

    The first date in the text is the issuance deadline, the first and
    second document numbers are the range bounds.  Raises
    :class:`AuthorizationParseError` naming the fields that were not found.
    """
    text = text or ''
    rtn = _first(RTN_RE, text)
    legal_name = _first(LEGAL_NAME_RE, text)
    trade_name = _first(TRADE_NAME_RE, text)
    cai = _first(CAI_RE, text)
    dates = DATE_RE.findall(text)
    emission_point = _first(EMISSION_POINT_RE, text)
    numbers = [re.sub(r'\s+', '', m) for m in DOCUMENT_NUMBER_RE.findall(text)]

    missing = [
        name for name, value in (
            ('taxpayerRtn', rtn),
            ('legalName', legal_name),
            ('authorizationCode', cai),
            ('deadline', dates[0] if dates else None),
            ('emissionPoint', emission_point),
            ('rangeStart', numbers[0] if numbers else None),
            ('rangeEnd', numbers[1] if len(numbers) > 1 else None),
        ) if not value
    ]
    if missing:
        raise AuthorizationParseError(missing)

    try:
        deadline = datetime.strptime(dates[0], '%d/%m/%Y').date()
    except ValueError:
        raise AuthorizationParseError(['deadline'])

    quantity = _first(QUANTITY_RE, text)
    if quantity is None:
        _, start = split_document_number(numbers[0])
        _, end = split_document_number(numbers[1])
        authorized_quantity = end - start + 1
    else:
        authorized_quantity = int(quantity)

    return ParsedAuthorization(
        authorization_code=cai.upper(),
        taxpayer_rtn=rtn,
        legal_name=legal_name,
        trade_name=trade_name or legal_name,
        deadline=deadline,
        emission_point=emission_point.zfill(3),
        range_start=numbers[0],
        range_end=numbers[1],
        authorized_quantity=authorized_quantity,
    )
