"""
Field lookup on Apple receipts.

A field is read from the receipt itself when Apple sent it there, and from
the receipt's in_app transactions otherwise.
"""
from typing import Any, Optional, Set, Union

from pydantic import BaseModel

from app.payments.models import Receipt, ReceiptField


FieldName = Union[ReceiptField, str]


def _has_field(record: BaseModel, name: str) -> bool:
    # Keys sent by Apple, including explicit nulls
    return name in record.model_fields_set or name in (record.model_extra or {})


def _read_field(record: BaseModel, name: str) -> Any:
    if name in type(record).model_fields:
        return getattr(record, name)
    return (record.model_extra or {}).get(name)


def get_field(receipt: Optional[Receipt], name: FieldName) -> Any:
    """
    Read a field from a receipt.

    Args:
        receipt: Receipt decoded by Apple
        name: Field to read

    Returns:
        The receipt's own value if present, else the first in_app
        transaction's value if present, else None
    """
    if receipt is None:
        return None

    name = ReceiptField(name).value

    if _has_field(receipt, name):
        return _read_field(receipt, name)

    if receipt.in_app:
        first = receipt.in_app[0]
        if first is not None and _has_field(first, name):
            return _read_field(first, name)

    return None


def get_field_value_set(receipt: Optional[Receipt], name: FieldName) -> Set[str]:
    """
    Collect every distinct value of a field on a receipt.

    Subscription receipts can hold renewals of several products, so the
    whole in_app list is scanned when the receipt has no value of its own.
    Missing and non-string values, and null transactions, are skipped.
    """
    if receipt is None:
        return set()

    name = ReceiptField(name).value

    if _has_field(receipt, name):
        value = _read_field(receipt, name)
        return {value} if isinstance(value, str) else set()

    values = set()
    for transaction in receipt.in_app or []:
        if transaction is None:
            continue
        value = _read_field(transaction, name)
        if isinstance(value, str):
            values.add(value)

    return values
