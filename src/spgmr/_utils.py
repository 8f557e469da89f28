"""Validators, converters and small helpers shared across spgmr."""

from typing import Any, Iterable, Optional, Type, Union
from warnings import warn

import numpy as np
from attrs import fields

PrecisionDType = Union[Type[np.float32], Type[np.float64]]
ALLOWED_PRECISIONS = {np.dtype(np.float32), np.dtype(np.float64)}


def in_attr(name, attrs_class_instance):
    """Checks if a name is in the attributes of a class instance."""
    field_names = {field.name for field in
                   fields(attrs_class_instance.__class__)}
    return name in field_names or ("_" + name) in field_names


def get_readonly_view(array):
    view = array.view()
    view.flags.writeable = False
    return view


def precision_converter(value: Any) -> PrecisionDType:
    """Return the numpy scalar type for ``value``.

    Parameters
    ----------
    value
        Anything :func:`numpy.dtype` understands.

    Returns
    -------
    type
        ``np.float32`` or ``np.float64`` (unvalidated for other types).
    """
    try:
        return np.dtype(value).type
    except TypeError:
        return value


def precision_validator(instance, attribute, value):
    """Ensure ``value`` is one of the supported floating point types."""
    try:
        dtype = np.dtype(value)
    except TypeError:
        raise ValueError(
            f"{attribute.name} must be np.float32 or np.float64, "
            f"got {value!r}"
        )
    if dtype not in ALLOWED_PRECISIONS:
        raise ValueError(
            f"{attribute.name} must be np.float32 or np.float64, "
            f"got {dtype}"
        )


def _check_type(attribute, value, dtype):
    if dtype is int:
        ok = isinstance(value, (int, np.integer)) and not isinstance(
            value, bool
        )
    elif dtype is float:
        ok = isinstance(value, (int, float, np.integer, np.floating)) \
            and not isinstance(value, bool)
    else:
        ok = isinstance(value, dtype)
    if not ok:
        raise TypeError(
            f"{attribute.name} must be of type {dtype.__name__}, "
            f"got {type(value).__name__}"
        )


def getype_validator(dtype, minimum):
    """Return an attrs validator requiring ``value >= minimum``."""

    def _validator(instance, attribute, value):
        if value is None:
            return
        _check_type(attribute, value, dtype)
        if value < minimum:
            raise ValueError(
                f"{attribute.name} must be >= {minimum}, got {value}"
            )

    return _validator


def warn_unrecognized(keys: Iterable[str], owner: str) -> None:
    """Emit a single ``UserWarning`` naming unrecognised settings."""
    keys = sorted(keys)
    if keys:
        warn(
            f"The following settings were not recognised by {owner} and "
            f"were ignored: {', '.join(keys)}",
            UserWarning,
        )


def merge_updates(
    updates_dict: Optional[dict] = None, **kwargs
) -> dict:
    """Merge an optional updates dictionary with keyword overrides."""
    all_updates = {}
    if updates_dict:
        all_updates.update(updates_dict)
    all_updates.update(kwargs)
    return all_updates
