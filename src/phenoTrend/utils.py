import re


def sanitize_filename(filename):
    """
    Sanitizes a string to be a valid filename.

    Spaces become underscores and anything that is not a word character,
    a dash or a dot is removed.
    """
    s = str(filename).strip().replace(" ", "_")
    return re.sub(r"(?u)[^-\w.]", "", s)


def as_list(values, name, allow_empty=False):
    """
    Normalizes a scalar or an iterable of query values to a list.

    Raises:
        ValueError: If the result is empty and `allow_empty` is False.
    """
    if values is None:
        values = []
    elif isinstance(values, (str, int)):
        values = [values]
    else:
        values = list(values)
    if not values and not allow_empty:
        raise ValueError(f"`{name}` must contain at least one value.")
    return values
