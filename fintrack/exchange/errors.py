"""Errors raised by the import/export adapters."""


class ExchangeFormatError(ValueError):
    """An import file is not in a shape this app can read at all."""
    pass
