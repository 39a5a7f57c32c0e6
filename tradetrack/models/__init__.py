from tradetrack.models.record import Record  # noqa: F401
