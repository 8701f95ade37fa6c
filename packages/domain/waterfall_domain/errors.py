"""Error types raised by the waterfall and cascade calculations."""


class InvalidInputError(ValueError):
    """Raised when caller-supplied input cannot be calculated.

    Covers malformed waterfall configurations (duplicate tier ids or orders,
    missing residual tier), negative amounts, sibling ownership above 100%
    and malformed fund hierarchies. Never transient; callers should surface
    the message as a validation error rather than retry.
    """
    pass
