"""Exceptions raised by the .msg property codec."""


class MsgCodecError(Exception):
    """
    Base exception class for msgcodec.
    """

    pass


class FormatViolation(MsgCodecError, ValueError):
    """
    Raised when bytes read from a stream do not follow the documented
    layout: truncated records, out of range indexes, unknown kinds,
    bad compression headers or CRC mismatches.

    Decoding is aborted as a whole; no partial result is returned.
    """

    pass


class UnsupportedType(MsgCodecError, NotImplementedError):
    """
    Raised for property types that are recognised but not encoded,
    such as PT_ACTIONS, PT_SRESTRICT, PT_SVREID, PT_OBJECT and the
    multi-valued types on the write path.
    """

    pass


class InvalidArgument(MsgCodecError, ValueError):
    """
    Raised when a value does not fit the declared property type, or a
    fixed-size field gets a value of the wrong length.

    The owning property set is left untouched, so the caller may retry
    with a corrected value.
    """

    pass
