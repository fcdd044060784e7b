class DispatchError(Exception):
    """Base class for every outcome the dispatch core reports to its callers."""

    code = "dispatch_error"


class InvalidInput(DispatchError):
    code = "invalid_input"


class RequestNotFound(DispatchError):
    code = "request_not_found"


class NoResponderAvailable(DispatchError):
    """No eligible responder in range. A normal outcome, not a system fault."""

    code = "no_responder_available"


class NotAuthorized(DispatchError):
    code = "not_authorized"


class RequestNotPending(DispatchError):
    """The request already left `pending`; the caller lost a race."""

    code = "request_not_pending"


class StoreUnavailable(DispatchError):
    """Storage failed for infrastructure reasons. Safe to retry."""

    code = "store_unavailable"
