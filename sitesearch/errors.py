class SiteSearchError(Exception):
    """
    Base of the errors the core reports back to its caller as a rejection.
    """


class InvalidRequestError(SiteSearchError):
    """
    Malformed or empty query or URL, unknown site. Never worth retrying.
    """


class NotReadyError(SiteSearchError):
    """
    The index is not in a state to serve the request yet: a site is still
    being indexed, nothing is indexed at all, or the run state forbids the
    command.
    """
