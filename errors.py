class FeedError(Exception):
    """Base class for failures in the notification feed and attachment gallery."""


class FetchError(FeedError):
    """A notification page could not be loaded."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class MutationError(FeedError):
    """A read, mark-all or delete call was rejected or never arrived."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class LinkError(FeedError):
    def __init__(self, url):
        super().__init__(f"Invalid notification link: {url!r}")
        self.url = url


class ParseError(FeedError):
    def __init__(self, attachment_id):
        super().__init__(f"Cannot read a timestamp from attachment id {attachment_id!r}")
        self.attachment_id = attachment_id
