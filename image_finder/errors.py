class ImageFinderError(Exception):
    pass


class DepthLimitExceeded(ImageFinderError):
    """Recursion over the state graph went deeper than the sanity bound."""

    def __init__(self, depth: int, limit: int) -> None:
        super().__init__(f"Depth {depth} exceeds the limit of {limit}.")
        self.depth = depth
        self.limit = limit


class CollaboratorFailure(ImageFinderError):
    """Screen capture, input injection or the global hook is unavailable."""
