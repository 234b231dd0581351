class CapsulizerError(Exception):
    pass


class RenderError(CapsulizerError):
    """A single page could not be rendered; traversal continues."""

    TIMEOUT = "timeout"
    NAVIGATION = "navigation"

    def __init__(self, url, kind=NAVIGATION, message=""):
        super().__init__(f"{kind} error on {url}: {message}" if message else f"{kind} error on {url}")
        self.url = url
        self.kind = kind


class RenderSetupError(CapsulizerError):
    """The render context could not be created; fatal for the job."""


class StoreError(CapsulizerError):
    """Persistence failed; fatal for the job."""
