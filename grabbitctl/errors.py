from typing import Optional


class GrabbitError(Exception):
    """Base class for everything grabbitctl raises on purpose."""


class ConfigError(GrabbitError):
    """Missing or unreadable file, or a required key is absent."""


class HostConnectionError(GrabbitError, ConnectionError):
    def __init__(self, message: str, url: str):
        super().__init__(message)
        self.url = url


class ParseError(GrabbitError, ValueError):
    def __init__(self, message: str, text: Optional[str] = None):
        super().__init__(message)
        self.text = text


class CacheFormatError(ParseError):
    def __init__(self, message: str, path: str, line_no: int, line: str):
        super().__init__(f"{path}:{line_no}: {message}: {line!r}", line)
        self.path = path
        self.line_no = line_no


class CredentialsNotFoundError(GrabbitError, LookupError):
    def __init__(self, base_uri: str):
        super().__init__(f"Could not find credentials for {base_uri}")
        self.base_uri = base_uri
