"""Error taxonomy shared by the transport, the managers and the tool bodies"""


class SysToolsError(Exception):
    """Base class for every failure the server reports by kind"""
    kind = "error"


class FramingError(SysToolsError):
    """Malformed or truncated protocol message"""
    kind = "framing"


class UnknownToolError(SysToolsError):
    kind = "unknown_tool"

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class NotFoundError(SysToolsError):
    """Unknown background task or process id"""
    kind = "not_found"


class ToolTimeoutError(SysToolsError, TimeoutError):
    kind = "timeout"


class UnsupportedLanguageError(SysToolsError):
    kind = "unsupported_language"


class ExternalToolNotFoundError(SysToolsError):
    kind = "external_tool_not_found"


class QueryError(SysToolsError):
    """Language server answered with an error or could not be queried"""
    kind = "query"


class ProtocolMethodError(SysToolsError):
    kind = "method_not_found"

    def __init__(self, method):
        super().__init__(f"Method not found: {method}")
        self.method = method
