class CrowdfundingError(Exception):
    """Base class for errors raised by the crowdfunding core."""
    http_status = 500

    def to_response(self):
        return {"error": {"type": type(self).__name__, "message": str(self)}}


class StorageError(CrowdfundingError):
    """A collection file could not be read or written."""
    http_status = 503

    def __init__(self, filename, cause):
        super().__init__(f"{filename}: {cause}")
        self.filename = filename
        self.cause = cause


class RecordNotFoundError(CrowdfundingError):
    http_status = 404

    def __init__(self, kind, key):
        super().__init__(f"{kind} '{key}' not found")
        self.kind = kind
        self.key = key


class DuplicateRecordError(CrowdfundingError):
    http_status = 409

    def __init__(self, kind, key):
        super().__init__(f"{kind} '{key}' already exists")
        self.kind = kind
        self.key = key


class MalformedRecordError(CrowdfundingError):
    """A persisted row could not be turned back into an entity."""
    http_status = 500

    def __init__(self, reason, filename=None, line=None):
        where = f"{filename}:{line}: " if filename else ""
        super().__init__(f"{where}{reason}")
        self.reason = reason
        self.filename = filename
        self.line = line
