class QuickRDPError(Exception):
    kind = "error"

    def __init__(self, message: str, kind: str | None = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class VaultError(QuickRDPError):
    ACCESS_DENIED = "access_denied"
    UNAVAILABLE = "unavailable"
    CORRUPT = "corrupt"

    kind = UNAVAILABLE


class RegistryError(QuickRDPError):
    DUPLICATE_HOST = "duplicate_host"
    INVALID_HOST = "invalid_host"
    IO = "io"

    kind = IO


class DuplicateHost(RegistryError):
    kind = RegistryError.DUPLICATE_HOST

    def __init__(self, hostname: str):
        super().__init__(f"Host {hostname} already exists")
        self.hostname = hostname


class ScanError(QuickRDPError):
    BIND_FAILED = "bind_failed"
    NETWORK_UNREACHABLE = "network_unreachable"
    PARTIAL_PAGE_FAILURE = "partial_page_failure"
    INVALID_INPUT = "invalid_input"

    kind = PARTIAL_PAGE_FAILURE

    def __init__(self, message: str, kind: str | None = None, retrieved: int = 0):
        super().__init__(message, kind)
        self.retrieved = retrieved


class LaunchError(QuickRDPError):
    NO_CREDENTIALS = "no_credentials"
    DESCRIPTOR_WRITE_FAILED = "descriptor_write_failed"
    CLIENT_SPAWN_FAILED = "client_spawn_failed"
    PLATFORM_CREDENTIAL_FAILED = "platform_credential_failed"
    CORRUPT_CREDENTIALS = "corrupt_credentials"

    kind = CLIENT_SPAWN_FAILED


class ResetError(QuickRDPError):
    kind = "reset_failed"
