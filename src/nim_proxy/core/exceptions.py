"""
Exceptions personnalisées pour NIM Proxy.
"""


class NimProxyError(Exception):
    """Exception de base pour toutes les erreurs du proxy."""

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code or "unknown_error"
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"[{self.code}] {self.message} - Détails: {self.details}"
        return f"[{self.code}] {self.message}"


class ConfigurationError(NimProxyError):
    """Erreur de configuration (fichier manquant, clé API absente)."""

    def __init__(self, message: str, config_key: str = None):
        super().__init__(
            message=message,
            code="config_error",
            details={"key": config_key} if config_key else {}
        )
        self.config_key = config_key


class InvalidRequestError(NimProxyError):
    """Requête client invalide (corps, messages, modèle)."""

    def __init__(self, message: str, param: str = None):
        super().__init__(
            message=message,
            code="invalid_request_error",
            details={"param": param} if param else {}
        )
        self.status_code = 400


class UpstreamError(NimProxyError):
    """Échec de l'appel à l'API NIM (réseau, timeout, statut non-2xx)."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(
            message=message,
            code="upstream_error",
            details={"status_code": status_code}
        )
        self.status_code = status_code


class StreamingError(NimProxyError):
    """Erreur lors du streaming de réponse provider."""

    def __init__(
        self,
        message: str,
        error_type: str = None,
        chunks_received: int = 0,
    ):
        super().__init__(
            message=message,
            code="streaming_error",
            details={
                "error_type": error_type,
                "chunks_received": chunks_received,
            }
        )
        self.error_type = error_type
        self.chunks_received = chunks_received
