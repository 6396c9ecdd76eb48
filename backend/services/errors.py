"""
Erreurs métier levées par les services, converties en réponse HTTP
{"detail": message} par le gestionnaire d'exceptions de l'application.
"""


class ServiceError(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(ServiceError):
    status_code = 404


class ForbiddenError(ServiceError):
    status_code = 403
