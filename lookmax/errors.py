class ApiError(Exception):
    """Ожидаемая ошибка запроса: текст уходит клиенту как есть."""

    def __init__(self, code: str, message: str, status: int = 400):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
