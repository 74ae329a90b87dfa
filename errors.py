"""
Order error kinds. Each carries the HTTP status it maps to.
"""


class OrderError(Exception):
    status_code = 500
    kind = "OrderError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DuplicateOrder(OrderError):
    status_code = 400
    kind = "DuplicateOrder"

    def __init__(self, message: str = "Order Already Placed"):
        super().__init__(message)


class NotFound(OrderError):
    status_code = 404
    kind = "NotFound"

    def __init__(self, message: str = "Order Not Found"):
        super().__init__(message)


class AlreadyDelivered(OrderError):
    status_code = 400
    kind = "AlreadyDelivered"

    def __init__(self, message: str = "Already Delivered"):
        super().__init__(message)
