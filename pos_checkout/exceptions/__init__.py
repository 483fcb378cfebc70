"""Custom exceptions for the POS checkout engine."""


class PosError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class ValidationError(PosError):
    """User-facing validation failure. Blocks the action, leaves state untouched."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class EmptyCartError(ValidationError):
    """Raised when checkout is attempted with no line items."""
    def __init__(self, message="Cart is empty"):
        super().__init__(message, payload={'reason': 'empty_cart'})


class InvalidQuantityError(ValidationError):
    """Raised for zero, negative or non-numeric quantities."""
    def __init__(self, name, qty):
        message = f"Quantity for {name} must be greater than 0 (got {qty})"
        super().__init__(message, payload={'reason': 'invalid_quantity', 'item': name})


class InvalidLineError(ValidationError):
    """Raised when a line item patch or entry is malformed."""
    def __init__(self, message):
        super().__init__(message, payload={'reason': 'invalid_line'})


class InsufficientTenderError(ValidationError):
    """Raised when the tendered total does not cover the payable amount."""
    def __init__(self, payable, tendered, shortfall):
        message = f"Insufficient payment: {shortfall:.2f} still due"
        super().__init__(message, payload={
            'reason': 'insufficient_tender',
            'payable': f"{payable:.2f}",
            'tendered': f"{tendered:.2f}",
            'balance_due': f"{shortfall:.2f}",
        })
        self.payable = payable
        self.tendered = tendered
        self.shortfall = shortfall


class NotFoundError(PosError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class PersistenceError(PosError):
    """Raised when the sale could not be stored. The cart must be kept for retry."""
    def __init__(self, message="The sale could not be saved. Please try again."):
        super().__init__(message, 502, {'reason': 'persistence_failed'})
