__all__ = ["NotAuthorizedException", "AccessDenied", "RecordNotFound", "NumberOfRetriesExceeded",
           "MandatoryFieldsAreNotFilled", "ValidationException", "WrongDeliveryAddress", "SomeItemsAreNotAvailable",
           "OrderNotFound", "AuthorizationException", "ConflictException", "RecordAlreadyExists",
           "InvalidStatusTransition", "CartValidationError", "ChefNotAvailable", "UnknownDomain"]


class NotAuthorizedException(Exception):
    LEVEL = 'warning'


class AuthorizationException(NotAuthorizedException):
    pass


# Generic Exceptions
class AccessDenied(Exception):
    LEVEL = 'warning'


class UnknownDomain(Exception):
    pass


# Validations exceptions
class ValidationException(Exception):
    LEVEL = 'warning'


class MandatoryFieldsAreNotFilled(ValidationException):
    pass


class WrongDeliveryAddress(ValidationException):
    pass


class SomeItemsAreNotAvailable(ValidationException):
    pass


class CartValidationError(ValidationException):
    pass


# DynamoDB exceptions
class RecordNotFound(Exception):
    LEVEL = 'warning'


class OrderNotFound(RecordNotFound):
    pass


# DB Performance Exception
class NumberOfRetriesExceeded(Exception):
    pass


# State exceptions
class ConflictException(Exception):
    LEVEL = 'warning'


class RecordAlreadyExists(ConflictException):
    pass


class InvalidStatusTransition(ConflictException):
    pass


class ChefNotAvailable(ConflictException):
    pass
