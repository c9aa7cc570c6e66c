# -*- coding: utf-8 -*-

class CommandError(Exception):
    ''' Base class for every failure surfaced by the command service.

    Args:
        message (`str`): Human readable description of the failure
        code (`int`, optional): HTTP-like status code.  Defaults to the class level code.

    '''
    code = 500
    error = 'CommandError'

    def __init__(self, message, code=None):
        super(CommandError, self).__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def toDict(self):
        ''' Render the error as the body returned to API callers '''
        return { 'code': self.code, 'error': self.error, 'message': self.message }


class UnknownModel(CommandError):
    ''' No command strategy exists for the registered model number '''
    error = 'UnknownModel'


class InvalidParameter(CommandError):
    code = 400
    error = 'InvalidParameter'


class MissingRegistration(CommandError):
    code = 400
    error = 'MissingRegistration'


class InvalidRegistration(CommandError):
    ''' The registration record exists but carries no model number '''
    error = 'InvalidRegistration'


class MissingCommand(CommandError):
    code = 400
    error = 'MissingCommand'


class RegistrationRetrieveFailure(CommandError):
    error = 'RegistrationRetrieveFailure'


class PersistFailure(CommandError):
    error = 'CommandCreateFailure'


class TwinPatchFailure(CommandError):
    error = 'DeviceShadowUpdateFailure'


class NotifyFailure(CommandError):
    error = 'CommandPublishFailure'


class CommandRetrieveFailure(CommandError):
    error = 'CommandRetrieveFailure'


class CommandQueryFailure(CommandError):
    error = 'CommandQueryFailure'


class SchemaError(ValueError):
    ''' Raised when a command schema document can not be used '''
    pass
