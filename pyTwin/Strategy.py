# -*- coding: utf-8 -*-
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
import copy
import json
import logging

from pyTwin.Errors import UnknownModel
from pyTwin.Schema import CommandValidator, defaultSchema
from pyTwin.Transform import ShadowTransform

TEMPERATURE_PRECISION = Decimal('0.01')
MIN_TARGET_TEMPERATURE = 50
MAX_TARGET_TEMPERATURE = 110


class CommandStrategy(object):
    ''' Converts the command a user sent for one device model into what gets stored and what gets sent to the device.

    Subclasses implement the three methods below.  The command service calls `validate` first and only asks for details of a valid command.

    Args:
        command (`dict`): The command exactly as received from the user

    '''
    _logger = logging.getLogger(__name__)

    def __init__(self, command):
        self.command = command

    def __str__(self):
        return json.dumps(self.command, default=str)

    def validate(self):
        ''' Returns `True` if the command can be sent to the device '''
        raise NotImplementedError

    def getDetails(self):
        ''' Returns the payload stored in the `details` attribute of the command record '''
        raise NotImplementedError

    def getShadowDetails(self):
        ''' Returns the patch merged into the `desired` state of the device shadow '''
        raise NotImplementedError


def _toDecimal(value):
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def normalizeTemperature(value):
    ''' Round to at most two decimal places (half up).  Whole numbers come back as `int`, anything else as `float`.

    .. code-block:: python

        normalizeTemperature('72.00')  # => 72
        normalizeTemperature(72.555)   # => 72.56

    '''
    number = _toDecimal(value)
    if number is None:
        raise ValueError('{0} is not a valid temperature'.format(value))
    number = number.quantize(TEMPERATURE_PRECISION, rounding=ROUND_HALF_UP)
    if number == number.to_integral_value():
        return int(number)
    return float(number)


class HVACCommandStrategy(CommandStrategy):
    ''' Commands for the HVAC test model.

    Commands have the form:

    .. code-block:: python

        {
            'commandDetails': { 'command': 'set-temp' | 'set-mode', 'value': number },
            'shadowDetails': {
                'powerStatus': 'HEAT' | 'AC' | 'OFF',
                'actualTemperature': number,
                'targetTemperature': number
            }
        }

    `commandDetails` is what gets stored, `shadowDetails` is what the device receives.

    '''
    commandModes = ('set-temp', 'set-mode')
    powerStatuses = ('HEAT', 'AC', 'OFF')

    def __init__(self, command):
        super(HVACCommandStrategy, self).__init__(copy.deepcopy(command))

    def validate(self):
        command = self.command
        if not isinstance(command, dict):
            return False

        commandDetails = command.get('commandDetails')
        shadowDetails = command.get('shadowDetails')
        if not isinstance(commandDetails, dict) or not isinstance(shadowDetails, dict):
            return False

        if commandDetails.get('command') not in self.commandModes or shadowDetails.get('powerStatus') not in self.powerStatuses:
            return False

        targetTemperature = _toDecimal(shadowDetails.get('targetTemperature'))
        if targetTemperature is None or not MIN_TARGET_TEMPERATURE <= targetTemperature <= MAX_TARGET_TEMPERATURE:
            self._logger.info('Target temperature {0} is out of range'.format(shadowDetails.get('targetTemperature')))
            return False

        if commandDetails['command'] == 'set-temp':
            if _toDecimal(commandDetails.get('value')) is None:
                return False
            targetTemperature = normalizeTemperature(shadowDetails['targetTemperature'])
            shadowDetails['targetTemperature'] = targetTemperature
            commandDetails['value'] = targetTemperature

        return True

    def getDetails(self):
        return {
            'command': self.command['commandDetails']['command'],
            'value': self.command['commandDetails'].get('value')
        }

    def getShadowDetails(self):
        ''' A null in the desired state deletes the key, so `actualTemperature` is only sent when the command carries it '''
        shadowDetails = self.command['shadowDetails']
        patch = {
            'powerStatus': shadowDetails['powerStatus'],
            'targetTemperature': shadowDetails['targetTemperature']
        }
        if shadowDetails.get('actualTemperature') is not None:
            patch['actualTemperature'] = shadowDetails['actualTemperature']
        return patch


class SimControllerCommandStrategy(CommandStrategy):
    ''' Commands for the simulated fan controller.  These are flat commands checked against the command schema.

    Args:
        command (`dict`): e.g. ``{'command': 'set-fan-power', 'value': True, 'address': 5}``
        validator (:obj:`CommandValidator`, optional): Defaults to a validator for the packaged schema
        transform (:obj:`ShadowTransform`, optional): Defaults to a transform for the `fan` entity

    '''

    def __init__(self, command, validator=None, transform=None):
        super(SimControllerCommandStrategy, self).__init__(copy.deepcopy(command))
        self._validator = validator if validator is not None else CommandValidator()
        self._transform = transform if transform is not None else ShadowTransform()

    def validate(self):
        if self.command is None or not self._validator.isValid(self.command):
            self._logger.info('Command is invalid: {0}'.format(self))
            return False
        return True

    def getDetails(self):
        return copy.deepcopy(self.command)

    def getShadowDetails(self):
        return self._transform.transform(self.command)


class ModelNumber(Enum):
    ''' Device models that accept commands '''
    HVAC = 'test-model'
    SIM_CONTROLLER = 'sim-controller'


def commandStrategy(modelNumber, command, config=None):
    ''' Select the strategy for a device model

    Args:
        modelNumber (`str`): The model number from the device registration
        command (`dict`): The command received from the user
        config (`dict`, optional): Runtime configuration.  `schemaPath` and `addressableTypes` are used by the fan controller strategy.

    Raises:
        UnknownModel: if no commands are associated with `modelNumber`

    '''
    try:
        model = ModelNumber(modelNumber)
    except ValueError:
        raise UnknownModel('Unknown model number {0}.  No commands associated with model.'.format(modelNumber))

    if model is ModelNumber.HVAC:
        return HVACCommandStrategy(command)

    config = config or {}
    validator = CommandValidator(defaultSchema(config.get('schemaPath')))
    return SimControllerCommandStrategy(command, validator=validator, transform=ShadowTransform(config.get('addressableTypes')))
