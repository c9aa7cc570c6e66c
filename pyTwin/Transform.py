# -*- coding: utf-8 -*-
import logging

DEFAULT_ADDRESSABLE_TYPES = ('fan',)


class ShadowTransform(object):
    ''' Folds a flat command into the nested object placed in the `desired` section of a device shadow.

    Args:
        addressableTypes (`list` of `str`, optional): Command parts naming entities that are reached through a bus address.  Defaults to ``('fan',)``

    **Examples:**

        .. code-block:: python

            transform({'command': 'set-autoIdealTemperature', 'value': 42})
            # => {'autoIdealTemperature': 42}

            transform({'command': 'set-zeroToTen-autoEnable', 'value': True})
            # => {'zeroToTen': {'autoEnable': True}}

            transform({'command': 'set-fan-commandedSpeedPercent', 'value': 42, 'address': 5})
            # => {'fan': {'5': {'commandedSpeedPercent': 42}}}

        A command without a value sets its attribute to `True`, which is how flags such as `resetFaults` are sent.

    '''
    _logger = logging.getLogger(__name__)

    def __init__(self, addressableTypes=None):
        addressableTypes = DEFAULT_ADDRESSABLE_TYPES if addressableTypes is None else addressableTypes
        self.addressableTypes = frozenset(addressableTypes)

    def transform(self, flatCommand):
        if flatCommand is None:
            raise ValueError('Expected command argument')

        # Processed from the last part to the first.  The first part is the verb (currently always 'set') and is dropped.
        parts = flatCommand['command'].split('-')
        parts.reverse()
        if len(parts) < 2:
            self._logger.warning('Command {0} has no attribute to set'.format(flatCommand['command']))
            return {}

        tree = { parts[0]: flatCommand.get('value', True) }
        for part in parts[1:-1]:
            if part in self.addressableTypes:
                tree = { part: { str(flatCommand.get('address')): tree } }
            else:
                tree = { part: tree }
        return tree


def transform(flatCommand):
    return ShadowTransform().transform(flatCommand)
