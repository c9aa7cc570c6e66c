# -*- coding: utf-8 -*-
from datetime import datetime, timezone
import copy
import logging
import math
import random
import time

from pyTwin.Errors import UnknownModel
from pyTwin.Reconciler import getPaths
from pyTwin.Strategy import ModelNumber
from pyTwin.Thing import Device

NO_FAULT = 'No Fault'
FAULTS = [ NO_FAULT, 'Over Current', 'Over Voltage', 'Under Voltage', 'Over Temperature', 'Motor Stall', 'Communication Loss' ]

FAN_COUNT = 8


def _fanState():
    return {
        'fanType': 'Powerfoil X',
        'power': True,
        'commandedSpeedPercent': 10.0,
        'actualSpeedPercent': 10.0,
        'isForward': True,
        'resetFaults': False,
        'autoEnable': True,
        'activeFault': NO_FAULT
    }


def controllerState():
    ''' The state a simulated controller starts with.  Fans are keyed by their bus address as a string, the way they appear in shadow documents. '''
    return {
        'instanceNumber': '3FFFFF',
        'autoIdealTemperature': 23.3,
        'actualTemperature': 23.3,
        'zeroToTen': {
            'deviceType': 'Essence',
            'power': True,
            'autoEnable': False,
            'levelPercent': 20.5
        },
        'fan': { str(address): _fanState() for address in range(1, FAN_COUNT + 1) }
    }


class PeriodicSimulator(object):
    ''' Moves simulated fans toward the state they have been commanded into and occasionally breaks them.

    Speed: while a fan's actual speed differs from its commanded speed it moves toward it by `accelerationRate` percent for every second since the last adjustment, never passing the commanded speed.

    Faults: a fan without a fault develops a random one with probability `faultProbability` on each call to `step`.  Setting `resetFaults` clears the fault.

    Args:
        accelerationRate (`float`): Speed change in percent per second
        faultProbability (`float`): Chance of a fault per fan per cycle
        clock (callable, optional): Returns the current time in seconds.  Defaults to `time.monotonic`
        rng (:obj:`random.Random`, optional): Source of randomness

    '''
    _logger = logging.getLogger(__name__)

    def __init__(self, accelerationRate, faultProbability, clock=None, rng=None):
        self.accelerationRate = accelerationRate
        self.faultProbability = faultProbability
        self._clock = clock if clock is not None else time.monotonic
        self._random = rng if rng is not None else random.Random()
        self._lastAdjustment = {}

    def adjustSpeed(self, address, fan):
        ''' Returns `True` if the actual speed changed '''
        now = self._clock()
        try:
            commanded = float(fan['commandedSpeedPercent'])
            actual = float(fan['actualSpeedPercent'])
        except (KeyError, TypeError, ValueError):
            self._logger.warning('Fan {0} has no usable speed values'.format(address))
            return False

        last = self._lastAdjustment.get(address, now)
        self._lastAdjustment[address] = now
        if actual == commanded:
            return False

        step = self.accelerationRate * (now - last)
        if step <= 0:
            return False
        difference = commanded - actual
        if abs(difference) <= step:
            fan['actualSpeedPercent'] = commanded
        else:
            fan['actualSpeedPercent'] = actual + math.copysign(step, difference)
        return True

    def injectFault(self, address, fan):
        ''' Returns the new fault or `None` '''
        if fan.get('activeFault', NO_FAULT) != NO_FAULT or self.faultProbability <= 0:
            return None
        if self._random.random() > self.faultProbability:
            return None
        fault = self._random.choice(FAULTS[1:])
        fan['activeFault'] = fault
        self._logger.info('Fan {0} faulted: {1}'.format(address, fault))
        return fault

    def resetFaults(self, address, fan):
        ''' Returns the fault that was cleared or `None` '''
        if fan.get('resetFaults') is not True:
            return None
        fan['resetFaults'] = False
        fault = fan.get('activeFault', NO_FAULT)
        if fault == NO_FAULT:
            return None
        fan['activeFault'] = NO_FAULT
        self._logger.info('Fan {0} fault cleared: {1}'.format(address, fault))
        return fault

    def step(self, fans):
        ''' Advance every fan by one cycle

        Args:
            fans (`dict`): Fan states keyed by address.  Updated in place.

        Returns:
            A `list` of (type, message, value) tuples for the events that should be published

        '''
        events = []
        for address, fan in fans.items():
            if not isinstance(fan, dict):
                continue
            cleared = self.resetFaults(address, fan)
            if cleared:
                events.append(('faultCleared', 'Fan {0} fault cleared'.format(address), cleared))
            self.adjustSpeed(address, fan)
            fault = self.injectFault(address, fan)
            if fault:
                events.append(('fault', 'Fan {0} faulted'.format(address), fault))
        return events


class SimController(Device):
    ''' A simulated fan controller.  Deltas are merged into the controller state leaf by leaf and the fans are simulated before every report. '''

    def __init__(self, thingName=None, simulator=None, **kwargs):
        super(SimController, self).__init__(thingName=thingName, modelNumber=ModelNumber.SIM_CONTROLLER.value, **kwargs)
        self.simulator = simulator if simulator is not None else PeriodicSimulator(self._config['accelerationRate'], self._config['faultProbability'])

    def initialState(self):
        return controllerState()

    def beforeReportState(self):
        with self.reconciler.lock:
            events = self.simulator.step(self.reconciler.state.get('fan', {}))
        for type, message, value in events:
            self.publishEvent(type, message, value)

    def run(self):
        now = datetime.now(timezone.utc)
        message = {
            'createdAt': now.strftime('%Y-%m-%dT%H:%M:%SZ'),
            'deviceId': self.thingName,
            'sentAt': now.strftime('%Y-%m-%dT%H:%M:%SZ'),
            'timestamp': int(now.timestamp() * 1000)
        }
        message.update(self.reconciler.snapshot())
        self.publish(self.telemetryTopic, message)


class HVAC(Device):
    ''' A simulated heat pump.  `powerStatus` is one of OFF, AC or HEAT and moves `actualTemperature` on each telemetry cycle. '''

    powerStatuses = ('OFF', 'AC', 'HEAT')

    def __init__(self, thingName=None, rng=None, **kwargs):
        self._random = rng if rng is not None else random.Random()
        super(HVAC, self).__init__(thingName=thingName, modelNumber=ModelNumber.HVAC.value, **kwargs)

    def initialState(self):
        return { 'powerStatus': 'OFF', 'actualTemperature': 71.5, 'targetTemperature': 71.5 }

    def onChange(self, stateDelta):
        # Every field is checked before any is applied so a bad delta leaves the state untouched
        powerStatus = stateDelta.get('powerStatus')
        if powerStatus is not None and powerStatus not in self.powerStatuses:
            raise ValueError('{0} is not a valid powerStatus'.format(powerStatus))
        targetTemperature = stateDelta.get('targetTemperature')
        if targetTemperature is not None:
            targetTemperature = float(targetTemperature)

        changed = []
        with self.reconciler.lock:
            state = self.reconciler.state

            if powerStatus is not None and powerStatus != state['powerStatus']:
                self._logger.info('powerStatus changed from {0} to {1}'.format(state['powerStatus'], powerStatus))
                state['powerStatus'] = powerStatus
                changed.append(('Power status is changed by user', powerStatus))

            if targetTemperature is not None and targetTemperature != state['targetTemperature']:
                state['targetTemperature'] = targetTemperature
                changed.append(('Target temperature is changed by user', targetTemperature))

            # actualTemperature is measured by the device.  It is echoed with the rest of the delta but never applied.
            self.reconciler.changedPaths = getPaths(stateDelta)

        for message, value in changed:
            self.publishEvent('info', message, value)
        return len(changed) > 0

    def _nextTemperature(self):
        state = self.reconciler.state
        change = self._config['temperatureChange']
        if state['powerStatus'] == 'HEAT':
            direction = 1
        elif state['powerStatus'] == 'AC':
            direction = -1
        else:
            direction = -1 if self._random.random() < 0.5 else 1
        return round(state['actualTemperature'] + change * direction, 2)

    def thresholdEvent(self, temperature, targetTemperature):
        ''' Returns the (type, message) event for a temperature this far from the target, or `None` '''
        if temperature > targetTemperature + 10:
            return ('error', 'Temperature is exceeding upper threshold')
        if temperature > targetTemperature + 5:
            return ('warning', 'Temperature is slightly exceeding upper threshold')
        if temperature < targetTemperature - 10:
            return ('error', 'Temperature is dropping under the threshold')
        if temperature < targetTemperature - 5:
            return ('warning', 'Temperature is slightly dropping under the threshold')
        return None

    def run(self):
        with self.reconciler.lock:
            state = self.reconciler.state
            state['actualTemperature'] = self._nextTemperature()
            snapshot = copy.deepcopy(state)

        now = datetime.now(timezone.utc)
        self.publish(self.telemetryTopic, {
            'createdAt': now.strftime('%Y-%m-%dT%H:%M:%SZ'),
            'deviceId': self.thingName,
            'actualTemperature': snapshot['actualTemperature'],
            'targetTemperature': snapshot['targetTemperature'],
            'sentAt': now.strftime('%Y-%m-%dT%H:%M:%SZ'),
            'timestamp': int(now.timestamp() * 1000)
        })

        event = self.thresholdEvent(snapshot['actualTemperature'], snapshot['targetTemperature'])
        if event:
            self.publishEvent(event[0], event[1], snapshot['actualTemperature'])


DEVICE_TYPES = {
    ModelNumber.HVAC: HVAC,
    ModelNumber.SIM_CONTROLLER: SimController,
}


def deviceClass(modelNumber):
    ''' The simulated device class for a model number

    Raises:
        UnknownModel: if no device is simulated for `modelNumber`

    '''
    try:
        return DEVICE_TYPES[ModelNumber(modelNumber)]
    except ValueError:
        raise UnknownModel('Unknown model number {0}.  No device associated with model.'.format(modelNumber))
