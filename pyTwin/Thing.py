# -*- coding: utf-8 -*-
from datetime import datetime, timezone
from threading import Event, Thread
import functools
import json
import logging
import queue
import uuid

from AWSIoTPythonSDK.MQTTLib import AWSIoTMQTTShadowClient

from pyTwin.Config import loadConfig
from pyTwin.Reconciler import Reconciler


class Device(object):
    ''' A device that keeps its state in sync with its AWS IOT shadow.

    When a user changes the desired state of the shadow, IOT-Core sends the device a delta holding every property whose desired value differs from the reported value.  The device applies the delta to its state, reports the new state and, in the same update, sets the applied properties of the desired state to null so that the delta is cleared.  The next message received on the device's command topic is then answered with a success acknowledgment.

    Every callback from the IOT SDK and every timer only places an event on the device's event queue.  The events are handled one at a time by the loop run from `start`, so handlers never interleave.

    Args:
        thingName (`str`): The name of the IOT thing.  Also used as the MQTT client id and as the device id in messages.
        modelNumber (`str`, optional): The model number the device was registered with
        endpoint (`str`, optional): URL of the IOT-Core endpoint.  Required unless `shadowClient` is provided.
        rootCAPath (`str`, optional): Path to the file which holds a valid AWS root certificate
        certificatePath (`str`, optional): Path to the file which holds the certificate for the device
        privateKeyPath (`str`, optional): Path to the file which holds the private key for the device
        config (`dict`, optional): Runtime configuration.  Defaults to :func:`pyTwin.Config.loadConfig`
        shadowClient (:obj:`AWSIoTMQTTShadowClient`, optional): An already connected shadow client

    Subclasses customise the device by overriding `initialState`, `onChange`, `run`, `beforeReportState` and `getCurrentState`.

    '''
    _logger = logging.getLogger(__name__)

    def __init__(self, thingName=None, modelNumber=None, endpoint=None, rootCAPath=None, certificatePath=None, privateKeyPath=None, config=None, shadowClient=None):
        if thingName is None:
            raise ValueError('thingName is required')

        self.thingName = thingName
        self.modelNumber = modelNumber
        self._config = config if config is not None else loadConfig()

        self.commandTopic = '{0}/commands/{1}'.format(self._config['commandNamespace'], thingName)
        self.telemetryTopic = '{0}/{1}'.format(self._config['telemetryTopic'], thingName)
        self.eventTopic = '{0}/{1}'.format(self._config['eventTopic'], thingName)

        self.reconciler = Reconciler(self.initialState())
        self.hasChanged = False # Set when a delta has been applied and the next command message should be acknowledged
        self._eventQueue = queue.Queue()
        self._exit = Event()
        self._timers = []

        if shadowClient is None:
            if endpoint is None:
                raise ValueError('Either endpoint or shadowClient is required')
            shadowClient = self._iotConnect(endpoint, thingName, rootCAPath, certificatePath, privateKeyPath)
        self._shadowHandler = shadowClient.createShadowHandlerWithName(thingName, True)
        self._mqttConnection = shadowClient.getMQTTConnection()

    def _iotConnect(self, endpoint, thingName, rootCAPath, certificatePath, privateKeyPath):
        ''' Establish connection to the AWS IOT service '''
        shadowClient = AWSIoTMQTTShadowClient(thingName)
        shadowClient.configureEndpoint(endpoint, 8883)
        shadowClient.configureCredentials(rootCAPath, privateKeyPath, certificatePath)

        shadowClient.configureAutoReconnectBackoffTime(1, 32, 20)
        shadowClient.configureConnectDisconnectTimeout(10)
        shadowClient.configureMQTTOperationTimeout(5)

        self._logger.info('Connecting to AWS IOT at {0} as {1}'.format(endpoint, thingName))
        shadowClient.connect()
        return shadowClient

    ''' IOT SDK CALLBACKS.  These run on SDK threads and only queue events. '''

    def _deltaCallback(self, payload, responseStatus, token):
        ''' Receive a delta message from the IOT service '''
        self._logger.debug('Delta message received with content: {0}'.format(payload))
        try:
            payloadDict = json.loads(payload)
        except ValueError as e:
            self._logger.warning('Unable to decode delta message: {0}'.format(e))
            return
        self._eventQueue.put({ 'action': 'DELTA', 'state': payloadDict.get('state', {}) })

    def _messageCallback(self, client, userdata, message):
        ''' Receive a message from the command topic '''
        self._eventQueue.put({ 'action': 'MESSAGE', 'topic': message.topic, 'payload': message.payload })

    def _updateCallback(self, payload, responseStatus, token, echoPaths=None):
        ''' Log result when a request has been made to update the IOT shadow.  If a request carrying an echo failed, its paths are queued to be echoed again. '''
        if responseStatus == 'accepted':
            self._logger.debug('Update request {0} accepted'.format(token))
            return

        self._logger.warning({
            'timeout': 'Update request {0} timed out!'.format(token),
            'rejected': 'Update request {0} was rejected!'.format(token)
        }.get(responseStatus, 'Update request {0} contained unexpected response status {1}'.format(token, responseStatus)))
        if echoPaths:
            self._eventQueue.put({ 'action': 'RESTORE', 'paths': echoPaths })

    def _timerLoop(self, interval, action):
        while not self._exit.wait(interval):
            self._eventQueue.put({ 'action': action })

    ''' LIFECYCLE '''

    def start(self):
        ''' Register with the IOT service, report the initial state, start the telemetry and report timers and process events until `exit` is called '''
        self._shadowHandler.shadowRegisterDeltaCallback(self._deltaCallback)
        self._mqttConnection.subscribe(self.commandTopic, 1, self._messageCallback)
        self.reportState()

        for interval, action in [ (self._config['publishInterval'], 'TELEMETRY'), (self._config['statusInterval'], 'REPORT') ]:
            timer = Thread(target=self._timerLoop, args=(interval, action), daemon=True)
            self._timers.append(timer)
            timer.start()

        self._main()

    def exit(self):
        ''' Stop the timers and the event loop.  Returns once the timers have stopped. '''
        self._exit.set()
        self._eventQueue.put({ 'action': 'EXIT' })
        for timer in list(self._timers):
            timer.join()

    def _main(self):
        while True:
            message = self._eventQueue.get()
            self._eventQueue.task_done()
            if not self.handle(message):
                return

    def handle(self, message):
        ''' Handle one event.  Returns `False` when the event loop should stop. '''
        action = message['action']
        if action == 'EXIT':
            return False

        if action == 'DELTA':
            self.onDelta(message['state'])
        elif action == 'MESSAGE':
            self.onMessage(message['topic'], message['payload'])
        elif action == 'TELEMETRY':
            try:
                self.run()
            except Exception as e:
                self._logger.exception('Telemetry cycle failed')
                self.publishEvent('diagnostic', 'An error occurred {0}'.format(e))
        elif action == 'REPORT':
            self.reportState()
        elif action == 'RESTORE':
            self.reconciler.restoreChanged(message['paths'])
        else:
            self._logger.warning('Ignoring unknown event {0}'.format(action))
        return True

    ''' HANDLERS '''

    def onDelta(self, stateDelta):
        ''' Apply a delta.  If it changed anything, report the new state and acknowledge the next command message. '''
        try:
            if self.onChange(stateDelta):
                self.hasChanged = True
                self.reportState()
        except Exception as e:
            self._logger.exception('Unable to apply delta {0}'.format(stateDelta))
            self.publishEvent('diagnostic', 'An error occurred {0}'.format(e))

    def onMessage(self, topic, payload):
        ''' Acknowledge a command once its delta has been applied '''
        if not self.hasChanged:
            return

        try:
            message = json.loads(payload)
            self.publish(topic, {
                'commandId': message.get('commandId'),
                'deviceId': self.thingName,
                'reason': 'success',
                'status': 'success'
            })
        except (ValueError, TypeError, AttributeError) as e:
            self._logger.warning('Unable to acknowledge message on {0}: {1}'.format(topic, e))
        finally:
            self.hasChanged = False

    def publish(self, topic, message):
        ''' Publish `message` as JSON.  Failures are logged and reported as `False`. '''
        try:
            self._mqttConnection.publish(topic, json.dumps(message), 1)
        except Exception:
            self._logger.exception('Unable to publish to {0}'.format(topic))
            return False
        self._logger.debug('Published {0} to {1}'.format(json.dumps(message), topic))
        return True

    def publishEvent(self, type, message, value=None):
        ''' Publish an event (e.g. `info`, `warning`, `error`, `diagnostic`) to the device's event topic '''
        now = datetime.now(timezone.utc)
        timestamp = int(now.timestamp() * 1000)
        event = {
            'deviceId': self.thingName,
            'messageId': str(uuid.uuid4()),
            'message': message,
            'details': {
                'eventId': 'event_{0}'.format(timestamp),
                'value': value,
            },
            'timestamp': timestamp,
            'type': type,
            'sentAt': now.strftime('%Y-%m-%dT%H:%M:%SZ'),
        }
        return self.publish(self.eventTopic, event)

    def reportState(self):
        ''' Publish the device state to the shadow.  Runs every `statusInterval` seconds and after every applied delta. '''
        try:
            self.beforeReportState()
            stateObject = self.getCurrentState()
            echoPaths = list(self.reconciler.changedPaths) if 'desired' in stateObject.get('state', {}) else []
            self._shadowHandler.shadowUpdate(json.dumps(stateObject), functools.partial(self._updateCallback, echoPaths=echoPaths), 5)
            # Each applied delta is echoed once unless the update fails
            self.reconciler.changedPaths = []
        except Exception as e:
            self._logger.exception('Unable to report state')
            self.publishEvent('diagnostic', 'An error occurred {0}'.format(e))

    ''' Customize the device by overriding these methods '''

    def initialState(self):
        ''' Override this method to provide the state the device starts with '''
        return {}

    def onChange(self, stateDelta):
        ''' Override this method to handle changes from the device shadow.  By default every leaf of the delta is merged into the device state.

        Args:
            stateDelta (`dict`): The `state` section of the delta message

        Returns:
            `True` if changes were applied

        '''
        return self.reconciler.apply(stateDelta)

    def run(self):
        ''' Override this method to publish telemetry and trigger events.  Runs every `publishInterval` seconds. '''
        return None

    def beforeReportState(self):
        ''' Override this method to make time based changes to the state before it is reported '''
        return None

    def getCurrentState(self):
        ''' The shadow update sent when state is reported.  The reported section is the device state.  If a delta has been applied since the last report, the desired section clears the applied properties. '''
        state = { 'reported': self.reconciler.snapshot() }
        desired = self.reconciler.desiredState()
        if desired:
            state['desired'] = desired
        return { 'state': state }
