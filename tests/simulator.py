import copy
import io
import json

from botocore.exceptions import ClientError


def clientError(code='InternalServerError', operation='Operation'):
    return ClientError({ 'Error': { 'Code': code, 'Message': 'simulated {0}'.format(code) } }, operation)


class storeSim(object):
    ''' In memory stand in for DynamoStore.  Set `failOn` to the name of a method to make it raise. '''

    def __init__(self, registrations=None, commands=None, pageSize=None):
        self.registrations = registrations or {}
        self.commands = commands or []
        self.pageSize = pageSize
        self.failOn = set()
        self.calls = []

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.failOn:
            raise clientError(operation=name)

    def register(self, userId, deviceId, modelNumber):
        self.registrations[(userId, deviceId)] = { 'userId': userId, 'deviceId': deviceId, 'modelNumber': modelNumber }

    def getRegistration(self, userId, deviceId):
        self._call('getRegistration', userId, deviceId)
        return copy.deepcopy(self.registrations.get((userId, deviceId)))

    def putCommand(self, command):
        self._call('putCommand', command)
        self.commands.append(copy.deepcopy(command))

    def getCommand(self, deviceId, commandId):
        self._call('getCommand', deviceId, commandId)
        for c in self.commands:
            if c['deviceId'] == deviceId and c['commandId'] == commandId:
                return copy.deepcopy(c)
        return None

    def queryCommands(self, deviceId, commandStatus=None, exclusiveStartKey=None):
        ''' Pages hold `pageSize` records before the status filter is applied, like a DynamoDB query with a filter expression '''
        self._call('queryCommands', deviceId, commandStatus, exclusiveStartKey)
        records = [ c for c in reversed(self.commands) if c['deviceId'] == deviceId ]
        start = exclusiveStartKey['index'] if exclusiveStartKey else 0
        end = start + self.pageSize if self.pageSize else len(records)
        page = { 'Items': [ copy.deepcopy(c) for c in records[start:end] if commandStatus is None or c['status'] == commandStatus ] }
        if end < len(records):
            page['LastEvaluatedKey'] = { 'index': end }
        return page

    def updateCommandStatus(self, deviceId, commandId, status, updatedAt):
        self._call('updateCommandStatus', deviceId, commandId, status, updatedAt)
        for c in self.commands:
            if c['deviceId'] == deviceId and c['commandId'] == commandId:
                c['status'] = status
                c['updatedAt'] = updatedAt
                return copy.deepcopy(c)
        raise clientError('ConditionalCheckFailedException', 'UpdateItem')


class iotDataSim(object):
    ''' Stand in for a boto3 `iot-data` client '''

    def __init__(self):
        self.shadows = {}
        self.published = []
        self.failOn = set()

    def update_thing_shadow(self, thingName, payload):
        if 'update_thing_shadow' in self.failOn:
            raise clientError(operation='UpdateThingShadow')
        desired = json.loads(payload.decode('utf-8'))['state']['desired']
        shadow = self.shadows.setdefault(thingName, { 'state': { 'desired': {} } })
        _merge(shadow['state']['desired'], desired)
        return { 'payload': io.BytesIO(json.dumps({ 'state': { 'desired': desired }, 'version': 1 }).encode('utf-8')) }

    def publish(self, topic, qos, payload):
        if 'publish' in self.failOn:
            raise clientError(operation='Publish')
        self.published.append((topic, qos, json.loads(payload.decode('utf-8'))))
        return {}


def _merge(target, patch):
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        elif value is None:
            target.pop(key, None)
        else:
            target[key] = copy.deepcopy(value)


class tableSim(object):
    ''' Stand in for a boto3 DynamoDB Table resource.  Records the arguments of every call. '''

    def __init__(self, items=None, response=None):
        self.items = items or {}
        self.response = response or {}
        self.calls = []

    def get_item(self, Key):
        self.calls.append(('get_item', Key))
        item = self.items.get(tuple(sorted(Key.items())))
        return { 'Item': item } if item is not None else {}

    def put_item(self, Item):
        self.calls.append(('put_item', Item))
        return {}

    def query(self, **kwargs):
        self.calls.append(('query', kwargs))
        return self.response

    def update_item(self, **kwargs):
        self.calls.append(('update_item', kwargs))
        return self.response


class messageSim(object):
    def __init__(self, topic, payload):
        self.topic = topic
        self.payload = payload


class shadowHandlerSim(object):
    def __init__(self, thingName):
        self.thingName = thingName
        self.deltaCallback = None
        self.updates = []
        self.response = 'accepted'

    def shadowRegisterDeltaCallback(self, callback):
        self.deltaCallback = callback

    def shadowUpdate(self, payload, callback, timeout):
        self.updates.append(json.loads(payload))
        if callback:
            callback(payload, self.response, 'token-{0}'.format(len(self.updates)))

    def sendDelta(self, state, version=1):
        ''' Deliver a delta the way IOT-Core does '''
        self.deltaCallback(json.dumps({ 'version': version, 'state': state }), 'delta/' + self.thingName, None)


class mqttConnectionSim(object):
    def __init__(self):
        self.published = []
        self.subscriptions = {}
        self.fail = False

    def publish(self, topic, payload, qos):
        if self.fail:
            raise IOError('Connection lost')
        self.published.append((topic, json.loads(payload)))
        return True

    def subscribe(self, topic, qos, callback):
        self.subscriptions[topic] = callback
        return True

    def sendMessage(self, topic, message):
        self.subscriptions[topic](None, None, messageSim(topic, json.dumps(message).encode('utf-8')))

    def messages(self, topic):
        return [ m for t, m in self.published if t == topic ]


class shadowClientSim(object):
    ''' Stand in for a connected AWSIoTMQTTShadowClient '''

    def __init__(self):
        self.handler = None
        self.connection = mqttConnectionSim()

    def createShadowHandlerWithName(self, thingName, isPersistentSubscribe):
        self.handler = shadowHandlerSim(thingName)
        return self.handler

    def getMQTTConnection(self):
        return self.connection


class clockSim(object):
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class randomSim(object):
    ''' Returns a fixed sequence from `random()` and the first candidate from `choice()` '''

    def __init__(self, values=None, default=1.0):
        self.values = list(values or [])
        self.default = default

    def random(self):
        return self.values.pop(0) if self.values else self.default

    def choice(self, seq):
        return seq[0]
