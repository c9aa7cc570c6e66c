# -*- coding: utf-8 -*-
import json
import logging

import boto3


class TwinClient(object):
    ''' Cloud side access to device shadows and device topics through the AWS IoT data plane.

    Errors from boto3 are not caught here.  The command service translates them.

    Args:
        config (`dict`): Runtime configuration.  Uses `region` and `commandNamespace`.
        client (:obj:`IoTDataPlane.Client`, optional): An `iot-data` client.  If not provided, the account's ATS endpoint is looked up and a client is created for it.

    '''
    _logger = logging.getLogger(__name__)

    def __init__(self, config, client=None):
        self._namespace = config['commandNamespace']
        self._client = client if client is not None else self._iotConnect(config['region'])

    def _iotConnect(self, region):
        ''' Find the data endpoint for this account and create a client for it '''
        iot = boto3.client('iot', region_name=region)
        endpoint = iot.describe_endpoint(endpointType='iot:Data-ATS')['endpointAddress']
        self._logger.info('Using IoT data endpoint {0}'.format(endpoint))
        return boto3.client('iot-data', region_name=region, endpoint_url='https://{0}'.format(endpoint))

    def commandTopic(self, deviceId):
        return '{0}/commands/{1}'.format(self._namespace, deviceId)

    def updateDesired(self, thingName, patch):
        ''' Merge `patch` into the desired state of the shadow.  Keys missing from `patch` are left untouched by the shadow service.

        Returns:
            The shadow document returned by the service (as a `dict`)

        '''
        payload = { 'state': { 'desired': patch } }
        response = self._client.update_thing_shadow(thingName=thingName, payload=json.dumps(payload).encode('utf-8'))
        body = response.get('payload')
        document = json.loads(body.read().decode('utf-8')) if body is not None else {}
        self._logger.debug('Shadow update response for {0}: {1}'.format(thingName, json.dumps(document)))
        return document

    def publish(self, topic, message, qos=1):
        self._client.publish(topic=topic, qos=qos, payload=json.dumps(message).encode('utf-8'))
        self._logger.debug('Published to {0}, qos={1}'.format(topic, qos))
