# -*- coding: utf-8 -*-
from decimal import Decimal
import json
import logging

import boto3
from boto3.dynamodb.conditions import Attr, Key


def toDynamo(item):
    ''' DynamoDB rejects `float`.  Convert every float in `item` to `Decimal`. '''
    return json.loads(json.dumps(item), parse_float=Decimal)


def fromDynamo(value):
    ''' Convert the `Decimal` values returned by DynamoDB back into `int` or `float` '''
    if isinstance(value, list):
        return [ fromDynamo(v) for v in value ]
    if isinstance(value, dict):
        return { k: fromDynamo(v) for k, v in value.items() }
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


class DynamoStore(object):
    ''' Reads device registrations and reads and writes command records in DynamoDB.

    Errors from boto3 (`botocore.exceptions.ClientError` and `BotoCoreError`) are not caught here.  The command service translates them.

    Args:
        config (`dict`): Runtime configuration.  Uses `region`, `registrationTable`, `commandTable` and `commandIndex`.
        registrationTable (:obj:`Table`, optional): Registration table resource.  Created from `config` if not provided.
        commandTable (:obj:`Table`, optional): Command table resource.  Created from `config` if not provided.

    '''
    _logger = logging.getLogger(__name__)

    def __init__(self, config, registrationTable=None, commandTable=None):
        if registrationTable is None or commandTable is None:
            dynamodb = boto3.resource('dynamodb', region_name=config['region'])
            registrationTable = registrationTable if registrationTable is not None else dynamodb.Table(config['registrationTable'])
            commandTable = commandTable if commandTable is not None else dynamodb.Table(config['commandTable'])
        self._registrationTable = registrationTable
        self._commandTable = commandTable
        self._commandIndex = config['commandIndex']

    def getRegistration(self, userId, deviceId):
        ''' Returns the registration of `deviceId` for `userId` or `None` '''
        response = self._registrationTable.get_item(Key={ 'userId': userId, 'deviceId': deviceId })
        item = response.get('Item')
        return fromDynamo(item) if item else None

    def putCommand(self, command):
        self._commandTable.put_item(Item=toDynamo(command))
        self._logger.debug('Stored command {0}'.format(command['commandId']))

    def getCommand(self, deviceId, commandId):
        ''' Returns the command record or `None` '''
        response = self._commandTable.get_item(Key={ 'deviceId': deviceId, 'commandId': commandId })
        item = response.get('Item')
        return fromDynamo(item) if item else None

    def queryCommands(self, deviceId, commandStatus=None, exclusiveStartKey=None):
        ''' Query one page of commands for a device, most recently updated first

        Returns:
            A `dict` with `Items` and, when more pages exist, `LastEvaluatedKey`

        '''
        params = {
            'IndexName': self._commandIndex,
            'KeyConditionExpression': Key('deviceId').eq(deviceId),
            'ScanIndexForward': False,
        }
        if commandStatus:
            params['FilterExpression'] = Attr('status').eq(commandStatus)
        if exclusiveStartKey:
            params['ExclusiveStartKey'] = exclusiveStartKey

        response = self._commandTable.query(**params)
        page = { 'Items': fromDynamo(response.get('Items', [])) }
        if response.get('LastEvaluatedKey'):
            page['LastEvaluatedKey'] = response['LastEvaluatedKey']
        return page

    def updateCommandStatus(self, deviceId, commandId, status, updatedAt):
        ''' Change the status of an existing command.  Nothing else in the record is touched.

        Raises:
            botocore.exceptions.ClientError: with code `ConditionalCheckFailedException` if the command does not exist

        '''
        response = self._commandTable.update_item(
            Key={ 'deviceId': deviceId, 'commandId': commandId },
            UpdateExpression='SET #status = :status, updatedAt = :updatedAt',
            ConditionExpression=Attr('commandId').exists(),
            ExpressionAttributeNames={ '#status': 'status' },
            ExpressionAttributeValues={ ':status': status, ':updatedAt': updatedAt },
            ReturnValues='ALL_NEW'
        )
        return fromDynamo(response.get('Attributes'))
