# -*- coding: utf-8 -*-
from datetime import datetime, timezone
import logging
import uuid

from botocore.exceptions import BotoCoreError, ClientError

from pyTwin.Config import loadConfig
from pyTwin.Errors import (CommandQueryFailure, CommandRetrieveFailure, InvalidParameter, InvalidRegistration,
    MissingCommand, MissingRegistration, NotifyFailure, PersistFailure, RegistrationRetrieveFailure, TwinPatchFailure)
from pyTwin.Strategy import commandStrategy
from pyTwin.Store import DynamoStore
from pyTwin.Twin import TwinClient

PENDING = 'pending'
SUCCESS = 'success'
FAILED = 'failed'
STATUSES = (PENDING, SUCCESS, FAILED)

AWS_ERRORS = (BotoCoreError, ClientError)


def utcNow():
    return datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def newCommand(deviceId, userId, details):
    ''' Build a pending command record.  Every call produces a new `commandId`. '''
    now = utcNow()
    return {
        'commandId': str(uuid.uuid4()),
        'deviceId': deviceId,
        'status': PENDING,
        'details': details,
        'userId': userId,
        'createdAt': now,
        'updatedAt': now,
    }


class CommandService(object):
    ''' Creates, lists and acknowledges the commands a user sends to a registered device.

    A command is validated by the strategy for the device's model, stored with status `pending`, merged into the desired state of the device shadow and finally announced on the device's command topic.  Later steps do not undo earlier ones.  A command whose shadow update or notification failed stays `pending` so it can be found and retried.

    Creating a command is not idempotent.  Sending the same command twice creates two records with different ids.

    Args:
        store (:obj:`DynamoStore`, optional): Registration and command storage.  Created from `config` if not provided.
        twin (:obj:`TwinClient`, optional): Device shadow and topic access.  Created from `config` if not provided.
        config (`dict`, optional): Runtime configuration.  Defaults to :func:`pyTwin.Config.loadConfig`

    '''
    _logger = logging.getLogger(__name__)

    def __init__(self, store=None, twin=None, config=None):
        self._config = config if config is not None else loadConfig()
        self._store = store if store is not None else DynamoStore(self._config)
        self._twin = twin if twin is not None else TwinClient(self._config)

    @staticmethod
    def _userId(ticket):
        ''' The authorization ticket carries the user either as `userId` or as the token subject `sub` '''
        return ticket.get('userId', ticket.get('sub'))

    def _getRegistration(self, deviceId, userId):
        try:
            return self._store.getRegistration(userId, deviceId)
        except AWS_ERRORS as e:
            self._logger.error('[RegistrationRetrieveFailure] Error retrieving registration for device {0}: {1}'.format(deviceId, e))
            raise RegistrationRetrieveFailure('Error occurred while attempting to retrieve registration information for device "{0}".'.format(deviceId))

    def _requireRegistration(self, deviceId, userId):
        registration = self._getRegistration(deviceId, userId)
        if not registration:
            self._logger.info('[MissingRegistration] No registration found for device {0}.'.format(deviceId))
            raise MissingRegistration('No registration found for device "{0}".'.format(deviceId))
        return registration

    def createCommand(self, ticket, deviceId, rawCommand):
        ''' Send a command to a device

        Args:
            ticket (`dict`): Authorization ticket of the caller
            deviceId (`str`): The device (thing name) the command is for
            rawCommand (`dict`): The command as sent by the user.  Its shape depends on the device model.

        Returns:
            The stored command record (`dict`)

        Raises:
            MissingRegistration: the caller has no registration for the device.  Nothing is stored.
            UnknownModel: no commands exist for the device's model.  Nothing is stored.
            InvalidParameter: the command failed validation.  Nothing is stored.
            PersistFailure: the command could not be stored
            TwinPatchFailure: the command was stored but the shadow update failed
            NotifyFailure: the command was stored and the shadow updated but the notification failed

        '''
        userId = self._userId(ticket)
        registration = self._requireRegistration(deviceId, userId)

        modelNumber = registration.get('modelNumber')
        if not modelNumber:
            raise InvalidRegistration('Invalid registration record.  No modelNumber for {0}'.format(deviceId))

        strategy = commandStrategy(modelNumber, rawCommand, self._config)
        if not strategy.validate():
            raise InvalidParameter('Body parameters are invalid. Please check the API documentation.')

        command = newCommand(deviceId, userId, strategy.getDetails())
        try:
            self._store.putCommand(command)
        except AWS_ERRORS as e:
            self._logger.error('[CommandCreateFailure] Error storing command for device {0}: {1}'.format(deviceId, e))
            raise PersistFailure('Error occurred while attempting to create command for device "{0}".'.format(deviceId))
        self._logger.info('Created command {0} for device {1}'.format(command['commandId'], deviceId))

        shadowDetails = strategy.getShadowDetails()
        self.shadowUpdate(command, shadowDetails)
        self.publishCommand(command, shadowDetails)
        return command

    def shadowUpdate(self, command, shadowDetails):
        ''' Merge `shadowDetails` into the desired state of the device shadow '''
        try:
            return self._twin.updateDesired(command['deviceId'], shadowDetails)
        except AWS_ERRORS as e:
            self._logger.error('[DeviceShadowUpdateFailure] Error updating shadow of {0} for command {1}: {2}'.format(command['deviceId'], command['commandId'], e))
            raise TwinPatchFailure('Error occurred while attempting to update device shadow for command "{0}".'.format(command['commandId']))

    def publishCommand(self, command, shadowDetails):
        ''' Announce the command on the device's command topic '''
        message = {
            'commandId': command['commandId'],
            'deviceId': command['deviceId'],
            'status': command['status'],
            'details': shadowDetails,
        }
        try:
            self._twin.publish(self._twin.commandTopic(command['deviceId']), message)
        except AWS_ERRORS as e:
            self._logger.error('[CommandPublishFailure] Error publishing command {0}: {1}'.format(command['commandId'], e))
            raise NotifyFailure('Error occurred while attempting to publish command "{0}".'.format(command['commandId']))

    def getCommand(self, ticket, deviceId, commandId):
        ''' Returns a command of a device registered to the caller

        Raises:
            MissingRegistration: the caller has no registration for the device
            MissingCommand: the device has no such command

        '''
        self._requireRegistration(deviceId, self._userId(ticket))
        try:
            command = self._store.getCommand(deviceId, commandId)
        except AWS_ERRORS as e:
            self._logger.error('Error retrieving command {0} for device {1}: {2}'.format(commandId, deviceId, e))
            raise CommandRetrieveFailure('Error occurred while attempting to retrieve command "{0}" for device "{1}".'.format(commandId, deviceId))
        if not command:
            raise MissingCommand('The command "{0}" for device "{1}" does not exist.'.format(commandId, deviceId))
        return command

    def getCommands(self, ticket, deviceId, lastEvaluatedKey=None, commandStatus=None):
        ''' List the commands of a device registered to the caller, most recent first

        Pages are read until at least `pageSize` commands have been collected or no pages remain.  A status filter is applied by the store after reading, so a single page can come back short.

        Args:
            ticket (`dict`): Authorization ticket of the caller
            deviceId (`str`): The device to list commands for
            lastEvaluatedKey (`dict`, optional): Continue after this key, as returned by a previous call
            commandStatus (`str`, optional): Only return commands with this status

        Returns:
            `dict` with `Items`, `LastEvaluatedKey` (`None` when no more commands exist) and `commandStatus`

        '''
        self._requireRegistration(deviceId, self._userId(ticket))
        commandStatus = commandStatus.strip() if commandStatus and commandStatus.strip() else None

        items = []
        key = lastEvaluatedKey
        try:
            while True:
                page = self._store.queryCommands(deviceId, commandStatus, key)
                items.extend(page['Items'])
                key = page.get('LastEvaluatedKey')
                if len(items) >= self._config['pageSize'] or not key:
                    break
        except AWS_ERRORS as e:
            self._logger.error('Error querying commands for device {0}: {1}'.format(deviceId, e))
            raise CommandQueryFailure('Error occurred while attempting to retrieve commands for device "{0}".'.format(deviceId))

        return { 'Items': items, 'LastEvaluatedKey': key, 'commandStatus': commandStatus }

    def acknowledgeCommand(self, ack):
        ''' Record the result a device reported for a command.  Only `status` and `updatedAt` change.

        Args:
            ack (`dict`): The acknowledgment published by the device, e.g. ``{'commandId': ..., 'deviceId': ..., 'status': 'success'}``

        Returns:
            The updated command record

        '''
        status = ack.get('status')
        if status not in STATUSES or not ack.get('commandId') or not ack.get('deviceId'):
            raise InvalidParameter('Invalid acknowledgment {0}'.format(ack))

        try:
            command = self._store.updateCommandStatus(ack['deviceId'], ack['commandId'], status, utcNow())
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException':
                raise MissingCommand('The command "{0}" for device "{1}" does not exist.'.format(ack['commandId'], ack['deviceId']))
            self._logger.error('Error updating command {0}: {1}'.format(ack['commandId'], e))
            raise PersistFailure('Error occurred while attempting to update command "{0}".'.format(ack['commandId']))
        except BotoCoreError as e:
            self._logger.error('Error updating command {0}: {1}'.format(ack['commandId'], e))
            raise PersistFailure('Error occurred while attempting to update command "{0}".'.format(ack['commandId']))

        self._logger.info('Command {0} for device {1} is now {2}'.format(ack['commandId'], ack['deviceId'], status))
        return command
