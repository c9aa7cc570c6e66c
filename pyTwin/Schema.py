# -*- coding: utf-8 -*-
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
import logging
import math

import yaml

from pyTwin.Config import SCHEMA_PATH
from pyTwin.Errors import SchemaError

MIN_MODBUS_ADDRESS = 1
MAX_MODBUS_ADDRESS = 247


def isString(value):
    return isinstance(value, str)


def isNumber(value):
    ''' Numbers and strings holding a finite number are accepted.  Booleans are not numbers. '''
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float, Decimal)):
        return math.isfinite(value)
    if isinstance(value, str):
        try:
            return math.isfinite(float(value))
        except ValueError:
            return False
    return False


def isBoolean(value):
    return isinstance(value, bool)


def isModbusAddress(value):
    return isinstance(value, int) and not isinstance(value, bool) and MIN_MODBUS_ADDRESS <= value <= MAX_MODBUS_ADDRESS


class TypeTag(Enum):
    ''' The field types a schema leaf can require '''
    STRING = 'string'
    NUMBER = 'number'
    BOOLEAN = 'boolean'
    MODBUS_ADDRESS = 'modbusAddress'

    def check(self, value):
        return _VALIDATORS[self](value)


_VALIDATORS = {
    TypeTag.STRING: isString,
    TypeTag.NUMBER: isNumber,
    TypeTag.BOOLEAN: isBoolean,
    TypeTag.MODBUS_ADDRESS: isModbusAddress,
}


class CommandSchema(object):
    ''' An immutable tree of hyphen separated command parts.

    Each branch is keyed by one part of a command.  The node reached by following every part of a command is its leaf, a mapping of field name to :obj:`TypeTag`.  For example `set-fan-power` resolves to ``{'value': TypeTag.BOOLEAN, 'address': TypeTag.MODBUS_ADDRESS}``.

    Args:
        document (`dict`): The parsed schema document.  A top level `meta` entry is treated as documentation and skipped.

    Raises:
        SchemaError: if the document is not a mapping, mixes fields and sub-commands in one node or uses an unknown type tag

    '''
    _logger = logging.getLogger(__name__)

    def __init__(self, document):
        if not isinstance(document, dict):
            raise SchemaError('A command schema must be a mapping')
        document = { k: v for k, v in document.items() if k != 'meta' }
        self._root = self._freeze(document, [])
        if self.isLeaf(self._root):
            raise SchemaError('The top level of a command schema must hold commands, not fields')

    @classmethod
    def load(cls, path=None):
        ''' Read a schema document from a YAML file.  Defaults to the schema shipped with the package. '''
        path = path if path is not None else SCHEMA_PATH
        try:
            with open(path, 'r') as f:
                document = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise SchemaError("Invalid YAML in '{0}': {1}".format(path, e))
        cls._logger.debug('Loaded command schema from {0}'.format(path))
        return cls(document)

    @classmethod
    def _freeze(cls, node, path):
        if not isinstance(node, dict) or not node:
            raise SchemaError('{0} must be a non-empty mapping'.format('-'.join(path) or 'schema'))

        if all(isinstance(v, str) for v in node.values()):
            leaf = {}
            for field, tag in node.items():
                try:
                    leaf[field] = TypeTag(tag)
                except ValueError:
                    raise SchemaError('{0} uses unknown type {1} for field {2}'.format('-'.join(path), tag, field))
            return MappingProxyType(leaf)

        if any(isinstance(v, str) for v in node.values()):
            raise SchemaError('{0} mixes fields and sub-commands'.format('-'.join(path) or 'schema'))

        return MappingProxyType({ k: cls._freeze(v, path + [k]) for k, v in node.items() })

    @staticmethod
    def isLeaf(node):
        return all(isinstance(v, TypeTag) for v in node.values())

    def resolve(self, parts):
        ''' Walk the tree one part at a time

        Args:
            parts (`list` of `str`): The parts of a command, e.g. ['set', 'fan', 'power']

        Returns:
            The leaf mapping of field name to :obj:`TypeTag`, or `None` if the command is unknown or incomplete

        '''
        node = self._root
        for part in parts:
            if not hasattr(node, 'get') or self.isLeaf(node):
                return None
            node = node.get(part)
            if node is None:
                return None
        return node if self.isLeaf(node) else None

    @property
    def root(self):
        return self._root


_schemas = {}


def defaultSchema(path=None):
    ''' The schema at `path` (the packaged schema by default), loaded on first use and shared afterwards '''
    path = path if path is not None else SCHEMA_PATH
    if path not in _schemas:
        _schemas[path] = CommandSchema.load(path)
    return _schemas[path]


class CommandValidator(object):
    ''' Checks flat commands such as ``{'command': 'set-fan-power', 'value': True, 'address': 5}`` against a :obj:`CommandSchema`.

    Fields present on a command but not named by its leaf are ignored.

    '''
    _logger = logging.getLogger(__name__)

    def __init__(self, schema=None):
        self._schema = schema if schema is not None else defaultSchema()

    def isValid(self, flatCommand):
        ''' Returns `True` when the command is known and every field named by its leaf has a valid value '''
        if not isinstance(flatCommand, dict):
            return False

        command = flatCommand.get('command')
        if not isinstance(command, str):
            return False

        parts = command.split('-')
        if not parts:
            return False

        leaf = self._schema.resolve(parts)
        if leaf is None:
            self._logger.debug('Unknown command {0}'.format(command))
            return False

        for field, tag in leaf.items():
            if not tag.check(flatCommand.get(field)):
                self._logger.debug('{0} has an invalid {1}: {2!r}'.format(command, field, flatCommand.get(field)))
                return False
        return True


def isValid(flatCommand):
    return CommandValidator().isValid(flatCommand)
