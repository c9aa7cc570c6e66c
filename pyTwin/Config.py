# -*- coding: utf-8 -*-
import logging
import os

import yaml

_logger = logging.getLogger(__name__)

SCHEMA_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'schema', 'command.schema.yml')

DEFAULTS = {
    'region': 'us-east-1',
    'registrationTable': 'registrations',
    'commandTable': 'commands',
    'commandIndex': 'deviceId-updatedAt-index',
    'commandNamespace': 'smartproduct',
    'telemetryTopic': 'smartfans/telemetry',
    'eventTopic': 'smartfans/event',
    'pageSize': 20,
    'addressableTypes': ['fan'],
    'publishInterval': 10.0,   # seconds between telemetry messages
    'statusInterval': 30.0,    # seconds between state reports
    'accelerationRate': 5.0,   # speed percent per second
    'faultProbability': 0.01,  # per report cycle
    'temperatureChange': 0.5,
    'schemaPath': SCHEMA_PATH,
}

# Environment variables override file values.  Values are converted with the type of the default.
ENVIRONMENT = {
    'PYTWIN_REGION': 'region',
    'PYTWIN_REGISTRATION_TABLE': 'registrationTable',
    'PYTWIN_COMMAND_TABLE': 'commandTable',
    'PYTWIN_COMMAND_INDEX': 'commandIndex',
    'PYTWIN_COMMAND_NAMESPACE': 'commandNamespace',
    'PYTWIN_TELEMETRY_TOPIC': 'telemetryTopic',
    'PYTWIN_EVENT_TOPIC': 'eventTopic',
    'PYTWIN_PAGE_SIZE': 'pageSize',
    'PYTWIN_ADDRESSABLE_TYPES': 'addressableTypes',
    'PYTWIN_PUBLISH_INTERVAL': 'publishInterval',
    'PYTWIN_STATUS_INTERVAL': 'statusInterval',
    'PYTWIN_ACCELERATION_RATE': 'accelerationRate',
    'PYTWIN_FAULT_PROBABILITY': 'faultProbability',
    'PYTWIN_TEMPERATURE_CHANGE': 'temperatureChange',
    'PYTWIN_SCHEMA_PATH': 'schemaPath',
}


def _convert(key, raw):
    default = DEFAULTS[key]
    if isinstance(default, list):
        return [ item.strip() for item in raw.split(',') if item.strip() ]
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def loadConfig(path=None, environ=None):
    ''' Build the runtime configuration

    Args:
        path (`str`, optional): A YAML file whose top level keys override `DEFAULTS`
        environ (`dict`, optional): Environment to read `PYTWIN_*` overrides from.  Defaults to `os.environ`

    Returns:
        A `dict` holding every key of `DEFAULTS`

    Raises:
        FileNotFoundError: if `path` is given but does not exist
        ValueError: if the file is not valid YAML, is not a mapping or names unknown keys

    '''
    config = dict(DEFAULTS)
    config['addressableTypes'] = list(DEFAULTS['addressableTypes'])

    if path is not None:
        if not os.path.exists(path):
            raise FileNotFoundError("Configuration file '{0}' not found".format(path))
        try:
            with open(path, 'r') as f:
                fileConfig = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError("Invalid YAML in '{0}': {1}".format(path, e))

        fileConfig = fileConfig or {}
        if not isinstance(fileConfig, dict):
            raise ValueError("'{0}' must contain a mapping".format(path))
        unknown = [ k for k in fileConfig if k not in DEFAULTS ]
        if unknown:
            raise ValueError("Unknown configuration keys in '{0}': {1}".format(path, ', '.join(sorted(unknown))))
        config.update(fileConfig)

    environ = os.environ if environ is None else environ
    for variable, key in ENVIRONMENT.items():
        if variable in environ:
            config[key] = _convert(key, environ[variable])
            _logger.debug('{0} overridden from {1}'.format(key, variable))

    return config
