import logging
import os
import sys

from pyTwin import deviceClass
from pyTwin.Config import loadConfig


def simulatedDevice(thingName, modelNumber, config=None, **kwargs):
    ''' Create the simulated device for `modelNumber` (e.g. 'sim-controller' or 'test-model') '''
    return deviceClass(modelNumber)(thingName=thingName, config=config, **kwargs)


if __name__ == u'__main__':

    root = logging.getLogger('pyTwin')
    root.setLevel(logging.DEBUG if os.environ.get('PYTWIN_DEBUG') else logging.INFO)
    ch = logging.StreamHandler(sys.stdout)
    ch.setFormatter(logging.Formatter('%(asctime)s %(name)s %(levelname)s %(message)s'))
    root.addHandler(ch)

    thingName = os.environ.get('PYTWIN_THING_NAME', 'smartFanController')
    config = loadConfig(os.environ.get('PYTWIN_CONFIG'))

    device = simulatedDevice(thingName, os.environ.get('PYTWIN_MODEL_NUMBER', 'sim-controller'), config=config,
        endpoint=os.environ['PYTWIN_ENDPOINT'],
        rootCAPath=os.environ.get('PYTWIN_ROOT_CA', 'root-CA.crt'),
        certificatePath=os.environ.get('PYTWIN_CERTIFICATE', thingName + '.crt'),
        privateKeyPath=os.environ.get('PYTWIN_PRIVATE_KEY', thingName + '.private.key'))
    try:
        device.start()
    except KeyboardInterrupt:
        device.exit()
